from .tenancy import Store
from .inventory import Product, StockBatch, StockMovement
from .sales import Transaction, TransactionLine
from .customers import Customer, PointAdjustment

__all__ = [
    'Store',
    'Product', 'StockBatch', 'StockMovement',
    'Transaction', 'TransactionLine',
    'Customer', 'PointAdjustment',
]
