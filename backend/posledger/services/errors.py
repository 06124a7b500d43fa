"""
Ledger error taxonomy.

Every error is recoverable by the caller. Services raise them after rolling
back the session; routes map them to HTTP responses. Messages are returned
to clients as-is.
"""


class LedgerError(Exception):
    """Base class for ledger operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStock(LedgerError):
    """Raised when a sale requests more units than the product has on hand."""
    def __init__(self, product_name: str, available: int, requested: int, product_id: int | None = None):
        super().__init__(
            f"Insufficient stock for '{product_name}'. Available: {available}, requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class ProductNotFound(LedgerError):
    """Raised when a referenced product does not exist or is deleted."""


class AlreadyFinalized(LedgerError):
    """Raised when voiding or refunding a transaction that is no longer paid."""


class InvalidQuantity(LedgerError):
    """Raised for zero or negative quantities and amounts."""


class CommitFailed(LedgerError):
    """Raised when the store rejects the atomic commit; nothing was applied."""


class TransactionNotFound(LedgerError):
    """Raised when a referenced transaction does not exist."""


class CustomerNotFound(LedgerError):
    """Raised when a referenced customer does not exist."""


class InvalidTransaction(LedgerError):
    """Raised for malformed sale requests or unsupported transaction kinds."""


class DuplicateBarcode(LedgerError):
    """Raised when a barcode is already used by another active product."""


class DuplicateCustomer(LedgerError):
    """Raised when a customer with the same phone number already exists."""


class InvalidPointAdjustment(LedgerError):
    """Raised for rejected manual point adjustments."""
