# Overview: Per-night staff commission allocation for multi-night hotel stays.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional

from ..time_utils import parse_iso_date
"""
Hotel Commission Rules (authoritative)

- One fee per night of stay. Nights run from check-in up to, but not
  including, check-out.
- Saturday and Sunday nights: the whole fee goes to the single staff member
  assigned to that date (weekend_duty).
- Monday to Friday nights: the fee is split in two halves, one per weekday
  staff slot (weekday_shared).
- Unassigned slots are dropped (UnassignedSlotPolicy.DROP): an unassigned
  weekend night produces no record and an empty weekday slot forfeits its
  half. Nothing is redistributed to the staff who were assigned.

allocate() is pure: same inputs, same output. Checkout may call it again
after a failed commit.
"""


class CommissionRole(str, Enum):
    WEEKDAY_SHARED = "weekday_shared"
    WEEKEND_DUTY = "weekend_duty"


class UnassignedSlotPolicy(str, Enum):
    """What happens to the fee share of a night nobody was assigned to."""

    # Pay only who is assigned. The share stays unallocated.
    DROP = "drop"


WEEKEND_WEEKDAYS = (5, 6)  # date.weekday(): Saturday, Sunday


@dataclass(frozen=True)
class WeekdayStaff:
    """The two staff slots that share every weekday night."""

    staff1: Optional[str] = None
    staff2: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "WeekdayStaff":
        data = data or {}
        return cls(staff1=data.get("staff1") or None, staff2=data.get("staff2") or None)

    def slots(self) -> tuple[Optional[str], Optional[str]]:
        return (self.staff1, self.staff2)


@dataclass(frozen=True)
class AllocationRecord:
    date: str
    staff_id: str
    fee: Decimal
    role: CommissionRole

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "staff_id": self.staff_id,
            "fee": str(self.fee),
            "role": self.role.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "AllocationRecord":
        return cls(
            date=data["date"],
            staff_id=data["staff_id"],
            fee=Decimal(str(data["fee"])),
            role=CommissionRole(data["role"]),
        )


def is_weekend(night: date) -> bool:
    return night.weekday() in WEEKEND_WEEKDAYS


def stay_nights(check_in, check_out) -> list[date]:
    """
    Calendar nights of a stay: check_in, check_in + 1, ..., check_out - 1.

    Returns an empty list when check_out is not after check_in.
    """
    start = parse_iso_date(check_in)
    end = parse_iso_date(check_out)
    if start is None or end is None:
        raise ValueError("check_in and check_out are required")
    count = (end - start).days
    return [start + timedelta(days=i) for i in range(max(count, 0))]


def _night_records(
    night: date,
    weekday_staff: WeekdayStaff,
    weekend_staff: Mapping[str, Optional[str]],
    fee_per_night: Decimal,
) -> list[AllocationRecord]:
    date_str = night.isoformat()

    if is_weekend(night):
        staff_id = weekend_staff.get(date_str)
        if not staff_id:
            # UnassignedSlotPolicy.DROP: uncovered weekend night, no record
            return []
        return [AllocationRecord(date=date_str, staff_id=staff_id, fee=fee_per_night, role=CommissionRole.WEEKEND_DUTY)]

    half = fee_per_night / 2
    records = []
    for staff_id in weekday_staff.slots():
        if not staff_id:
            # UnassignedSlotPolicy.DROP: the empty slot's half is not paid to anyone
            continue
        records.append(AllocationRecord(date=date_str, staff_id=staff_id, fee=half, role=CommissionRole.WEEKDAY_SHARED))
    return records


def allocate(
    nights: Iterable,
    weekday_staff: WeekdayStaff | Mapping | None,
    weekend_staff: Mapping[str, Optional[str]] | None,
    fee_per_night,
) -> list[AllocationRecord]:
    """
    Allocate the per-night fee of a stay to the staff on duty each night.

    nights: dates (or ISO date strings) in stay order
    weekday_staff: WeekdayStaff or {"staff1": ..., "staff2": ...}
    weekend_staff: {"YYYY-MM-DD": staff_id} for Saturday/Sunday nights
    fee_per_night: amount in minor units
    """
    if not isinstance(weekday_staff, WeekdayStaff):
        weekday_staff = WeekdayStaff.from_dict(weekday_staff)
    weekend_staff = dict(weekend_staff or {})
    fee = Decimal(str(fee_per_night))
    if fee < 0:
        raise ValueError("fee_per_night must be >= 0")

    records: list[AllocationRecord] = []
    for raw in nights:
        night = parse_iso_date(raw)
        records.extend(_night_records(night, weekday_staff, weekend_staff, fee))

    return [r for r in records if r.staff_id]


def total_allocated(records: Iterable[AllocationRecord]) -> Decimal:
    return sum((r.fee for r in records), Decimal(0))
