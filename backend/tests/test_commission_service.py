import unittest
from datetime import date
from decimal import Decimal

from posledger.services import commission_service
from posledger.services.commission_service import (
    AllocationRecord,
    CommissionRole,
    WeekdayStaff,
    allocate,
    stay_nights,
    total_allocated,
)

# 2024-06-07 is a Friday
FRI = "2024-06-07"
SAT = "2024-06-08"
SUN = "2024-06-09"
MON = "2024-06-10"


def _summary(records):
    return [(r.date, r.staff_id, r.fee, r.role) for r in records]


class StayNightsTests(unittest.TestCase):
    def test_nights_exclude_checkout_day(self):
        self.assertEqual(
            stay_nights(FRI, MON),
            [date(2024, 6, 7), date(2024, 6, 8), date(2024, 6, 9)],
        )

    def test_same_day_or_reversed_stay_has_no_nights(self):
        self.assertEqual(stay_nights(FRI, FRI), [])
        self.assertEqual(stay_nights(MON, FRI), [])

    def test_accepts_datetime_strings(self):
        self.assertEqual(stay_nights("2024-06-07T14:00:00Z", "2024-06-08T10:00:00Z"), [date(2024, 6, 7)])

    def test_missing_dates(self):
        with self.assertRaises(ValueError):
            stay_nights(None, FRI)


class AllocateTests(unittest.TestCase):
    def test_weekday_split_and_weekend_duty(self):
        records = allocate([FRI, SAT], WeekdayStaff("A", "B"), {SAT: "C"}, 5000)

        self.assertEqual(_summary(records), [
            (FRI, "A", Decimal(2500), CommissionRole.WEEKDAY_SHARED),
            (FRI, "B", Decimal(2500), CommissionRole.WEEKDAY_SHARED),
            (SAT, "C", Decimal(5000), CommissionRole.WEEKEND_DUTY),
        ])
        self.assertEqual(total_allocated(records), Decimal(10000))

    def test_missing_weekend_entry_produces_no_record(self):
        records = allocate([FRI, SAT], WeekdayStaff("A", "B"), {}, 5000)

        self.assertEqual([r.date for r in records], [FRI, FRI])
        self.assertEqual(total_allocated(records), Decimal(5000))

    def test_single_weekday_staff_gets_only_half(self):
        records = allocate([MON], {"staff1": "A", "staff2": None}, {}, 5000)

        self.assertEqual(_summary(records), [(MON, "A", Decimal(2500), CommissionRole.WEEKDAY_SHARED)])

    def test_no_weekday_staff(self):
        self.assertEqual(allocate([MON], None, None, 5000), [])

    def test_sunday_is_weekend(self):
        records = allocate([SUN], WeekdayStaff("A", "B"), {SUN: "D"}, 4000)
        self.assertEqual(_summary(records), [(SUN, "D", Decimal(4000), CommissionRole.WEEKEND_DUTY)])

    def test_odd_fee_splits_into_fractional_halves(self):
        records = allocate([FRI], WeekdayStaff("A", "B"), {}, 5001)
        self.assertEqual([r.fee for r in records], [Decimal("2500.5"), Decimal("2500.5")])

    def test_weekend_map_ignored_on_weekdays(self):
        records = allocate([FRI], WeekdayStaff("A", "B"), {FRI: "C"}, 5000)
        self.assertNotIn("C", [r.staff_id for r in records])

    def test_is_pure(self):
        args = ([FRI, SAT, SUN, MON], WeekdayStaff("A", "B"), {SAT: "C"}, 5000)
        self.assertEqual(allocate(*args), allocate(*args))

    def test_negative_fee_rejected(self):
        with self.assertRaises(ValueError):
            allocate([FRI], WeekdayStaff("A", "B"), {}, -1)


class AllocationRecordTests(unittest.TestCase):
    def test_dict_form_keeps_fee_exact(self):
        record = AllocationRecord(date=FRI, staff_id="A", fee=Decimal("2500.5"), role=CommissionRole.WEEKDAY_SHARED)

        data = record.to_dict()

        self.assertEqual(data, {"date": FRI, "staff_id": "A", "fee": "2500.5", "role": "weekday_shared"})
        self.assertEqual(AllocationRecord.from_dict(data), record)

    def test_is_weekend(self):
        self.assertFalse(commission_service.is_weekend(date(2024, 6, 7)))
        self.assertTrue(commission_service.is_weekend(date(2024, 6, 8)))
        self.assertTrue(commission_service.is_weekend(date(2024, 6, 9)))
