from __future__ import annotations

import unittest
from datetime import date, time

from sqlalchemy import select

from hrshift.models import EmployeeAbsence, EmployeeVacation
from hrshift.services.general_settings import get_general_settings
from hrshift.services.vacations import BookingKind, add_vacation_or_absence, remaining_vacation_hours
from tests.support import make_session_factory, seed_employee, seed_general_settings


class VacationAllowanceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.employee, _ = seed_employee(self.db, shifts=[(time(9, 0), time(17, 0))])

    def tearDown(self) -> None:
        self.db.close()

    def _book(self, day: date, hours: float = 8.0) -> BookingKind:
        kind = add_vacation_or_absence(self.db, employee_id=self.employee.id, day=day, shift_hours=hours)
        self.db.commit()
        return kind

    def test_default_allowance_when_settings_missing(self) -> None:
        resolved = get_general_settings(self.db)

        self.assertEqual(resolved.daily_working_hours, 10.0)
        self.assertEqual(resolved.annual_vacation_hours, 450.0)

    def test_allowance_needs_both_settings(self) -> None:
        seed_general_settings(self.db, daily_working_hours=8)

        self.assertEqual(get_general_settings(self.db).annual_vacation_hours, 450.0)

    def test_allowance_is_days_times_daily_hours(self) -> None:
        seed_general_settings(self.db, daily_working_hours=8, vacations_per_year=14)

        self.assertEqual(get_general_settings(self.db).annual_vacation_hours, 112.0)

    def test_missed_shift_within_allowance_is_vacation(self) -> None:
        kind = self._book(date(2026, 3, 10))

        self.assertEqual(kind, BookingKind.VACATION)
        row = self.db.scalar(select(EmployeeVacation).where(EmployeeVacation.employee_id == self.employee.id))
        self.assertEqual(row.hours, 8.0)
        self.assertEqual(remaining_vacation_hours(self.db, employee_id=self.employee.id, year=2026), 442.0)

    def test_exhausted_allowance_books_absence(self) -> None:
        seed_general_settings(self.db, daily_working_hours=8, vacations_per_year=1)

        self.assertEqual(self._book(date(2026, 3, 10)), BookingKind.VACATION)
        self.assertEqual(self._book(date(2026, 3, 11)), BookingKind.ABSENCE)

        absence = self.db.scalar(select(EmployeeAbsence).where(EmployeeAbsence.employee_id == self.employee.id))
        self.assertEqual(absence.day_date, date(2026, 3, 11))
        self.assertEqual(absence.hours, 8.0)

    def test_partial_remaining_allowance_books_absence(self) -> None:
        seed_general_settings(self.db, daily_working_hours=6, vacations_per_year=1)

        self.assertEqual(self._book(date(2026, 3, 10), hours=8.0), BookingKind.ABSENCE)

    def test_allowance_resets_each_year(self) -> None:
        seed_general_settings(self.db, daily_working_hours=8, vacations_per_year=1)
        self._book(date(2025, 12, 31))

        self.assertEqual(self._book(date(2026, 1, 1)), BookingKind.VACATION)


if __name__ == "__main__":
    unittest.main()
