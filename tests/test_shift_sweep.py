from __future__ import annotations

import unittest
from datetime import date, datetime, time
from unittest.mock import patch

from sqlalchemy import select

from hrshift.models import (
    AttendanceEvent,
    AttendanceType,
    EmployeeAbsence,
    EmployeeVacation,
    Notification,
    ReconciliationOutcome,
    ShiftReconciliation,
)
from hrshift.services import shift_sweep
from hrshift.services.notifications import FORGOT_LEAVE_TITLE
from hrshift.services.shift_sweep import MAX_CATCH_UP_MINUTES, pending_sweep_minutes, run_shift_sweep
from tests.support import BRANCH_LAT, BRANCH_LON, make_session_factory, seed_employee, seed_general_settings, seed_holiday

DAY = date(2026, 3, 10)
NEXT_DAY = date(2026, 3, 11)
TRIGGER = datetime(2026, 3, 11, 9, 0)


class ShiftSweepTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.employee, self.shifts = seed_employee(self.db, shifts=[(time(9, 0), time(17, 0))])

    def tearDown(self) -> None:
        self.db.close()

    def _event(self, employee_id: int, event_type: AttendanceType, ts: datetime, shift_id: int, day: date) -> None:
        self.db.add(
            AttendanceEvent(
                employee_id=employee_id,
                type=event_type,
                ts_local=ts,
                lat=BRANCH_LAT,
                lon=BRANCH_LON,
                shift_id=shift_id,
                occurrence_date=day,
            )
        )
        self.db.commit()

    def _reconciliation_outcome(self, employee_id: int) -> ReconciliationOutcome | None:
        return self.db.scalar(
            select(ShiftReconciliation.outcome).where(ShiftReconciliation.employee_id == employee_id)
        )

    def _vacation_hours(self, employee_id: int) -> list[float]:
        return list(self.db.scalars(select(EmployeeVacation.hours).where(EmployeeVacation.employee_id == employee_id)))

    def test_missed_shift_is_booked_as_vacation_on_its_date(self) -> None:
        report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.candidates, 1)
        self.assertEqual(report.vacations, 1)
        vacation = self.db.scalar(select(EmployeeVacation))
        self.assertEqual(vacation.day_date, DAY)
        self.assertEqual(vacation.hours, 8.0)
        self.assertEqual(self._reconciliation_outcome(self.employee.id), ReconciliationOutcome.VACATION)

    def test_missed_shift_without_allowance_is_absence(self) -> None:
        seed_general_settings(self.db, daily_working_hours=4, vacations_per_year=1)

        report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.absences, 1)
        absence = self.db.scalar(select(EmployeeAbsence))
        self.assertEqual((absence.day_date, absence.hours), (DAY, 8.0))
        self.assertEqual(self._reconciliation_outcome(self.employee.id), ReconciliationOutcome.ABSENCE)

    def test_missing_leave_raises_forgot_leave_notification(self) -> None:
        self._event(self.employee.id, AttendanceType.ATTENDANCE, datetime(2026, 3, 10, 8, 55), self.shifts[0].id, DAY)

        report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.notifications, 1)
        notification = self.db.scalar(select(Notification))
        self.assertEqual(notification.title, FORGOT_LEAVE_TITLE)
        self.assertEqual(notification.employee_id, self.employee.id)
        self.assertEqual((notification.start_time, notification.end_time), ("09:00", "17:00"))
        self.assertIn(self.employee.full_name, notification.message)
        self.assertEqual(self._vacation_hours(self.employee.id), [])

    def test_complete_shift_books_nothing(self) -> None:
        shift_id = self.shifts[0].id
        self._event(self.employee.id, AttendanceType.ATTENDANCE, datetime(2026, 3, 10, 8, 55), shift_id, DAY)
        self._event(self.employee.id, AttendanceType.LEAVE, datetime(2026, 3, 10, 17, 5), shift_id, DAY)

        report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.complete, 1)
        self.assertIsNone(self.db.scalar(select(Notification)))
        self.assertEqual(self._reconciliation_outcome(self.employee.id), ReconciliationOutcome.COMPLETE)

    def test_holiday_skips_the_occurrence(self) -> None:
        seed_holiday(self.db, DAY)

        report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.skipped_holiday, 1)
        self.assertEqual(self._vacation_hours(self.employee.id), [])
        self.assertEqual(self._reconciliation_outcome(self.employee.id), ReconciliationOutcome.HOLIDAY)

    def test_holiday_on_overnight_end_date_skips_the_occurrence(self) -> None:
        night_worker, _ = seed_employee(self.db, shifts=[(time(21, 0), time(5, 0))], full_name="Night Worker")
        seed_holiday(self.db, NEXT_DAY)

        report = run_shift_sweep(datetime(2026, 3, 11, 21, 0), db=self.db)

        self.assertEqual(report.skipped_holiday, 1)
        self.assertEqual(self._vacation_hours(night_worker.id), [])

    def test_repeated_sweep_for_same_minute_is_a_no_op(self) -> None:
        run_shift_sweep(TRIGGER, db=self.db)

        report = run_shift_sweep(datetime(2026, 3, 11, 9, 0, 40), db=self.db)

        self.assertEqual(report.already_reconciled, 1)
        self.assertEqual(report.vacations, 0)
        self.assertEqual(self._vacation_hours(self.employee.id), [8.0])

    def test_employee_with_two_matching_shifts_is_swept_once(self) -> None:
        double, _ = seed_employee(
            self.db,
            shifts=[(time(9, 0), time(13, 0)), (time(9, 0), time(18, 0))],
            full_name="Double Shift",
        )

        report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.candidates, 2)
        self.assertEqual(report.vacations, 2)
        self.assertEqual(self._vacation_hours(double.id), [9.0])

    def test_no_candidates_when_no_shift_starts_at_trigger(self) -> None:
        report = run_shift_sweep(datetime(2026, 3, 11, 9, 1), db=self.db)

        self.assertEqual(report.candidates, 0)
        self.assertIsNone(self.db.scalar(select(ShiftReconciliation)))

    def test_inactive_employee_is_skipped(self) -> None:
        self.employee.is_active = False
        self.db.commit()

        report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.skipped_inactive, 1)
        self.assertIsNone(self.db.scalar(select(ShiftReconciliation)))

    def test_failure_for_one_employee_does_not_stop_the_sweep(self) -> None:
        other, _ = seed_employee(self.db, shifts=[(time(9, 0), time(17, 0))], full_name="Other")
        original = shift_sweep._reconcile_employee

        def flaky(db, *, employee_id, **kwargs):
            if employee_id == self.employee.id:
                raise RuntimeError("boom")
            return original(db, employee_id=employee_id, **kwargs)

        with patch("hrshift.services.shift_sweep._reconcile_employee", side_effect=flaky):
            report = run_shift_sweep(TRIGGER, db=self.db)

        self.assertEqual(report.failed, 1)
        self.assertEqual(report.failed_employee_ids, [self.employee.id])
        self.assertEqual(report.vacations, 1)
        self.assertEqual(self._vacation_hours(other.id), [8.0])
        self.assertIsNone(self._reconciliation_outcome(self.employee.id))


class PendingSweepMinutesTests(unittest.TestCase):
    def test_first_tick_sweeps_current_minute(self) -> None:
        self.assertEqual(pending_sweep_minutes(None, datetime(2026, 3, 11, 9, 0, 12)), [TRIGGER])

    def test_same_minute_is_not_swept_twice(self) -> None:
        self.assertEqual(pending_sweep_minutes(TRIGGER, datetime(2026, 3, 11, 9, 0, 50)), [])

    def test_missed_minutes_are_caught_up_in_order(self) -> None:
        minutes = pending_sweep_minutes(TRIGGER, datetime(2026, 3, 11, 9, 3, 5))

        self.assertEqual(
            minutes,
            [datetime(2026, 3, 11, 9, 1), datetime(2026, 3, 11, 9, 2), datetime(2026, 3, 11, 9, 3)],
        )

    def test_catch_up_is_bounded(self) -> None:
        minutes = pending_sweep_minutes(TRIGGER, datetime(2026, 3, 11, 10, 0))

        self.assertEqual(len(minutes), MAX_CATCH_UP_MINUTES)
        self.assertEqual(minutes[-1], datetime(2026, 3, 11, 10, 0))


if __name__ == "__main__":
    unittest.main()
