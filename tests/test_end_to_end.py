from __future__ import annotations

import unittest
from datetime import date, datetime, time

from sqlalchemy import select

from hrshift.models import HourLedgerKind, Notification, ReconciliationOutcome, ShiftReconciliation
from hrshift.services.attendance import record_attendance, record_leave
from hrshift.services.overtime import record_overtime_for_day
from hrshift.services.shift_sweep import run_shift_sweep
from tests.support import (
    BRANCH_LAT,
    BRANCH_LON,
    ledger_hours,
    make_session_factory,
    seed_employee,
    seed_general_settings,
)

DAY = date(2026, 3, 10)
NEXT_DAY = date(2026, 3, 11)


class OvernightShiftFlowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.employee, self.shifts = seed_employee(self.db, shifts=[(time(21, 0), time(5, 0))])
        seed_general_settings(self.db, daily_working_hours=8)

    def tearDown(self) -> None:
        self.db.close()

    def _call(self, recorder, ts: datetime):
        return recorder(self.db, employee_id=self.employee.id, event_ts=ts, lat=BRANCH_LAT, lon=BRANCH_LON)

    def test_overnight_shift_is_credited_to_its_start_date(self) -> None:
        attendance = self._call(record_attendance, datetime(2026, 3, 10, 20, 45))
        leave = self._call(record_leave, datetime(2026, 3, 11, 5, 10))

        self.assertEqual(attendance.event.occurrence_date, DAY)
        self.assertEqual(leave.event.occurrence_date, DAY)
        self.assertAlmostEqual(leave.overtime.worked_hours, 8 + 25 / 60, places=6)
        self.assertAlmostEqual(ledger_hours(self.db, self.employee.id, DAY, HourLedgerKind.OVERTIME), 25 / 60, places=6)
        self.assertIsNone(ledger_hours(self.db, self.employee.id, NEXT_DAY, HourLedgerKind.OVERTIME))

        record_overtime_for_day(self.db, employee_id=self.employee.id, day=DAY)
        self.db.commit()
        self.assertAlmostEqual(ledger_hours(self.db, self.employee.id, DAY, HourLedgerKind.OVERTIME), 25 / 60, places=6)

        report = run_shift_sweep(datetime(2026, 3, 11, 21, 0), db=self.db)

        self.assertEqual(report.complete, 1)
        outcome = self.db.scalar(select(ShiftReconciliation.outcome))
        self.assertEqual(outcome, ReconciliationOutcome.COMPLETE)

    def test_attendance_without_leave_is_flagged_by_next_sweep(self) -> None:
        self._call(record_attendance, datetime(2026, 3, 10, 21, 20))

        report = run_shift_sweep(datetime(2026, 3, 11, 21, 0), db=self.db)

        self.assertEqual(report.notifications, 1)
        self.assertEqual(self.db.scalar(select(Notification.shift_id)), self.shifts[0].id)
        self.assertAlmostEqual(ledger_hours(self.db, self.employee.id, DAY, HourLedgerKind.LATE), 20 / 60, places=6)


if __name__ == "__main__":
    unittest.main()
