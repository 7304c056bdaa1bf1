from __future__ import annotations

import unittest
from datetime import date, datetime, time
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select

from hrshift.db import get_db
from hrshift.main import _run_scheduled_sweep, app
from hrshift.models import AuditActorType, AuditLog, Notification
from hrshift.services.ledger import add_absence_hours, add_vacation_hours
from hrshift.services.notifications import add_notification, build_forgot_leave_notification
from hrshift.services.shift_windows import ShiftOccurrence
from tests.support import BRANCH_LAT, BRANCH_LON, make_session_factory, override_get_db, seed_employee, seed_holiday


class ApiEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.factory = make_session_factory()
        self.db = self.factory()
        self.employee, self.shifts = seed_employee(self.db, shifts=[(time(9, 0), time(17, 0))])
        app.dependency_overrides.clear()
        app.dependency_overrides[get_db] = override_get_db(self.factory)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.db.close()

    def _payload(self, ts: str, *, lat: float = BRANCH_LAT) -> dict[str, object]:
        return {"employee_id": self.employee.id, "ts": ts, "lat": lat, "lon": BRANCH_LON}

    def test_attendance_and_leave_are_recorded(self) -> None:
        attendance = self.client.post("/api/attendance", json=self._payload("2026-03-10T09:20:00"))

        self.assertEqual(attendance.status_code, 201)
        body = attendance.json()
        self.assertEqual(body["shift_id"], self.shifts[0].id)
        self.assertEqual(body["occurrence_date"], "2026-03-10")
        self.assertAlmostEqual(body["late_hours"], round(20 / 60, 4))
        self.assertEqual(body["event"]["type"], "ATTENDANCE")
        self.assertIn("X-Request-Id", attendance.headers)

        leave = self.client.post("/api/leave", json=self._payload("2026-03-10T17:05:00"))

        self.assertEqual(leave.status_code, 201)
        self.assertEqual(leave.json()["overtime_added_hours"], 0.0)

        events = self.client.get(f"/api/employees/{self.employee.id}/events")
        self.assertEqual([item["type"] for item in events.json()], ["ATTENDANCE", "LEAVE"])

        actions = set(self.db.scalars(select(AuditLog.action)))
        self.assertEqual(actions, {"ATTENDANCE_RECORDED", "LEAVE_RECORDED"})

    def test_rejections_use_error_envelope(self) -> None:
        self.client.post("/api/attendance", json=self._payload("2026-03-10T08:50:00"))

        duplicate = self.client.post(
            "/api/attendance",
            json=self._payload("2026-03-10T09:00:00"),
            headers={"X-Request-Id": "req-42"},
        )

        self.assertEqual(duplicate.status_code, 409)
        error = duplicate.json()["error"]
        self.assertEqual(error["code"], "DUPLICATE_ATTENDANCE")
        self.assertEqual(error["request_id"], "req-42")

        outside = self.client.post("/api/attendance", json=self._payload("2026-03-11T08:50:00", lat=BRANCH_LAT + 0.05))
        self.assertEqual(outside.status_code, 403)
        self.assertEqual(outside.json()["error"]["code"], "OUTSIDE_GEOFENCE")

        no_shift = self.client.post("/api/attendance", json=self._payload("2026-03-11T18:00:00"))
        self.assertEqual(no_shift.status_code, 422)
        self.assertEqual(no_shift.json()["error"]["code"], "NO_MATCHING_SHIFT")

    def test_missing_timestamp_is_invalid_input(self) -> None:
        response = self.client.post(
            "/api/attendance",
            json={"employee_id": self.employee.id, "lat": BRANCH_LAT, "lon": BRANCH_LON},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "INVALID_INPUT")

    def test_leave_without_attendance_is_conflict(self) -> None:
        response = self.client.post("/api/leave", json=self._payload("2026-03-10T17:05:00"))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "ATTENDANCE_REQUIRED_FIRST")

    def test_shift_sweep_endpoint_reports_outcomes(self) -> None:
        response = self.client.post("/api/admin/jobs/shift-sweep", json={"now": "2026-03-11T09:00:00"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["candidates"], 1)
        self.assertEqual(body["vacations"], 1)
        self.assertEqual(body["failed_employee_ids"], [])

    def test_scheduled_sweep_is_audited_as_system(self) -> None:
        with patch("hrshift.main.SessionLocal", self.factory):
            report = _run_scheduled_sweep(datetime(2026, 3, 11, 9, 0))

        self.assertEqual(report.vacations, 1)
        row = self.db.scalar(select(AuditLog).where(AuditLog.action == "SHIFT_SWEEP_SCHEDULED"))
        self.assertEqual(row.actor_type, AuditActorType.SYSTEM)
        self.assertEqual(row.details["vacations"], 1)

    def test_notifications_can_be_listed_and_deleted(self) -> None:
        occurrence = ShiftOccurrence.of(self.shifts[0], date(2026, 3, 10))
        notification = add_notification(self.db, build_forgot_leave_notification(self.employee, occurrence))
        self.db.commit()

        listed = self.client.get("/api/admin/notifications", params={"employee_id": self.employee.id})
        self.assertEqual(listed.status_code, 200)
        self.assertEqual([item["id"] for item in listed.json()], [notification.id])

        deleted = self.client.delete(f"/api/admin/notifications/{notification.id}")
        self.assertEqual(deleted.status_code, 204)
        self.assertIsNone(self.db.scalar(select(Notification.id)))

        missing = self.client.delete(f"/api/admin/notifications/{notification.id}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error"]["code"], "NOT_FOUND")

    def test_overtime_recalculate_and_hours_report(self) -> None:
        self.client.post("/api/attendance", json=self._payload("2026-03-10T08:30:00"))
        self.client.post("/api/leave", json=self._payload("2026-03-10T18:45:00"))

        recalculated = self.client.post(
            "/api/admin/overtime/recalculate",
            json={"employee_id": self.employee.id, "day": "2026-03-10"},
        )
        self.assertEqual(recalculated.status_code, 200)
        self.assertEqual(recalculated.json()["overtime_hours"], 0.25)
        self.assertEqual(recalculated.json()["added_hours"], 0.0)

        report = self.client.get(
            "/api/admin/reports/hours",
            params={"start_date": "2026-03-01", "end_date": "2026-03-31", "kind": "OVERTIME"},
        )
        self.assertEqual(report.status_code, 200)
        self.assertEqual(report.json(), [
            {
                "employee_id": self.employee.id,
                "employee_name": self.employee.full_name,
                "kind": "OVERTIME",
                "total_hours": 0.25,
                "days": 1,
            }
        ])

        export = self.client.get(
            "/api/admin/exports/hours.xlsx",
            params={"start_date": "2026-03-01", "end_date": "2026-03-31"},
        )
        self.assertEqual(export.status_code, 200)
        self.assertTrue(export.content.startswith(b"PK"))

    def test_holidays_are_listed_for_range(self) -> None:
        seed_holiday(self.db, date(2026, 4, 23), name="National Sovereignty Day")
        seed_holiday(self.db, date(2027, 1, 1), name="New Year")

        response = self.client.get(
            "/api/admin/holidays",
            params={"start_date": "2026-01-01", "end_date": "2026-12-31"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["day_date"] for item in response.json()], ["2026-04-23"])

    def test_hours_report_covers_vacation_and_absence(self) -> None:
        add_vacation_hours(self.db, employee_id=self.employee.id, day_date=date(2026, 3, 4), hours=8.0)
        add_absence_hours(self.db, employee_id=self.employee.id, day_date=date(2026, 3, 5), hours=6.0)
        self.db.commit()
        march = {"start_date": "2026-03-01", "end_date": "2026-03-31"}

        vacations = self.client.get("/api/admin/reports/hours", params={**march, "kind": "VACATION"})
        everything = self.client.get("/api/admin/reports/hours", params=march)
        unknown = self.client.get("/api/admin/reports/hours", params={**march, "kind": "HOLIDAY"})

        self.assertEqual(vacations.status_code, 200)
        self.assertEqual(
            [(item["kind"], item["total_hours"], item["days"]) for item in vacations.json()],
            [("VACATION", 8.0, 1)],
        )
        self.assertEqual([item["kind"] for item in everything.json()], ["VACATION", "ABSENCE"])
        self.assertEqual(unknown.status_code, 422)
        self.assertEqual(unknown.json()["error"]["code"], "VALIDATION_ERROR")

    def test_inverted_report_range_is_invalid_input(self) -> None:
        response = self.client.get(
            "/api/admin/reports/hours",
            params={"start_date": "2026-03-31", "end_date": "2026-03-01"},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "INVALID_INPUT")


if __name__ == "__main__":
    unittest.main()
