"""
Tests for the attendance ledger and the admin attendance report
"""
from datetime import date, timedelta

import pytest

from conftest import OWNER_ID, TECH_USER_ID, utc
from fieldops.auth import CurrentUser, TechnicianContext
from fieldops.domain.attendance import service as attendance_service
from fieldops.domain.attendance.service import AttendanceService, attendance_status
from fieldops.domain.working_hours.schemas import WorkingHoursConfigUpdate
from fieldops.domain.working_hours.service import WorkingHoursService
from fieldops.errors import ConflictError, ValidationError
from fieldops.models import DailyAttendance, Technician

# 2024-03-04 in Asia/Jakarta; local time = UTC + 7h
DAY = date(2024, 3, 4)


@pytest.fixture
def ctx(technician):
    return TechnicianContext(
        user=CurrentUser(id=TECH_USER_ID, email=technician.email),
        tenant_id=technician.tenant_id,
        technician=technician,
    )


@pytest.fixture
def eight_to_four(db_session, tenant):
    WorkingHoursService(db_session).set(
        tenant, WorkingHoursConfigUpdate(workStartTime="08:00:00", workEndTime="16:00:00")
    )


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin the clock the attendance service reads"""

    def freeze(value):
        monkeypatch.setattr(attendance_service, "utc_now", lambda: value)

    return freeze


@pytest.mark.unit
class TestClockInOut:
    def test_late_and_early_leave_scenario(self, db_session, ctx, eight_to_four):
        service = AttendanceService(db_session)

        row = service.clock_in(ctx, now=utc(2024, 3, 4, 1, 15))
        assert row["date"] == "2024-03-04"
        assert row["is_late"] is True
        assert row["is_early_leave"] is False
        assert row["clock_out_time"] is None

        row = service.clock_out(ctx, now=utc(2024, 3, 4, 8, 30))
        assert row["is_early_leave"] is True
        assert row["is_late"] is True
        assert row["total_work_hours"] == 7.25

    def test_ninety_minutes_is_one_and_a_half_hours(self, db_session, ctx):
        service = AttendanceService(db_session)
        service.clock_in(ctx, now=utc(2024, 3, 4, 2, 0))
        row = service.clock_out(ctx, now=utc(2024, 3, 4, 3, 30))
        assert row["total_work_hours"] == 1.5

    def test_clock_in_at_start_is_not_late(self, db_session, ctx, eight_to_four):
        row = AttendanceService(db_session).clock_in(ctx, now=utc(2024, 3, 4, 1, 0))
        assert row["is_late"] is False

    def test_one_minute_after_start_is_late(self, db_session, ctx, eight_to_four):
        row = AttendanceService(db_session).clock_in(ctx, now=utc(2024, 3, 4, 1, 1))
        assert row["is_late"] is True

    def test_second_clock_in_same_day_is_rejected(self, db_session, ctx):
        service = AttendanceService(db_session)
        first = service.clock_in(ctx, now=utc(2024, 3, 4, 1, 0), notes="on site")

        with pytest.raises(ConflictError, match="Already clocked in today"):
            service.clock_in(ctx, now=utc(2024, 3, 4, 3, 0))

        records = db_session.query(DailyAttendance).all()
        assert len(records) == 1
        db_session.refresh(records[0])
        assert records[0].notes == "on site"
        assert service.today(ctx, now=utc(2024, 3, 4, 4, 0))["todayRow"]["clock_in_time"] == first[
            "clock_in_time"
        ]

    def test_clock_in_again_after_closing_the_day_is_rejected(self, db_session, ctx):
        service = AttendanceService(db_session)
        service.clock_in(ctx, now=utc(2024, 3, 4, 1, 0))
        service.clock_out(ctx, now=utc(2024, 3, 4, 9, 0))

        with pytest.raises(ConflictError):
            service.clock_in(ctx, now=utc(2024, 3, 4, 11, 0))

    def test_new_local_day_allows_clock_in(self, db_session, ctx):
        service = AttendanceService(db_session)
        service.clock_in(ctx, now=utc(2024, 3, 4, 1, 0))
        # 18:00 UTC is already the 5th in Jakarta
        row = service.clock_in(ctx, now=utc(2024, 3, 4, 18, 0))
        assert row["date"] == "2024-03-05"

    def test_clock_out_without_clock_in(self, db_session, ctx):
        with pytest.raises(ConflictError, match="Not clocked in today"):
            AttendanceService(db_session).clock_out(ctx, now=utc(2024, 3, 4, 9, 0))

    def test_double_clock_out(self, db_session, ctx):
        service = AttendanceService(db_session)
        service.clock_in(ctx, now=utc(2024, 3, 4, 1, 0))
        service.clock_out(ctx, now=utc(2024, 3, 4, 9, 0))

        with pytest.raises(ConflictError, match="Already clocked out today"):
            service.clock_out(ctx, now=utc(2024, 3, 4, 10, 0))

    def test_clock_out_keeps_notes_unless_given(self, db_session, ctx):
        service = AttendanceService(db_session)
        service.clock_in(ctx, now=utc(2024, 3, 4, 1, 0), notes="  morning  ")
        row = service.clock_out(ctx, now=utc(2024, 3, 4, 9, 0), notes="   ")
        assert row["notes"] == "morning"


@pytest.mark.unit
class TestTodayAndSelfHeal:
    def test_today_is_empty_before_clock_in(self, db_session, ctx):
        result = AttendanceService(db_session).today(ctx, now=utc(2024, 3, 4, 2, 0))
        assert result == {"today": "2024-03-04", "todayRow": None, "recent": []}

    def test_miscomputed_record_is_healed_on_read(self, db_session, ctx):
        # Written on a UTC basis: flags and hours disagree with the raw timestamps
        db_session.add(
            DailyAttendance(
                tenant_id=ctx.tenant_id,
                technician_id=TECH_USER_ID,
                date=DAY,
                clock_in_time=utc(2024, 3, 4, 1, 15),
                clock_out_time=utc(2024, 3, 4, 8, 30),
                total_work_hours=7.0,
                is_late=True,
                is_early_leave=False,
            )
        )
        db_session.commit()

        result = AttendanceService(db_session).today(ctx, now=utc(2024, 3, 4, 9, 0))
        row = result["todayRow"]
        assert row["is_late"] is False
        assert row["is_early_leave"] is True
        assert row["total_work_hours"] == 7.25
        assert len(result["recent"]) == 1

        record = db_session.query(DailyAttendance).one()
        db_session.refresh(record)
        assert record.is_late is False
        assert record.is_early_leave is True
        assert record.total_work_hours == 7.25

    def test_failed_heal_does_not_fail_the_read(self, db_session, ctx, monkeypatch):
        db_session.add(
            DailyAttendance(
                tenant_id=ctx.tenant_id,
                technician_id=TECH_USER_ID,
                date=DAY,
                clock_in_time=utc(2024, 3, 4, 1, 15),
                clock_out_time=utc(2024, 3, 4, 8, 30),
                total_work_hours=1.0,
            )
        )
        db_session.commit()

        def broken(*args, **kwargs):
            raise RuntimeError("store unavailable")

        service = AttendanceService(db_session)
        monkeypatch.setattr(service.repo, "update_derived", broken)

        result = service.today(ctx, now=utc(2024, 3, 4, 9, 0))
        assert result["todayRow"]["total_work_hours"] == 7.25

    def test_recent_is_newest_first(self, db_session, ctx):
        service = AttendanceService(db_session)
        for offset in range(3):
            day_start = utc(2024, 3, 4, 1, 0) + timedelta(days=offset)
            service.clock_in(ctx, now=day_start)

        recent = service.today(ctx, now=utc(2024, 3, 6, 2, 0))["recent"]
        assert [r["date"] for r in recent] == ["2024-03-06", "2024-03-05", "2024-03-04"]


@pytest.mark.unit
class TestAttendanceStatus:
    @pytest.mark.parametrize(
        "row, expected",
        [
            ({"clock_in_time": None}, "Absent"),
            ({"clock_in_time": "x", "is_auto_checkout": True, "is_late": True}, "Auto Checkout (Forgot)"),
            ({"clock_in_time": "x", "is_late": True, "is_early_leave": True}, "Late & Early Leave"),
            ({"clock_in_time": "x", "is_late": True}, "Late"),
            ({"clock_in_time": "x", "is_early_leave": True}, "Early Leave"),
            ({"clock_in_time": "x"}, "On Time"),
        ],
    )
    def test_status(self, row, expected):
        assert attendance_status(row) == expected


@pytest.mark.integration
class TestAttendanceRoutes:
    def test_clock_in_out_and_today(self, client, technician, act_as, frozen_now):
        act_as(TECH_USER_ID, technician.email)

        frozen_now(utc(2024, 3, 4, 1, 30))
        response = client.post("/technician/attendance/clock-in", json={"notes": "site A"})
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["row"]["notes"] == "site A"

        response = client.post("/technician/attendance/clock-in")
        assert response.status_code == 409
        assert response.json() == {"error": "Already clocked in today"}

        frozen_now(utc(2024, 3, 4, 10, 30))
        response = client.post("/technician/attendance/clock-out")
        assert response.status_code == 200
        assert response.json()["row"]["total_work_hours"] == 9.0

        response = client.post("/technician/attendance/today")
        body = response.json()
        assert body["today"] == "2024-03-04"
        assert body["todayRow"]["clock_out_time"] is not None
        assert body["todayRow"]["is_early_leave"] is False

    def test_clock_out_before_clock_in_is_conflict(self, client, technician, act_as, frozen_now):
        act_as(TECH_USER_ID, technician.email)
        frozen_now(utc(2024, 3, 4, 9, 0))
        response = client.post("/technician/attendance/clock-out", json={})
        assert response.status_code == 409
        assert response.json()["error"] == "Not clocked in today"

    def test_non_technician_is_forbidden(self, client, tenant, act_as):
        act_as(OWNER_ID)
        response = client.post("/technician/attendance/clock-in")
        assert response.status_code == 403

    def test_technician_row_role_must_record_attendance(self, client, db_session, technician, act_as):
        technician.role = "dispatcher"
        db_session.commit()
        act_as(TECH_USER_ID, technician.email)

        response = client.post("/technician/attendance/clock-in")
        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}


@pytest.mark.integration
class TestAttendanceReport:
    def test_report_with_overtime_and_absent_days(self, db_session, client, ctx, act_as, frozen_now):
        service = AttendanceService(db_session)
        # 08:00 -> 19:00 local: on time, two hours past the 17:00 end
        service.clock_in(ctx, now=utc(2024, 3, 4, 1, 0))
        service.clock_out(ctx, now=utc(2024, 3, 4, 12, 0))

        frozen_now(utc(2024, 3, 5, 3, 0))
        act_as(OWNER_ID)
        response = client.get(
            "/attendance", params={"date_from": "2024-03-04", "date_to": "2024-03-06"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["dateFrom"] == "2024-03-04"
        assert body["dateTo"] == "2024-03-06"

        rows = body["rows"]
        # The 6th is in the future and is not reported as absent
        assert [r["date"] for r in rows] == ["2024-03-05", "2024-03-04"]
        absent, worked = rows
        assert absent["attendance_status"] == "Absent"
        assert absent["technician_name"] == "Budi Teknisi"
        assert worked["attendance_status"] == "On Time"
        assert worked["overtime_hours"] == 2.0
        assert worked["overtime_pay"] == 10000.0

    def test_overtime_is_capped(self, db_session, ctx):
        service = AttendanceService(db_session)
        service.clock_in(ctx, now=utc(2024, 3, 4, 1, 0))
        # 23:00 local, six hours past the end
        service.clock_out(ctx, now=utc(2024, 3, 4, 16, 0))

        report = service.report(
            ctx.tenant_id, DAY, DAY, include_absent=False, now=utc(2024, 3, 5, 3, 0)
        )
        assert report["rows"][0]["overtime_hours"] == 4.0

    def test_inverted_range_is_rejected(self, db_session, tenant):
        with pytest.raises(ValidationError):
            AttendanceService(db_session).report(tenant, date(2024, 3, 5), date(2024, 3, 4))

    def test_range_too_long_is_rejected(self, client, tenant, act_as):
        act_as(OWNER_ID)
        response = client.get(
            "/attendance", params={"date_from": "2024-01-01", "date_to": "2024-06-01"}
        )
        assert response.status_code == 400
        assert "cannot exceed" in response.json()["error"]

    def test_technician_cannot_view_report(self, client, technician, act_as):
        act_as(TECH_USER_ID)
        assert client.get("/attendance").status_code == 403

    def test_malformed_date_is_invalid_request(self, client, tenant, act_as):
        act_as(OWNER_ID)
        response = client.get("/attendance", params={"date_from": "yesterday"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request"
        assert body["details"][0]["loc"] == ["query", "date_from"]

    def test_rows_newest_day_first_then_by_name(self, db_session, technician):
        db_session.add(
            Technician(
                tenant_id=technician.tenant_id,
                user_id="aaaaaaaa-0000-0000-0000-000000000009",
                full_name="Andi Teknisi",
                email="andi@example.com",
                is_verified=True,
            )
        )
        db_session.commit()

        report = AttendanceService(db_session).report(
            technician.tenant_id, DAY, DAY + timedelta(days=1), now=utc(2024, 3, 5, 3, 0)
        )

        assert [(r["date"], r["technician_name"]) for r in report["rows"]] == [
            ("2024-03-05", "Andi Teknisi"),
            ("2024-03-05", "Budi Teknisi"),
            ("2024-03-04", "Andi Teknisi"),
            ("2024-03-04", "Budi Teknisi"),
        ]
