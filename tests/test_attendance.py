"""Calendar and attendance endpoint tests — holidays, restricted holidays, punch records."""

from __future__ import annotations

from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import (
    auth_headers,
    seed_attendance,
    seed_employee,
    seed_holiday,
    seed_restricted_holiday,
)

PROBLEM_JSON = "application/problem+json"


class TestHolidayEndpoints:

    async def test_hr_creates_holiday(self, client, db: AsyncSession, org):
        await db.commit()
        resp = await client.post(
            "/api/v1/holidays",
            json={"name": "Holi", "date": "2026-03-04"},
            headers=auth_headers(org["hr"]),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["year"] == 2026
        assert body["active"] is True

        listed = await client.get("/api/v1/holidays?year=2026", headers=auth_headers(org["employee"]))
        assert [h["date"] for h in listed.json()] == ["2026-03-04"]

    async def test_employee_cannot_create_holiday(self, client, db: AsyncSession, org):
        await db.commit()
        resp = await client.post(
            "/api/v1/holidays",
            json={"name": "Holi", "date": "2026-03-04"},
            headers=auth_headers(org["employee"]),
        )
        assert resp.status_code == 403

    async def test_duplicate_date_conflicts(self, client, db: AsyncSession, org):
        await seed_holiday(db, date(2026, 3, 4), "Holi")
        await db.commit()
        resp = await client.post(
            "/api/v1/holidays",
            json={"name": "Holi again", "date": "2026-03-04"},
            headers=auth_headers(org["hr"]),
        )
        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith(PROBLEM_JSON)
        assert resp.json()["type"].endswith("/conflict")

    async def test_deactivated_holiday_drops_from_list(self, client, db: AsyncSession, org):
        holiday = await seed_holiday(db, date(2026, 3, 4), "Holi")
        await db.commit()
        headers = auth_headers(org["hr"])

        resp = await client.patch(
            f"/api/v1/holidays/{holiday.id}", json={"active": False}, headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["active"] is False

        active = await client.get("/api/v1/holidays?year=2026", headers=headers)
        everything = await client.get(
            "/api/v1/holidays?year=2026&include_inactive=true", headers=headers,
        )
        assert active.json() == []
        assert len(everything.json()) == 1

    async def test_moving_holiday_updates_year(self, client, db: AsyncSession, org):
        holiday = await seed_holiday(db, date(2026, 12, 31), "Year End")
        await db.commit()
        resp = await client.patch(
            f"/api/v1/holidays/{holiday.id}", json={"date": "2027-01-01"},
            headers=auth_headers(org["hr"]),
        )
        assert resp.status_code == 200
        assert resp.json()["year"] == 2027

    async def test_moving_onto_taken_date_conflicts(self, client, db: AsyncSession, org):
        await seed_holiday(db, date(2026, 3, 4), "Holi")
        other = await seed_holiday(db, date(2026, 8, 15), "Independence Day")
        await db.commit()
        resp = await client.patch(
            f"/api/v1/holidays/{other.id}", json={"date": "2026-03-04"},
            headers=auth_headers(org["hr"]),
        )
        assert resp.status_code == 409

    async def test_patch_unknown_holiday(self, client, db: AsyncSession, org):
        await db.commit()
        resp = await client.patch(
            "/api/v1/holidays/00000000-0000-0000-0000-000000000000",
            json={"name": "Ghost"},
            headers=auth_headers(org["hr"]),
        )
        assert resp.status_code == 404


class TestRestrictedHolidayEndpoints:

    async def test_calendars_are_separate(self, client, db: AsyncSession, org):
        await seed_holiday(db, date(2026, 3, 4), "Holi")
        await db.commit()
        headers = auth_headers(org["hr"])

        resp = await client.post(
            "/api/v1/restricted-holidays",
            json={"name": "Holi (RH)", "date": "2026-03-04"},
            headers=headers,
        )
        assert resp.status_code == 201

        listed = await client.get("/api/v1/restricted-holidays", headers=auth_headers(org["employee"]))
        assert [h["name"] for h in listed.json()] == ["Holi (RH)"]

    async def test_employee_cannot_edit(self, client, db: AsyncSession, org):
        rh = await seed_restricted_holiday(db, date(2026, 10, 20), "Diwali")
        await db.commit()
        resp = await client.patch(
            f"/api/v1/restricted-holidays/{rh.id}", json={"name": "Deepavali"},
            headers=auth_headers(org["employee"]),
        )
        assert resp.status_code == 403


class TestAttendanceEndpoints:

    async def test_employee_sees_only_own_records(self, client, db: AsyncSession, org):
        await seed_attendance(db, org["employee"].id, date(2026, 3, 2))
        await seed_attendance(db, org["manager"].id, date(2026, 3, 2))
        await db.commit()

        resp = await client.get(
            f"/api/v1/attendance?employee_id={org['manager'].id}",
            headers=auth_headers(org["employee"]),
        )
        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        assert resp.json()["items"][0]["employee_id"] == str(org["employee"].id)

    async def test_hr_filters_by_employee_and_window(self, client, db: AsyncSession, org):
        for day in (date(2026, 3, 2), date(2026, 3, 3), date(2026, 4, 1)):
            await seed_attendance(db, org["employee"].id, day)
        await seed_attendance(db, org["manager"].id, date(2026, 3, 2))
        await db.commit()

        resp = await client.get(
            f"/api/v1/attendance?employee_id={org['employee'].id}&from=2026-03-01&to=2026-03-31",
            headers=auth_headers(org["hr"]),
        )
        assert resp.status_code == 200
        assert [r["punch_date"] for r in resp.json()["items"]] == ["2026-03-03", "2026-03-02"]

    async def test_hr_records_attendance_once_per_day(self, client, db: AsyncSession, org):
        await db.commit()
        payload = {
            "employee_id": str(org["employee"].id),
            "punch_date": "2026-03-08",
            "in_time": "09:30:00",
            "out_time": "18:00:00",
        }
        headers = auth_headers(org["hr"])

        first = await client.post("/api/v1/attendance", json=payload, headers=headers)
        second = await client.post("/api/v1/attendance", json=payload, headers=headers)

        assert first.status_code == 201
        assert first.json()["source"] == "HR"
        assert second.status_code == 409

    async def test_out_before_in_rejected(self, client, db: AsyncSession, org):
        await db.commit()
        resp = await client.post(
            "/api/v1/attendance",
            json={
                "employee_id": str(org["employee"].id),
                "punch_date": "2026-03-08",
                "in_time": "18:00:00",
                "out_time": "09:00:00",
            },
            headers=auth_headers(org["hr"]),
        )
        assert resp.status_code == 422

    async def test_manager_cannot_record_attendance(self, client, db: AsyncSession, org):
        outsider = await seed_employee(db, name="Someone", reporting_manager_id=org["manager"].id)
        await db.commit()
        resp = await client.post(
            "/api/v1/attendance",
            json={"employee_id": str(outsider.id), "punch_date": "2026-03-08"},
            headers=auth_headers(org["manager"]),
        )
        assert resp.status_code == 403
