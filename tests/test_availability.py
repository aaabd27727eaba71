"""
Availability tests: weekly windows, slot expansion, bookings and blocked
periods.
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from app.models import Availability, MembershipRole
from app.services.availability import generate_slots
from app.utils.timezones import local_datetime, local_today

# 2030-03-04 is a Monday (day_of_week 1 with Sunday = 0)
MONDAY = date(2030, 3, 4)
LONG_AGO = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _monday_window(**fields) -> Availability:
    values = {"day_of_week": 1, "start_time": "08:00", "end_time": "10:00", "slot_duration": 30}
    values.update(fields)
    return Availability(**values)


def _next_monday() -> date:
    today = local_today()
    return today + timedelta(days=7 - today.weekday())


# ============================================================================
# Slot generation
# ============================================================================


def test_window_is_split_into_slots():
    slots = generate_slots([_monday_window()], MONDAY, MONDAY, booked=[], blocked=[], now=LONG_AGO)

    assert [(s.start_time, s.end_time) for s in slots] == [
        ("08:00", "08:30"),
        ("08:30", "09:00"),
        ("09:00", "09:30"),
        ("09:30", "10:00"),
    ]
    assert all(s.available for s in slots)
    assert {s.date for s in slots} == {MONDAY}


def test_break_and_partial_tail_are_skipped():
    window = _monday_window(end_time="10:20", break_start="09:00", break_end="09:30")

    slots = generate_slots([window], MONDAY, MONDAY, booked=[], blocked=[], now=LONG_AGO)

    assert [s.start_time for s in slots] == ["08:00", "08:30", "09:30"]


def test_booked_slot_is_unavailable():
    booked_start = local_datetime(MONDAY, time(8, 30))
    booked = [(booked_start, booked_start + timedelta(minutes=30))]

    slots = generate_slots([_monday_window()], MONDAY, MONDAY, booked=booked, blocked=[], now=LONG_AGO)

    availability = {s.start_time: s.available for s in slots}
    assert availability == {"08:00": True, "08:30": False, "09:00": True, "09:30": True}


def test_blocked_period_removes_slots():
    blocked = [(local_datetime(MONDAY, time(8, 45)), local_datetime(MONDAY, time(9, 15)))]

    slots = generate_slots([_monday_window()], MONDAY, MONDAY, booked=[], blocked=blocked, now=LONG_AGO)

    assert [s.start_time for s in slots] == ["08:00", "09:30"]


def test_past_slots_are_unavailable():
    now = local_datetime(MONDAY, time(9, 0))

    slots = generate_slots([_monday_window()], MONDAY, MONDAY, booked=[], blocked=[], now=now)

    assert [s.available for s in slots] == [False, False, True, True]


def test_only_matching_weekdays_within_validity():
    windows = [
        _monday_window(),
        _monday_window(day_of_week=3, start_time="14:00", end_time="15:00", slot_duration=60),
        _monday_window(day_of_week=5, valid_from=MONDAY + timedelta(days=30)),
    ]
    sunday = MONDAY - timedelta(days=1)

    slots = generate_slots(windows, sunday, sunday + timedelta(days=6), booked=[], blocked=[], now=LONG_AGO)

    assert len(slots) == 5
    assert slots[-1].date == MONDAY + timedelta(days=2)
    assert slots[-1].start_time == "14:00"


# ============================================================================
# Configuration endpoints
# ============================================================================


async def test_create_and_list_availability(client, clinic):
    response = await client.post(
        "/api/v1/availability",
        json={"dayOfWeek": 1, "startTime": "08:00", "endTime": "12:00", "slotDuration": 30},
        headers=clinic.headers,
    )

    assert response.status_code == 201
    assert response.json()["doctorId"] == str(clinic.doctor.id)
    assert response.json()["isActive"] is True

    own = await client.get("/api/v1/availability/config", headers=clinic.headers)
    assert [a["startTime"] for a in own.json()] == ["08:00"]

    by_doctor = await client.get(f"/api/v1/availability/config/{clinic.doctor.id}", headers=clinic.headers)
    assert len(by_doctor.json()) == 1


async def test_overlapping_window_is_rejected(client, clinic):
    first = {"dayOfWeek": 2, "startTime": "08:00", "endTime": "12:00"}
    assert (await client.post("/api/v1/availability", json=first, headers=clinic.headers)).status_code == 201

    overlapping = await client.post(
        "/api/v1/availability",
        json={"dayOfWeek": 2, "startTime": "11:00", "endTime": "13:00"},
        headers=clinic.headers,
    )
    assert overlapping.status_code == 400

    adjacent = await client.post(
        "/api/v1/availability",
        json={"dayOfWeek": 2, "startTime": "12:00", "endTime": "14:00"},
        headers=clinic.headers,
    )
    assert adjacent.status_code == 201


@pytest.mark.parametrize(
    "payload",
    [
        {"dayOfWeek": 1, "startTime": "12:00", "endTime": "08:00"},
        {"dayOfWeek": 7, "startTime": "08:00", "endTime": "12:00"},
        {"dayOfWeek": 1, "startTime": "25:00", "endTime": "26:00"},
        {"dayOfWeek": 1, "startTime": "08:00", "endTime": "12:00", "slotDuration": 5},
    ],
)
async def test_invalid_window_is_400(client, clinic, payload):
    response = await client.post("/api/v1/availability", json=payload, headers=clinic.headers)

    assert response.status_code == 400


async def test_deactivated_window_leaves_config(client, clinic):
    created = await client.post(
        "/api/v1/availability",
        json={"dayOfWeek": 1, "startTime": "08:00", "endTime": "12:00"},
        headers=clinic.headers,
    )

    response = await client.delete(f"/api/v1/availability/{created.json()['id']}", headers=clinic.headers)

    assert response.status_code == 200
    assert response.json()["isActive"] is False
    assert (await client.get("/api/v1/availability/config", headers=clinic.headers)).json() == []


async def test_secretary_cannot_configure_schedule(client, clinic, make_user, add_member, headers_for):
    secretary, _ = await make_user("secretaria@clinicaverde.com.br", name="Secretaria")
    await add_member(secretary, clinic.organization, MembershipRole.SECRETARY)

    response = await client.post(
        "/api/v1/availability",
        json={"dayOfWeek": 1, "startTime": "08:00", "endTime": "12:00"},
        headers=headers_for(secretary, clinic.organization),
    )

    assert response.status_code == 403


# ============================================================================
# Slots
# ============================================================================


async def test_slots_reflect_bookings_and_blocks(client, clinic, patient, make_consultation):
    monday = _next_monday()
    await client.post(
        "/api/v1/availability",
        json={"dayOfWeek": 1, "startTime": "08:00", "endTime": "11:00", "slotDuration": 60},
        headers=clinic.headers,
    )
    await make_consultation(
        clinic.organization, patient, clinic.doctor, local_datetime(monday, time(8, 0))
    )
    params = {"startDate": monday.isoformat(), "endDate": monday.isoformat()}
    url = f"/api/v1/availability/slots/{clinic.doctor.id}"

    slots = (await client.get(url, params=params, headers=clinic.headers)).json()
    assert [(s["startTime"], s["available"]) for s in slots] == [
        ("08:00", False),
        ("09:00", True),
        ("10:00", True),
    ]

    blocked = await client.post(
        "/api/v1/availability/blocked-slots",
        json={
            "startAt": local_datetime(monday, time(9, 0)).isoformat(),
            "endAt": local_datetime(monday, time(10, 0)).isoformat(),
            "reason": "Congresso",
        },
        headers=clinic.headers,
    )
    assert blocked.status_code == 201

    slots = (await client.get(url, params=params, headers=clinic.headers)).json()
    assert [s["startTime"] for s in slots] == ["08:00", "10:00"]

    listed = await client.get("/api/v1/availability/blocked-slots", headers=clinic.headers)
    assert [b["reason"] for b in listed.json()] == ["Congresso"]

    removed = await client.delete(
        f"/api/v1/availability/blocked-slots/{blocked.json()['id']}", headers=clinic.headers
    )
    assert removed.status_code == 204

    slots = (await client.get(url, params=params, headers=clinic.headers)).json()
    assert len(slots) == 3


async def test_slot_range_limits(client, clinic):
    url = f"/api/v1/availability/slots/{clinic.doctor.id}"
    start = local_today()

    too_long = await client.get(
        url,
        params={"startDate": start.isoformat(), "endDate": (start + timedelta(days=31)).isoformat()},
        headers=clinic.headers,
    )
    assert too_long.status_code == 400

    inverted = await client.get(
        url,
        params={"startDate": start.isoformat(), "endDate": (start - timedelta(days=1)).isoformat()},
        headers=clinic.headers,
    )
    assert inverted.status_code == 400


async def test_blocked_slot_must_end_after_start(client, clinic):
    start = local_datetime(_next_monday(), time(9, 0))

    response = await client.post(
        "/api/v1/availability/blocked-slots",
        json={"startAt": start.isoformat(), "endAt": start.isoformat()},
        headers=clinic.headers,
    )

    assert response.status_code == 400
