from datetime import datetime, time, timedelta, timezone

import pytest
import ulid


def new_id() -> str:
    return str(ulid.ULID())


@pytest.fixture
def open_teacher(make_teacher, make_offering, make_weekly_rule):
    teacher = make_teacher()
    offering = make_offering(teacher, price_per_hour=60_000)
    for weekday in range(7):
        make_weekly_rule(teacher, weekday, time(8), time(20))
    return teacher, offering


def _tomorrow_at(hour: int) -> datetime:
    tomorrow = datetime.now(timezone.utc).date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, hour, tzinfo=timezone.utc)


def _reservation(teacher, offering, hour: int = 10, minutes: int = 60) -> dict:
    start = _tomorrow_at(hour)
    return {
        "teacher_id": teacher.id,
        "subject_offering_id": offering.id,
        "start_at": start.isoformat(),
        "end_at": (start + timedelta(minutes=minutes)).isoformat(),
    }


def test_requires_caller_identity(client):
    r = client.get("/api/v1/bookings")
    assert r.status_code == 401
    assert r.headers["content-type"].startswith("application/problem+json")


def test_booking_flow(client, auth_headers, open_teacher, event_sender):
    teacher, offering = open_teacher
    student_id = new_id()
    student = auth_headers(student_id, "student")
    teacher_headers = auth_headers(teacher.user_id, "teacher")

    r = client.post("/api/v1/bookings", json=_reservation(teacher, offering), headers=student)
    assert r.status_code == 201
    booking = r.json()
    assert booking["status"] == "PENDING"
    assert booking["student_id"] == student_id
    assert booking["duration_minutes"] == 60
    assert booking["price_at_booking"] == 60_000

    r = client.post(f"/api/v1/bookings/{booking['id']}/confirm", headers=teacher_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "CONFIRMED"

    # Both participants see it in their lists
    r = client.get("/api/v1/bookings", headers=student)
    assert r.status_code == 200
    assert [b["id"] for b in r.json()["items"]] == [booking["id"]]
    r = client.get("/api/v1/bookings", headers=teacher_headers)
    assert r.json()["total"] == 1

    r = client.get(f"/api/v1/bookings/{booking['id']}", headers=student)
    assert r.status_code == 200

    r = client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers(new_id(), "student"))
    assert r.status_code == 403

    assert event_sender.event_types == ["event:BookingCreated", "event:BookingConfirmed"]


def test_overlapping_reservation_is_a_conflict(client, auth_headers, open_teacher):
    teacher, offering = open_teacher
    r = client.post(
        "/api/v1/bookings",
        json=_reservation(teacher, offering, hour=10),
        headers=auth_headers(new_id(), "student"),
    )
    assert r.status_code == 201

    r = client.post(
        "/api/v1/bookings",
        json=_reservation(teacher, offering, hour=10, minutes=30),
        headers=auth_headers(new_id(), "student"),
    )
    assert r.status_code == 409
    problem = r.json()
    assert problem["code"] == "SLOT_TAKEN"
    assert problem["status"] == 409
    assert problem["instance"] == "/api/v1/bookings"


def test_outside_availability_is_rejected(client, auth_headers, open_teacher):
    teacher, offering = open_teacher
    r = client.post(
        "/api/v1/bookings",
        json=_reservation(teacher, offering, hour=21),
        headers=auth_headers(new_id(), "student"),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "OUTSIDE_AVAILABILITY"


def test_naive_datetimes_fail_validation(client, auth_headers, open_teacher):
    teacher, offering = open_teacher
    payload = _reservation(teacher, offering)
    payload["start_at"] = payload["start_at"].replace("+00:00", "")
    r = client.post("/api/v1/bookings", json=payload, headers=auth_headers(new_id(), "student"))
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"


def test_teachers_cannot_reserve(client, auth_headers, open_teacher):
    teacher, offering = open_teacher
    r = client.post(
        "/api/v1/bookings",
        json=_reservation(teacher, offering),
        headers=auth_headers(teacher.user_id, "teacher"),
    )
    assert r.status_code == 403


def test_student_cancels_own_booking(client, auth_headers, open_teacher):
    teacher, offering = open_teacher
    student = auth_headers(new_id(), "student")
    booking = client.post(
        "/api/v1/bookings", json=_reservation(teacher, offering), headers=student
    ).json()

    r = client.post(
        f"/api/v1/bookings/{booking['id']}/cancel", json={"reason": "sick"}, headers=student
    )
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert r.json()["cancellation_reason"] == "sick"

    # The freed interval can be booked again
    r = client.post(
        "/api/v1/bookings",
        json=_reservation(teacher, offering),
        headers=auth_headers(new_id(), "student"),
    )
    assert r.status_code == 201


def test_malformed_booking_id(client, auth_headers):
    r = client.get("/api/v1/bookings/not-a-ulid", headers=auth_headers(new_id(), "admin"))
    assert r.status_code == 422


def test_stats_overview_is_scoped_to_the_caller(client, auth_headers, open_teacher):
    teacher, offering = open_teacher
    student_id = new_id()
    student = auth_headers(student_id, "student")
    client.post("/api/v1/bookings", json=_reservation(teacher, offering, hour=9), headers=student)
    client.post(
        "/api/v1/bookings",
        json={**_reservation(teacher, offering, hour=12), "booking_type": "TRIAL"},
        headers=auth_headers(new_id(), "student"),
    )

    r = client.get("/api/v1/bookings/stats/overview", headers=student)
    assert r.status_code == 200
    assert r.json()["total"] == 1

    r = client.get(
        "/api/v1/bookings/stats/overview", headers=auth_headers(teacher.user_id, "teacher")
    )
    body = r.json()
    assert body["total"] == 2
    assert body["status_distribution"]["PENDING"] == 2
    assert body["type_distribution"] == {"TRIAL": 1, "SINGLE": 1, "PACKAGE": 0}
    assert body["recent_status_distribution"]["PENDING"] == 2
