"""Booking API tests."""

from __future__ import annotations

import uuid
from typing import Any

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.services import booking_store

pytestmark = pytest.mark.asyncio

# Monday 4 March 2030, GMT; far enough ahead that the edit cutoff is open.
MONDAY_9 = "2030-03-04T09:00:00"
MONDAY_10 = "2030-03-04T10:00:00"


def _booking(side_id: object, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Squad A",
        "side_id": str(side_id),
        "start_at": MONDAY_9,
        "end_at": MONDAY_10,
        "racks": [1, 2],
        "capacity": 4,
        "weeks": 3,
    }
    payload.update(overrides)
    return payload


async def _create(client: AsyncClient, headers: dict[str, str], payload: dict[str, Any]) -> dict:
    response = await client.post("/api/v1/bookings", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["booking"]


async def test_create_and_fetch_booking(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    headers = app_context["coach_headers"]

    booking = await _create(client, headers, _booking(app_context["power_id"]))
    assert booking["status"] == "pending"
    assert booking["created_by"] == str(app_context["coach_id"])
    assert len(booking["instances"]) == 3

    fetched = await client.get(f"/api/v1/bookings/{booking['id']}", headers=headers)
    assert fetched.status_code == 200
    assert [inst["racks"] for inst in fetched.json()["instances"]] == [[1, 2]] * 3

    listing = await client.get(
        "/api/v1/bookings", params={"side_id": str(app_context["power_id"])}, headers=headers
    )
    assert [item["id"] for item in listing.json()] == [booking["id"]]

    activity = await client.get(f"/api/v1/bookings/{booking['id']}/activity", headers=headers)
    assert activity.status_code == 200
    assert [event["event_type"] for event in activity.json()] == ["booking.created"]


async def test_activity_for_unknown_booking_is_404(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    response = await client.get(
        f"/api/v1/bookings/{uuid.uuid4()}/activity", headers=app_context["coach_headers"]
    )
    assert response.status_code == 404


async def test_listing_failures_are_retryable(
    app_context: dict[str, object], monkeypatch: pytest.MonkeyPatch
) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    headers = app_context["coach_headers"]
    booking = await _create(client, headers, _booking(app_context["power_id"], weeks=1))

    async def locked(*args: Any, **kwargs: Any) -> None:
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(booking_store.schedule_service, "list_sides", locked)
    monkeypatch.setattr(booking_store, "list_activity", locked)

    sides = await client.get("/api/v1/sides", headers=headers)
    assert sides.status_code == 503
    assert sides.headers["retry-after"] == "1"

    activity = await client.get(f"/api/v1/bookings/{booking['id']}/activity", headers=headers)
    assert activity.status_code == 503
    assert activity.headers["retry-after"] == "1"


async def test_requests_without_token_are_rejected(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    response = await client.get("/api/v1/bookings")
    assert response.status_code == 401


async def test_rack_conflict_returns_409(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    headers = app_context["admin_headers"]
    side_id = app_context["power_id"]
    await _create(client, headers, _booking(side_id, racks=[1], capacity=1, weeks=1))

    response = await client.post(
        "/api/v1/bookings",
        json=_booking(side_id, title="Squad B", racks=[1, 3], capacity=1, weeks=2),
        headers=headers,
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "conflict"
    assert 'Rack 1 conflict with "Squad A" (Mon 04 Mar 09:00 - 10:00)' in detail["message"]
    assert detail["violations"][0]["week"] == 1

    listing = await client.get("/api/v1/bookings", headers=headers)
    assert len(listing.json()) == 1


async def test_capacity_violation_returns_409(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    headers = app_context["admin_headers"]
    side_id = app_context["power_id"]
    await _create(client, headers, _booking(side_id, racks=[1], capacity=6, weeks=1))

    response = await client.post(
        "/api/v1/bookings",
        json=_booking(side_id, title="Squad B", racks=[2], capacity=4, weeks=1),
        headers=headers,
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "capacity_exceeded"
    assert "exceeds capacity by 2 athletes at 09:00 (10 / 8, Performance)" in detail["message"]


async def test_check_endpoints(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    headers = app_context["coach_headers"]
    side_id = app_context["power_id"]
    await _create(client, headers, _booking(side_id, racks=[5], capacity=3, weeks=1))

    candidate = {
        "side_id": str(side_id),
        "start_at": "2030-03-04T09:30:00",
        "end_at": "2030-03-04T10:30:00",
        "racks": [5, 6],
        "capacity": 6,
    }
    conflicts = await client.post("/api/v1/bookings/check-conflicts", json=candidate, headers=headers)
    assert conflicts.status_code == 200
    body = conflicts.json()
    assert body["has_conflicts"]
    assert body["conflicts"][0]["racks"] == [5]

    capacity = await client.post("/api/v1/bookings/check-capacity", json=candidate, headers=headers)
    assert capacity.status_code == 200
    result = capacity.json()
    assert result["is_valid"] is False
    assert result["used"] == 9
    assert result["limit"] == 8
    assert result["period_type"] == "Performance"


async def test_edit_permissions(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    booking = await _create(
        client, app_context["coach_headers"], _booking(app_context["power_id"])
    )
    update = {"apply_to_all": True, "capacity": 2}

    foreign = await client.patch(
        f"/api/v1/bookings/{booking['id']}/instances",
        json=update,
        headers=app_context["other_coach_headers"],
    )
    assert foreign.status_code == 403
    assert foreign.json()["detail"]["code"] == "forbidden"

    viewer = await client.post(
        "/api/v1/bookings",
        json=_booking(app_context["power_id"], racks=[9]),
        headers=app_context["viewer_headers"],
    )
    assert viewer.status_code == 403

    locked = await client.post(
        "/api/v1/bookings",
        json=_booking(app_context["power_id"], racks=[9], is_locked=True),
        headers=app_context["coach_headers"],
    )
    assert locked.status_code == 403


async def test_edit_after_processing_returns_to_pending(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    booking = await _create(
        client, app_context["coach_headers"], _booking(app_context["power_id"])
    )

    processed = await client.post(
        f"/api/v1/bookings/{booking['id']}/process", headers=app_context["team_headers"]
    )
    assert processed.status_code == 200
    body = processed.json()["booking"]
    assert body["status"] == "processed"
    assert body["processed_snapshot"]["instanceCount"] == 3

    second = booking["instances"][1]["id"]
    edited = await client.patch(
        f"/api/v1/bookings/{booking['id']}/instances",
        json={"instance_ids": [second], "capacity": 2},
        headers=app_context["coach_headers"],
    )
    assert edited.status_code == 200
    result = edited.json()["booking"]
    assert result["status"] == "pending"
    assert result["last_edited_by"] == str(app_context["coach_id"])
    assert [inst["capacity"] for inst in result["instances"]] == [4, 2, 4]


async def test_extend_plan_and_commit(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    headers = app_context["admin_headers"]
    side_id = app_context["power_id"]
    booking = await _create(client, headers, _booking(side_id, weeks=1))
    # Holds rack 2 during the second extension week.
    await _create(
        client,
        headers,
        _booking(
            side_id,
            title="Blocker",
            start_at="2030-03-18T09:30:00",
            end_at="2030-03-18T10:30:00",
            racks=[2],
            capacity=1,
            weeks=1,
        ),
    )

    plan = await client.post(
        f"/api/v1/bookings/{booking['id']}/extend/plan", json={"weeks": 2}, headers=headers
    )
    assert plan.status_code == 200
    assert plan.json()["blocked"] is True
    assert plan.json()["accepted"] == []
    assert plan.json()["violation"]["code"] == "conflict"

    blocked = await client.post(
        f"/api/v1/bookings/{booking['id']}/extend", json={"weeks": 2}, headers=headers
    )
    assert blocked.status_code == 409
    unchanged = await client.get(f"/api/v1/bookings/{booking['id']}", headers=headers)
    assert len(unchanged.json()["instances"]) == 1

    extended = await client.post(
        f"/api/v1/bookings/{booking['id']}/extend", json={"weeks": 1}, headers=headers
    )
    assert extended.status_code == 200
    assert len(extended.json()["booking"]["instances"]) == 2


async def test_cancel_all_then_confirm(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    booking = await _create(
        client, app_context["coach_headers"], _booking(app_context["power_id"])
    )

    cancelled = await client.post(
        f"/api/v1/bookings/{booking['id']}/cancel",
        json={"mode": "all"},
        headers=app_context["coach_headers"],
    )
    assert cancelled.status_code == 200
    body = cancelled.json()["booking"]
    assert body["status"] == "pending_cancellation"
    assert all(inst["cancelled_at"] for inst in body["instances"])

    confirmed = await client.post(
        f"/api/v1/bookings/{booking['id']}/confirm-cancellation",
        headers=app_context["team_headers"],
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["booking"]["status"] == "cancelled"

    # Racks are free again once the series is cancelled.
    await _create(client, app_context["coach_headers"], _booking(app_context["power_id"]))


async def test_cancel_single_requires_instance(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    booking = await _create(
        client, app_context["coach_headers"], _booking(app_context["power_id"])
    )
    response = await client.post(
        f"/api/v1/bookings/{booking['id']}/cancel",
        json={"mode": "single"},
        headers=app_context["coach_headers"],
    )
    assert response.status_code == 422


async def test_cutoff_blocks_coach_and_flags_admin(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    past = _booking(
        app_context["power_id"],
        start_at="2024-06-17T09:00:00",
        end_at="2024-06-17T10:00:00",
        weeks=1,
    )

    coach = await client.post("/api/v1/bookings", json=past, headers=app_context["coach_headers"])
    assert coach.status_code == 403
    detail = coach.json()["detail"]
    assert detail["code"] == "cutoff_passed"
    assert detail["cutoff_at"].startswith("2024-06-13T23:59:59")

    admin = await client.post("/api/v1/bookings", json=past, headers=app_context["admin_headers"])
    assert admin.status_code == 201
    assert admin.json()["last_minute_change"] is True
    assert admin.json()["booking"]["override_by"] == str(app_context["admin_id"])


async def test_unknown_booking_returns_404(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    response = await client.post(
        "/api/v1/bookings/00000000-0000-0000-0000-000000000000/extend",
        json={"weeks": 1},
        headers=app_context["admin_headers"],
    )
    assert response.status_code == 404


async def test_side_snapshot_and_cutoff_lookup(app_context: dict[str, object]) -> None:
    client: AsyncClient = app_context["client"]  # type: ignore[assignment]
    headers = app_context["coach_headers"]
    side_id = app_context["power_id"]
    await _create(client, headers, _booking(side_id, racks=[3, 4], weeks=1))

    sides = await client.get("/api/v1/sides", headers=headers)
    assert sorted(side["key"] for side in sides.json()) == ["Base", "Power"]

    snapshot = await client.get(
        f"/api/v1/sides/{side_id}/snapshot",
        params={"at": "2030-03-04T09:30:00"},
        headers=headers,
    )
    assert snapshot.status_code == 200
    body = snapshot.json()
    assert body["racks_in_use"] == [3, 4]
    assert body["current"][0]["booking_title"] == "Squad A"

    cutoff = await client.get(
        "/api/v1/cutoff", params={"session_date": "2024-06-19"}, headers=headers
    )
    assert cutoff.status_code == 200
    assert cutoff.json()["cutoff_at"].startswith("2024-06-13T23:59:59")
    assert cutoff.json()["is_after_cutoff"] is True
