from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app import create_app
from helpers import build_test_settings
from roombook.domain.models import RoomStatus


ADMIN_TOKEN = "secret-admin-token"


def _slot(hour: int, minute: int = 0, minutes: int = 60, days: int = 1) -> dict[str, str]:
    day = datetime.now(timezone.utc).date() + timedelta(days=days)
    start = datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)
    return {"start": start.isoformat(), "end": (start + timedelta(minutes=minutes)).isoformat()}


def _user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


@pytest.fixture
def client(tmp_path):
    settings = build_test_settings(tmp_path, "api_flow.db", admin_token=ADMIN_TOKEN)
    app = create_app(settings)
    with TestClient(app) as test_client:
        repository = app.state.repository
        repository.create_room("Room A", 6, ["whiteboard"], room_id="room-a")
        repository.create_room("Room B", 12, ["projector"], room_id="room-b")
        repository.create_room("Room M", 4, room_id="room-m", status=RoomStatus.MAINTENANCE)
        yield test_client


@pytest.fixture
def admin_headers(client) -> dict[str, str]:
    response = client.post("/login", json={"admin_token": ADMIN_TOKEN})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_booking_flow_with_conflict_and_ownership(client, admin_headers) -> None:
    created = client.post("/bookings", json={"room_id": "room-a", **_slot(10)}, headers=_user("alice"))
    assert created.status_code == 201
    booking = created.json()
    assert booking["status"] == "confirmed"
    assert booking["requester_id"] == "alice"

    clash = client.post(
        "/bookings", json={"room_id": "room-a", **_slot(10, 30)}, headers=_user("bob")
    )
    assert clash.status_code == 409
    assert clash.json()["detail"]["code"] == "BOOKING_CONFLICT"

    foreign = client.post(f"/bookings/{booking['booking_id']}/cancel", headers=_user("bob"))
    assert foreign.status_code == 403
    assert foreign.json()["detail"]["code"] == "NOT_BOOKING_OWNER"

    by_admin = client.post(
        f"/bookings/{booking['booking_id']}/cancel",
        headers={**_user("ops"), **admin_headers},
    )
    assert by_admin.status_code == 200
    assert by_admin.json()["status"] == "cancelled"
    assert by_admin.json()["cancelled_by"] == "ops"

    again = client.post(f"/bookings/{booking['booking_id']}/cancel", headers=_user("alice"))
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "ALREADY_CANCELLED"


def test_policy_and_room_errors_map_to_status_codes(client) -> None:
    early = client.post("/bookings", json={"room_id": "room-a", **_slot(6)}, headers=_user("alice"))
    assert early.status_code == 400
    assert early.json()["detail"]["code"] == "OUTSIDE_OPERATING_HOURS"

    short = client.post(
        "/bookings", json={"room_id": "room-a", **_slot(10, minutes=10)}, headers=_user("alice")
    )
    assert short.json()["detail"]["code"] == "DURATION_TOO_SHORT"

    missing = client.post("/bookings", json={"room_id": "nope", **_slot(10)}, headers=_user("alice"))
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "ROOM_NOT_FOUND"

    closed = client.post("/bookings", json={"room_id": "room-m", **_slot(10)}, headers=_user("alice"))
    assert closed.status_code == 409
    assert closed.json()["detail"]["code"] == "ROOM_UNAVAILABLE"

    slot = _slot(10)
    inverted = client.post(
        "/bookings",
        json={"room_id": "room-a", "start": slot["end"], "end": slot["start"]},
        headers=_user("alice"),
    )
    assert inverted.status_code == 400
    assert inverted.json()["detail"]["code"] == "INVALID_TIME_RANGE"


def test_requester_header_is_required(client) -> None:
    response = client.post("/bookings", json={"room_id": "room-a", **_slot(10)})
    assert response.status_code == 401


def test_quota_is_enforced_over_http(client) -> None:
    for days in (1, 2, 3):
        response = client.post(
            "/bookings", json={"room_id": "room-b", **_slot(9, days=days)}, headers=_user("alice")
        )
        assert response.status_code == 201

    fourth = client.post(
        "/bookings", json={"room_id": "room-b", **_slot(9, days=4)}, headers=_user("alice")
    )
    assert fourth.status_code == 409
    assert fourth.json()["detail"]["code"] == "MAX_ACTIVE_BOOKINGS_EXCEEDED"

    mine = client.get("/bookings/me", headers=_user("alice"))
    assert mine.status_code == 200
    assert len(mine.json()["bookings"]) == 3


def test_search_lists_availability(client) -> None:
    client.post("/bookings", json={"room_id": "room-a", **_slot(10)}, headers=_user("alice"))

    response = client.get("/rooms/search", params={**_slot(9, minutes=180), "sort_by": "capacity"})
    assert response.status_code == 200
    rooms = {item["room_id"]: item for item in response.json()["rooms"]}
    assert rooms["room-a"]["availability_status"] == "partially_available"
    assert rooms["room-b"]["availability_status"] == "available"
    assert rooms["room-m"]["availability_status"] == "maintenance"
    assert [item["room_id"] for item in response.json()["rooms"]] == ["room-m", "room-a", "room-b"]

    filtered = client.get(
        "/rooms/search", params={**_slot(9), "capabilities": ["projector"], "min_capacity": 10}
    )
    assert [item["room_id"] for item in filtered.json()["rooms"]] == ["room-b"]


def test_search_rejects_inverted_window(client) -> None:
    slot = _slot(10)
    response = client.get("/rooms/search", params={"start": slot["end"], "end": slot["start"]})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_SEARCH_WINDOW"


def test_rules_require_admin_and_validate(client, admin_headers) -> None:
    assert client.get("/rules").json()["max_active_bookings"] == 3

    anonymous = client.put("/rules", json={"max_active_bookings": 5})
    assert anonymous.status_code == 401

    updated = client.put("/rules", json={"max_active_bookings": 5}, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["max_active_bookings"] == 5
    assert updated.json()["open_hour"] == 8

    invalid = client.put("/rules", json={"open_hour": 22}, headers=admin_headers)
    assert invalid.status_code == 400
    assert invalid.json()["detail"]["code"] == "INVALID_HOURS"

    unknown = client.put("/rules", json={"colour": "red"}, headers=admin_headers)
    assert unknown.json()["detail"]["code"] == "UNKNOWN_FIELD"


def test_login_rejects_wrong_token(client) -> None:
    response = client.post("/login", json={"admin_token": "wrong"})
    assert response.status_code == 401


def test_logout_revokes_admin_session(client, admin_headers) -> None:
    assert client.get("/audit_logs", headers=admin_headers).status_code == 200
    assert client.post("/logout", headers=admin_headers).status_code == 204
    assert client.get("/audit_logs", headers=admin_headers).status_code == 401


def test_maintenance_blocks_and_audit_log(client, admin_headers) -> None:
    payload = {"room_id": "room-b", "reason": "projector repair", **_slot(9, minutes=240)}
    assert client.post("/maintenance_blocks", json=payload).status_code == 401

    created = client.post("/maintenance_blocks", json=payload, headers=admin_headers)
    assert created.status_code == 201
    block_id = created.json()["block_id"]

    blocked = client.post("/bookings", json={"room_id": "room-b", **_slot(10)}, headers=_user("alice"))
    assert blocked.status_code == 409
    assert blocked.json()["detail"]["code"] == "BOOKING_CONFLICT"

    listed = client.get("/maintenance_blocks", params={"room_id": "room-b"}, headers=admin_headers)
    assert [item["block_id"] for item in listed.json()["blocks"]] == [block_id]

    assert client.delete(f"/maintenance_blocks/{block_id}", headers=admin_headers).status_code == 204
    gone = client.delete(f"/maintenance_blocks/{block_id}", headers=admin_headers)
    assert gone.status_code == 404
    assert gone.json()["detail"]["code"] == "MAINTENANCE_BLOCK_NOT_FOUND"

    unknown_room = client.post(
        "/maintenance_blocks", json={**payload, "room_id": "nope"}, headers=admin_headers
    )
    assert unknown_room.status_code == 404

    audit = client.get(
        "/audit_logs", params={"entity_type": "maintenance_block"}, headers=admin_headers
    )
    assert audit.status_code == 200
    actions = sorted(entry["action"] for entry in audit.json()["entries"])
    assert actions == ["maintenance_block_created", "maintenance_block_deleted"]


def test_admin_can_list_every_booking(client, admin_headers) -> None:
    client.post("/bookings", json={"room_id": "room-a", **_slot(10)}, headers=_user("alice"))
    client.post("/bookings", json={"room_id": "room-b", **_slot(12)}, headers=_user("bob"))

    assert client.get("/bookings/all").status_code == 401

    listed = client.get("/bookings/all", headers=admin_headers)
    assert listed.status_code == 200
    body = listed.json()
    assert body["total"] == 2
    assert body["total_pages"] == 1
    assert [item["requester_id"] for item in body["bookings"]] == ["bob", "alice"]

    only_alice = client.get(
        "/bookings/all",
        params={"requester_id": "alice", "status": "confirmed"},
        headers=admin_headers,
    )
    assert [item["room_id"] for item in only_alice.json()["bookings"]] == ["room-a"]

    bad_page = client.get("/bookings/all", params={"page": 0}, headers=admin_headers)
    assert bad_page.status_code == 400
    assert bad_page.json()["detail"]["code"] == "INVALID_INPUT"


def test_times_with_seconds_are_rejected(client, admin_headers) -> None:
    slot = _slot(10)
    start = datetime.fromisoformat(slot["start"]) + timedelta(seconds=59)
    response = client.post(
        "/bookings",
        json={"room_id": "room-a", "start": start.isoformat(), "end": slot["end"]},
        headers=_user("alice"),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_TIME_RANGE"
    assert client.get("/bookings/me", headers=_user("alice")).json()["bookings"] == []

    block = client.post(
        "/maintenance_blocks",
        json={"room_id": "room-a", "start": start.isoformat(), "end": slot["end"]},
        headers=admin_headers,
    )
    assert block.status_code == 400
