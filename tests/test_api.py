import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.config import settings
from app.core.security import create_access_token
from app.db.session import get_session
from app.main import app

from tests.helpers import CREDENTIALS, at

pytestmark = pytest.mark.asyncio


def auth(user) -> dict:
    token = create_access_token(
        subject=user.email, role=user.role.value, name=user.name, secret=settings.jwt_secret,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _repair(client, user, **kw):
    body = {"title": "Laptop does not boot", "description": "black screen", "asset_code": "LAP-001", **kw}
    r = await client.post("/api/tickets/repair", json=body, headers=auth(user))
    assert r.status_code == 201, r.text
    return r.json()


async def test_health(client):
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


async def test_auth_required_and_checked(client, users):
    assert (await client.get("/api/users/me")).status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert (await client.get("/api/users/me", headers=bad)).status_code == 401

    r = await client.get("/api/users/me", headers=auth(users.tech))
    assert r.status_code == 200
    assert r.json()["email"] == "tech@example.com"
    assert r.json()["role"] == "technician"


async def test_repair_ticket_lifecycle_over_http(client, users):
    t = await _repair(client, users.employee)
    assert t["status"] == "submitted"
    assert t["ticket_number"].startswith("REP-")
    assert t["button_status"]["assign"]["enabled"] is False
    assert t["button_status"]["assign"]["reason"]

    tid = t["id"]
    r = await client.post(
        f"/api/tickets/{tid}/transitions",
        json={"action": "assign", "assignee_id": users.tech.id},
        headers=auth(users.admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "assigned"

    r = await client.get(f"/api/tickets/{tid}/actions", headers=auth(users.tech))
    actions = r.json()
    assert actions["start_work"] == {"enabled": True, "reason": None}
    assert actions["close"]["enabled"] is False

    r = await client.post(f"/api/tickets/{tid}/transitions", json={"action": "close"}, headers=auth(users.tech))
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "invalid_transition"
    assert body["status"] == "assigned" and body["action"] == "close"
    assert body["entity"] == "ticket" and body["entity_id"] == tid

    r = await client.post(f"/api/tickets/{tid}/transitions", json={"action": "reject"}, headers=auth(users.admin))
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"
    assert r.json()["field"] == "reason"

    r = await client.post(f"/api/tickets/{tid}/transitions", json={"action": "start_work"}, headers=auth(users.tech2))
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"


async def test_employee_sees_only_own_tickets(client, users):
    mine = await _repair(client, users.employee)
    theirs = await _repair(client, users.other, title="Keyboard")

    r = await client.get("/api/tickets", headers=auth(users.employee))
    assert [t["id"] for t in r.json()] == [mine["id"]]

    r = await client.get(f"/api/tickets/{theirs['id']}", headers=auth(users.employee))
    assert r.status_code == 403
    r = await client.get("/api/tickets/9999", headers=auth(users.admin))
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


async def test_comments_over_http(client, users):
    t = await _repair(client, users.employee)
    r = await client.post(f"/api/tickets/{t['id']}/comments", json={"body": "hello"}, headers=auth(users.employee))
    assert r.status_code == 201, r.text
    assert r.json()["body"] == "hello"
    assert r.json()["actor_name"] == "Employee"

    r = await client.get(f"/api/tickets/{t['id']}/comments", headers=auth(users.admin))
    assert [c["body"] for c in r.json()] == ["hello"]


async def test_booking_warning_then_override(client, users, resource):
    body = {
        "title": "Town hall",
        "resource_id": resource.id,
        "start_at": at(10).isoformat(),
        "end_at": at(11).isoformat(),
    }
    r = await client.post("/api/tickets/booking", json=body, headers=auth(users.employee))
    assert r.status_code == 201, r.text
    first = r.json()
    assert first["status"] == "pending_review"

    overlapping = {**body, "start_at": at(10, 30).isoformat(), "end_at": at(11, 30).isoformat()}
    r = await client.post("/api/tickets/booking", json=overlapping, headers=auth(users.other))
    assert r.status_code == 409
    assert r.json()["error"] == "schedule_warning"
    assert r.json()["override_required"] is True
    assert r.json()["conflict"]["ticket_id"] == first["id"]

    r = await client.post(
        "/api/tickets/booking", json={**overlapping, "override": True}, headers=auth(users.other)
    )
    assert r.status_code == 201

    r = await client.post(
        f"/api/tickets/{first['id']}/transitions",
        json={"action": "approve", "credentials": CREDENTIALS.model_dump()},
        headers=auth(users.admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["meeting_id"] == "81234567890"

    r = await client.post("/api/tickets/booking", json=overlapping, headers=auth(users.other))
    assert r.status_code == 409
    assert r.json()["error"] == "schedule_conflict"
    assert "override_required" not in r.json()

    r = await client.post(
        f"/api/resources/{resource.id}/conflicts",
        json={"start_at": at(10, 15).isoformat(), "end_at": at(10, 45).isoformat()},
        headers=auth(users.employee),
    )
    assert r.status_code == 200
    assert r.json()["kind"] == "hard"


async def test_meeting_secrets_visible_only_to_requester_and_admins(client, users, resource):
    body = {"title": "Sync", "resource_id": resource.id, "start_at": at(14).isoformat(), "end_at": at(15).isoformat()}
    r = await client.post("/api/tickets/booking", json=body, headers=auth(users.employee))
    assert r.status_code == 201, r.text
    ticket_id = r.json()["id"]
    r = await client.post(
        f"/api/tickets/{ticket_id}/transitions",
        json={"action": "approve", "credentials": CREDENTIALS.model_dump()},
        headers=auth(users.admin),
    )
    assert r.status_code == 200, r.text

    for user in (users.employee, users.admin):
        r = await client.get(f"/api/tickets/{ticket_id}", headers=auth(user))
        assert r.status_code == 200
        assert r.json()["passcode"] == CREDENTIALS.passcode
        assert r.json()["host_key"] == CREDENTIALS.host_key

    r = await client.get(f"/api/tickets/{ticket_id}", headers=auth(users.tech))
    assert r.status_code == 200
    assert r.json()["passcode"] is None
    assert r.json()["host_key"] is None
    assert r.json()["meeting_id"] == "81234567890"

    r = await client.get("/api/tickets", headers=auth(users.tech))
    listed = next(t for t in r.json() if t["id"] == ticket_id)
    assert listed["passcode"] is None


async def test_ledger_endpoint_is_staff_only(client, users):
    await _repair(client, users.employee)
    r = await client.get("/api/assets/LAP-001/ledger", headers=auth(users.employee))
    assert r.status_code == 403

    r = await client.get("/api/assets/LAP-001/ledger", headers=auth(users.tech))
    assert r.status_code == 200
    assert r.json()["asset_code"] == "LAP-001"
    assert len(r.json()["related_tickets"]) == 1

    r = await client.get("/api/assets/UNKNOWN/ledger", headers=auth(users.tech))
    assert r.status_code == 200
    assert r.json()["related_tickets"] == []


async def test_counts_and_workload(client, users):
    await _repair(client, users.employee)
    r = await client.get("/api/tickets/counts", headers=auth(users.admin))
    assert r.status_code == 200
    assert r.json()["repair"]["submitted"] == 1
    assert r.json()["booking"]["approved"] == 0

    r = await client.get("/api/reports/technician-workload", headers=auth(users.admin))
    assert r.status_code == 200
    names = [i["name"] for i in r.json()["items"]]
    assert names == ["Tech One", "Tech Two"]
    assert (await client.get("/api/reports/technician-workload", headers=auth(users.tech))).status_code == 403
