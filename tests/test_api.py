"""Leave API tests — endpoints, role checks and RFC 7807 error bodies."""

from __future__ import annotations

import uuid

from httpx import AsyncClient

from hr_leave.common.constants import LeaveEventType
from tests.conftest import auth_headers, make_employee

BASE = "/api/v1/leave"


def _body(from_date: str = "2026-02-01", to_date: str = "2026-02-05", leave_type: str = "paid") -> dict:
    return {
        "leave_type": leave_type,
        "from_date": from_date,
        "to_date": to_date,
        "reason": "Family function",
    }


async def _apply(client: AsyncClient, principal, **kwargs) -> dict:
    resp = await client.post(f"{BASE}/apply", json=_body(**kwargs), headers=auth_headers(principal))
    assert resp.status_code == 201, resp.text
    return resp.json()


# ═════════════════════════════════════════════════════════════════════
# System
# ═════════════════════════════════════════════════════════════════════


class TestHealth:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


# ═════════════════════════════════════════════════════════════════════
# Apply / read
# ═════════════════════════════════════════════════════════════════════


class TestApplyEndpoint:

    async def test_apply_returns_pending_request(self, client, employee, notifier):
        data = await _apply(client, employee)
        assert data["status"] == "pending"
        assert data["days"] == 5
        assert data["manager_id"] == str(employee.manager_id)
        assert data["trail"][0]["decision"] == "submitted"
        assert [e.event_type for e in notifier.events] == [LeaveEventType.submitted]

    async def test_missing_identity_is_401(self, client):
        resp = await client.post(f"{BASE}/apply", json=_body())
        assert resp.status_code == 401
        assert resp.json()["type"].endswith("/unauthenticated")

    async def test_overlap_is_409_problem(self, client, employee):
        first = await _apply(client, employee)
        resp = await client.post(
            f"{BASE}/apply",
            json=_body("2026-02-04", "2026-02-06", "sick"),
            headers=auth_headers(employee),
        )
        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/overlap-conflict")
        assert body["errors"]["conflicting_request_id"] == [first["id"]]

    async def test_insufficient_balance_is_409(self, client, employee):
        await _apply(client, employee, from_date="2026-01-01", to_date="2026-01-09", leave_type="sick")
        resp = await client.post(
            f"{BASE}/apply",
            json=_body("2026-03-02", "2026-03-03", "sick"),
            headers=auth_headers(employee),
        )
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/insufficient-balance")

    async def test_reversed_dates_are_422(self, client, employee):
        resp = await client.post(
            f"{BASE}/apply",
            json=_body("2026-02-05", "2026-02-01"),
            headers=auth_headers(employee),
        )
        assert resp.status_code == 422
        assert resp.json()["title"] == "Validation Error"

    async def test_unknown_leave_type_is_422(self, client, employee):
        resp = await client.post(
            f"{BASE}/apply",
            json=_body(leave_type="sabbatical"),
            headers=auth_headers(employee),
        )
        assert resp.status_code == 422

    async def test_submissions_are_rate_limited(self, client, employee):
        statuses = []
        for day in range(1, 23):
            resp = await client.post(
                f"{BASE}/apply",
                json=_body(f"2026-07-{day:02d}", f"2026-07-{day:02d}", "unpaid"),
                headers=auth_headers(employee),
            )
            statuses.append(resp.status_code)
        assert statuses[:20] == [201] * 20
        assert 429 in statuses[20:]

    async def test_get_request_visibility(self, client, employee, manager, hr):
        data = await _apply(client, employee)
        url = f"{BASE}/requests/{data['id']}"

        assert (await client.get(url, headers=auth_headers(employee))).status_code == 200
        assert (await client.get(url, headers=auth_headers(manager))).status_code == 200
        assert (await client.get(url, headers=auth_headers(hr))).status_code == 200
        assert (await client.get(url, headers=auth_headers(make_employee()))).status_code == 403

    async def test_unknown_request_is_404(self, client, employee):
        resp = await client.get(f"{BASE}/requests/{uuid.uuid4()}", headers=auth_headers(employee))
        assert resp.status_code == 404
        assert resp.json()["type"].endswith("/not-found")


class TestListEndpoints:

    async def test_my_leaves_paginated(self, client, employee):
        await _apply(client, employee, from_date="2026-02-01", to_date="2026-02-02")
        await _apply(client, employee, from_date="2026-03-01", to_date="2026-03-02")

        resp = await client.get(
            f"{BASE}/my-leaves", params={"page": 1, "page_size": 1},
            headers=auth_headers(employee),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["data"]) == 1
        assert body["data"][0]["start_date"] == "2026-03-01"
        assert body["meta"]["total"] == 2
        assert body["meta"]["has_next"] is True

    async def test_my_leaves_status_filter(self, client, employee):
        data = await _apply(client, employee)
        await client.put(f"{BASE}/{data['id']}/cancel", json={}, headers=auth_headers(employee))

        resp = await client.get(
            f"{BASE}/my-leaves", params={"status": "pending"}, headers=auth_headers(employee),
        )
        assert resp.json()["meta"]["total"] == 0

    async def test_balances(self, client, employee):
        await _apply(client, employee)

        resp = await client.get(f"{BASE}/balances/paid", params={"year": 2026}, headers=auth_headers(employee))
        assert resp.status_code == 200
        assert resp.json()["available"] == 20

        resp = await client.get(f"{BASE}/balances", params={"year": 2026}, headers=auth_headers(employee))
        assert {b["leave_type"] for b in resp.json()} == {"paid", "sick", "unpaid", "maternity"}

    async def test_team_pending_requires_manager_role(self, client, employee, manager):
        await _apply(client, employee)

        resp = await client.get(f"{BASE}/team-pending", headers=auth_headers(manager))
        assert resp.status_code == 200
        assert len(resp.json()) == 1

        resp = await client.get(f"{BASE}/team-pending", headers=auth_headers(employee))
        assert resp.status_code == 403


# ═════════════════════════════════════════════════════════════════════
# Decisions
# ═════════════════════════════════════════════════════════════════════


class TestDecisionEndpoints:

    async def test_full_approval_flow(self, client, employee, manager, hr):
        data = await _apply(client, employee)

        resp = await client.put(
            f"{BASE}/{data['id']}/manager-decision",
            json={"approve": True, "remarks": "Fine by me"},
            headers=auth_headers(manager),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "manager_approved"

        queue = await client.get(f"{BASE}/hr-queue", headers=auth_headers(hr))
        assert [r["id"] for r in queue.json()] == [data["id"]]

        resp = await client.put(
            f"{BASE}/{data['id']}/hr-decision",
            json={"approve": True},
            headers=auth_headers(hr),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "hr_approved"

        bal = await client.get(f"{BASE}/balances/paid", params={"year": 2026}, headers=auth_headers(employee))
        assert (bal.json()["consumed"], bal.json()["reserved"]) == (5, 0)

        again = await client.put(
            f"{BASE}/{data['id']}/hr-decision",
            json={"approve": True},
            headers=auth_headers(hr),
        )
        assert again.status_code == 409
        assert again.json()["type"].endswith("/invalid-transition")

    async def test_employee_cannot_use_hr_decision(self, client, employee):
        data = await _apply(client, employee)
        resp = await client.put(
            f"{BASE}/{data['id']}/hr-decision",
            json={"approve": True},
            headers=auth_headers(employee),
        )
        assert resp.status_code == 403

    async def test_other_manager_is_403(self, client, employee):
        data = await _apply(client, employee)
        other = make_employee()
        headers = auth_headers(other)
        headers["X-Employee-Role"] = "manager"
        resp = await client.put(
            f"{BASE}/{data['id']}/manager-decision",
            json={"approve": False},
            headers=headers,
        )
        assert resp.status_code == 403

    async def test_cancel(self, client, employee, notifier):
        data = await _apply(client, employee)
        resp = await client.put(
            f"{BASE}/{data['id']}/cancel",
            json={"reason": "Plans changed"},
            headers=auth_headers(employee),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert notifier.events[-1].event_type == LeaveEventType.cancelled

    async def test_cancel_without_body(self, client, employee):
        data = await _apply(client, employee)
        resp = await client.put(f"{BASE}/{data['id']}/cancel", headers=auth_headers(employee))
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "cancelled"
        assert resp.json()["trail"][-1]["remarks"] is None

    async def test_uppercase_leave_type_accepted(self, client, employee):
        data = await _apply(client, employee, leave_type="PAID")
        assert data["leave_type"] == "paid"

        resp = await client.get(f"{BASE}/balances/SICK", params={"year": 2026}, headers=auth_headers(employee))
        assert resp.status_code == 200
        assert resp.json()["leave_type"] == "sick"
