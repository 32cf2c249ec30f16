"""
Live API checks against a running backend

Set REACT_APP_BACKEND_URL and make sure the users in test_config exist
with a shared branch; otherwise these tests are skipped.
"""
import os

import pytest
import requests

from test_config import get_credentials


BASE_URL = os.environ.get("REACT_APP_BACKEND_URL", "").rstrip("/")

pytestmark = pytest.mark.skipif(not BASE_URL, reason="REACT_APP_BACKEND_URL is not set")

ADMIN = get_credentials("admin")
REQUESTER = get_credentials("requester")
HOTEL_MANAGER = get_credentials("hotel_manager")
PURCHASING_REP = get_credentials("purchasing_rep")


def login(creds):
    response = requests.post(f"{BASE_URL}/api/pg/auth/login", json=creds)
    if response.status_code != 200:
        pytest.skip(f"Login failed for {creds['email']}: {response.text}")
    return response.json()["access_token"]


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def first_branch_id(token):
    response = requests.get(f"{BASE_URL}/api/pg/branches", headers=auth(token))
    assert response.status_code == 200, response.text
    branches = response.json()
    if not branches:
        pytest.skip("No branches configured")
    return branches[0]["id"]


def create_request(token, branch_id, unit_cost=10.0, submit=True, justification="Worn out"):
    payload = {
        "items": [
            {
                "name": "Mop Heads",
                "quantity": 10,
                "unit": "piece",
                "estimated_cost": unit_cost,
                "category": "Housekeeping",
                "justification": justification,
            }
        ],
        "branch_id": branch_id,
        "department": "Housekeeping",
        "submit": submit,
    }
    return requests.post(f"{BASE_URL}/api/pg/requests", headers=auth(token), json=payload)


class TestProcurementApi:
    def test_health(self):
        response = requests.get(f"{BASE_URL}/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_requires_authentication(self):
        response = requests.get(f"{BASE_URL}/api/pg/requests")
        assert response.status_code in (401, 403)

    def test_submit_approve_and_purchase(self):
        requester = login(REQUESTER)
        manager = login(HOTEL_MANAGER)
        rep = login(PURCHASING_REP)
        branch_id = first_branch_id(requester)

        created = create_request(requester, branch_id)
        assert created.status_code == 200, created.text
        request = created.json()
        assert request["status"] == "pending_hm_approval"
        assert request["reference_number"] > 1000
        assert request["total_estimated_cost"] == 100.0

        # The requester cannot approve their own request
        denied = requests.post(f"{BASE_URL}/api/pg/requests/{request['id']}/approve", headers=auth(requester), json={})
        assert denied.status_code == 403

        approved = requests.post(
            f"{BASE_URL}/api/pg/requests/{request['id']}/approve",
            headers=auth(manager),
            json={"expected_version": request["version"]},
        )
        assert approved.status_code == 200, approved.text
        assert approved.json()["status"] == "pending_purchase"

        purchased = requests.post(f"{BASE_URL}/api/pg/requests/{request['id']}/purchase", headers=auth(rep), json={})
        assert purchased.status_code == 200, purchased.text
        assert purchased.json()["status"] == "pending_invoice"

    def test_stale_version_is_rejected(self):
        requester = login(REQUESTER)
        manager = login(HOTEL_MANAGER)
        branch_id = first_branch_id(requester)
        request = create_request(requester, branch_id).json()

        url = f"{BASE_URL}/api/pg/requests/{request['id']}/approve"
        first = requests.post(url, headers=auth(manager), json={"expected_version": request["version"]})
        assert first.status_code == 200, first.text
        second = requests.post(
            f"{BASE_URL}/api/pg/requests/{request['id']}/purchase",
            headers=auth(login(PURCHASING_REP)),
            json={"expected_version": request["version"]},
        )
        assert second.status_code == 409

    def test_reject_needs_reason(self):
        requester = login(REQUESTER)
        manager = login(HOTEL_MANAGER)
        request = create_request(requester, first_branch_id(requester)).json()

        response = requests.post(
            f"{BASE_URL}/api/pg/requests/{request['id']}/reject",
            headers=auth(manager),
            json={"reason": "  "},
        )
        assert response.status_code == 400

        response = requests.post(
            f"{BASE_URL}/api/pg/requests/{request['id']}/reject",
            headers=auth(manager),
            json={"reason": "Not in budget"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

    def test_submit_without_justification_fails(self):
        requester = login(REQUESTER)
        response = create_request(requester, first_branch_id(requester), justification="")
        assert response.status_code == 400

    def test_list_requests_is_paginated(self):
        requester = login(REQUESTER)
        response = requests.get(
            f"{BASE_URL}/api/pg/requests",
            headers=auth(requester),
            params={"limit": 2, "offset": 0},
        )
        assert response.status_code == 200, response.text
        page = response.json()
        assert set(page) == {"items", "total", "limit", "offset"}
        assert len(page["items"]) <= 2

    def test_dashboard(self):
        manager = login(HOTEL_MANAGER)
        response = requests.get(f"{BASE_URL}/api/pg/reports/dashboard", headers=auth(manager))
        assert response.status_code == 200, response.text
        assert "awaiting_my_action" in response.json()

    def test_monthly_report_rejects_bad_month(self):
        admin = login(ADMIN)
        branch_id = first_branch_id(admin)
        response = requests.get(
            f"{BASE_URL}/api/pg/reports/monthly",
            headers=auth(admin),
            params={"branch_id": branch_id, "year": 2026, "month": 13},
        )
        assert response.status_code == 400
