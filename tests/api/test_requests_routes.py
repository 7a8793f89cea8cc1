import pytest
from fastapi.testclient import TestClient

from database import User, get_postgres_session
from routes.auth_routes import get_current_user, get_request_repository
from server import app


USERS = {
    "staff-1": User(id="staff-1", first_name="Jennifer", last_name="Lopez", email="jennifer.lopez@rdrealty.com",
                    password="x", role="staff", is_active=True, department_id="dept-ops"),
    "staff-2": User(id="staff-2", first_name="James", last_name="Wilson", email="james.wilson@rdrealty.com",
                    password="x", role="staff", is_active=True),
    "mgr-1": User(id="mgr-1", first_name="Michael", last_name="Garcia", email="michael.garcia@rdrealty.com",
                  password="x", role="manager", is_active=True),
    "acctg-1": User(id="acctg-1", first_name="Robert", last_name="Cruz", email="robert.cruz@rdrealty.com",
                    password="x", role="acctg", is_active=True),
    "purch-1": User(id="purch-1", first_name="David", last_name="Tan", email="david.tan@rdrealty.com",
                    password="x", role="purchaser", is_active=True),
}

REQUEST_BODY = {
    "series": "PO",
    "type": "ITEM",
    "date_prepared": "2026-03-02",
    "date_required": "2026-03-16",
    "business_unit_id": "bu-1",
    "department_id": "dept-ops",
    "purpose": "Office supplies",
    "items": [
        {"description": "Bond paper A4", "uom": "ream", "quantity": 10, "unit_price": 25},
    ],
}


@pytest.fixture
def act_as():
    holder = {"user": USERS["staff-1"]}

    def switch(user_id):
        holder["user"] = USERS[user_id]

    app.dependency_overrides[get_current_user] = lambda: holder["user"]
    yield switch
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def client(repo, act_as):
    app.dependency_overrides[get_request_repository] = lambda: repo
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_create_request_returns_draft(client, repo):
    response = client.post("/api/requests", json=REQUEST_BODY)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "DRAFT"
    assert data["status_label"] == "Draft"
    assert data["doc_no"].startswith("PO-")
    assert data["doc_no"].endswith("-00001")
    assert data["total"] == 250.0
    assert data["items"][0]["total_price"] == 250.0
    assert data["available_actions"] == ["submit", "cancel"]
    assert repo.committed is True


def test_create_request_validation_errors_are_listed(client):
    body = dict(REQUEST_BODY, items=[{"description": "Bond paper A4", "uom": "ream"}])

    response = client.post("/api/requests", json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["detail"] == "Validation error"
    assert "items.0.quantity" in [error["field"] for error in data["errors"]]


def test_create_request_business_rule_error(client):
    response = client.post("/api/requests", json=dict(REQUEST_BODY, items=[]))

    assert response.status_code == 400
    assert response.json()["detail"] == "At least one item is required"


def test_get_request_not_found(client):
    response = client.get("/api/requests/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Material request not found"


def test_get_request_hidden_from_other_staff(client, repo, make_request, act_as):
    repo.requests["req-1"] = make_request()
    act_as("staff-2")

    response = client.get("/api/requests/req-1")

    assert response.status_code == 403


def test_submit_then_approve_through_to_posted(client, repo, make_request, act_as):
    repo.requests["req-1"] = make_request()

    submitted = client.post("/api/requests/req-1/submit")
    assert submitted.status_code == 200
    assert submitted.json()["request"]["status"] == "FOR_REC_APPROVAL"

    act_as("mgr-1")
    recommended = client.post("/api/requests/req-1/recommending-approval", json={"status": "APPROVED"})
    assert recommended.status_code == 200
    assert recommended.json()["request"]["status"] == "FOR_FINAL_APPROVAL"

    act_as("acctg-1")
    final = client.post("/api/requests/req-1/final-approval", json={"status": "APPROVED"})
    assert final.status_code == 200
    data = final.json()
    assert data["auto_posted"] is True
    assert data["message"] == "Request approved and posted successfully"
    assert data["request"]["status"] == "POSTED"

    act_as("staff-1")
    history = client.get("/api/requests/req-1/history")
    assert [entry["action"] for entry in history.json()] == [
        "submit", "rec_approve", "final_approve", "auto_post",
    ]


def test_submit_without_approvers_is_bad_request(client, repo, make_request):
    repo.approvers.clear()
    repo.requests["req-1"] = make_request()

    response = client.post("/api/requests/req-1/submit")

    assert response.status_code == 400
    assert response.json()["detail"] == "No recommending approvers found for this department"


def test_approval_by_wrong_user_is_forbidden(client, repo, make_request):
    repo.requests["req-1"] = make_request(status="FOR_REC_APPROVAL", rec_approver_id="mgr-1",
                                          rec_approval_status="PENDING")

    response = client.post("/api/requests/req-1/recommending-approval", json={"status": "APPROVED"})

    assert response.status_code == 403


def test_non_approver_with_bad_decision_is_forbidden(client, repo, make_request, act_as):
    repo.requests["req-1"] = make_request(status="FOR_REC_APPROVAL", rec_approver_id="mgr-1",
                                          rec_approval_status="PENDING")
    act_as("staff-2")

    response = client.post("/api/requests/req-1/recommending-approval", json={"status": "PENDING"})

    assert response.status_code == 403


def test_post_and_receive_without_body(client, repo, make_request, act_as):
    repo.requests["req-1"] = make_request(status="FINAL_APPROVED")
    act_as("purch-1")

    posted = client.post("/api/requests/req-1/post")
    assert posted.status_code == 200
    assert posted.json()["message"] == "Request marked as posted"
    assert posted.json()["request"]["status"] == "POSTED"
    assert posted.json()["request"]["confirmation_no"] is None

    received = client.post("/api/requests/req-1/receive")
    assert received.status_code == 200
    assert received.json()["message"] == "Request marked as received"
    assert received.json()["request"]["status"] == "RECEIVED"


def test_recall_and_cancel_without_body(client, repo, make_request):
    repo.requests["req-1"] = make_request(status="DISAPPROVED")

    recalled = client.post("/api/requests/req-1/recall")
    assert recalled.status_code == 200
    assert recalled.json()["message"] == "Request returned for editing"
    assert recalled.json()["request"]["status"] == "FOR_EDIT"

    cancelled = client.post("/api/requests/req-1/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["message"] == "Request cancelled"
    assert cancelled.json()["request"]["status"] == "CANCELLED"


def test_invalid_transition_is_bad_request(client, repo, make_request):
    repo.requests["req-1"] = make_request(status="POSTED")

    response = client.post("/api/requests/req-1/cancel", json={"remarks": "No longer needed"})

    assert response.status_code == 400
    assert "POSTED" in response.json()["detail"]


def test_delete_draft(client, repo, make_request):
    repo.requests["req-1"] = make_request()

    response = client.delete("/api/requests/req-1")

    assert response.status_code == 200
    assert "req-1" not in repo.requests


def test_list_scopes_staff_to_own_requests(client, repo):
    response = client.get("/api/requests", params={"requested_by_id": "someone-else", "limit": 5000})

    assert response.status_code == 200
    assert repo.last_filters.requested_by_id == "staff-1"
    assert repo.last_filters.limit == 200


def test_coordinator_view_forbidden_for_staff(client):
    response = client.get("/api/requests/coordinator/posted")

    assert response.status_code == 403


def test_missing_token_is_unauthorized(repo):
    async def no_session():
        yield None

    app.dependency_overrides[get_postgres_session] = no_session
    app.dependency_overrides[get_request_repository] = lambda: repo
    try:
        response = TestClient(app).get("/api/requests")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"
