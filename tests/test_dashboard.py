"""
Integration tests for the dashboard API.
Tests the endpoint contracts; does NOT require HubSpot, Claude or PostgreSQL.
"""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest
from fastapi.testclient import TestClient

from config.errors import ConfigurationError
from config.settings import config
from crm.models import Contact
from crm.oauth import TokenGrant
from models.action_plans import ActionPlan, ActionStep
from orchestrator.llm_client import CompletionResult
from orchestrator.rate_limiter import RateLimiter

API_KEY = "test-key"
HEADERS = {"X-Coach-Key": API_KEY}
USER_HEADERS = {**HEADERS, "X-User-Id": "user-1"}
PLAN_ID = "11111111-2222-3333-4444-555555555555"

CONTACTS = [
    Contact(id="1", properties={"firstname": "Ada", "lastname": "Lovelace", "lifecyclestage": "lead"}),
    Contact(id="2", properties={"firstname": "Bob", "lastname": "Builder", "lifecyclestage": "customer"}),
]

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _plan(steps=1):
    return ActionPlan(
        id=PLAN_ID,
        user_id="user-1",
        stage="Stage 2 - Advertise",
        business_area="SALES",
        goal="Close more deals",
        steps=[ActionStep(action=f"Step {i}") for i in range(steps)],
    )


@pytest.fixture
def mocks():
    hubspot = MagicMock()
    hubspot.fetch_all_contacts = AsyncMock(return_value=list(CONTACTS))

    claude = MagicMock()
    claude.configured = True
    claude.complete = AsyncMock(return_value=CompletionResult(content="Hello", model="claude-test"))

    store = MagicMock()
    return {"hubspot": hubspot, "claude": claude, "store": store}


@pytest.fixture
def client(mocks):
    """Create a test client with mocked dependencies."""
    with patch("outputs.dashboard._COACH_API_KEY", API_KEY), \
         patch("outputs.dashboard._get_hubspot", return_value=mocks["hubspot"]), \
         patch("outputs.dashboard._get_completion_client", return_value=mocks["claude"]), \
         patch("outputs.dashboard._get_plan_store", return_value=mocks["store"]):

        from outputs.dashboard import app
        previous = app.state.rate_limiter
        app.state.rate_limiter = RateLimiter(max_requests=3, window_seconds=60)
        yield TestClient(app)
        app.state.rate_limiter = previous


# ============================================================
# API key
# ============================================================

def test_missing_api_key_rejected(client):
    resp = client.get("/api/hubspot/contacts")
    assert resp.status_code == 401


def test_unconfigured_api_key_disables_service(client):
    with patch("outputs.dashboard._COACH_API_KEY", ""):
        resp = client.get("/api/hubspot/contacts", headers=HEADERS)
    assert resp.status_code == 503


# ============================================================
# HubSpot contacts
# ============================================================

def test_contacts_returns_everything_in_order(client, mocks):
    resp = client.get("/api/hubspot/contacts", headers=HEADERS)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["contacts_count"] == 2
    assert [c["id"] for c in body["contacts"]] == ["1", "2"]
    assert "pagination" not in body
    mocks["hubspot"].fetch_all_contacts.assert_awaited_once_with(access_token=None)


def test_contacts_uses_oauth_cookie(client, mocks):
    client.cookies.set("hubspot_access_token", "oauth-token")
    client.get("/api/hubspot/contacts", headers=HEADERS)
    mocks["hubspot"].fetch_all_contacts.assert_awaited_once_with(access_token="oauth-token")


def test_contacts_table_view_paginates(client):
    resp = client.get("/api/hubspot/contacts", headers=HEADERS,
                      params={"per_page": 1, "page": 2, "sort": "name"})
    body = resp.json()
    assert [c["id"] for c in body["contacts"]] == ["2"]
    assert body["pagination"] == {"page": 2, "per_page": 1, "total_items": 2, "total_pages": 2}


def test_contacts_without_credentials(client, mocks):
    mocks["hubspot"].fetch_all_contacts.side_effect = ConfigurationError("HubSpot credentials not configured")
    resp = client.get("/api/hubspot/contacts", headers=HEADERS)
    assert resp.status_code == 500
    assert "not configured" in resp.json()["detail"]


def test_contacts_upstream_failure(client, mocks):
    mocks["hubspot"].fetch_all_contacts.side_effect = httpx.HTTPStatusError(
        "boom",
        request=httpx.Request("GET", "https://api.hubapi.com/crm/v3/objects/contacts"),
        response=httpx.Response(401, text="expired"),
    )
    resp = client.get("/api/hubspot/contacts", headers=HEADERS)
    assert resp.status_code == 502


def test_contacts_with_analysis(client):
    with patch("outputs.dashboard.analyze_contacts", new=AsyncMock(return_value="Nurture your leads")):
        resp = client.get("/api/hubspot/contacts", headers=HEADERS, params={"analyze": "true"})
    body = resp.json()
    assert body["analysis"] == "Nurture your leads"
    assert body["contacts_count"] == 2


def test_post_contacts_rejects_unknown_action(client):
    resp = client.post("/api/hubspot/contacts", headers=HEADERS, json={"action": "export"})
    assert resp.status_code == 400


def test_post_contacts_analyzes_payload(client):
    with patch("outputs.dashboard.analyze_contacts", new=AsyncMock(return_value="ok")) as analyze:
        resp = client.post("/api/hubspot/contacts", headers=HEADERS, json={
            "action": "analyze",
            "contacts": [{"id": "9", "properties": {"firstname": "Zed"}}],
        })
    assert resp.json()["analysis"] == "ok"
    sent = analyze.await_args.args[0]
    assert sent[0].id == "9"


def test_analytics(client):
    resp = client.get("/api/hubspot/analytics", headers=HEADERS)
    body = resp.json()
    assert body["total_contacts"] == 2
    assert body["lifecycle_distribution"] == {"lead": 1, "customer": 1}
    assert body["lifecycle_labels"]["lead"] == "Lead"


# ============================================================
# Completion
# ============================================================

def test_completion_returns_content(client, mocks):
    resp = client.post("/api/completion", headers=HEADERS, json={
        "messages": [{"role": "system", "content": "Be brief"}, {"role": "user", "content": "Hi"}],
    })
    assert resp.status_code == 200
    assert resp.json()["content"] == "Hello"
    sent = mocks["claude"].complete.await_args.args[0]
    assert sent[0] == {"role": "system", "content": "Be brief"}


def test_completion_rejects_empty_messages(client):
    resp = client.post("/api/completion", headers=HEADERS, json={"messages": []})
    assert resp.status_code == 422


def test_completion_local_rate_limit(client, mocks):
    payload = {"messages": [{"role": "user", "content": "Hi"}]}
    for _ in range(3):
        assert client.post("/api/completion", headers=HEADERS, json=payload).status_code == 200

    resp = client.post("/api/completion", headers=HEADERS, json=payload)
    assert resp.status_code == 429
    assert 0 < int(resp.headers["Retry-After"]) <= 60
    assert mocks["claude"].complete.await_count == 3


def test_completion_quota_is_per_client(client):
    payload = {"messages": [{"role": "user", "content": "Hi"}]}
    for _ in range(3):
        client.post("/api/completion", headers={**HEADERS, "X-Forwarded-For": "10.0.0.1"}, json=payload)
    resp = client.post("/api/completion", headers={**HEADERS, "X-Forwarded-For": "10.0.0.2"}, json=payload)
    assert resp.status_code == 200


def test_completion_upstream_rate_limit(client, mocks):
    mocks["claude"].complete.side_effect = anthropic.RateLimitError(
        "rate limited", response=httpx.Response(429, request=_REQUEST), body=None,
    )
    resp = client.post("/api/completion", headers=HEADERS,
                       json={"messages": [{"role": "user", "content": "Hi"}]})
    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "60"


def test_completion_upstream_auth_error(client, mocks):
    mocks["claude"].complete.side_effect = anthropic.AuthenticationError(
        "invalid x-api-key", response=httpx.Response(401, request=_REQUEST), body=None,
    )
    resp = client.post("/api/completion", headers=HEADERS,
                       json={"messages": [{"role": "user", "content": "Hi"}]})
    assert resp.status_code == 401


def test_completion_not_configured(client, mocks):
    mocks["claude"].configured = False
    resp = client.post("/api/completion", headers=HEADERS,
                       json={"messages": [{"role": "user", "content": "Hi"}]})
    assert resp.status_code == 500


# ============================================================
# Action plans
# ============================================================

GENERATE = {"stage": "Stage 2 - Advertise", "business_area": "SALES", "current_situation": "Leads go cold"}


def test_generate_plan(client, mocks):
    mocks["claude"].complete.return_value = CompletionResult(
        content=json.dumps({"goal": "Close more deals", "steps": [{"action": "Call", "priority": "high"}]}),
        model="claude-test",
    )
    resp = client.post("/api/action-plans/generate", headers=HEADERS, json=GENERATE)
    body = resp.json()
    assert resp.status_code == 200
    assert body["goal"] == "Close more deals"
    assert body["steps"] == [{"action": "Call", "priority": "high"}]
    assert body["plan"] is None
    mocks["store"].save.assert_not_called()


def test_generate_and_save_plan(client, mocks):
    mocks["claude"].complete.return_value = CompletionResult(
        content=json.dumps({"goal": "Close more deals", "steps": [{"action": "Call", "priority": "high"}]}),
        model="claude-test",
    )
    mocks["store"].save.return_value = _plan()
    resp = client.post("/api/action-plans/generate", headers=USER_HEADERS, json={**GENERATE, "save": True})
    assert resp.json()["plan"]["id"] == PLAN_ID
    user_id, plan = mocks["store"].save.call_args.args
    assert user_id == "user-1"
    assert plan.steps[0].priority == "high"
    assert plan.steps[0].timeframe == "TBD"


def test_saved_plan_never_loses_steps(client, mocks):
    raw = json.dumps({"goal": "G", "steps": ["Call clients", "Post daily"]})
    mocks["claude"].complete.return_value = CompletionResult(content=raw, model="claude-test")
    mocks["store"].save.return_value = _plan()

    resp = client.post("/api/action-plans/generate", headers=USER_HEADERS, json={**GENERATE, "save": True})

    assert resp.status_code == 200
    assert resp.json()["steps"] == [{"action": raw, "priority": "high", "timeframe": "Immediate"}]
    _, plan = mocks["store"].save.call_args.args
    assert len(plan.steps) == 1
    assert plan.steps[0].action == raw


def test_saving_requires_user(client, mocks):
    resp = client.post("/api/action-plans/generate", headers=HEADERS, json={**GENERATE, "save": True})
    assert resp.status_code == 401
    mocks["claude"].complete.assert_not_awaited()


def test_plan_routes_require_user(client):
    assert client.get("/api/action-plans", headers=HEADERS).status_code == 401
    assert client.delete(f"/api/action-plans/{PLAN_ID}", headers=HEADERS).status_code == 401


def test_save_plan(client, mocks):
    mocks["store"].save.return_value = _plan()
    resp = client.post("/api/action-plans", headers=USER_HEADERS, json={
        "stage": "Stage 2 - Advertise", "business_area": "SALES", "goal": "Close more deals",
        "steps": [{"action": "Call", "priority": "low"}],
    })
    assert resp.status_code == 200
    _, plan = mocks["store"].save.call_args.args
    assert plan.steps[0].priority == "low"


def test_save_plan_rejects_bad_priority(client):
    resp = client.post("/api/action-plans", headers=USER_HEADERS, json={
        "stage": "S", "business_area": "SALES", "goal": "g",
        "steps": [{"action": "Call", "priority": "urgent"}],
    })
    assert resp.status_code == 422


def test_list_plans(client, mocks):
    mocks["store"].list_for_user.return_value = [_plan(), _plan()]
    body = client.get("/api/action-plans", headers=USER_HEADERS).json()
    assert body["count"] == 2
    mocks["store"].list_for_user.assert_called_once_with("user-1")


def test_missing_plan_is_404(client, mocks):
    mocks["store"].get.return_value = None
    assert client.get(f"/api/action-plans/{PLAN_ID}", headers=USER_HEADERS).status_code == 404


def test_patch_without_fields(client):
    resp = client.patch(f"/api/action-plans/{PLAN_ID}", headers=USER_HEADERS, json={})
    assert resp.status_code == 400


def test_patch_completion_sets_timestamp(client, mocks):
    mocks["store"].update.return_value = _plan()
    client.patch(f"/api/action-plans/{PLAN_ID}", headers=USER_HEADERS, json={"is_completed": True})
    fields = mocks["store"].update.call_args.kwargs
    assert fields["is_completed"] is True
    assert fields["completed_at"] is not None


def test_complete_step_out_of_range(client, mocks):
    mocks["store"].get.return_value = _plan(steps=2)
    resp = client.post(f"/api/action-plans/{PLAN_ID}/steps/2/complete", headers=USER_HEADERS)
    assert resp.status_code == 400
    mocks["store"].mark_step_completed.assert_not_called()


def test_complete_step(client, mocks):
    mocks["store"].get.return_value = _plan(steps=2)
    mocks["store"].mark_step_completed.return_value = _plan(steps=2)
    resp = client.post(f"/api/action-plans/{PLAN_ID}/steps/1/complete", headers=USER_HEADERS)
    assert resp.status_code == 200
    mocks["store"].mark_step_completed.assert_called_once_with("user-1", PLAN_ID, 1)


def test_delete_missing_plan(client, mocks):
    mocks["store"].delete.return_value = False
    assert client.delete(f"/api/action-plans/{PLAN_ID}", headers=USER_HEADERS).status_code == 404


# ============================================================
# HubSpot OAuth
# ============================================================

def test_login_redirects_to_hubspot(client, monkeypatch):
    monkeypatch.setattr(config.hubspot, "client_id", "cid")
    resp = client.get("/api/auth/hubspot", params={"action": "login"}, follow_redirects=False)
    assert resp.status_code in (302, 307)
    assert resp.headers["location"].startswith(config.hubspot.authorize_url)


def test_login_rejects_other_actions(client):
    assert client.get("/api/auth/hubspot", params={"action": "logout"}).status_code == 400


def test_callback_sets_token_cookie(client):
    grant = TokenGrant(access_token="at-1", expires_in=1800)
    with patch("outputs.dashboard.exchange_code", new=AsyncMock(return_value=grant)):
        resp = client.get("/api/auth/hubspot/callback", params={"code": "abc"}, follow_redirects=False)
    assert "hubspot_success=true" in resp.headers["location"]
    cookie = resp.headers["set-cookie"]
    assert "hubspot_access_token=at-1" in cookie
    assert "HttpOnly" in cookie
    assert "Max-Age=1800" in cookie


def test_callback_reports_denied_consent(client):
    resp = client.get("/api/auth/hubspot/callback", params={"error": "access_denied"},
                      follow_redirects=False)
    assert "hubspot_error=access_denied" in resp.headers["location"]
    assert "set-cookie" not in resp.headers


# ============================================================
# Growth
# ============================================================

def test_growth_stage(client):
    body = client.get("/api/growth/stage", headers=HEADERS, params={"headcount": 4}).json()
    assert body["current_stage"]["id"] == 3
    assert body["next_stage"]["name"] == "Prioritize"
    assert body["sales_metrics"]["sales_needed"] == 200
    assert len(body["stages"]) == 10


def test_growth_tasks(client):
    body = client.post("/api/growth/tasks", headers=HEADERS, json={"completed_ids": ["PRODUCT-0"]}).json()
    assert body["progress"]["total"] == 42
    assert body["progress"]["completed"] == 1
    assert len(body["business_areas"]) == 8
