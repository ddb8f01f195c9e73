import asyncio
import inspect
import json

import pytest
from fastapi.testclient import TestClient

from creator_ledger.core.errors import UnsupportedProvider
from creator_ledger.main import create_app
from creator_ledger.models import CancelReq, CheckoutReq, SendTipReq
from creator_ledger.routers import earnings as earnings_routes
from creator_ledger.routers import subscriptions as subscription_routes
from creator_ledger.routers import tips as tip_routes
from creator_ledger.routers import webhooks as webhook_routes
from creator_ledger.services.factory import (
    get_store,
    get_subscription_manager,
    get_tip_orchestrator,
    get_webhook_reconciler,
)

from fakes import make_event


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def client(store, tips, subs, reconciler):
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_tip_orchestrator] = lambda: tips
    app.dependency_overrides[get_subscription_manager] = lambda: subs
    app.dependency_overrides[get_webhook_reconciler] = lambda: reconciler
    return TestClient(app)


VIEWER = {"X-User-Sub": "viewer_1"}
CREATOR = {"X-User-Sub": "creator_1"}


def test_routes_are_registered():
    paths = {route.path for route in create_app().routes}
    for path in (
        "/tips/send",
        "/tips/sent",
        "/tips/received",
        "/tips/content/{content_type}/{content_id}",
        "/earnings/stats",
        "/earnings/history",
        "/subscriptions/plans",
        "/subscriptions/current",
        "/subscriptions/create-checkout",
        "/subscriptions/cancel",
        "/subscriptions/payment-history",
        "/subscriptions/quote",
        "/webhooks/{provider}",
        "/health",
    ):
        assert path in paths


def test_read_routes_run_in_threadpool():
    app = create_app()
    for route in app.routes:
        methods = getattr(route, "methods", None) or set()
        if methods == {"GET"} and route.path.startswith(("/tips", "/earnings", "/subscriptions")):
            assert not inspect.iscoroutinefunction(route.endpoint), route.path


# -----------------------------
# Direct calls
# -----------------------------

def test_send_tip_route_direct(tips):
    body = SendTipReq(contentType="video", contentId="vid_1", amount=500, message="hi")
    result = run_async(tip_routes.send_tip(body, user_id="viewer_1", tips=tips))
    assert result["tip"]["amount"] == 500
    listed = tip_routes.list_received_tips(limit=10, user_id="creator_1", tips=tips)
    assert [t["tip_id"] for t in listed["tips"]] == [result["tip"]["tip_id"]]


def test_subscription_routes_direct(subs, active_sub):
    current = subscription_routes.current_subscription(user_id="viewer_1", subs=subs)
    assert current["subscription"]["subscription_id"] == "sub_1"

    checkout = run_async(subscription_routes.create_checkout(
        CheckoutReq(planId="plan_premium_plus"), user_id="viewer_1", email=None, subs=subs,
    ))
    assert checkout["session_id"].startswith("cs_")

    canceled = run_async(subscription_routes.cancel_subscription(CancelReq(immediately=False), user_id="viewer_1", subs=subs))
    assert canceled["cancel_at_period_end"] is True


def test_earnings_stats_route_direct(store):
    stats = earnings_routes.get_earnings_stats(user_id="creator_1", store=store)
    assert stats["available_balance"] == 0


def test_webhook_route_rejects_unknown_provider(reconciler):
    with pytest.raises(UnsupportedProvider):
        run_async(webhook_routes.receive_webhook("paypal", req=None, reconciler=reconciler))


# -----------------------------
# Over HTTP
# -----------------------------

def test_send_tip_over_http(client):
    resp = client.post("/tips/send", json={"contentType": "video", "contentId": "vid_1", "amount": 1000}, headers=VIEWER)
    assert resp.status_code == 201
    body = resp.json()
    assert body["tip"]["status"] == "pending"
    assert body["payment"]["receipt_url"] is None


def test_ledger_errors_render_as_json(client):
    resp = client.post("/tips/send", json={"content_type": "video", "content_id": "vid_1", "amount": 50}, headers=VIEWER)
    assert resp.status_code == 400
    assert resp.json() == {"error": "INVALID_AMOUNT", "message": "Minimum tip amount is 100"}

    resp = client.post("/tips/send", json={"content_type": "video", "content_id": "vid_1", "amount": 500}, headers=CREATOR)
    assert resp.status_code == 400
    assert resp.json()["error"] == "CANNOT_TIP_SELF"

    resp = client.post("/subscriptions/cancel", json={"immediately": True}, headers=VIEWER)
    assert resp.status_code == 404
    assert resp.json()["error"] == "NO_ACTIVE_SUBSCRIPTION"


def test_auth_required(client):
    resp = client.get("/tips/sent")
    assert resp.status_code == 401


def test_subscription_flow_over_http(client, active_sub):
    plans = client.get("/subscriptions/plans").json()["plans"]
    assert [p["plan_id"] for p in plans][-1] == "plan_premium_plus"

    current = client.get("/subscriptions/current", headers=VIEWER).json()
    assert current["subscription"]["plan"]["plan_id"] == "plan_premium"

    quote = client.get("/subscriptions/quote", params={"plan_id": "plan_premium_plus"}, headers=VIEWER).json()
    assert quote["charge"] == 500

    resp = client.post("/subscriptions/create-checkout", json={"plan_id": "plan_premium"}, headers=VIEWER)
    assert resp.status_code == 409
    assert resp.json()["error"] == "DUPLICATE_SUBSCRIPTION"

    resp = client.post("/subscriptions/cancel", json={"immediately": True}, headers=VIEWER)
    assert resp.json()["status"] == "canceled"

    history = client.get("/subscriptions/payment-history", headers=VIEWER).json()
    assert history == {"payments": []}


def test_earnings_over_http(client):
    client.post("/tips/send", json={"content_type": "video", "content_id": "vid_1", "amount": 1000}, headers=VIEWER)
    stats = client.get("/earnings/stats", headers=CREATOR).json()
    assert stats["pending_balance"] == 700
    assert stats["breakdown"]["tips"] == 700
    history = client.get("/earnings/history", headers=CREATOR).json()["earnings"]
    assert history[0]["platform_fee"] == 300


def test_webhook_over_http(client):
    payload = json.dumps(make_event("customer.created", {"id": "cus_1"}, event_id="evt_http"))
    resp = client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": "valid"})
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "type": "customer.created", "handled": False}

    resp = client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": "forged"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_SIGNATURE"

    resp = client.post("/webhooks/paypal", content=payload, headers={"Stripe-Signature": "valid"})
    assert resp.status_code == 404


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
