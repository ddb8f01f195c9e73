from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if str(TESTS) not in sys.path:
    sys.path.insert(0, str(TESTS))

from creator_ledger.core.settings import BillingConfig  # noqa: E402
from creator_ledger.core.time import days, now_ts  # noqa: E402
from creator_ledger.services.directory import UserDirectory, VideoDirectory  # noqa: E402
from creator_ledger.services.ledger_store import LedgerStore  # noqa: E402
from creator_ledger.services.subscriptions import SubscriptionManager  # noqa: E402
from creator_ledger.services.tips import TipOrchestrator  # noqa: E402
from creator_ledger.services.webhooks import WebhookReconciler  # noqa: E402

from fakes import FakeGateway, FakeKeyTable, FakeTable  # noqa: E402

PLANS = [
    {"plan_id": "plan_premium", "name": "Premium", "price": 980, "currency": "JPY", "billing_cycle": "monthly", "payment_provider": "stripe", "is_active": True},
    {"plan_id": "plan_premium_plus", "name": "Premium Plus", "price": 1980, "currency": "JPY", "billing_cycle": "monthly", "payment_provider": "stripe", "is_active": True},
    {"plan_id": "plan_legacy", "name": "Legacy", "price": 500, "currency": "JPY", "billing_cycle": "monthly", "payment_provider": "stripe", "is_active": False},
    {"plan_id": "plan_paypal", "name": "PayPal Premium", "price": 980, "currency": "JPY", "billing_cycle": "monthly", "payment_provider": "paypal", "is_active": True},
]


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def store(table) -> LedgerStore:
    s = LedgerStore(table, event_ttl_seconds=3600)
    for plan in PLANS:
        s.put_plan(plan)
    return s


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def config() -> BillingConfig:
    return BillingConfig(
        price_ids={"plan_premium": "price_premium", "plan_premium_plus": "price_premium_plus", "plan_legacy": "price_legacy"},
    )


@pytest.fixture
def videos() -> VideoDirectory:
    return VideoDirectory(FakeKeyTable("video_id", [{"video_id": "vid_1", "user_id": "creator_1"}]))


@pytest.fixture
def users() -> UserDirectory:
    return UserDirectory(FakeKeyTable("user_id", [
        {"user_id": "viewer_1", "email": "viewer@example.com"},
        {"user_id": "creator_1", "email": "creator@example.com"},
    ]))


@pytest.fixture
def tips(store, gateway, videos, config) -> TipOrchestrator:
    return TipOrchestrator(store, gateway, videos, config)


@pytest.fixture
def subs(store, gateway, users, config) -> SubscriptionManager:
    return SubscriptionManager(store, gateway, users, config)


@pytest.fixture
def reconciler(store, gateway, tips, config) -> WebhookReconciler:
    return WebhookReconciler(store, gateway, tips, config)


@pytest.fixture
def active_sub(store):
    ts = now_ts()
    sub = {
        "subscription_id": "sub_1",
        "user_id": "viewer_1",
        "plan_id": "plan_premium",
        "payment_provider": "stripe",
        "external_subscription_id": "sub_ext_1",
        "external_customer_id": "cus_1",
        "status": "active",
        "current_period_start": ts - days(15),
        "current_period_end": ts + days(15),
        "cancel_at_period_end": False,
        "canceled_at": None,
        "created_at": ts - days(15),
        "updated_at": ts - days(15),
    }
    return store.put_subscription(sub)
