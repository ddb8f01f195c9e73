from __future__ import annotations

from functools import lru_cache

from creator_ledger.core.settings import S, billing_config_from_settings
from creator_ledger.core.tables import T
from creator_ledger.services.directory import UserDirectory, VideoDirectory
from creator_ledger.services.gateway import StripeGateway
from creator_ledger.services.ledger_store import LedgerStore
from creator_ledger.services.subscriptions import SubscriptionManager
from creator_ledger.services.tips import TipOrchestrator
from creator_ledger.services.webhooks import WebhookReconciler


@lru_cache(maxsize=1)
def get_store() -> LedgerStore:
    return LedgerStore(T.ledger, event_ttl_seconds=S.webhook_event_ttl_seconds)


@lru_cache(maxsize=1)
def get_gateway() -> StripeGateway:
    return StripeGateway(S.stripe_secret_key, S.stripe_webhook_secret, S.stripe_api_version)


@lru_cache(maxsize=1)
def get_tip_orchestrator() -> TipOrchestrator:
    return TipOrchestrator(get_store(), get_gateway(), VideoDirectory(T.videos), billing_config_from_settings(S))


@lru_cache(maxsize=1)
def get_subscription_manager() -> SubscriptionManager:
    return SubscriptionManager(get_store(), get_gateway(), UserDirectory(T.users), billing_config_from_settings(S))


@lru_cache(maxsize=1)
def get_webhook_reconciler() -> WebhookReconciler:
    return WebhookReconciler(get_store(), get_gateway(), get_tip_orchestrator(), billing_config_from_settings(S))
