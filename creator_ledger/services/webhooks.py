from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from creator_ledger.core.errors import PaymentGatewayError
from creator_ledger.core.settings import BillingConfig
from creator_ledger.core.time import days, now_ts
from creator_ledger.metrics import record_webhook_event
from creator_ledger.services.gateway import subscription_period
from creator_ledger.services.ledger_store import LedgerStore, new_id
from creator_ledger.services.tips import TipOrchestrator
from creator_ledger.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

# Gateway subscription status -> local status. Anything unlisted leaves the
# local status unchanged.
STATUS_MAP = {
    "active": "active",
    "trialing": "active",
    "past_due": "past_due",
    "unpaid": "unpaid",
    "canceled": "canceled",
    "incomplete_expired": "canceled",
}

# Local statuses a new checkout supersedes.
REPLACEABLE_STATUSES = ("active", "past_due", "unpaid")


# -----------------------------
# Event variants
# -----------------------------

@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    session_id: str
    user_id: Optional[str]
    plan_id: Optional[str]
    external_subscription_id: Optional[str]
    external_customer_id: Optional[str]


@dataclass(frozen=True)
class InvoicePaymentSucceeded:
    event_id: str
    invoice_id: str
    external_subscription_id: Optional[str]
    amount: int
    currency: str
    paid_at: int
    payment_method_type: Optional[str] = None


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: str
    invoice_id: str
    external_subscription_id: Optional[str]
    amount: int
    currency: str
    failure_reason: str
    payment_method_type: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: str
    external_subscription_id: str
    status: str
    current_period_start: Optional[int]
    current_period_end: Optional[int]
    cancel_at_period_end: bool


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    external_subscription_id: str


@dataclass(frozen=True)
class PaymentIntentSucceeded:
    event_id: str
    payment_intent_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentIntentFailed:
    event_id: str
    payment_intent_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class ChargeRefunded:
    event_id: str
    charge_id: str
    payment_intent_id: Optional[str]
    fully_refunded: bool


@dataclass(frozen=True)
class UnknownEvent:
    event_id: str
    event_type: str


WebhookEvent = Union[
    CheckoutCompleted,
    InvoicePaymentSucceeded,
    InvoicePaymentFailed,
    SubscriptionUpdated,
    SubscriptionDeleted,
    PaymentIntentSucceeded,
    PaymentIntentFailed,
    ChargeRefunded,
    UnknownEvent,
]


# -----------------------------
# Parsing
# -----------------------------

def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    sub = invoice.get("subscription")
    if not sub:
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        sub = details.get("subscription")
    if isinstance(sub, dict):
        sub = sub.get("id")
    return sub


def _invoice_failure_reason(invoice: Dict[str, Any]) -> str:
    error = invoice.get("last_finalization_error") or {}
    return error.get("message") or "Payment failed"


def parse_event(event: Dict[str, Any]) -> WebhookEvent:
    event_id = event.get("id", "")
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    created = int(event.get("created") or now_ts())

    if event_type == "checkout.session.completed":
        metadata = obj.get("metadata") or {}
        return CheckoutCompleted(
            event_id=event_id,
            session_id=obj.get("id", ""),
            user_id=obj.get("client_reference_id") or metadata.get("user_id") or metadata.get("userId"),
            plan_id=metadata.get("plan_id") or metadata.get("planId"),
            external_subscription_id=obj.get("subscription"),
            external_customer_id=obj.get("customer"),
        )
    if event_type == "invoice.payment_succeeded":
        paid_at = (obj.get("status_transitions") or {}).get("paid_at") or created
        return InvoicePaymentSucceeded(
            event_id=event_id,
            invoice_id=obj.get("id", ""),
            external_subscription_id=_invoice_subscription_id(obj),
            amount=int(obj.get("amount_paid") or 0),
            currency=obj.get("currency") or "",
            paid_at=int(paid_at),
        )
    if event_type == "invoice.payment_failed":
        return InvoicePaymentFailed(
            event_id=event_id,
            invoice_id=obj.get("id", ""),
            external_subscription_id=_invoice_subscription_id(obj),
            amount=int(obj.get("amount_due") or 0),
            currency=obj.get("currency") or "",
            failure_reason=_invoice_failure_reason(obj),
        )
    if event_type == "customer.subscription.updated":
        period = subscription_period(obj)
        return SubscriptionUpdated(
            event_id=event_id,
            external_subscription_id=obj.get("id", ""),
            status=obj.get("status") or "",
            current_period_start=period["current_period_start"],
            current_period_end=period["current_period_end"],
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        )
    if event_type == "customer.subscription.deleted":
        return SubscriptionDeleted(event_id=event_id, external_subscription_id=obj.get("id", ""))
    if event_type == "payment_intent.succeeded":
        return PaymentIntentSucceeded(
            event_id=event_id,
            payment_intent_id=obj.get("id", ""),
            metadata=dict(obj.get("metadata") or {}),
        )
    if event_type == "payment_intent.payment_failed":
        error = obj.get("last_payment_error") or {}
        return PaymentIntentFailed(
            event_id=event_id,
            payment_intent_id=obj.get("id", ""),
            metadata=dict(obj.get("metadata") or {}),
            failure_reason=error.get("message"),
        )
    if event_type == "charge.refunded":
        return ChargeRefunded(
            event_id=event_id,
            charge_id=obj.get("id", ""),
            payment_intent_id=obj.get("payment_intent"),
            fully_refunded=bool(obj.get("refunded")),
        )
    return UnknownEvent(event_id=event_id, event_type=event_type)


# -----------------------------
# Reconciler
# -----------------------------

class WebhookReconciler:
    """
    Applies gateway webhook events to the ledger.

    Every handler is idempotent; the processed-event record only short-circuits
    exact redeliveries. A handler failure propagates so the gateway retries.
    """

    def __init__(self, store: LedgerStore, gateway: Any, tips: TipOrchestrator, config: BillingConfig) -> None:
        self.store = store
        self.gateway = gateway
        self.tips = tips
        self.config = config
        self._handlers: Dict[type, Callable[[Any], Awaitable[bool]]] = {
            CheckoutCompleted: self._on_checkout_completed,
            InvoicePaymentSucceeded: self._on_invoice_succeeded,
            InvoicePaymentFailed: self._on_invoice_failed,
            SubscriptionUpdated: self._on_subscription_updated,
            SubscriptionDeleted: self._on_subscription_deleted,
            PaymentIntentSucceeded: self._on_payment_intent_succeeded,
            PaymentIntentFailed: self._on_payment_intent_failed,
            ChargeRefunded: self._on_charge_refunded,
            UnknownEvent: self._on_unknown,
        }

    async def handle_raw(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        event = self.gateway.construct_webhook_event(payload, signature)
        return await self.handle(event)

    async def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_id = event.get("id", "")
        event_type = event.get("type", "")
        if event_id and self.store.is_event_processed(event_id):
            record_webhook_event(event_type, "deduped")
            return {"received": True, "type": event_type, "handled": False, "deduped": True}

        parsed = parse_event(event)
        try:
            handled = await self._handlers[type(parsed)](parsed)
        except Exception:
            record_webhook_event(event_type, "error")
            logger.exception("webhook handler failed", extra={"event_id": event_id, "event_type": event_type})
            raise

        if event_id:
            self.store.mark_event_processed(event_id, event_type)
        record_webhook_event(event_type, "handled" if handled else "ignored")
        return {"received": True, "type": event_type, "handled": handled}

    # -- subscriptions --------------------------------------------------

    async def _on_checkout_completed(self, ev: CheckoutCompleted) -> bool:
        if not ev.user_id or not ev.plan_id:
            logger.warning("checkout session without user or plan", extra={"session_id": ev.session_id})
            return False
        if not ev.external_subscription_id:
            logger.warning("checkout session without subscription", extra={"session_id": ev.session_id})
            return False

        external_id = ev.external_subscription_id
        subscription_id = new_id("sub")
        if not self.store.claim_external_subscription(external_id, subscription_id):
            logger.info("checkout already recorded", extra={"external_subscription_id": external_id})
            return False

        async with UnitOfWork("checkout_completed") as uow:
            uow.on_rollback("release external subscription", lambda: self.store.release_external_subscription(external_id))
            external = await self.gateway.get_subscription(external_id)
            ts = now_ts()

            for other in self.store.list_subscriptions(ev.user_id):
                if other.get("status") not in REPLACEABLE_STATUSES:
                    continue
                if other.get("external_subscription_id") == external_id:
                    continue
                await self._cancel_replaced(other, ts)

            start = external.get("current_period_start") or ts
            end = external.get("current_period_end") or start + days(30)
            sub = {
                "subscription_id": subscription_id,
                "user_id": ev.user_id,
                "plan_id": ev.plan_id,
                "payment_provider": self.config.payment_provider,
                "external_subscription_id": external_id,
                "external_customer_id": ev.external_customer_id or external.get("customer"),
                "status": STATUS_MAP.get(external.get("status") or "active", "active"),
                "current_period_start": int(start),
                "current_period_end": max(int(end), int(start) + 1),
                "cancel_at_period_end": bool(external.get("cancel_at_period_end")),
                "canceled_at": None,
                "created_at": ts,
                "updated_at": ts,
            }
            self.store.put_subscription(sub)
        logger.info("subscription created", extra={"subscription_id": subscription_id, "plan_id": ev.plan_id})
        return True

    async def _cancel_replaced(self, sub: Dict[str, Any], ts: int) -> None:
        external_id = sub.get("external_subscription_id")
        if external_id:
            try:
                await self.gateway.cancel_subscription(external_id, True)
            except PaymentGatewayError:
                logger.warning("could not cancel replaced subscription at gateway", extra={"external_subscription_id": external_id})
        replaced = dict(
            sub,
            status="canceled",
            cancel_at_period_end=True,
            canceled_at=ts,
            current_period_end=max(ts, int(sub.get("current_period_start") or 0) + 1),
            updated_at=ts,
        )
        self.store.put_subscription(replaced)

    def _payment_row(self, sub: Dict[str, Any], ev: Union[InvoicePaymentSucceeded, InvoicePaymentFailed], status: str) -> Dict[str, Any]:
        ts = now_ts()
        return {
            "payment_id": new_id("pay"),
            "subscription_id": sub["subscription_id"],
            "user_id": sub["user_id"],
            "payment_provider": self.config.payment_provider,
            "external_payment_id": ev.invoice_id,
            "amount": ev.amount,
            "currency": ev.currency or self.config.currency,
            "status": status,
            "failure_reason": getattr(ev, "failure_reason", None),
            "payment_method_type": ev.payment_method_type,
            "paid_at": getattr(ev, "paid_at", None),
            "created_at": ts,
        }

    def _subscription_for_invoice(self, ev: Union[InvoicePaymentSucceeded, InvoicePaymentFailed]) -> Optional[Dict[str, Any]]:
        sub = None
        if ev.external_subscription_id:
            sub = self.store.find_subscription_by_external_id(ev.external_subscription_id)
        if not sub:
            logger.warning("invoice for unknown subscription", extra={"invoice_id": ev.invoice_id})
        return sub

    async def _on_invoice_succeeded(self, ev: InvoicePaymentSucceeded) -> bool:
        sub = self._subscription_for_invoice(ev)
        if not sub:
            return False
        self.store.append_payment(self._payment_row(sub, ev, "succeeded"))
        if sub["status"] == "past_due":
            if self._has_other_active(sub):
                logger.warning("late payment on superseded subscription", extra={"subscription_id": sub["subscription_id"]})
            else:
                self.store.put_subscription(dict(sub, status="active", updated_at=now_ts()))
        return True

    def _has_other_active(self, sub: Dict[str, Any]) -> bool:
        return any(
            other.get("status") == "active" and other["subscription_id"] != sub["subscription_id"]
            for other in self.store.list_subscriptions(sub["user_id"])
        )

    async def _on_invoice_failed(self, ev: InvoicePaymentFailed) -> bool:
        sub = self._subscription_for_invoice(ev)
        if not sub:
            return False
        self.store.append_payment(self._payment_row(sub, ev, "failed"))
        if sub["status"] not in ("canceled", "past_due"):
            self.store.put_subscription(dict(sub, status="past_due", updated_at=now_ts()))
        return True

    async def _on_subscription_updated(self, ev: SubscriptionUpdated) -> bool:
        sub = self.store.find_subscription_by_external_id(ev.external_subscription_id)
        if not sub:
            logger.warning("update for unknown subscription", extra={"external_subscription_id": ev.external_subscription_id})
            return False
        if sub["status"] == "canceled":
            return False

        ts = now_ts()
        updated = dict(sub, cancel_at_period_end=ev.cancel_at_period_end, updated_at=ts)
        updated["status"] = STATUS_MAP.get(ev.status, sub["status"])
        if updated["status"] == "active" and sub["status"] != "active" and self._has_other_active(sub):
            updated["status"] = sub["status"]
        if updated["status"] == "canceled" and not updated.get("canceled_at"):
            updated["canceled_at"] = ts

        if ev.current_period_start is not None and ev.current_period_end is not None:
            if ev.current_period_end >= int(sub.get("current_period_end") or 0) and ev.current_period_end > ev.current_period_start:
                updated["current_period_start"] = ev.current_period_start
                updated["current_period_end"] = ev.current_period_end

        self.store.put_subscription(updated)
        return True

    async def _on_subscription_deleted(self, ev: SubscriptionDeleted) -> bool:
        sub = self.store.find_subscription_by_external_id(ev.external_subscription_id)
        if not sub or sub["status"] == "canceled":
            return False
        ts = now_ts()
        self.store.put_subscription(dict(sub, status="canceled", canceled_at=ts, updated_at=ts))
        return True

    # -- tips -----------------------------------------------------------

    async def _on_payment_intent_succeeded(self, ev: PaymentIntentSucceeded) -> bool:
        if ev.metadata.get("type") != "tip":
            return False
        return await self.tips.confirm_tip_payment(ev.payment_intent_id, "succeeded") is not None

    async def _on_payment_intent_failed(self, ev: PaymentIntentFailed) -> bool:
        if ev.metadata.get("type") != "tip":
            return False
        logger.info("tip payment failed", extra={"payment_intent_id": ev.payment_intent_id, "reason": ev.failure_reason})
        return await self.tips.confirm_tip_payment(ev.payment_intent_id, "failed") is not None

    async def _on_charge_refunded(self, ev: ChargeRefunded) -> bool:
        if not ev.payment_intent_id:
            return False
        if not ev.fully_refunded:
            logger.info("partial refund left as is", extra={"charge_id": ev.charge_id})
            return False
        return await self.tips.reverse_tip_earning(ev.payment_intent_id) is not None

    async def _on_unknown(self, ev: UnknownEvent) -> bool:
        logger.info("unhandled webhook event", extra={"event_id": ev.event_id, "event_type": ev.event_type})
        return False
