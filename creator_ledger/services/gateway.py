from __future__ import annotations

import logging
from functools import partial
from typing import Any, Dict, Optional

import anyio
import stripe
from stripe import SignatureVerificationError, StripeError

from creator_ledger.core.errors import (
    GatewayNotConfigured,
    InvalidSignature,
    MissingSignature,
    PaymentGatewayError,
)
from creator_ledger.metrics import record_gateway_error

logger = logging.getLogger(__name__)


def as_dict(obj: Any) -> Dict[str, Any]:
    """Plain-dict view of a Stripe object (or of a dict already)."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def subscription_period(sub: Dict[str, Any]) -> Dict[str, Optional[int]]:
    """
    Current period of a Stripe subscription.

    Newer API versions only carry the period on the subscription items, older
    ones on the subscription itself; both are accepted.
    """
    start = sub.get("current_period_start")
    end = sub.get("current_period_end")
    if start is None or end is None:
        items = (sub.get("items") or {}).get("data") or []
        if items:
            start = items[0].get("current_period_start", start)
            end = items[0].get("current_period_end", end)
    return {
        "current_period_start": int(start) if start is not None else None,
        "current_period_end": int(end) if end is not None else None,
    }


class StripeGateway:
    """
    Stripe adapter. Each call runs the blocking SDK in the threadpool and maps
    any Stripe failure to ``PaymentGatewayError``.
    """

    provider = "stripe"

    def __init__(self, secret_key: str, webhook_secret: str = "", api_version: str = "") -> None:
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version

    def _configure(self) -> None:
        if not self.secret_key:
            raise GatewayNotConfigured("Stripe is not configured")
        stripe.api_key = self.secret_key
        if self.api_version:
            stripe.api_version = self.api_version

    async def _call(self, operation: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        self._configure()
        try:
            return await anyio.to_thread.run_sync(partial(fn, *args, **kwargs))
        except StripeError as exc:
            record_gateway_error(operation)
            logger.warning("stripe call failed", extra={"operation": operation, "error": str(exc)})
            raise PaymentGatewayError(f"Payment gateway error during {operation}", operation=operation) from exc

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if idempotency_key:
            kwargs["idempotency_key"] = idempotency_key
        intent = as_dict(await self._call("create_payment_intent", stripe.PaymentIntent.create, **kwargs))
        return {
            "id": intent["id"],
            "status": intent.get("status"),
            "client_secret": intent.get("client_secret"),
        }

    async def cancel_payment_intent(self, payment_intent_id: str) -> None:
        await self._call("cancel_payment_intent", stripe.PaymentIntent.cancel, payment_intent_id)

    async def create_checkout_session(
        self,
        *,
        price_id: str,
        user_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        metadata = {"user_id": user_id, "plan_id": plan_id}
        kwargs: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": user_id,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if customer_email:
            kwargs["customer_email"] = customer_email
        session = as_dict(await self._call("create_checkout_session", stripe.checkout.Session.create, **kwargs))
        return {"checkout_url": session.get("url"), "session_id": session["id"]}

    async def cancel_subscription(self, external_subscription_id: str, immediately: bool) -> None:
        if immediately:
            await self._call("cancel_subscription", stripe.Subscription.cancel, external_subscription_id)
        else:
            await self._call(
                "cancel_subscription",
                stripe.Subscription.modify,
                external_subscription_id,
                cancel_at_period_end=True,
            )

    async def resume_subscription(self, external_subscription_id: str) -> None:
        await self._call(
            "resume_subscription",
            stripe.Subscription.modify,
            external_subscription_id,
            cancel_at_period_end=False,
        )

    async def get_subscription(self, external_subscription_id: str) -> Dict[str, Any]:
        sub = as_dict(await self._call("get_subscription", stripe.Subscription.retrieve, external_subscription_id))
        out = {
            "id": sub.get("id", external_subscription_id),
            "status": sub.get("status"),
            "customer": sub.get("customer"),
            "cancel_at_period_end": bool(sub.get("cancel_at_period_end")),
        }
        out.update(subscription_period(sub))
        return out

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise GatewayNotConfigured("Stripe webhook secret not configured")
        if not signature:
            raise MissingSignature("Missing Stripe-Signature header")
        try:
            event = stripe.Webhook.construct_event(payload=payload, sig_header=signature, secret=self.webhook_secret)
        except (SignatureVerificationError, ValueError) as exc:
            raise InvalidSignature("Webhook signature verification failed") from exc
        return as_dict(event)
