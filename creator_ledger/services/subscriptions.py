from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from creator_ledger.core.errors import (
    DuplicateSubscription,
    NoActiveSubscription,
    PlanInactive,
    PlanNotConfigured,
    PlanNotFound,
    ProviderMismatch,
    UserNotFound,
)
from creator_ledger.core.settings import BillingConfig
from creator_ledger.core.time import DAY_SECONDS, now_ts
from creator_ledger.metrics import record_cancellation
from creator_ledger.services.fees import proration
from creator_ledger.services.ledger_store import LedgerStore
from creator_ledger.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def _price(plan: Dict[str, Any]) -> int:
    return int(plan.get("price") or 0)


class SubscriptionManager:
    """
    Premium plan subscriptions for viewers.

    Checkout happens at the gateway; the subscription record itself is created
    by the ``checkout.session.completed`` webhook. This manager reads plans and
    subscriptions and drives cancellation.
    """

    def __init__(self, store: LedgerStore, gateway: Any, users: Any, config: BillingConfig) -> None:
        self.store = store
        self.gateway = gateway
        self.users = users
        self.config = config

    def get_plans(self) -> List[Dict[str, Any]]:
        plans = [p for p in self.store.list_plans() if p.get("is_active")]
        plans.sort(key=_price)
        return plans

    def get_current_subscription(self, user_id: str, now: Optional[int] = None) -> Optional[Dict[str, Any]]:
        sub = self.store.find_active_subscription(user_id, now)
        if not sub:
            return None
        return dict(sub, plan=self.store.get_plan(sub["plan_id"]))

    def _require_plan(self, plan_id: str) -> Dict[str, Any]:
        plan = self.store.get_plan(plan_id)
        if not plan:
            raise PlanNotFound("Plan not found", plan_id=plan_id)
        if not plan.get("is_active"):
            raise PlanInactive("Plan is not available", plan_id=plan_id)
        return plan

    async def create_checkout_session(
        self,
        user_id: str,
        user_email: Optional[str],
        plan_id: str,
    ) -> Dict[str, Any]:
        user = self.users.get_user(user_id)
        if not user:
            raise UserNotFound("User not found", user_id=user_id)

        plan = self._require_plan(plan_id)
        if plan.get("payment_provider") != self.config.payment_provider:
            raise ProviderMismatch(
                f"Plan is not billed through {self.config.payment_provider}",
                plan_id=plan_id,
                provider=plan.get("payment_provider"),
            )

        active = self.store.find_active_subscription(user_id)
        if active and active.get("plan_id") == plan_id:
            raise DuplicateSubscription("Already subscribed to this plan", plan_id=plan_id)

        price_id = self.config.price_id_for(plan_id)
        if not price_id:
            raise PlanNotConfigured("No gateway price configured for plan", plan_id=plan_id)

        session = await self.gateway.create_checkout_session(
            price_id=price_id,
            user_id=user_id,
            plan_id=plan_id,
            success_url=self.config.success_url,
            cancel_url=self.config.cancel_url,
            customer_email=user_email or user.get("email"),
        )
        logger.info("checkout session created", extra={"user_id": user_id, "plan_id": plan_id, "session_id": session["session_id"]})
        return session

    async def cancel_subscription(self, user_id: str, immediately: bool = False) -> Dict[str, Any]:
        """
        Cancel the user's active subscription, at the gateway first.

        A gateway failure leaves the local record untouched. When the local
        write fails after a period-end cancel, the gateway subscription is
        resumed; an immediate gateway cancel cannot be undone and is
        reconciled by the ``customer.subscription.deleted`` webhook.
        """
        sub = self.store.find_active_subscription(user_id)
        if not sub:
            raise NoActiveSubscription("No active subscription", user_id=user_id)

        external_id = sub.get("external_subscription_id")
        if external_id:
            await self.gateway.cancel_subscription(external_id, immediately)

        ts = now_ts()
        updated = dict(sub, cancel_at_period_end=True, canceled_at=ts, updated_at=ts)
        if immediately:
            updated["status"] = "canceled"
            updated["current_period_end"] = max(ts, int(sub.get("current_period_start") or 0) + 1)

        async with UnitOfWork("cancel_subscription") as uow:
            if external_id and not immediately:
                uow.on_rollback("resume subscription", lambda: self.gateway.resume_subscription(external_id))
            self.store.put_subscription(updated)

        record_cancellation(immediately)
        logger.info(
            "subscription canceled",
            extra={"subscription_id": sub["subscription_id"], "immediately": immediately},
        )
        return updated

    def get_payment_history(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        limit = 20 if limit is None else max(1, min(int(limit), 100))
        return self.store.list_payments_for_user(user_id, limit)

    def quote_plan_change(self, user_id: str, new_plan_id: str, now: Optional[int] = None) -> Dict[str, Any]:
        now = now_ts() if now is None else now
        sub = self.store.find_active_subscription(user_id, now)
        if not sub:
            raise NoActiveSubscription("No active subscription", user_id=user_id)

        current_plan = self.store.get_plan(sub["plan_id"])
        if not current_plan:
            raise PlanNotFound("Plan not found", plan_id=sub["plan_id"])
        new_plan = self._require_plan(new_plan_id)

        start = int(sub.get("current_period_start") or 0)
        end = int(sub.get("current_period_end") or 0)
        days_in_period = max(1, math.ceil((end - start) / DAY_SECONDS))
        days_remaining = min(days_in_period, max(0, math.ceil((end - now) / DAY_SECONDS)))

        is_downgrade = _price(new_plan) < _price(current_plan)
        currency = current_plan.get("currency") or self.config.currency
        amount = proration(current_plan, new_plan, days_remaining, days_in_period, is_downgrade, currency)
        return {
            "current_plan_id": current_plan["plan_id"],
            "new_plan_id": new_plan_id,
            "charge": 0 if is_downgrade else amount,
            "credit": amount if is_downgrade else 0,
            "currency": currency,
            "days_remaining": days_remaining,
            "days_in_period": days_in_period,
        }
