from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from creator_ledger.core.errors import CannotTipSelf, ContentNotFound
from creator_ledger.core.settings import BillingConfig
from creator_ledger.core.time import now_ts
from creator_ledger.metrics import record_tip_confirmation, record_tip_created
from creator_ledger.services.fees import available_at, net_amount, platform_fee
from creator_ledger.services.ledger_store import LedgerStore, new_id
from creator_ledger.services.unit_of_work import UnitOfWork
from creator_ledger.services.validation import (
    validate_content_type,
    validate_tip_amount,
    validate_tip_message,
    validate_tip_outcome,
)

logger = logging.getLogger(__name__)

MAX_PAGE = 100


def clamp_limit(limit: Optional[int], default: int = 20) -> int:
    if limit is None:
        return default
    return max(1, min(int(limit), MAX_PAGE))


class TipOrchestrator:
    """
    Tip payments: a payment intent at the gateway, a pending Tip and a pending
    Earning for the creator, later confirmed or failed by the gateway webhook.
    """

    def __init__(self, store: LedgerStore, gateway: Any, content: Any, config: BillingConfig) -> None:
        self.store = store
        self.gateway = gateway
        self.content = content
        self.config = config

    async def send_tip(
        self,
        from_user_id: str,
        content_type: str,
        content_id: str,
        amount: Any,
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        amount = validate_tip_amount(amount, minimum=self.config.tip_min_amount, maximum=self.config.tip_max_amount)
        message = validate_tip_message(message, max_length=self.config.tip_message_max_length)
        validate_content_type(content_type)

        to_user_id = self.content.owner_of(content_type, content_id)
        if not to_user_id:
            raise ContentNotFound("Video not found", content_type=content_type, content_id=content_id)
        if to_user_id == from_user_id:
            raise CannotTipSelf("You cannot tip yourself", user_id=from_user_id)

        tip_id = new_id("tip")
        currency = self.config.currency
        fee = platform_fee(amount, "tip")

        async with UnitOfWork("send_tip") as uow:
            intent = await self.gateway.create_payment_intent(
                amount,
                currency,
                metadata={
                    "type": "tip",
                    "tip_id": tip_id,
                    "from_user_id": from_user_id,
                    "to_user_id": to_user_id,
                    "content_type": content_type,
                    "content_id": content_id,
                },
                idempotency_key=f"tip:{tip_id}",
            )
            uow.on_rollback("cancel payment intent", lambda: self.gateway.cancel_payment_intent(intent["id"]))

            ts = now_ts()
            tip = {
                "tip_id": tip_id,
                "from_user_id": from_user_id,
                "to_user_id": to_user_id,
                "content_type": content_type,
                "content_id": content_id,
                "amount": amount,
                "currency": currency,
                "message": message,
                "payment_provider": self.config.payment_provider,
                "external_transaction_id": intent["id"],
                "status": "pending",
                "created_at": ts,
                "updated_at": ts,
            }
            uow.on_rollback("delete tip", lambda: self.store.delete_tip(tip))
            self.store.put_tip(tip)

            earning = {
                "earning_id": new_id("earn"),
                "user_id": to_user_id,
                "source_type": "tip",
                "source_id": tip_id,
                "amount": amount,
                "platform_fee": fee,
                "net_amount": net_amount(amount, fee),
                "currency": currency,
                "payment_provider": self.config.payment_provider,
                "external_transaction_id": intent["id"],
                "status": "pending",
                "available_at": available_at(ts, self.config.earning_hold_days),
                "created_at": ts,
                "updated_at": ts,
            }
            uow.on_rollback("delete earning", lambda: self.store.delete_earning(earning))
            self.store.put_earning(earning)

        record_tip_created(currency)
        logger.info("tip created", extra={"tip_id": tip_id, "amount": amount, "to_user_id": to_user_id})
        return {
            "tip": tip,
            "payment": {"transaction_id": intent["id"], "receipt_url": None},
        }

    async def confirm_tip_payment(self, external_transaction_id: str, outcome: str) -> Optional[Dict[str, Any]]:
        """
        Apply the gateway's verdict on a tip payment.

        Safe to repeat: a retry finishes whatever an earlier attempt left
        undone, and a tip that already reached a final status never moves
        back.
        """
        validate_tip_outcome(outcome)
        tip = self.store.find_tip_by_transaction(external_transaction_id)
        if not tip:
            logger.warning("tip not found for transaction", extra={"transaction_id": external_transaction_id})
            record_tip_confirmation(outcome, "not_found")
            return None

        target = "completed" if outcome == "succeeded" else "failed"
        if tip["status"] == "pending":
            tip = self.store.transition_tip(tip["tip_id"], "pending", target) or self.store.get_tip(tip["tip_id"])

        if tip["status"] != target:
            logger.warning(
                "conflicting tip outcome ignored",
                extra={"tip_id": tip["tip_id"], "status": tip["status"], "outcome": outcome},
            )
            record_tip_confirmation(outcome, "conflict")
            return tip

        earning = self.store.find_earning_by_source("tip", tip["tip_id"])
        if earning and earning["status"] == "pending":
            if target == "completed":
                self.store.transition_earning(earning["earning_id"], "pending", "available")
            else:
                self.store.delete_earning(earning, expected="pending")

        record_tip_confirmation(outcome, "applied")
        logger.info("tip payment confirmed", extra={"tip_id": tip["tip_id"], "status": tip["status"]})
        return tip

    async def reverse_tip_earning(self, external_transaction_id: str) -> Optional[Dict[str, Any]]:
        """Mark the creator earning of a refunded tip as reversed."""
        tip = self.store.find_tip_by_transaction(external_transaction_id)
        if not tip or tip["status"] != "completed":
            logger.info("refund for unknown or unpaid tip ignored", extra={"transaction_id": external_transaction_id})
            return None
        earning = self.store.find_earning_by_source("tip", tip["tip_id"])
        if not earning or earning["status"] == "reversed":
            return earning
        reversed_earning = self.store.transition_earning(earning["earning_id"], earning["status"], "reversed")
        logger.info("tip earning reversed", extra={"tip_id": tip["tip_id"]})
        return reversed_earning or self.store.find_earning_by_source("tip", tip["tip_id"])

    def sent_tips(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.store.list_tips_sent(user_id, clamp_limit(limit))

    def received_tips(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.store.list_tips_received(user_id, clamp_limit(limit))

    def content_tips(self, content_type: str, content_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        validate_content_type(content_type)
        return self.store.list_tips_for_content(content_type, content_id, clamp_limit(limit, default=50))
