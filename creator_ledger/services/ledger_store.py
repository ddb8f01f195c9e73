from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from creator_ledger.core.settings import S
from creator_ledger.core.time import now_ts

logger = logging.getLogger(__name__)

# Fields copied onto index items; the META item is always authoritative.
_KEY_FIELDS = ("pk", "sk", "entity")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def user_pk(user_id: str) -> str:
    return f"USER#{user_id}"


def tip_pk(tip_id: str) -> str:
    return f"TIP#{tip_id}"


def earning_pk(earning_id: str) -> str:
    return f"EARNING#{earning_id}"


def sub_pk(subscription_id: str) -> str:
    return f"SUB#{subscription_id}"


def plan_pk(plan_id: str) -> str:
    return f"PLAN#{plan_id}"


def content_pk(content_type: str, content_id: str) -> str:
    return f"CONTENT#{content_type}#{content_id}"


def _ts_key(ts: Any) -> str:
    return f"{int(ts or 0):010d}"


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def strip_keys(item: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Record view of a stored item: key attributes dropped, Decimals unwrapped."""
    if item is None:
        return None
    return {k: _plain(v) for k, v in item.items() if k not in _KEY_FIELDS and k != S.ddb_ttl_attr}


def _is_condition_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class LedgerStore:
    """
    Tips, earnings, plans, subscriptions, payment history and processed webhook
    events in one DynamoDB table.

    Every record has a ``<KIND>#<id>`` / ``META`` item; list access goes
    through index copies that are rewritten whenever the record is saved.
    Status transitions are conditional puts on the META item so two writers
    racing on the same record cannot both win.
    """

    def __init__(self, table: Any, *, event_ttl_seconds: Optional[int] = None) -> None:
        self.table = table
        self.event_ttl_seconds = event_ttl_seconds if event_ttl_seconds is not None else S.webhook_event_ttl_seconds

    # -----------------------------
    # Low-level helpers
    # -----------------------------

    def _get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        resp = self.table.get_item(Key={"pk": pk, "sk": sk})
        return resp.get("Item")

    def _put(
        self,
        item: Dict[str, Any],
        *,
        condition_expression: Optional[str] = None,
        names: Optional[Dict[str, str]] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> None:
        kwargs: Dict[str, Any] = {"Item": item}
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        if names:
            kwargs["ExpressionAttributeNames"] = names
        if values:
            kwargs["ExpressionAttributeValues"] = values
        self.table.put_item(**kwargs)

    def _put_if_status(self, item: Dict[str, Any], expected: str) -> bool:
        try:
            self._put(
                item,
                condition_expression="#st = :expected",
                names={"#st": "status"},
                values={":expected": expected},
            )
            return True
        except ClientError as exc:
            if _is_condition_failure(exc):
                logger.info("status changed concurrently", extra={"pk": item["pk"], "expected": expected})
                return False
            raise

    def _put_new(self, item: Dict[str, Any]) -> bool:
        try:
            self._put(item, condition_expression="attribute_not_exists(pk)")
            return True
        except ClientError as exc:
            if _is_condition_failure(exc):
                return False
            raise

    def _del(self, pk: str, sk: str) -> None:
        self.table.delete_item(Key={"pk": pk, "sk": sk})

    def _query(self, pk: str, prefix: Optional[str] = None, *, newest_first: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "KeyConditionExpression": "pk = :pk",
            "ExpressionAttributeValues": {":pk": pk},
            "ScanIndexForward": not newest_first,
        }
        if prefix:
            kwargs["KeyConditionExpression"] = "pk = :pk AND begins_with(sk, :p)"
            kwargs["ExpressionAttributeValues"][":p"] = prefix
        if limit:
            kwargs["Limit"] = limit

        items: List[Dict[str, Any]] = []
        while True:
            resp = self.table.query(**kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key or (limit and len(items) >= limit):
                break
            kwargs["ExclusiveStartKey"] = last_key
        return items[:limit] if limit else items

    @staticmethod
    def _copy(record: Dict[str, Any], pk: str, sk: str, entity: str) -> Dict[str, Any]:
        item = dict(record)
        item.update({"pk": pk, "sk": sk, "entity": entity})
        return item

    # -----------------------------
    # Tips
    # -----------------------------

    def _tip_index_items(self, tip: Dict[str, Any]) -> List[Dict[str, Any]]:
        ts = _ts_key(tip.get("created_at"))
        items = [
            self._copy(tip, user_pk(tip["from_user_id"]), f"TIPSENT#{ts}#{tip['tip_id']}", "tip_sent_index"),
            self._copy(tip, user_pk(tip["to_user_id"]), f"TIPRECV#{ts}#{tip['tip_id']}", "tip_received_index"),
            self._copy(tip, content_pk(tip["content_type"], tip["content_id"]), f"TIP#{ts}#{tip['tip_id']}", "tip_content_index"),
        ]
        if tip.get("external_transaction_id"):
            items.append({
                "pk": f"TXN#{tip['external_transaction_id']}",
                "sk": "TIP",
                "entity": "tip_txn_index",
                "tip_id": tip["tip_id"],
            })
        return items

    def put_tip(self, tip: Dict[str, Any]) -> Dict[str, Any]:
        self._put(self._copy(tip, tip_pk(tip["tip_id"]), "META", "tip"))
        for item in self._tip_index_items(tip):
            self._put(item)
        return tip

    def get_tip(self, tip_id: str) -> Optional[Dict[str, Any]]:
        return strip_keys(self._get(tip_pk(tip_id), "META"))

    def find_tip_by_transaction(self, external_transaction_id: str) -> Optional[Dict[str, Any]]:
        pointer = self._get(f"TXN#{external_transaction_id}", "TIP")
        if not pointer:
            return None
        return self.get_tip(pointer["tip_id"])

    def transition_tip(self, tip_id: str, expected: str, status: str) -> Optional[Dict[str, Any]]:
        """Move a tip from ``expected`` to ``status``; None when it is not in ``expected``."""
        current = self.get_tip(tip_id)
        if not current or current.get("status") != expected:
            return None
        updated = dict(current, status=status, updated_at=now_ts())
        if not self._put_if_status(self._copy(updated, tip_pk(tip_id), "META", "tip"), expected):
            return None
        for item in self._tip_index_items(updated):
            self._put(item)
        return updated

    def delete_tip(self, tip: Dict[str, Any]) -> None:
        for item in self._tip_index_items(tip):
            self._del(item["pk"], item["sk"])
        self._del(tip_pk(tip["tip_id"]), "META")

    def list_tips_sent(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        items = self._query(user_pk(user_id), "TIPSENT#", newest_first=True, limit=limit)
        return [strip_keys(it) for it in items]

    def list_tips_received(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        items = self._query(user_pk(user_id), "TIPRECV#", newest_first=True, limit=limit)
        return [strip_keys(it) for it in items]

    def list_tips_for_content(self, content_type: str, content_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        items = self._query(content_pk(content_type, content_id), "TIP#", newest_first=True, limit=limit)
        return [strip_keys(it) for it in items]

    # -----------------------------
    # Earnings
    # -----------------------------

    def _earning_index_items(self, earning: Dict[str, Any]) -> List[Dict[str, Any]]:
        ts = _ts_key(earning.get("created_at"))
        return [
            self._copy(earning, user_pk(earning["user_id"]), f"EARNING#{ts}#{earning['earning_id']}", "earning_index"),
            {
                "pk": f"SOURCE#{earning['source_type']}#{earning['source_id']}",
                "sk": "EARNING",
                "entity": "earning_source_index",
                "earning_id": earning["earning_id"],
            },
        ]

    def put_earning(self, earning: Dict[str, Any]) -> Dict[str, Any]:
        self._put(self._copy(earning, earning_pk(earning["earning_id"]), "META", "earning"))
        for item in self._earning_index_items(earning):
            self._put(item)
        return earning

    def get_earning(self, earning_id: str) -> Optional[Dict[str, Any]]:
        return strip_keys(self._get(earning_pk(earning_id), "META"))

    def find_earning_by_source(self, source_type: str, source_id: str) -> Optional[Dict[str, Any]]:
        pointer = self._get(f"SOURCE#{source_type}#{source_id}", "EARNING")
        if not pointer:
            return None
        return self.get_earning(pointer["earning_id"])

    def transition_earning(self, earning_id: str, expected: str, status: str) -> Optional[Dict[str, Any]]:
        current = self.get_earning(earning_id)
        if not current or current.get("status") != expected:
            return None
        updated = dict(current, status=status, updated_at=now_ts())
        if not self._put_if_status(self._copy(updated, earning_pk(earning_id), "META", "earning"), expected):
            return None
        for item in self._earning_index_items(updated):
            self._put(item)
        return updated

    def delete_earning(self, earning: Dict[str, Any], *, expected: Optional[str] = None) -> bool:
        """Delete an earning; with ``expected`` only while it is still in that status."""
        if expected is not None:
            try:
                self.table.delete_item(
                    Key={"pk": earning_pk(earning["earning_id"]), "sk": "META"},
                    ConditionExpression="#st = :expected",
                    ExpressionAttributeNames={"#st": "status"},
                    ExpressionAttributeValues={":expected": expected},
                )
            except ClientError as exc:
                if _is_condition_failure(exc):
                    return False
                raise
        else:
            self._del(earning_pk(earning["earning_id"]), "META")
        for item in self._earning_index_items(earning):
            self._del(item["pk"], item["sk"])
        return True

    def list_earnings(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        items = self._query(user_pk(user_id), "EARNING#", newest_first=True, limit=limit)
        return [strip_keys(it) for it in items]

    # -----------------------------
    # Plans
    # -----------------------------

    def put_plan(self, plan: Dict[str, Any]) -> Dict[str, Any]:
        self._put(self._copy(plan, plan_pk(plan["plan_id"]), "META", "plan"))
        self._put(self._copy(plan, "PLANS", f"PLAN#{plan['plan_id']}", "plan_index"))
        return plan

    def get_plan(self, plan_id: str) -> Optional[Dict[str, Any]]:
        return strip_keys(self._get(plan_pk(plan_id), "META"))

    def list_plans(self) -> List[Dict[str, Any]]:
        return [strip_keys(it) for it in self._query("PLANS", "PLAN#")]

    # -----------------------------
    # Subscriptions
    # -----------------------------

    def _subscription_items(self, sub: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = [
            self._copy(sub, sub_pk(sub["subscription_id"]), "META", "subscription"),
            self._copy(sub, user_pk(sub["user_id"]), f"SUB#{sub['subscription_id']}", "subscription_index"),
        ]
        if sub.get("external_subscription_id"):
            items.append({
                "pk": f"EXTSUB#{sub['external_subscription_id']}",
                "sk": "SUB",
                "entity": "subscription_external_index",
                "subscription_id": sub["subscription_id"],
            })
        return items

    def claim_external_subscription(self, external_subscription_id: str, subscription_id: str) -> bool:
        """Reserve the external id for one local subscription; False if already taken."""
        return self._put_new({
            "pk": f"EXTSUB#{external_subscription_id}",
            "sk": "SUB",
            "entity": "subscription_external_index",
            "subscription_id": subscription_id,
        })

    def release_external_subscription(self, external_subscription_id: str) -> None:
        self._del(f"EXTSUB#{external_subscription_id}", "SUB")

    def put_subscription(self, sub: Dict[str, Any]) -> Dict[str, Any]:
        for item in self._subscription_items(sub):
            self._put(item)
        return sub

    def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        return strip_keys(self._get(sub_pk(subscription_id), "META"))

    def find_subscription_by_external_id(self, external_subscription_id: str) -> Optional[Dict[str, Any]]:
        pointer = self._get(f"EXTSUB#{external_subscription_id}", "SUB")
        if not pointer:
            return None
        return self.get_subscription(pointer["subscription_id"])

    def list_subscriptions(self, user_id: str) -> List[Dict[str, Any]]:
        return [strip_keys(it) for it in self._query(user_pk(user_id), "SUB#")]

    def find_active_subscription(self, user_id: str, now: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Active subscription whose period has not ended, latest period end first."""
        now = now_ts() if now is None else now
        active = [
            sub for sub in self.list_subscriptions(user_id)
            if sub.get("status") == "active" and int(sub.get("current_period_end") or 0) >= now
        ]
        if not active:
            return None
        active.sort(key=lambda s: int(s.get("current_period_end") or 0), reverse=True)
        return active[0]

    # -----------------------------
    # Payment history
    # -----------------------------

    def append_payment(self, payment: Dict[str, Any]) -> bool:
        """
        Append a payment row; False when this external payment id was already
        recorded with the same status.
        """
        ext_id, status = payment["external_payment_id"], payment["status"]
        base = self._copy(payment, f"PAYMENT#{ext_id}", status.upper(), "payment")
        if not self._put_new(base):
            return False
        ts = _ts_key(payment.get("created_at"))
        self._put(self._copy(payment, user_pk(payment["user_id"]), f"PAYMENT#{ts}#{ext_id}#{status}", "payment_index"))
        return True

    def list_payments_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        items = self._query(user_pk(user_id), "PAYMENT#", newest_first=True, limit=limit)
        return [strip_keys(it) for it in items]

    # -----------------------------
    # Webhook events
    # -----------------------------

    def is_event_processed(self, event_id: str) -> bool:
        return self._get("WEBHOOK_EVENT", event_id) is not None

    def mark_event_processed(self, event_id: str, event_type: str = "") -> bool:
        ts = now_ts()
        item = {
            "pk": "WEBHOOK_EVENT",
            "sk": event_id,
            "event_type": event_type,
            "ts": ts,
            S.ddb_ttl_attr: ts + int(self.event_ttl_seconds),
        }
        return self._put_new(item)
