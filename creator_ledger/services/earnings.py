from __future__ import annotations

from typing import Any, Dict, List, Optional

from creator_ledger.core.time import month_start_ts, now_ts
from creator_ledger.services.ledger_store import LedgerStore

BREAKDOWN_KEYS = {
    "tip": "tips",
    "superchat": "superchat",
    "subscription_pool": "subscription_pool",
}


def earnings_stats(store: LedgerStore, user_id: str, now: Optional[int] = None) -> Dict[str, Any]:
    """
    Balance summary of a creator's net earnings.

    An earning counts as available once its payment is confirmed and its hold
    period is over; confirmed earnings still in hold count as pending.
    """
    now = now_ts() if now is None else now
    month_start = month_start_ts(now)

    stats: Dict[str, Any] = {
        "available_balance": 0,
        "pending_balance": 0,
        "reversed_total": 0,
        "this_month_earnings": 0,
        "breakdown": {key: 0 for key in BREAKDOWN_KEYS.values()},
    }

    for earning in store.list_earnings(user_id):
        net = int(earning.get("net_amount") or 0)
        status = earning.get("status")
        if status == "reversed":
            stats["reversed_total"] += net
            continue

        if status == "available" and now >= int(earning.get("available_at") or 0):
            stats["available_balance"] += net
        else:
            stats["pending_balance"] += net

        if int(earning.get("created_at") or 0) >= month_start:
            stats["this_month_earnings"] += net

        key = BREAKDOWN_KEYS.get(earning.get("source_type"))
        if key:
            stats["breakdown"][key] += net

    return stats


def earnings_history(store: LedgerStore, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    return store.list_earnings(user_id, max(1, min(int(limit), 100)))
