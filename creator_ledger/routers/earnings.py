from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from creator_ledger.auth.deps import get_authenticated_user_id
from creator_ledger.models import EarningListOut, EarningsStatsOut
from creator_ledger.services.earnings import earnings_history, earnings_stats
from creator_ledger.services.factory import get_store
from creator_ledger.services.ledger_store import LedgerStore

router = APIRouter(prefix="/earnings", tags=["earnings"])


@router.get("/stats", response_model=EarningsStatsOut)
def get_earnings_stats(
    user_id: str = Depends(get_authenticated_user_id),
    store: LedgerStore = Depends(get_store),
):
    return earnings_stats(store, user_id)


@router.get("/history", response_model=EarningListOut)
def get_earnings_history(
    limit: int = Query(default=50, ge=1, le=100),
    user_id: str = Depends(get_authenticated_user_id),
    store: LedgerStore = Depends(get_store),
):
    return {"earnings": earnings_history(store, user_id, limit)}
