from __future__ import annotations

from fastapi import APIRouter

from creator_ledger.core.settings import S
from creator_ledger.models import HealthOut

router = APIRouter(tags=["misc"])


@router.get("/health", response_model=HealthOut)
def health():
    return {
        "status": "ok",
        "checks": {
            "stripe_configured": bool(S.stripe_secret_key),
            "webhook_secret_configured": bool(S.stripe_webhook_secret),
        },
    }
