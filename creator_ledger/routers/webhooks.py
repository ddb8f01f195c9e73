from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from creator_ledger.core.errors import UnsupportedProvider
from creator_ledger.models import WebhookAckOut
from creator_ledger.services.factory import get_webhook_reconciler
from creator_ledger.services.webhooks import WebhookReconciler

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SUPPORTED_PROVIDERS = ("stripe",)


@router.post("/{provider}", response_model=WebhookAckOut, response_model_exclude_none=True)
async def receive_webhook(
    provider: str,
    req: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    if provider not in SUPPORTED_PROVIDERS:
        raise UnsupportedProvider(f"Unsupported provider: {provider}", provider=provider)
    payload = await req.body()
    return await reconciler.handle_raw(payload, req.headers.get("stripe-signature"))
