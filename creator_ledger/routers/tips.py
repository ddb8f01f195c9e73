from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from creator_ledger.auth.deps import get_authenticated_user_id
from creator_ledger.models import SendTipReq, TipListOut, TipResultOut
from creator_ledger.services.factory import get_tip_orchestrator
from creator_ledger.services.tips import TipOrchestrator

router = APIRouter(prefix="/tips", tags=["tips"])


@router.post("/send", response_model=TipResultOut, status_code=201)
async def send_tip(
    body: SendTipReq,
    user_id: str = Depends(get_authenticated_user_id),
    tips: TipOrchestrator = Depends(get_tip_orchestrator),
):
    return await tips.send_tip(user_id, body.content_type, body.content_id, body.amount, body.message)


@router.get("/sent", response_model=TipListOut)
def list_sent_tips(
    limit: Optional[int] = Query(default=20),
    user_id: str = Depends(get_authenticated_user_id),
    tips: TipOrchestrator = Depends(get_tip_orchestrator),
):
    return {"tips": tips.sent_tips(user_id, limit)}


@router.get("/received", response_model=TipListOut)
def list_received_tips(
    limit: Optional[int] = Query(default=20),
    user_id: str = Depends(get_authenticated_user_id),
    tips: TipOrchestrator = Depends(get_tip_orchestrator),
):
    return {"tips": tips.received_tips(user_id, limit)}


@router.get("/content/{content_type}/{content_id}", response_model=TipListOut)
def list_content_tips(
    content_type: str,
    content_id: str,
    limit: Optional[int] = Query(default=50),
    tips: TipOrchestrator = Depends(get_tip_orchestrator),
):
    return {"tips": tips.content_tips(content_type, content_id, limit)}
