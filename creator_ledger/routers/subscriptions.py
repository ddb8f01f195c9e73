from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from creator_ledger.auth.deps import get_authenticated_user_id, get_user_email
from creator_ledger.models import (
    CancelReq,
    CheckoutOut,
    CheckoutReq,
    CurrentSubscriptionOut,
    PaymentHistoryOut,
    PlanListOut,
    QuoteOut,
    SubscriptionOut,
)
from creator_ledger.services.factory import get_subscription_manager
from creator_ledger.services.subscriptions import SubscriptionManager

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/plans", response_model=PlanListOut)
def list_plans(subs: SubscriptionManager = Depends(get_subscription_manager)):
    return {"plans": subs.get_plans()}


@router.get("/current", response_model=CurrentSubscriptionOut)
def current_subscription(
    user_id: str = Depends(get_authenticated_user_id),
    subs: SubscriptionManager = Depends(get_subscription_manager),
):
    return {"subscription": subs.get_current_subscription(user_id)}


@router.post("/create-checkout", response_model=CheckoutOut)
async def create_checkout(
    body: CheckoutReq,
    user_id: str = Depends(get_authenticated_user_id),
    email: Optional[str] = Depends(get_user_email),
    subs: SubscriptionManager = Depends(get_subscription_manager),
):
    return await subs.create_checkout_session(user_id, email, body.plan_id)


@router.post("/cancel", response_model=SubscriptionOut)
async def cancel_subscription(
    body: CancelReq,
    user_id: str = Depends(get_authenticated_user_id),
    subs: SubscriptionManager = Depends(get_subscription_manager),
):
    return await subs.cancel_subscription(user_id, body.immediately)


@router.get("/payment-history", response_model=PaymentHistoryOut)
def payment_history(
    limit: int = Query(default=20),
    user_id: str = Depends(get_authenticated_user_id),
    subs: SubscriptionManager = Depends(get_subscription_manager),
):
    return {"payments": subs.get_payment_history(user_id, limit)}


@router.get("/quote", response_model=QuoteOut)
def quote_plan_change(
    plan_id: str = Query(min_length=1),
    user_id: str = Depends(get_authenticated_user_id),
    subs: SubscriptionManager = Depends(get_subscription_manager),
):
    return subs.quote_plan_change(user_id, plan_id)
