from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# -----------------------------
# Tips
# -----------------------------

class SendTipReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    content_type: str = Field(validation_alias=AliasChoices("content_type", "contentType"))
    content_id: str = Field(min_length=1, validation_alias=AliasChoices("content_id", "contentId"))
    # Range and length are enforced by the orchestrator so errors carry ledger codes.
    amount: Any
    message: Optional[str] = None

class TipOut(BaseModel):
    tip_id: str
    from_user_id: str
    to_user_id: str
    content_type: str
    content_id: str
    amount: int
    currency: str
    message: Optional[str] = None
    payment_provider: str
    external_transaction_id: Optional[str] = None
    status: str
    created_at: int
    updated_at: int

class PaymentRefOut(BaseModel):
    transaction_id: str
    receipt_url: Optional[str] = None

class TipResultOut(BaseModel):
    tip: TipOut
    payment: PaymentRefOut

class TipListOut(BaseModel):
    tips: List[TipOut] = Field(default_factory=list)

# -----------------------------
# Earnings
# -----------------------------

class EarningOut(BaseModel):
    earning_id: str
    user_id: str
    source_type: str
    source_id: str
    amount: int
    platform_fee: int
    net_amount: int
    currency: str
    status: str
    available_at: int
    created_at: int

class EarningsBreakdownOut(BaseModel):
    tips: int = 0
    superchat: int = 0
    subscription_pool: int = 0

class EarningsStatsOut(BaseModel):
    available_balance: int
    pending_balance: int
    reversed_total: int
    this_month_earnings: int
    breakdown: EarningsBreakdownOut

class EarningListOut(BaseModel):
    earnings: List[EarningOut] = Field(default_factory=list)

# -----------------------------
# Subscriptions
# -----------------------------

class PlanOut(BaseModel):
    plan_id: str
    name: str
    price: int
    currency: str
    billing_cycle: str
    payment_provider: str
    is_active: bool
    features: List[str] = Field(default_factory=list)

class PlanListOut(BaseModel):
    plans: List[PlanOut] = Field(default_factory=list)

class SubscriptionOut(BaseModel):
    subscription_id: str
    user_id: str
    plan_id: str
    payment_provider: str
    external_subscription_id: Optional[str] = None
    status: str
    current_period_start: int
    current_period_end: int
    cancel_at_period_end: bool = False
    canceled_at: Optional[int] = None
    plan: Optional[PlanOut] = None

class CurrentSubscriptionOut(BaseModel):
    subscription: Optional[SubscriptionOut] = None

class CheckoutReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    plan_id: str = Field(min_length=1, validation_alias=AliasChoices("plan_id", "planId"))

class CheckoutOut(BaseModel):
    checkout_url: Optional[str] = None
    session_id: str

class CancelReq(BaseModel):
    immediately: bool = False

class PaymentHistoryItemOut(BaseModel):
    payment_id: str
    subscription_id: str
    external_payment_id: str
    amount: int
    currency: str
    status: str
    failure_reason: Optional[str] = None
    payment_method_type: Optional[str] = None
    paid_at: Optional[int] = None
    created_at: int

class PaymentHistoryOut(BaseModel):
    payments: List[PaymentHistoryItemOut] = Field(default_factory=list)

class QuoteOut(BaseModel):
    current_plan_id: str
    new_plan_id: str
    charge: Union[int, Decimal]
    credit: Union[int, Decimal]
    currency: str
    days_remaining: int
    days_in_period: int

# -----------------------------
# Webhooks / misc
# -----------------------------

class WebhookAckOut(BaseModel):
    received: bool
    type: str
    handled: bool
    deduped: Optional[bool] = None

class HealthOut(BaseModel):
    status: str = "ok"
    checks: Dict[str, Any] = Field(default_factory=dict)
