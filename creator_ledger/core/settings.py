from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False")


def parse_price_map(raw: str) -> Dict[str, str]:
    """Parse ``plan_a=price_1,plan_b=price_2`` into a dict."""
    out: Dict[str, str] = {}
    for part in (raw or "").split(","):
        plan_id, sep, price_id = part.partition("=")
        if not sep:
            continue
        plan_id, price_id = plan_id.strip(), price_id.strip()
        if plan_id and price_id:
            out[plan_id] = price_id
    return out


@dataclass(frozen=True)
class Settings:
    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "ap-northeast-1")

    # DynamoDB tables
    ledger_table_name: str = os.environ.get("LEDGER_TABLE_NAME", "creator_ledger")
    users_table_name: str = os.environ.get("USERS_TABLE_NAME", "users")
    videos_table_name: str = os.environ.get("VIDEOS_TABLE_NAME", "videos")

    # TTL
    ddb_ttl_attr: str = os.environ.get("DDB_TTL_ATTR", "ttl_epoch")
    webhook_event_ttl_seconds: int = int(os.environ.get("WEBHOOK_EVENT_TTL_SECONDS", str(7 * 24 * 3600)))

    # Auth
    jwt_secret: str = os.environ.get("JWT_SECRET", "")
    jwt_algorithm: str = os.environ.get("JWT_ALGORITHM", "HS256")

    # Stripe
    stripe_secret_key: str = os.environ.get("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    stripe_api_version: str = os.environ.get("STRIPE_API_VERSION", "")
    stripe_price_map: str = os.environ.get("STRIPE_PRICE_MAP", "")
    stripe_price_premium: str = os.environ.get("STRIPE_PRICE_PREMIUM", "price_premium_default")
    stripe_price_premium_plus: str = os.environ.get("STRIPE_PRICE_PREMIUM_PLUS", "price_premium_plus_default")

    # Billing
    frontend_url: str = os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")
    default_currency: str = os.environ.get("DEFAULT_CURRENCY", "jpy").lower()
    tip_min_amount: int = int(os.environ.get("TIP_MIN_AMOUNT", "100"))
    tip_max_amount: int = int(os.environ.get("TIP_MAX_AMOUNT", "100000"))
    tip_message_max_length: int = int(os.environ.get("TIP_MESSAGE_MAX_LENGTH", "200"))
    earning_hold_days: int = int(os.environ.get("EARNING_HOLD_DAYS", "14"))

    # Observability
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_json: bool = _flag("LOG_JSON", "1")


@dataclass(frozen=True)
class BillingConfig:
    """Everything the ledger managers need, fixed at construction time."""

    currency: str = "jpy"
    payment_provider: str = "stripe"
    tip_min_amount: int = 100
    tip_max_amount: int = 100000
    tip_message_max_length: int = 200
    earning_hold_days: int = 14
    success_url: str = "http://localhost:3000/settings?subscription=success"
    cancel_url: str = "http://localhost:3000/settings?subscription=cancelled"
    price_ids: Dict[str, str] = field(default_factory=dict)

    def price_id_for(self, plan_id: str) -> Optional[str]:
        return self.price_ids.get(plan_id)


def billing_config_from_settings(settings: Settings) -> BillingConfig:
    price_ids = {
        "plan_premium": settings.stripe_price_premium,
        "plan_premium_plus": settings.stripe_price_premium_plus,
    }
    price_ids.update(parse_price_map(settings.stripe_price_map))
    return BillingConfig(
        currency=settings.default_currency,
        tip_min_amount=settings.tip_min_amount,
        tip_max_amount=settings.tip_max_amount,
        tip_message_max_length=settings.tip_message_max_length,
        earning_hold_days=settings.earning_hold_days,
        success_url=f"{settings.frontend_url}/settings?subscription=success",
        cancel_url=f"{settings.frontend_url}/settings?subscription=cancelled",
        price_ids={k: v for k, v in price_ids.items() if v},
    )


S = Settings()
