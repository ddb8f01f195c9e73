from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

from creator_ledger.core.errors import InvalidAmount, InvalidPeriod, UnknownSourceType
from creator_ledger.core.time import days

FEE_RATES = {
    "tip": Decimal("0.30"),
    "superchat": Decimal("0.30"),
    "subscription_pool": Decimal("0.50"),
}

# Minor-unit digits per currency; anything not listed is treated like USD.
CURRENCY_PLACES = {
    "JPY": 0,
    "KRW": 0,
    "USD": 2,
    "EUR": 2,
}

DEFAULT_HOLD_DAYS = 14

Money = Union[int, Decimal]


def currency_places(currency: str) -> int:
    return CURRENCY_PLACES.get((currency or "").upper(), 2)


def round_half_up(value: Decimal, places: int = 0) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def _require_amount(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer", **{name: value})
    if value < 0:
        raise InvalidAmount(f"{name} must not be negative", **{name: value})
    return value


def platform_fee(amount: int, source_type: str) -> int:
    """Platform share of an earning, rounded half-up to whole units."""
    amount = _require_amount(amount, "amount")
    rate = FEE_RATES.get(source_type)
    if rate is None:
        raise UnknownSourceType(f"Unknown source type: {source_type}", source_type=source_type)
    return int(round_half_up(Decimal(amount) * rate))


def net_amount(amount: int, fee: int) -> int:
    amount = _require_amount(amount, "amount")
    fee = _require_amount(fee, "fee")
    if fee > amount:
        raise InvalidAmount("Fee exceeds amount", amount=amount, fee=fee)
    return amount - fee


def _plan_price(plan: Any) -> Decimal:
    price = plan.get("price") if isinstance(plan, dict) else getattr(plan, "price", None)
    if price is None or isinstance(price, bool):
        raise InvalidAmount("Plan has no price")
    return Decimal(str(price))


def proration(
    current_plan: Any,
    new_plan: Any,
    days_remaining: int,
    days_in_month: int,
    is_downgrade: bool = False,
    currency: str = "JPY",
) -> Money:
    """
    Prorated price difference for switching plans mid-period.

    Upgrades return the amount to charge. A cheaper plan returns 0 unless
    ``is_downgrade`` is set, in which case the credit owed is returned as a
    positive amount. Zero-decimal currencies return ``int``; others return a
    ``Decimal`` quantized to the currency's minor unit.
    """
    if days_in_month <= 0:
        raise InvalidPeriod("days_in_month must be positive", days_in_month=days_in_month)
    if days_remaining < 0 or days_remaining > days_in_month:
        raise InvalidPeriod(
            "days_remaining must be within the period",
            days_remaining=days_remaining,
            days_in_month=days_in_month,
        )

    diff = _plan_price(new_plan) - _plan_price(current_plan)
    if diff < 0:
        if not is_downgrade:
            diff = Decimal(0)
        else:
            diff = -diff

    places = currency_places(currency)
    value = round_half_up(diff * Decimal(days_remaining) / Decimal(days_in_month), places)
    if places == 0:
        return int(value)
    return value


def available_at(created_at: int, hold_days: int = DEFAULT_HOLD_DAYS) -> int:
    return int(created_at) + days(hold_days)


def is_available(created_at: int, now: int, hold_days: int = DEFAULT_HOLD_DAYS) -> bool:
    return int(now) >= available_at(created_at, hold_days)
