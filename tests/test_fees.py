from decimal import Decimal
from types import SimpleNamespace

import pytest

from creator_ledger.core.errors import InvalidAmount, InvalidPeriod, UnknownSourceType
from creator_ledger.core.time import days
from creator_ledger.services import fees


@pytest.mark.parametrize("source_type", ["tip", "superchat", "subscription_pool"])
def test_fee_and_net_always_add_up(source_type):
    for amount in list(range(100, 100001, 37)) + [100, 101, 333, 99999, 100000]:
        fee = fees.platform_fee(amount, source_type)
        assert 0 <= fee <= amount
        assert fee + fees.net_amount(amount, fee) == amount


def test_tip_fee_is_thirty_percent():
    assert fees.platform_fee(1000, "tip") == 300
    assert fees.net_amount(1000, 300) == 700


def test_fee_rounds_half_up():
    assert fees.platform_fee(333, "tip") == 100
    assert fees.net_amount(333, 100) == 233
    assert fees.platform_fee(333, "subscription_pool") == 167
    assert fees.platform_fee(5, "tip") == 2


def test_zero_amount_has_zero_fee():
    assert fees.platform_fee(0, "superchat") == 0


@pytest.mark.parametrize("amount", [-1, 10.5, True, "100"])
def test_fee_rejects_bad_amounts(amount):
    with pytest.raises(InvalidAmount):
        fees.platform_fee(amount, "tip")


def test_fee_rejects_unknown_source_type():
    with pytest.raises(UnknownSourceType):
        fees.platform_fee(100, "merch")


def test_net_amount_rejects_fee_above_amount():
    with pytest.raises(InvalidAmount):
        fees.net_amount(100, 101)
    with pytest.raises(InvalidAmount):
        fees.net_amount(-5, 0)


def test_proration_upgrade_half_month():
    assert fees.proration({"price": 980}, {"price": 1980}, 15, 30) == 500


def test_proration_rounds_half_up_in_yen():
    value = fees.proration({"price": 980}, {"price": 1980}, 14, 29)
    assert value == 483
    assert isinstance(value, int)


def test_proration_accepts_plan_objects():
    current = SimpleNamespace(price=980)
    new = SimpleNamespace(price=1980)
    assert fees.proration(current, new, 30, 30) == 1000
    assert fees.proration(current, new, 0, 30) == 0


def test_proration_downgrade_charges_nothing_unless_credit_requested():
    assert fees.proration({"price": 1980}, {"price": 980}, 15, 30) == 0
    assert fees.proration({"price": 1980}, {"price": 980}, 15, 30, is_downgrade=True) == 500


def test_proration_usd_keeps_cents():
    value = fees.proration({"price": "9.99"}, {"price": "19.99"}, 10, 30, currency="USD")
    assert value == Decimal("3.33")


@pytest.mark.parametrize(
    "remaining,in_month",
    [(10, 0), (10, -30), (-1, 30), (31, 30)],
)
def test_proration_rejects_bad_periods(remaining, in_month):
    with pytest.raises(InvalidPeriod):
        fees.proration({"price": 980}, {"price": 1980}, remaining, in_month)


def test_hold_period_ends_at_exactly_fourteen_days():
    created = 1_700_000_000
    assert fees.available_at(created) == created + days(14)
    assert not fees.is_available(created, created + days(14) - 1)
    assert fees.is_available(created, created + days(14))


def test_currency_places():
    assert fees.currency_places("jpy") == 0
    assert fees.currency_places("USD") == 2
    assert fees.round_half_up(Decimal("2.5")) == Decimal("3")
