import asyncio
from unittest.mock import MagicMock

import pytest
import stripe

from creator_ledger.core.errors import GatewayNotConfigured, InvalidSignature, MissingSignature, PaymentGatewayError
from creator_ledger.services import gateway as gateway_module
from creator_ledger.services.gateway import StripeGateway, subscription_period


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def stripe_mock(monkeypatch):
    mock = MagicMock()
    mock.PaymentIntent.create.return_value = {"id": "pi_123", "status": "requires_payment_method", "client_secret": "pi_123_secret"}
    mock.checkout.Session.create.return_value = {"id": "cs_123", "url": "https://checkout.stripe.test/cs_123"}
    mock.Subscription.retrieve.return_value = {
        "id": "sub_123",
        "status": "active",
        "customer": "cus_123",
        "cancel_at_period_end": False,
        "items": {"data": [{"current_period_start": 100, "current_period_end": 200}]},
    }
    monkeypatch.setattr(gateway_module, "stripe", mock)
    return mock


@pytest.fixture
def gw():
    return StripeGateway("sk_test", "whsec_test")


def test_create_payment_intent(stripe_mock, gw):
    intent = run_async(gw.create_payment_intent(1000, "jpy", {"type": "tip", "tip_id": "tip_1"}, idempotency_key="tip:tip_1"))
    assert intent == {"id": "pi_123", "status": "requires_payment_method", "client_secret": "pi_123_secret"}
    stripe_mock.PaymentIntent.create.assert_called_once_with(
        amount=1000,
        currency="jpy",
        metadata={"type": "tip", "tip_id": "tip_1"},
        automatic_payment_methods={"enabled": True},
        idempotency_key="tip:tip_1",
    )
    assert stripe_mock.api_key == "sk_test"


def test_stripe_errors_become_gateway_errors(stripe_mock, gw):
    stripe_mock.PaymentIntent.create.side_effect = stripe.StripeError("card network down")
    with pytest.raises(PaymentGatewayError) as ctx:
        run_async(gw.create_payment_intent(1000, "jpy", {}))
    assert ctx.value.context["operation"] == "create_payment_intent"


def test_unconfigured_gateway(stripe_mock):
    with pytest.raises(GatewayNotConfigured):
        run_async(StripeGateway("").cancel_payment_intent("pi_1"))
    stripe_mock.PaymentIntent.cancel.assert_not_called()


def test_checkout_session_carries_user_and_plan(stripe_mock, gw):
    session = run_async(gw.create_checkout_session(
        price_id="price_premium",
        user_id="viewer_1",
        plan_id="plan_premium",
        success_url="http://app/settings?subscription=success",
        cancel_url="http://app/settings?subscription=cancelled",
        customer_email="viewer@example.com",
    ))
    assert session == {"checkout_url": "https://checkout.stripe.test/cs_123", "session_id": "cs_123"}
    kwargs = stripe_mock.checkout.Session.create.call_args.kwargs
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"] == [{"price": "price_premium", "quantity": 1}]
    assert kwargs["client_reference_id"] == "viewer_1"
    assert kwargs["metadata"] == {"user_id": "viewer_1", "plan_id": "plan_premium"}
    assert kwargs["customer_email"] == "viewer@example.com"


def test_cancel_modes(stripe_mock, gw):
    run_async(gw.cancel_subscription("sub_123", immediately=True))
    stripe_mock.Subscription.cancel.assert_called_once_with("sub_123")

    run_async(gw.cancel_subscription("sub_123", immediately=False))
    stripe_mock.Subscription.modify.assert_called_once_with("sub_123", cancel_at_period_end=True)

    run_async(gw.resume_subscription("sub_123"))
    stripe_mock.Subscription.modify.assert_called_with("sub_123", cancel_at_period_end=False)


def test_get_subscription_reads_item_period(stripe_mock, gw):
    sub = run_async(gw.get_subscription("sub_123"))
    assert sub == {
        "id": "sub_123",
        "status": "active",
        "customer": "cus_123",
        "cancel_at_period_end": False,
        "current_period_start": 100,
        "current_period_end": 200,
    }


def test_subscription_period_prefers_top_level():
    assert subscription_period({"current_period_start": 1, "current_period_end": 2}) == {
        "current_period_start": 1,
        "current_period_end": 2,
    }
    assert subscription_period({}) == {"current_period_start": None, "current_period_end": None}


def test_construct_webhook_event(stripe_mock, gw):
    stripe_mock.Webhook.construct_event.return_value = {"id": "evt_1", "type": "invoice.paid"}
    assert gw.construct_webhook_event(b"{}", "t=1,v1=abc") == {"id": "evt_1", "type": "invoice.paid"}
    stripe_mock.Webhook.construct_event.assert_called_once_with(payload=b"{}", sig_header="t=1,v1=abc", secret="whsec_test")


def test_construct_webhook_event_rejects_bad_signatures(stripe_mock, gw):
    with pytest.raises(MissingSignature):
        gw.construct_webhook_event(b"{}", None)

    stripe_mock.Webhook.construct_event.side_effect = stripe.SignatureVerificationError("bad sig", "t=1,v1=abc")
    with pytest.raises(InvalidSignature):
        gw.construct_webhook_event(b"{}", "t=1,v1=abc")

    stripe_mock.Webhook.construct_event.side_effect = ValueError("not json")
    with pytest.raises(InvalidSignature):
        gw.construct_webhook_event(b"nope", "t=1,v1=abc")


def test_webhook_secret_required(stripe_mock):
    with pytest.raises(GatewayNotConfigured):
        StripeGateway("sk_test").construct_webhook_event(b"{}", "sig")
