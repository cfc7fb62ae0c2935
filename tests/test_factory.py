import pytest

from app.core.errors import NoDefaultGateway, NotFound, UnsupportedProvider
from app.payments.base import GatewayConfig
from app.payments.factory import PaymentGatewayFactory, gateway_class
from app.payments.razorpay import RazorpayGateway
from app.payments.stripe import StripeGateway


def test_create_gateway_builds_provider_variant(factory):
    razorpay = factory.create_gateway("rzp-main")
    stripe = factory.create_gateway("stripe-main")

    assert isinstance(razorpay, RazorpayGateway)
    assert razorpay.gateway_id == "rzp-main"
    assert razorpay.config.webhook_secret == "rzp_webhook_secret"
    assert isinstance(stripe, StripeGateway)
    assert stripe.config.api_key == "pk_test"
    assert stripe.config.secret == "sk_test"


def test_missing_gateway_is_not_found(factory):
    with pytest.raises(NotFound):
        factory.create_gateway("nope")


def test_inactive_gateway_is_not_found(factory, db):
    db.rows("payment_gateways")[1]["is_active"] = False
    with pytest.raises(NotFound):
        factory.create_gateway("stripe-main")


def test_unsupported_provider(db, provider):
    db.seed("payment_gateways", {
        "id": "paypal-main", "name": "PayPal", "provider": "paypal",
        "config": {}, "is_active": True, "is_default": False,
    })
    factory = PaymentGatewayFactory(db, transport=provider.transport)

    with pytest.raises(UnsupportedProvider) as exc:
        factory.create_gateway("paypal-main")
    assert exc.value.code == "UNSUPPORTED_PROVIDER"


def test_gateway_class_is_case_insensitive():
    assert gateway_class("Stripe") is StripeGateway
    with pytest.raises(UnsupportedProvider):
        gateway_class("")


def test_default_gateway(factory):
    assert factory.get_default_gateway().gateway_id == "rzp-main"


def test_no_default_gateway(factory, db):
    for row in db.rows("payment_gateways"):
        row["is_default"] = False
    with pytest.raises(NoDefaultGateway):
        factory.get_default_gateway()


def test_inactive_default_is_not_used(factory, db):
    db.rows("payment_gateways")[0]["is_active"] = False
    with pytest.raises(NoDefaultGateway):
        factory.get_default_gateway()


def test_gateway_for_provider_prefers_default(factory, db):
    db.seed("payment_gateways", {
        "id": "rzp-backup", "name": "Razorpay backup", "provider": "razorpay",
        "config": {"api_key": "k", "secret": "s", "webhook_secret": "w"},
        "is_active": True, "is_default": False,
    })
    assert factory.get_gateway_for_provider("razorpay").gateway_id == "rzp-main"
    assert factory.get_gateway_for_provider("STRIPE").gateway_id == "stripe-main"


def test_gateway_for_provider_without_active_row(factory, db):
    db.rows("payment_gateways")[1]["is_active"] = False
    with pytest.raises(NotFound):
        factory.get_gateway_for_provider("stripe")
    with pytest.raises(UnsupportedProvider):
        factory.get_gateway_for_provider("paypal")


def test_config_from_json_string_and_empty():
    config = GatewayConfig.from_row('{"apiKey": "a", "secret": "b", "webhookSecret": "c", "mode": "live"}')
    assert (config.api_key, config.secret, config.webhook_secret, config.mode) == ("a", "b", "c", "live")

    empty = GatewayConfig.from_row(None)
    assert empty.webhook_secret == ""
    assert empty.mode == "test"
