import pytest
from fastapi.testclient import TestClient

from app.core import database
from app.core import security
from app.core.config import settings
from app.main import app
from app.payments.factory import PaymentGatewayFactory, get_gateway_factory

from fakes import FakeProvider, FakeSupabase

RAZORPAY_SECRET = "rzp_webhook_secret"
STRIPE_SECRET = "whsec_test_secret"

USERS = {
    "admin-token": {"uid": "u-admin", "email": "admin@campus.edu", "role": "admin", "name": "Admin", "user_id": "admin-1"},
    "faculty-token": {"uid": "u-f1", "email": "f1@campus.edu", "role": "faculty", "name": "Faculty One", "user_id": "F1"},
    "student-token": {"uid": "u-s1", "email": "s1@campus.edu", "role": "student", "name": "Student One", "user_id": "S1"},
    "staff-token": {"uid": "u-st", "email": "staff@campus.edu", "role": "staff", "name": "Staff", "user_id": "staff-1"},
}


@pytest.fixture
def db(monkeypatch):
    fake = FakeSupabase()
    monkeypatch.setattr(database, "_supabase_client", fake)
    return fake


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def gateways(db):
    db.seed(
        "payment_gateways",
        {
            "id": "rzp-main",
            "name": "Razorpay",
            "provider": "razorpay",
            "config": {"api_key": "rzp_test_key", "secret": "rzp_secret", "webhook_secret": RAZORPAY_SECRET, "mode": "test"},
            "is_active": True,
            "is_default": True,
        },
        {
            "id": "stripe-main",
            "name": "Stripe",
            "provider": "stripe",
            # Older rows keep config as a JSON string with camelCase keys
            "config": '{"apiKey": "pk_test", "secret": "sk_test", "webhookSecret": "%s", "mode": "test"}' % STRIPE_SECRET,
            "is_active": True,
            "is_default": False,
        },
    )
    return db


@pytest.fixture
def factory(gateways, provider):
    return PaymentGatewayFactory(gateways, transport=provider.transport)


@pytest.fixture
def client(db, provider, monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "mock")
    monkeypatch.setattr(settings, "RATE_LIMIT_REQUESTS", 1000)
    for token, user in USERS.items():
        monkeypatch.setitem(security.MOCK_USERS, token, user)

    app.dependency_overrides[get_gateway_factory] = lambda: PaymentGatewayFactory(db, transport=provider.transport)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth():
    return auth_header
