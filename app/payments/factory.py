"""
Gateway factory — builds the configured PaymentGateway variant.

payment_gateways rows: {id, name, provider, config, is_active, is_default}
"""

import logging
from typing import Optional

import httpx

from app.core.database import get_supabase
from app.core.errors import NoDefaultGateway, NotFound, UnsupportedProvider
from app.payments.base import GatewayConfig, PaymentGateway
from app.payments.razorpay import RazorpayGateway
from app.payments.stripe import StripeGateway

logger = logging.getLogger(__name__)

TABLE = "payment_gateways"

GATEWAYS = {
    RazorpayGateway.provider: RazorpayGateway,
    StripeGateway.provider: StripeGateway,
}


def gateway_class(provider: str) -> type:
    cls = GATEWAYS.get((provider or "").lower())
    if cls is None:
        raise UnsupportedProvider(f"Unsupported payment provider: {provider}")
    return cls


class PaymentGatewayFactory:
    def __init__(self, db, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.transport = transport

    def build(self, row: dict) -> PaymentGateway:
        cls = gateway_class(row.get("provider"))
        return cls(GatewayConfig.from_row(row.get("config")), row["id"], self.db, transport=self.transport)

    def create_gateway(self, gateway_id: str) -> PaymentGateway:
        result = self.db.table(TABLE).select("*").eq("id", gateway_id).limit(1).execute()
        row = result.data[0] if result.data else None
        if not row or not row.get("is_active"):
            raise NotFound("Payment gateway not found or inactive")
        return self.build(row)

    def get_default_gateway(self) -> PaymentGateway:
        result = (
            self.db.table(TABLE)
            .select("id")
            .eq("is_default", True)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        if not result.data:
            raise NoDefaultGateway("No default payment gateway configured")
        return self.create_gateway(result.data[0]["id"])

    def get_gateway_for_provider(self, provider: str) -> PaymentGateway:
        """Active gateway for a provider, the default one first."""
        gateway_class(provider)
        result = (
            self.db.table(TABLE)
            .select("*")
            .eq("provider", provider.lower())
            .eq("is_active", True)
            .execute()
        )
        rows = sorted(result.data or [], key=lambda r: not r.get("is_default"))
        if not rows:
            raise NotFound(f"No active {provider} gateway configured")
        if len(rows) > 1:
            logger.debug("Several active %s gateways; using %s", provider, rows[0]["id"])
        return self.build(rows[0])


def get_gateway_factory() -> PaymentGatewayFactory:
    """FastAPI dependency."""
    return PaymentGatewayFactory(get_supabase())
