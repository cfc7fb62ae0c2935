"""
Razorpay gateway — Orders API + webhook signatures.

Webhook signature: hex HMAC-SHA256 of the raw request body keyed with the
webhook secret, sent as `x-razorpay-signature`.
Amounts go over the wire in paise.
"""

import hashlib
import hmac
from decimal import Decimal
from typing import Optional, Tuple

import httpx

from app.core.config import settings
from app.payments.base import PaymentGateway, WebhookEvent, body_digest, to_minor_units
from app.payments.states import TransactionStatus
from app.schemas.payments import PaymentRequest

EVENT_OUTCOMES = {
    "payment.captured": TransactionStatus.SUCCESS,
    "order.paid": TransactionStatus.SUCCESS,
    "payment.failed": TransactionStatus.FAILED,
}


class RazorpayGateway(PaymentGateway):
    provider = "razorpay"
    base_url = "https://api.razorpay.com/v1"

    def _client_options(self) -> dict:
        return {"auth": (self.config.api_key, self.config.secret)}

    async def _create_order(self, client: httpx.AsyncClient, request: PaymentRequest) -> Tuple[str, str, dict]:
        response = await client.post("/orders", json={
            "amount": to_minor_units(request.amount, request.currency),
            "currency": request.currency,
            "receipt": request.order_id,
            "notes": {
                "description": request.description,
                "customer_email": request.customer_email,
            },
        })
        response.raise_for_status()
        order = response.json()
        return order["id"], f"{settings.APP_URL}/payment/checkout/{order['id']}", order

    async def _is_paid(self, client: httpx.AsyncClient, transaction_id: str) -> bool:
        response = await client.get(f"/orders/{transaction_id}")
        response.raise_for_status()
        return response.json().get("status") == "paid"

    async def _captured_payment_id(self, client: httpx.AsyncClient, order_id: str) -> Optional[str]:
        response = await client.get(f"/orders/{order_id}/payments")
        response.raise_for_status()
        for payment in response.json().get("items", []):
            if payment.get("status") == "captured":
                return payment["id"]
        return None

    async def _refund(self, client: httpx.AsyncClient, transaction: dict, amount: Decimal) -> dict:
        payment_id = transaction.get("provider_payment_id")
        if not payment_id:
            payment_id = await self._captured_payment_id(client, transaction["transaction_id"])
        if not payment_id:
            raise httpx.HTTPError(f"No captured payment for order {transaction['transaction_id']}")

        response = await client.post(
            f"/payments/{payment_id}/refund",
            json={"amount": to_minor_units(amount, transaction.get("currency"))},
        )
        response.raise_for_status()
        return response.json()

    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        expected = hmac.new(
            self.config.webhook_secret.encode("utf-8"),
            raw_body,
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature.strip())

    def parse_event(self, raw_body: bytes, payload: dict, event_id: Optional[str]) -> WebhookEvent:
        name = payload.get("event", "")
        body = payload.get("payload") or {}
        payment = (body.get("payment") or {}).get("entity") or {}
        order = (body.get("order") or {}).get("entity") or {}

        return WebhookEvent(
            event_id=event_id or body_digest(raw_body),
            event=name,
            outcome=EVENT_OUTCOMES.get(name),
            transaction_ref=payment.get("order_id") or order.get("id"),
            provider_payment_id=payment.get("id"),
            failure_reason=payment.get("error_description"),
            entity=payment or order,
        )
