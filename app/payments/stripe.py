"""
Stripe gateway — Checkout Sessions API + signed webhooks.

The `stripe-signature` header looks like `t=1700000000,v1=<hex>[,v1=<hex>]`.
Each v1 is a hex HMAC-SHA256, keyed with the endpoint secret, over
"{t}.{raw body}". Events older than STRIPE_WEBHOOK_TOLERANCE are rejected.
"""

import hashlib
import hmac
import time
from decimal import Decimal
from typing import Optional, Tuple

import httpx

from app.core.config import settings
from app.payments.base import PaymentGateway, WebhookEvent, body_digest, to_minor_units
from app.payments.states import TransactionStatus
from app.schemas.payments import PaymentRequest

SESSION_EVENTS = {
    "checkout.session.completed": TransactionStatus.SUCCESS,
    "checkout.session.async_payment_succeeded": TransactionStatus.SUCCESS,
    "checkout.session.async_payment_failed": TransactionStatus.FAILED,
    "checkout.session.expired": TransactionStatus.FAILED,
}
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"


def parse_signature_header(header: str) -> Tuple[Optional[int], list]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


class StripeGateway(PaymentGateway):
    provider = "stripe"
    base_url = "https://api.stripe.com/v1"

    def _client_options(self) -> dict:
        return {"headers": {"Authorization": f"Bearer {self.config.secret}"}}

    async def _create_order(self, client: httpx.AsyncClient, request: PaymentRequest) -> Tuple[str, str, dict]:
        form = {
            "mode": "payment",
            "payment_method_types[0]": "card",
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": request.currency.lower(),
            "line_items[0][price_data][unit_amount]": str(to_minor_units(request.amount, request.currency)),
            "line_items[0][price_data][product_data][name]": request.description or request.order_id,
            "customer_email": request.customer_email,
            "client_reference_id": request.order_id,
            "metadata[order_id]": request.order_id,
            "payment_intent_data[metadata][order_id]": request.order_id,
            "success_url": request.return_url or f"{settings.APP_URL}/payment/success",
            "cancel_url": request.cancel_url or f"{settings.APP_URL}/payment/cancel",
        }
        response = await client.post("/checkout/sessions", data=form)
        response.raise_for_status()
        session = response.json()
        return session["id"], session.get("url"), session

    async def _is_paid(self, client: httpx.AsyncClient, transaction_id: str) -> bool:
        response = await client.get(f"/checkout/sessions/{transaction_id}")
        response.raise_for_status()
        return response.json().get("payment_status") == "paid"

    async def _refund(self, client: httpx.AsyncClient, transaction: dict, amount: Decimal) -> dict:
        payment_intent = transaction.get("provider_payment_id")
        if not payment_intent:
            session = await client.get(f"/checkout/sessions/{transaction['transaction_id']}")
            session.raise_for_status()
            payment_intent = session.json().get("payment_intent")
        if not payment_intent:
            raise httpx.HTTPError(f"No payment intent for session {transaction['transaction_id']}")

        minor = to_minor_units(amount, transaction.get("currency"))
        response = await client.post(
            "/refunds",
            data={"payment_intent": payment_intent, "amount": str(minor)},
            # A retried refund for the same transaction and amount is not issued twice
            headers={"Idempotency-Key": f"refund-{transaction['transaction_id']}-{minor}"},
        )
        response.raise_for_status()
        return response.json()

    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        timestamp, candidates = parse_signature_header(signature)
        if timestamp is None or not candidates:
            return False
        if abs(time.time() - timestamp) > settings.STRIPE_WEBHOOK_TOLERANCE:
            return False

        signed = f"{timestamp}.".encode("utf-8") + raw_body
        expected = hmac.new(self.config.webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return any(hmac.compare_digest(expected, candidate) for candidate in candidates)

    def parse_event(self, raw_body: bytes, payload: dict, event_id: Optional[str]) -> WebhookEvent:
        name = payload.get("type", "")
        obj = (payload.get("data") or {}).get("object") or {}
        event = WebhookEvent(
            event_id=payload.get("id") or event_id or body_digest(raw_body),
            event=name,
            entity=obj,
        )

        if name in SESSION_EVENTS:
            event.transaction_ref = obj.get("id")
            event.provider_payment_id = obj.get("payment_intent")
            event.outcome = SESSION_EVENTS[name]
            # Delayed methods complete the session before the money arrives
            if name == "checkout.session.completed" and obj.get("payment_status") == "unpaid":
                event.outcome = None
        elif name == PAYMENT_INTENT_FAILED:
            event.order_id = (obj.get("metadata") or {}).get("order_id")
            event.provider_payment_id = obj.get("id")
            event.failure_reason = (obj.get("last_payment_error") or {}).get("message")
            event.outcome = TransactionStatus.FAILED

        return event
