"""
Payment gateway abstraction.

A PaymentGateway owns the local side of every provider integration: request
validation, the payment_transactions / payment_webhooks / fee_payments rows and
the transaction state machine. Subclasses only supply the provider REST calls,
the webhook signature scheme and the mapping of provider events to outcomes.

Provider and network failures stop at this boundary and come back as
{success: false, error}; signature and state errors are raised.
"""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

import httpx

from app.core.config import settings
from app.core.errors import (
    InvalidSignature,
    InvalidState,
    NotFound,
    ValidationError,
    is_constraint_violation,
    UNIQUE_VIOLATION,
)
from app.payments.states import (
    FEE_STATUS_FOR,
    FeePaymentStatus,
    TransactionStatus,
    can_transition,
    ensure_transition,
)
from app.schemas.payments import PaymentRequest, PaymentResponse, RefundResponse

logger = logging.getLogger(__name__)

TRANSACTIONS = "payment_transactions"
WEBHOOKS = "payment_webhooks"
FEE_PAYMENTS = "fee_payments"


def to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


# ISO 4217 minor-unit exponents that differ from 2, as the providers expect them
CURRENCY_EXPONENTS = {
    **dict.fromkeys(
        ["BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA", "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF"],
        0,
    ),
    **dict.fromkeys(["BHD", "JOD", "KWD", "OMR", "TND"], 3),
}


def to_minor_units(amount: Decimal, currency: str = "INR") -> int:
    """Rupees → paise, dollars → cents, yen → yen."""
    exponent = CURRENCY_EXPONENTS.get((currency or "").upper(), 2)
    scaled = to_decimal(amount).scaleb(exponent)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class GatewayConfig:
    api_key: str
    secret: str
    webhook_secret: str
    mode: str = "test"

    @classmethod
    def from_row(cls, raw) -> "GatewayConfig":
        """Config is stored as jsonb, or as a JSON string by older rows."""
        if isinstance(raw, str):
            raw = json.loads(raw or "{}")
        raw = raw or {}
        return cls(
            api_key=raw.get("api_key") or raw.get("apiKey", ""),
            secret=raw.get("secret", ""),
            webhook_secret=raw.get("webhook_secret") or raw.get("webhookSecret", ""),
            mode=raw.get("mode", "test"),
        )


@dataclass
class WebhookEvent:
    event_id: str
    event: str
    outcome: Optional[TransactionStatus] = None
    transaction_ref: Optional[str] = None
    order_id: Optional[str] = None
    provider_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    entity: dict = field(default_factory=dict)


def body_digest(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


class PaymentGateway(ABC):
    provider = ""
    base_url = ""

    def __init__(self, config: GatewayConfig, gateway_id: str, db, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.gateway_id = gateway_id
        self.db = db
        self.transport = transport

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------
    def _client_options(self) -> dict:
        return {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.PAYMENT_HTTP_TIMEOUT,
            transport=self.transport,
            **self._client_options(),
        )

    @abstractmethod
    async def _create_order(self, client: httpx.AsyncClient, request: PaymentRequest) -> Tuple[str, str, dict]:
        """Create the provider order/session. Returns (transaction_id, payment_url, raw)."""

    @abstractmethod
    async def _is_paid(self, client: httpx.AsyncClient, transaction_id: str) -> bool:
        ...

    @abstractmethod
    async def _refund(self, client: httpx.AsyncClient, transaction: dict, amount: Decimal) -> dict:
        ...

    @abstractmethod
    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        ...

    @abstractmethod
    def parse_event(self, raw_body: bytes, payload: dict, event_id: Optional[str]) -> WebhookEvent:
        ...

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def get_transaction(self, transaction_id: str) -> dict:
        result = (
            self.db.table(TRANSACTIONS)
            .select("*")
            .eq("transaction_id", transaction_id)
            .eq("gateway_id", self.gateway_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            raise NotFound(f"Transaction {transaction_id} not found")
        return result.data[0]

    @staticmethod
    def validate_request(request: PaymentRequest) -> None:
        if request.amount is None or to_decimal(request.amount) <= 0:
            raise ValidationError("amount must be greater than 0")
        if not (request.order_id or "").strip():
            raise ValidationError("order_id is required")
        if not (request.customer_email or "").strip():
            raise ValidationError("customer_email is required")

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        self.validate_request(request)

        try:
            async with self._client() as client:
                transaction_id, payment_url, raw = await self._create_order(client, request)
        except httpx.HTTPStatusError as e:
            logger.error(
                "%s payment creation failed for order %s: %s %s",
                self.provider, request.order_id, e.response.status_code, e.response.text,
            )
            return PaymentResponse(success=False, error="Payment creation failed")
        except httpx.HTTPError as e:
            logger.error("%s payment creation failed for order %s: %s", self.provider, request.order_id, e)
            return PaymentResponse(success=False, error="Payment creation failed")

        self.db.table(TRANSACTIONS).insert({
            "transaction_id": transaction_id,
            "order_id": request.order_id,
            "amount": str(to_decimal(request.amount)),
            "currency": request.currency,
            "status": TransactionStatus.PENDING.value,
            "payment_method": "CARD",
            "gateway_id": self.gateway_id,
            "user_id": request.user_id,
            "description": request.description,
            "metadata": raw,
            "created_at": utcnow(),
        }).execute()

        logger.info("Created %s transaction %s for order %s", self.provider, transaction_id, request.order_id)
        return PaymentResponse(success=True, payment_url=payment_url, transaction_id=transaction_id)

    async def verify_payment(self, transaction_id: str) -> bool:
        """Poll the provider. Local state is only ever moved by webhooks."""
        try:
            async with self._client() as client:
                return await self._is_paid(client, transaction_id)
        except httpx.HTTPError as e:
            logger.error("%s payment verification failed for %s: %s", self.provider, transaction_id, e)
            return False

    async def refund_payment(self, transaction_id: str, amount) -> RefundResponse:
        transaction = self.get_transaction(transaction_id)
        ensure_transition(transaction["status"], TransactionStatus.REFUNDED)

        amount = to_decimal(amount)
        original = to_decimal(transaction["amount"])
        if amount <= 0:
            raise ValidationError("Refund amount must be greater than 0")
        if amount > original:
            raise ValidationError(f"Refund amount {amount} exceeds payment amount {original}")

        target = TransactionStatus.REFUNDED if amount == original else TransactionStatus.PARTIAL_REFUND

        self._claim_refund(transaction, amount)
        try:
            async with self._client() as client:
                refund = await self._refund(client, transaction, amount)
        except httpx.HTTPStatusError as e:
            logger.error(
                "%s refund failed for %s: %s %s",
                self.provider, transaction_id, e.response.status_code, e.response.text,
            )
            self._release_refund(transaction)
            return RefundResponse(success=False, error="Refund failed")
        except httpx.HTTPError as e:
            logger.error("%s refund failed for %s: %s", self.provider, transaction_id, e)
            self._release_refund(transaction)
            return RefundResponse(success=False, error="Refund failed")

        result = (
            self.db.table(TRANSACTIONS)
            .update({
                "status": target.value,
                "refunded_at": utcnow(),
                "refund_response": refund,
            })
            .eq("id", transaction["id"])
            .eq("status", TransactionStatus.SUCCESS.value)
            .execute()
        )
        if not result.data:
            logger.error("Refund for %s was issued but the transaction already left SUCCESS", transaction_id)
            raise InvalidState(f"Transaction {transaction_id} is no longer refundable")

        logger.info("Refunded %s of %s on transaction %s (%s)", amount, original, transaction_id, target.value)
        return RefundResponse(success=True, status=target.value, refund_amount=amount)

    def _claim_refund(self, transaction: dict, amount: Decimal) -> None:
        """Reserve the transaction for one refund before the provider is called."""
        result = (
            self.db.table(TRANSACTIONS)
            .update({"refund_amount": str(amount)})
            .eq("id", transaction["id"])
            .eq("status", TransactionStatus.SUCCESS.value)
            .is_("refund_amount", "null")
            .execute()
        )
        if not result.data:
            logger.info("Refund for %s rejected: another refund holds the transaction", transaction["transaction_id"])
            raise InvalidState(f"Transaction {transaction['transaction_id']} already has a refund in progress")

    def _release_refund(self, transaction: dict) -> None:
        self.db.table(TRANSACTIONS).update({"refund_amount": None}).eq("id", transaction["id"]).eq(
            "status", TransactionStatus.SUCCESS.value
        ).execute()

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    async def process_webhook(self, raw_body: bytes, signature: str, event_id: Optional[str] = None) -> dict:
        if not signature or not self.config.webhook_secret or not self.verify_signature(raw_body, signature):
            logger.warning("Rejected %s webhook for gateway %s: bad signature", self.provider, self.gateway_id)
            raise InvalidSignature()

        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Webhook body is not valid JSON")
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")

        event = self.parse_event(raw_body, payload, event_id)

        if not self._record_event(event, raw_body):
            logger.info("Duplicate %s webhook %s ignored", self.provider, event.event_id)
            return {"processed": False, "duplicate": True, "event": event.event}

        try:
            return self._handle_event(event)
        except Exception:
            # Forget the delivery so the provider's retry is processed again
            logger.exception("%s webhook %s failed; event record removed", self.provider, event.event_id)
            self._forget_event(event)
            raise

    def _handle_event(self, event: WebhookEvent) -> dict:
        if event.outcome is None:
            logger.info("Unhandled %s webhook event %s", self.provider, event.event)
            return {"processed": True, "event": event.event, "status": None}

        transaction = self._resolve_transaction(event)
        if transaction is None:
            logger.warning(
                "%s webhook %s references unknown transaction %s",
                self.provider, event.event_id, event.transaction_ref or event.order_id,
            )
            return {"processed": False, "event": event.event, "status": None}

        applied = self._apply_outcome(transaction, event)
        return {
            "processed": applied,
            "event": event.event,
            "transaction_id": transaction["transaction_id"],
            "status": event.outcome.value if applied else transaction["status"],
        }

    def _record_event(self, event: WebhookEvent, raw_body: bytes) -> bool:
        try:
            self.db.table(WEBHOOKS).insert({
                "gateway_id": self.gateway_id,
                "event_id": event.event_id,
                "event": event.event,
                "payload": raw_body.decode("utf-8", errors="replace"),
                "transaction_id": event.transaction_ref,
                "created_at": utcnow(),
            }).execute()
        except Exception as e:
            if is_constraint_violation(e, UNIQUE_VIOLATION):
                return False
            raise
        return True

    def _forget_event(self, event: WebhookEvent) -> None:
        self.db.table(WEBHOOKS).delete().eq("gateway_id", self.gateway_id).eq("event_id", event.event_id).execute()

    def _resolve_transaction(self, event: WebhookEvent) -> Optional[dict]:
        table = self.db.table(TRANSACTIONS)
        if event.transaction_ref:
            result = (
                table.select("*")
                .eq("transaction_id", event.transaction_ref)
                .eq("gateway_id", self.gateway_id)
                .limit(1)
                .execute()
            )
            if result.data:
                return result.data[0]
        if event.order_id:
            result = (
                self.db.table(TRANSACTIONS)
                .select("*")
                .eq("order_id", event.order_id)
                .eq("gateway_id", self.gateway_id)
                .eq("status", TransactionStatus.PENDING.value)
                .limit(1)
                .execute()
            )
            if result.data:
                return result.data[0]
        return None

    def _apply_outcome(self, transaction: dict, event: WebhookEvent) -> bool:
        if transaction["status"] == event.outcome.value:
            # Already moved by an earlier delivery whose fee update may not have landed
            self._cascade_fee_status(transaction, event.outcome)
            return False

        if not can_transition(transaction["status"], event.outcome):
            logger.info(
                "Transaction %s is %s; %s ignored",
                transaction["transaction_id"], transaction["status"], event.event,
            )
            return False

        update = {"status": event.outcome.value, "gateway_response": event.entity, "updated_at": utcnow()}
        if event.provider_payment_id:
            update["provider_payment_id"] = event.provider_payment_id
        if event.failure_reason:
            update["failure_reason"] = event.failure_reason

        # Conditional on PENDING so a concurrent delivery cannot apply twice
        result = (
            self.db.table(TRANSACTIONS)
            .update(update)
            .eq("id", transaction["id"])
            .eq("status", TransactionStatus.PENDING.value)
            .execute()
        )
        if not result.data:
            logger.info("Transaction %s changed state concurrently; %s ignored", transaction["transaction_id"], event.event)
            return False

        self._cascade_fee_status(transaction, event.outcome)
        logger.info("Transaction %s → %s via %s", transaction["transaction_id"], event.outcome.value, event.event)
        return True

    def _cascade_fee_status(self, transaction: dict, outcome: TransactionStatus) -> None:
        fee_status = FEE_STATUS_FOR[outcome]
        self.db.table(FEE_PAYMENTS).update({"status": fee_status.value}).eq(
            "transaction_id", transaction["transaction_id"]
        ).eq("status", FeePaymentStatus.PENDING.value).execute()
