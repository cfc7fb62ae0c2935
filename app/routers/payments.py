"""
Payments router — provider status polling, refunds, and provider webhooks.

Webhook contract: POST /api/payments/webhook/{provider} with the raw provider
body and its signature header. Answers {received: true}, or 400 without any
detail when the call cannot be accepted.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from app.core.security import require_role
from app.core.database import get_supabase
from app.core.errors import ERPError, NotFound, ProviderError
from app.payments.factory import PaymentGatewayFactory, get_gateway_factory
from app.schemas.payments import RefundCreate
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])

SIGNATURE_HEADERS = {
    "razorpay": "x-razorpay-signature",
    "stripe": "stripe-signature",
}
EVENT_ID_HEADERS = {
    "razorpay": "x-razorpay-event-id",
}


def _transaction(transaction_id: str) -> dict:
    db = get_supabase()
    result = db.table("payment_transactions").select("*").eq("transaction_id", transaction_id).limit(1).execute()
    if not result.data:
        raise NotFound(f"Transaction {transaction_id} not found")
    return result.data[0]


@router.get("/{transaction_id}/verify")
async def verify_payment(
    transaction_id: str,
    user: dict = Depends(require_role(["admin", "staff", "student"])),
    factory: PaymentGatewayFactory = Depends(get_gateway_factory),
):
    transaction = _transaction(transaction_id)
    if user["role"] == "student" and transaction.get("user_id") != user["user_id"]:
        raise NotFound(f"Transaction {transaction_id} not found")

    gateway = factory.create_gateway(transaction["gateway_id"])
    paid = await gateway.verify_payment(transaction_id)
    return success_response(data={
        "transaction_id": transaction_id,
        "paid": paid,
        "status": transaction["status"],
    })


@router.post("/{transaction_id}/refund")
async def refund_payment(
    transaction_id: str,
    body: RefundCreate,
    user: dict = Depends(require_role(["admin"])),
    factory: PaymentGatewayFactory = Depends(get_gateway_factory),
):
    transaction = _transaction(transaction_id)
    gateway = factory.create_gateway(transaction["gateway_id"])
    result = await gateway.refund_payment(transaction_id, body.amount)
    if not result.success:
        raise ProviderError(result.error or "Refund failed")
    return success_response(data=result.model_dump(mode="json"), message="Refund processed")


@router.post("/webhook/{provider}")
async def payment_webhook(
    provider: str,
    request: Request,
    factory: PaymentGatewayFactory = Depends(get_gateway_factory),
):
    provider = provider.lower()
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADERS.get(provider, ""), "")
    event_id = request.headers.get(EVENT_ID_HEADERS[provider]) if provider in EVENT_ID_HEADERS else None

    try:
        gateway = factory.get_gateway_for_provider(provider)
        result = await gateway.process_webhook(raw_body, signature, event_id=event_id)
    except ERPError as e:
        logger.warning("Webhook from %s rejected: %s %s", provider, e.code, e.message)
        return JSONResponse(status_code=400, content={"error": "Webhook processing failed"})
    except Exception:
        logger.exception("Webhook from %s failed", provider)
        return JSONResponse(status_code=400, content={"error": "Webhook processing failed"})

    logger.debug("Webhook from %s handled: %s", provider, result)
    return {"received": True}
