"""
Fees router — Fee payment checkout and history.

A fee payment starts PENDING and is linked to the gateway transaction created
for it. Webhooks move it to COMPLETED or FAILED.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends
from app.core.security import require_role
from app.core.database import get_supabase
from app.core.errors import ProviderError
from app.core.filters import FeePaymentFilter
from app.payments.factory import PaymentGatewayFactory, get_gateway_factory
from app.payments.states import FeePaymentStatus
from app.schemas.payments import FeePaymentCreate, PaymentRequest
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/fees", tags=["Fees"])


@router.get("/payments")
async def list_fee_payments(
    status: Optional[str] = None,
    semester: Optional[int] = None,
    year: Optional[int] = None,
    student_id: Optional[str] = None,
    user: dict = Depends(require_role(["admin", "staff", "student"])),
):
    """`status` takes one status or a comma-separated list, e.g. PENDING,FAILED."""
    db = get_supabase()
    if user["role"] == "student":
        student_id = user["user_id"]

    statuses = [s.strip().upper() for s in (status or "").split(",") if s.strip()] or None
    filters = FeePaymentFilter(
        student_id=student_id,
        statuses=statuses,
        semester=semester,
        year=year,
    )
    result = filters.apply(db.table("fee_payments").select("*")).order("created_at", desc=True).execute()
    return success_response(data=result.data)


@router.post("/payments")
async def create_fee_payment(
    body: FeePaymentCreate,
    user: dict = Depends(require_role(["student"])),
    factory: PaymentGatewayFactory = Depends(get_gateway_factory),
):
    db = get_supabase()
    gateway = factory.get_default_gateway()

    order_id = f"FEE-{uuid4().hex[:16].upper()}"
    request = PaymentRequest(
        amount=body.amount,
        currency=body.currency,
        order_id=order_id,
        description=f"Semester {body.semester} fee ({body.year})",
        customer_email=user.get("email", ""),
        customer_name=user.get("name", ""),
        user_id=user["user_id"],
        return_url=body.return_url,
        cancel_url=body.cancel_url,
    )
    gateway.validate_request(request)

    fee = db.table("fee_payments").insert({
        "student_id": user["user_id"],
        "amount": str(body.amount),
        "status": FeePaymentStatus.PENDING.value,
        "payment_method": body.payment_method,
        "order_id": order_id,
        "semester": body.semester,
        "year": body.year,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }).execute().data[0]

    response = await gateway.create_payment(request)
    if not response.success:
        db.table("fee_payments").update({"status": FeePaymentStatus.FAILED.value}).eq("id", fee["id"]).execute()
        raise ProviderError(response.error or "Payment creation failed", data={"fee_payment_id": fee["id"]})

    db.table("fee_payments").update({"transaction_id": response.transaction_id}).eq("id", fee["id"]).execute()
    logger.info("Fee payment %s linked to transaction %s", fee["id"], response.transaction_id)

    return success_response(
        data={
            "fee_payment_id": fee["id"],
            "order_id": order_id,
            "transaction_id": response.transaction_id,
            "payment_url": response.payment_url,
        },
        message="Checkout created",
    )
