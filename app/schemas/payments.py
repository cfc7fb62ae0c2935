"""
Pydantic schemas for payments, refunds and fee payments.
"""

from decimal import Decimal
from pydantic import BaseModel
from typing import Optional


# ---- Gateway boundary ----
class PaymentRequest(BaseModel):
    amount: Decimal
    currency: str = "INR"
    order_id: str
    description: str = ""
    customer_email: str
    customer_name: str = ""
    customer_phone: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    user_id: Optional[str] = None


class PaymentResponse(BaseModel):
    success: bool
    payment_url: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None


class RefundResponse(BaseModel):
    success: bool
    status: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    error: Optional[str] = None


# ---- API bodies ----
class RefundCreate(BaseModel):
    amount: Decimal


class FeePaymentCreate(BaseModel):
    amount: Decimal
    semester: int
    year: int
    payment_method: str = "ONLINE"
    currency: str = "INR"
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
