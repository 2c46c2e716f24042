from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from services.click_service.schemas import GatewayPaymentStatus

from .models import PaymentStatus


class PaymentCreate(BaseModel):
    user_id: int
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class PaymentResponse(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    merchant_trans_id: str
    gateway_payment_id: Optional[str]
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SyncResponse(BaseModel):
    gateway: GatewayPaymentStatus
    payment: PaymentResponse
    changed: bool


class ReversalResponse(BaseModel):
    gateway: dict
    payment: PaymentResponse
