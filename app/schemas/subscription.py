from pydantic import BaseModel
from typing import Optional
from enum import Enum


class SubscriptionStatus(str, Enum):
    """Statuses this service writes itself; Stripe statuses pass through as-is"""
    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLING = "cancelling"
    CANCELED = "canceled"


class PaymentSheetRequest(BaseModel):
    uid: Optional[str] = None
    priceId: Optional[str] = None


class PaymentSheetResponse(BaseModel):
    paymentIntent: str
    ephemeralKey: str
    customer: str
    subscriptionId: str


class CancelSubscriptionRequest(BaseModel):
    uid: Optional[str] = None


class CancellationData(BaseModel):
    status: SubscriptionStatus = SubscriptionStatus.CANCELLING
    currentPeriodEnd: Optional[str] = None


class CancelSubscriptionResponse(BaseModel):
    success: bool
    message: str
    data: CancellationData


class WebhookAck(BaseModel):
    received: bool = True
