"""Request and response bodies for the HTTP surface."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field

from .database import PaymentMethod


class CreateOrderBody(BaseModel):
    """Body for POST /razorpay/create-order."""
    model_config = ConfigDict(extra="forbid")

    feeId: str = Field(..., min_length=1, description="Fee account id")
    amount: Optional[Decimal] = Field(
        None,
        description="Amount in rupees; defaults to the pending balance",
    )


class VerifyPaymentBody(BaseModel):
    """Body for POST /razorpay/verify-payment, as returned by Razorpay Checkout."""
    model_config = ConfigDict(extra="forbid")

    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    feeId: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Amount paid in rupees")
    method: PaymentMethod = Field(default=PaymentMethod.ONLINE)
    transactionId: Optional[str] = None


class WebhookPaymentEntity(BaseModel):
    """The payment entity inside a webhook payload."""
    model_config = ConfigDict(extra="ignore")

    id: str
    order_id: Optional[str] = None
    amount: int = Field(..., gt=0, description="Amount in paise")
    currency: Optional[str] = None
    status: Optional[str] = None
    method: Optional[str] = None
    created_at: Optional[int] = None

    def ledger_method(self) -> str:
        """Map the gateway method onto the ledger's payment methods."""
        if self.method in (PaymentMethod.CARD.value, PaymentMethod.UPI.value, PaymentMethod.NETBANKING.value):
            return self.method
        return PaymentMethod.ONLINE.value

    def occurred_at(self) -> Optional[datetime]:
        if self.created_at is None:
            return None
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc).replace(tzinfo=None)


class WebhookPaymentWrapper(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entity: WebhookPaymentEntity


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment: WebhookPaymentWrapper


class WebhookEnvelope(BaseModel):
    """Razorpay webhook delivery; unknown vendor fields are ignored."""
    model_config = ConfigDict(extra="ignore")

    event: str
    payload: Optional[Dict[str, Any]] = None


class OrderResponse(BaseModel):
    order: Dict[str, Any]


class VerifyPaymentResponse(BaseModel):
    success: bool
    message: str


class WebhookAck(BaseModel):
    ok: bool = True
    error: Optional[str] = None


class FeeAccountList(BaseModel):
    count: int
    fees: List[Dict[str, Any]]
