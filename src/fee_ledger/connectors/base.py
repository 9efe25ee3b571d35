from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

# Canonical models
class OrderRequest(BaseModel):
    amount: int = Field(..., gt=0)  # minor units
    currency: str = "INR"
    receipt: str = Field(..., max_length=40)
    notes: Dict[str, str] = Field(default_factory=dict)

class OrderHandle(BaseModel):
    id: str
    amount: int  # minor units
    currency: str
    receipt: Optional[str] = None
    status: str = "created"  # created|attempted|paid
    notes: Dict[str, Any] = Field(default_factory=dict)
    raw_provider_response: Optional[Dict[str, Any]] = None

    def to_public_dict(self) -> Dict[str, Any]:
        """Order fields handed to the checkout client."""
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "status": self.status,
            "notes": self.notes,
        }

class GatewayPayment(BaseModel):
    id: str
    order_id: Optional[str] = None
    amount: int  # minor units
    currency: str
    status: str  # created|authorized|captured|refunded|failed
    method: Optional[str] = None
    created_at: Optional[int] = None  # unix seconds

class GatewayConnectorBase(ABC):
    """
    Minimal payment gateway interface. Calls are blocking; the service layer
    runs them off the event loop with a timeout.
    """

    @abstractmethod
    def create_order(self, request: OrderRequest) -> OrderHandle:
        """
        Mint a gateway order the client can check out against.
        Raises GatewayRequestError when the gateway refuses or is unreachable.
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        """
        Read the gateway's own record of a payment.
        """
        raise NotImplementedError

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True}
