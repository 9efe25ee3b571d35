import logging
import os
from typing import Any, Dict, Optional

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError

from ..exceptions import GatewayRequestError
from .base import GatewayConnectorBase, GatewayPayment, OrderHandle, OrderRequest

logger = logging.getLogger(__name__)

# Errors from the SDK or the HTTP layer underneath it (requests errors are OSErrors)
_SDK_ERRORS = (BadRequestError, GatewayError, ServerError, OSError)


class RazorpayConnector(GatewayConnectorBase):
    """
    Razorpay connector using razorpay-python. Orders are created with
    automatic capture; the checkout itself happens in the browser with
    Razorpay Checkout, which hands the signed result back to the client.
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        self.key_id = key_id or os.getenv("RAZORPAY_KEY_ID", "")
        self.key_secret = key_secret or os.getenv("RAZORPAY_KEY_SECRET", "")
        if not (self.key_id and self.key_secret) and client is None:
            # connector still exists but every call will fail authentication
            logger.warning("RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET are not configured")
        self._client = client or razorpay.Client(auth=(self.key_id, self.key_secret))

    def create_order(self, request: OrderRequest) -> OrderHandle:
        data = {
            "amount": request.amount,
            "currency": request.currency.upper(),
            "receipt": request.receipt,
            "payment_capture": 1,
            "notes": request.notes,
        }
        try:
            order = self._client.order.create(data=data)
        except _SDK_ERRORS as e:
            logger.error(f"Razorpay order creation failed: {type(e).__name__}: {e}")
            raise GatewayRequestError(f"Failed to create order: {e}") from e
        return OrderHandle(
            id=order["id"],
            amount=int(order["amount"]),
            currency=order.get("currency", request.currency),
            receipt=order.get("receipt"),
            status=order.get("status", "created"),
            notes=order.get("notes") or {},
            raw_provider_response=order,
        )

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        try:
            payment = self._client.payment.fetch(payment_id)
        except _SDK_ERRORS as e:
            logger.error(f"Razorpay payment fetch failed for {payment_id}: {e}")
            raise GatewayRequestError(f"Failed to fetch payment {payment_id}: {e}") from e
        return GatewayPayment(
            id=payment["id"],
            order_id=payment.get("order_id"),
            amount=int(payment["amount"]),
            currency=payment.get("currency", "INR"),
            status=payment.get("status", "created"),
            method=payment.get("method"),
            created_at=payment.get("created_at"),
        )

    def health_check(self) -> Dict[str, Any]:
        return {"ok": bool(self.key_id and self.key_secret), "provider": "razorpay"}
