"""Simulator gateway for exercising fee payment flows without real gateway calls."""

import json
import uuid
import time
import random
import logging
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from ..exceptions import GatewayRequestError
from ..signatures import compute_signature, order_payment_material
from .base import GatewayConnectorBase, GatewayPayment, OrderHandle, OrderRequest

logger = logging.getLogger(__name__)


class SimulatorScenario(str, Enum):
    """Outcomes the simulator can produce for an order request."""
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass
class SimulatedOrder:
    """In-memory representation of a simulated gateway order."""
    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"
    notes: Dict[str, str] = field(default_factory=dict)
    created_at: int = field(default_factory=lambda: int(time.time()))


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    success_rate: float = 1.0  # 0.0 to 1.0
    timeout_rate: float = 0.0  # Rate of simulated timeouts
    delay_ms: int = 0  # Simulated response delay in ms
    seed: Optional[int] = None  # Random seed for reproducibility
    key_secret: str = "sim_key_secret"
    webhook_secret: str = "sim_webhook_secret"


class SimulatorConnector(GatewayConnectorBase):
    """
    In-memory gateway used for tests and local development.

    Besides the connector interface it can play the client and the gateway
    side of a checkout: ``checkout`` returns a correctly signed confirmation
    and ``build_webhook`` a signed ``payment.captured`` delivery.
    """

    # Receipts starting with these force an outcome regardless of rates
    RECEIPT_DECLINE = "sim_decline"
    RECEIPT_TIMEOUT = "sim_timeout"

    def __init__(self, config: Optional[SimulatorConfig] = None):
        self.config = config or SimulatorConfig()
        self._orders: Dict[str, SimulatedOrder] = {}
        self._payments: Dict[str, GatewayPayment] = {}
        self._rng = random.Random(self.config.seed)
        logger.info("SimulatorConnector initialized")

    def _generate_id(self, prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex[:14]}"

    def _apply_delay(self) -> None:
        if self.config.delay_ms > 0:
            time.sleep(self.config.delay_ms / 1000.0)

    def _determine_scenario(self, receipt: str) -> SimulatorScenario:
        if receipt.startswith(self.RECEIPT_DECLINE):
            return SimulatorScenario.FAILURE
        if receipt.startswith(self.RECEIPT_TIMEOUT):
            return SimulatorScenario.TIMEOUT
        if self._rng.random() < self.config.timeout_rate:
            return SimulatorScenario.TIMEOUT
        if self._rng.random() >= self.config.success_rate:
            return SimulatorScenario.FAILURE
        return SimulatorScenario.SUCCESS

    def create_order(self, request: OrderRequest) -> OrderHandle:
        """Create a simulated order."""
        self._apply_delay()
        scenario = self._determine_scenario(request.receipt)

        if scenario == SimulatorScenario.TIMEOUT:
            raise TimeoutError("Simulated timeout")
        if scenario == SimulatorScenario.FAILURE:
            raise GatewayRequestError("Simulated gateway rejection")

        order = SimulatedOrder(
            id=self._generate_id("order"),
            amount=request.amount,
            currency=request.currency,
            receipt=request.receipt,
            notes=dict(request.notes),
        )
        self._orders[order.id] = order
        return OrderHandle(
            id=order.id,
            amount=order.amount,
            currency=order.currency,
            receipt=order.receipt,
            status=order.status,
            notes=order.notes,
            raw_provider_response={"simulator": True, "scenario": scenario.value},
        )

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        """Return a payment previously produced by ``checkout``."""
        self._apply_delay()
        payment = self._payments.get(payment_id)
        if payment is None:
            raise GatewayRequestError(f"Payment {payment_id} not found")
        return payment

    def checkout(
        self,
        order_id: str,
        method: str = "upi",
        amount: Optional[int] = None,
    ) -> Dict[str, str]:
        """Complete a checkout against an order, as the browser widget would.

        Args:
            order_id: Simulated order id.
            method: Payment method reported by the gateway.
            amount: Captured amount in minor units; defaults to the order amount.

        Returns:
            The signed confirmation the client forwards to the backend.
        """
        order = self._orders.get(order_id)
        if order is None:
            raise GatewayRequestError(f"Order {order_id} not found")

        payment_id = self._generate_id("pay")
        self._payments[payment_id] = GatewayPayment(
            id=payment_id,
            order_id=order_id,
            amount=order.amount if amount is None else amount,
            currency=order.currency,
            status="captured",
            method=method,
            created_at=int(time.time()),
        )
        order.status = "paid"
        signature = compute_signature(
            order_payment_material(order_id, payment_id), self.config.key_secret
        )
        return {
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        }

    def build_webhook(self, payment_id: str, event: str = "payment.captured") -> Tuple[bytes, str]:
        """Build a signed webhook delivery for a simulated payment.

        Returns:
            Tuple of (raw body, x-razorpay-signature header value).
        """
        payment = self._payments.get(payment_id)
        if payment is None:
            raise GatewayRequestError(f"Payment {payment_id} not found")
        envelope = {
            "entity": "event",
            "event": event,
            "payload": {
                "payment": {
                    "entity": {
                        "id": payment.id,
                        "entity": "payment",
                        "order_id": payment.order_id,
                        "amount": payment.amount,
                        "currency": payment.currency,
                        "status": payment.status,
                        "method": payment.method,
                        "created_at": payment.created_at,
                    }
                }
            },
            "created_at": int(time.time()),
        }
        body = json.dumps(envelope, separators=(",", ":")).encode("utf-8")
        return body, compute_signature(body, self.config.webhook_secret)

    def get_order(self, order_id: str) -> Optional[SimulatedOrder]:
        """Get an order from in-memory storage (for testing)."""
        return self._orders.get(order_id)

    def clear(self) -> None:
        """Forget all orders and payments (for test cleanup)."""
        self._orders.clear()
        self._payments.clear()

    def health_check(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "provider": "simulator",
            "order_count": len(self._orders),
            "payment_count": len(self._payments),
        }
