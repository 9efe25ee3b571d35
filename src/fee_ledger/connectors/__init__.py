"""Payment gateway connectors."""

from typing import Optional

from ..config import Settings, get_settings
from .base import (
    GatewayConnectorBase,
    GatewayPayment,
    OrderHandle,
    OrderRequest,
)
from .razorpay_connector import RazorpayConnector
from .simulator_connector import (
    SimulatorConnector,
    SimulatorConfig,
    SimulatorScenario,
    SimulatedOrder,
)


def get_connector(settings: Optional[Settings] = None) -> GatewayConnectorBase:
    """Build the connector selected by FEE_GATEWAY.

    Raises:
        ValueError: If the gateway name is not supported.
    """
    settings = settings or get_settings()
    if settings.gateway == "razorpay":
        return RazorpayConnector(settings.razorpay_key_id, settings.razorpay_key_secret)
    if settings.gateway == "simulator":
        return SimulatorConnector(SimulatorConfig(
            key_secret=settings.razorpay_key_secret or SimulatorConfig.key_secret,
            webhook_secret=settings.razorpay_webhook_secret or SimulatorConfig.webhook_secret,
        ))
    raise ValueError(f"Unsupported payment gateway: {settings.gateway}")


__all__ = [
    # Base classes and models
    "GatewayConnectorBase",
    "GatewayPayment",
    "OrderHandle",
    "OrderRequest",
    # Connectors
    "RazorpayConnector",
    "SimulatorConnector",
    "SimulatorConfig",
    "SimulatorScenario",
    "SimulatedOrder",
    "get_connector",
]
