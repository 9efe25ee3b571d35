"""HMAC-SHA256 signature checks for gateway callbacks.

The gateway signs two things differently:

* checkout confirmations: ``order_id|payment_id`` with the API key secret;
* webhooks: the raw request body with the webhook secret.

Both use the same primitive below.
"""

import hashlib
import hmac
import logging
from typing import Sequence, Union

logger = logging.getLogger(__name__)

MATERIAL_DELIMITER = "|"

Material = Union[bytes, str, Sequence[str]]


def _material_bytes(material: Material) -> bytes:
    if isinstance(material, bytes):
        return material
    if isinstance(material, str):
        return material.encode("utf-8")
    return MATERIAL_DELIMITER.join(material).encode("utf-8")


def compute_signature(material: Material, secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``material`` keyed with ``secret``."""
    return hmac.new(secret.encode("utf-8"), _material_bytes(material), hashlib.sha256).hexdigest()


def verify_signature(material: Material, provided_signature: str, secret: str) -> bool:
    """Check ``provided_signature`` against the HMAC of ``material``.

    Returns False instead of raising on missing or malformed input.
    """
    if not secret or not provided_signature or not isinstance(provided_signature, str):
        return False
    try:
        expected = compute_signature(material, secret)
    except (TypeError, AttributeError, UnicodeEncodeError) as e:
        logger.debug(f"Unable to compute signature: {e}")
        return False
    try:
        return hmac.compare_digest(expected, provided_signature)
    except TypeError:
        # non-ASCII signature text
        return False


def order_payment_material(order_id: str, payment_id: str) -> Sequence[str]:
    """Material signed by the gateway for a checkout confirmation."""
    return (order_id, payment_id)


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Verify a checkout confirmation forwarded by the client."""
    if not order_id or not payment_id:
        return False
    return verify_signature(order_payment_material(order_id, payment_id), signature, secret)


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Verify a webhook body exactly as it was received."""
    return verify_signature(body, signature, secret)
