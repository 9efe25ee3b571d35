"""Domain errors raised by the service layer.

Route handlers translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""

from typing import Optional


class FeeLedgerError(Exception):
    """Base class for fee ledger errors."""

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class FeeAccountNotFoundError(FeeLedgerError):
    """No fee account matches the given id or gateway order."""

    def __init__(self, fee_id: Optional[str] = None, order_id: Optional[str] = None):
        if order_id is not None:
            message = f"No fee account for order {order_id}"
        else:
            message = f"Fee account {fee_id} not found"
        super().__init__(message)
        self.fee_id = fee_id
        self.order_id = order_id


class InvalidAmountError(FeeLedgerError):
    """Resolved charge amount is zero or negative."""


class InvalidSignatureError(FeeLedgerError):
    """Gateway signature did not match the signed material."""


class GatewayRequestError(FeeLedgerError):
    """The payment gateway rejected the call or could not be reached."""


class GatewayTimeoutError(GatewayRequestError):
    """The payment gateway did not answer within the request timeout."""


class ConcurrentUpdateError(FeeLedgerError):
    """A fee account kept changing underneath a reconciliation."""
