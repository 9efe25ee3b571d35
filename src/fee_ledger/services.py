"""Fee service layer that ties gateway calls to fee account persistence."""

import asyncio
import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .connectors.base import GatewayConnectorBase, OrderHandle, OrderRequest
from .database import FeeAccount, FeeAccountRepository, to_major_units
from .exceptions import (
    FeeAccountNotFoundError,
    FeeLedgerError,
    GatewayRequestError,
    GatewayTimeoutError,
    InvalidAmountError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Gateway receipts are limited to 40 characters
RECEIPT_MAX_LENGTH = 40


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to integer minor units, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_receipt(fee_id: str, now: Optional[float] = None) -> str:
    """Build a gateway receipt id for an order against ``fee_id``."""
    stamp = int(now if now is not None else time.time())
    compact = fee_id.replace("-", "")[:16]
    return f"fee_{compact}_{stamp}"[:RECEIPT_MAX_LENGTH]


async def call_gateway(func: Callable[..., T], *args: Any, timeout: float) -> T:
    """Run a blocking connector call off the event loop with a timeout.

    Raises:
        GatewayTimeoutError: If the call does not finish within ``timeout``.
        GatewayRequestError: If the call fails for any other reason.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except (asyncio.TimeoutError, TimeoutError) as e:
        logger.error(f"Gateway call {getattr(func, '__name__', func)} timed out after {timeout}s")
        raise GatewayTimeoutError(f"Gateway did not respond within {timeout} seconds") from e
    except FeeLedgerError:
        raise
    except Exception as e:
        logger.error(f"Gateway call {getattr(func, '__name__', func)} failed: {type(e).__name__}: {e}")
        raise GatewayRequestError(f"Gateway request failed: {e}") from e


class OrderService:
    """Issues gateway orders against fee accounts."""

    def __init__(
        self,
        session: AsyncSession,
        connector: GatewayConnectorBase,
        settings: Optional[Settings] = None,
    ):
        """Initialize the service.

        Args:
            session: AsyncSession instance for database operations.
            connector: Gateway connector used to create orders.
            settings: Runtime settings; read from the environment when omitted.
        """
        self.session = session
        self.connector = connector
        self.settings = settings or get_settings()
        self.fee_repo = FeeAccountRepository(session)

    async def create_order(
        self,
        fee_id: str,
        requested_amount: Optional[Decimal] = None,
    ) -> OrderHandle:
        """Create a gateway order for a fee account and record it as in-flight.

        Every call creates a new order; a previous unresolved order on the
        account is replaced.

        Args:
            fee_id: Fee account id.
            requested_amount: Amount in major units. Defaults to the account's
                pending balance.

        Returns:
            OrderHandle describing the gateway order.

        Raises:
            FeeAccountNotFoundError: If the account does not exist.
            InvalidAmountError: If the resolved amount is not positive.
            GatewayTimeoutError: If the gateway does not answer in time.
            GatewayRequestError: If the gateway rejects the order.
        """
        account = await self.fee_repo.get_by_id(fee_id)
        if account is None:
            raise FeeAccountNotFoundError(fee_id=fee_id)

        if requested_amount is not None:
            amount = to_minor_units(requested_amount)
        else:
            amount = account.pending_amount
        if amount <= 0:
            raise InvalidAmountError(
                f"Order amount must be positive (fee account {fee_id} resolved to "
                f"{to_major_units(amount)})"
            )

        request = OrderRequest(
            amount=amount,
            currency=self.settings.currency,
            receipt=build_receipt(account.id),
            notes={"feeId": account.id, "studentId": account.student_id},
        )
        order = await call_gateway(
            self.connector.create_order,
            request,
            timeout=self.settings.gateway_timeout_seconds,
        )

        await self.fee_repo.set_active_order(account, order.id, order.amount)
        logger.info(f"Created order {order.id} for fee account {fee_id} amount={amount}")
        return order


class FeeAccountService:
    """Read-side queries over fee accounts."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.fee_repo = FeeAccountRepository(session)

    async def get_account(self, fee_id: str) -> FeeAccount:
        account = await self.fee_repo.get_by_id(fee_id)
        if account is None:
            raise FeeAccountNotFoundError(fee_id=fee_id)
        return account

    async def list_for_student(self, student_id: str) -> List[FeeAccount]:
        return await self.fee_repo.list_by_student(student_id)

    async def list_pending(self, limit: int = 100, offset: int = 0) -> List[FeeAccount]:
        return await self.fee_repo.list_pending(limit=limit, offset=offset)

    async def collection_report(self) -> Dict[str, Any]:
        """Summarise collected and outstanding fees across active accounts.

        Returns:
            Dictionary with per-status breakdown and overall totals in major units.
        """
        totals = await self.fee_repo.totals_by_status()

        by_status = {
            status: {
                "count": row["count"],
                "total_owed": to_major_units(row["total_owed"]),
                "paid_amount": to_major_units(row["paid_amount"]),
                "pending_amount": to_major_units(row["pending_amount"]),
            }
            for status, row in totals.items()
        }
        total_owed = sum(row["total_owed"] for row in totals.values())
        collected = sum(row["paid_amount"] for row in totals.values())
        outstanding = sum(row["pending_amount"] for row in totals.values())

        return {
            "total_accounts": sum(row["count"] for row in totals.values()),
            "total_owed": to_major_units(total_owed),
            "total_collected": to_major_units(collected),
            "total_outstanding": to_major_units(outstanding),
            "collection_rate": (
                f"{(collected / total_owed * 100):.2f}%" if total_owed > 0 else "N/A"
            ),
            "by_status": by_status,
        }
