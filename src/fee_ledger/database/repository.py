"""Repository layer for fee account persistence."""

import logging
from datetime import date
from typing import Optional, Dict, Any, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import FeeAccount, FeeStatus

logger = logging.getLogger(__name__)


class FeeAccountRepository:
    """Repository for FeeAccount reads and writes."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def create(
        self,
        student_id: str,
        total_owed: int,
        admission_number: Optional[str] = None,
        semester: Optional[int] = None,
        academic_year: Optional[str] = None,
        fee_structure: Optional[Dict[str, Any]] = None,
        due_date: Optional[date] = None,
    ) -> FeeAccount:
        """Create a fee account with no payments.

        Billing setup normally happens outside this service; this is used
        for seeding and tests.

        Args:
            student_id: Student reference.
            total_owed: Amount owed in minor units.
            admission_number: Student admission number.
            semester: Billing semester.
            academic_year: Billing academic year, e.g. "2025-26".
            fee_structure: Optional component breakdown.
            due_date: Optional due date.

        Returns:
            Created FeeAccount instance.
        """
        if total_owed < 0:
            raise ValueError("total_owed must not be negative")

        account = FeeAccount(
            student_id=student_id,
            admission_number=admission_number,
            semester=semester,
            academic_year=academic_year,
            total_owed=total_owed,
            due_date=due_date,
        )
        if fee_structure:
            account.fee_structure = fee_structure

        self.session.add(account)
        await self.session.flush()

        logger.info(f"Created fee account {account.id} for student {student_id}")
        return account

    async def get_by_id(self, fee_id: str, refresh: bool = False) -> Optional[FeeAccount]:
        """Get a fee account by id.

        Args:
            fee_id: Fee account id.
            refresh: Overwrite any copy already held by the session.

        Returns:
            FeeAccount if found, None otherwise.
        """
        stmt = select(FeeAccount).where(FeeAccount.id == fee_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_active_order_id(self, order_id: str, refresh: bool = False) -> Optional[FeeAccount]:
        """Get the fee account whose in-flight order is ``order_id``.

        Args:
            order_id: Gateway order id.
            refresh: Overwrite any copy already held by the session.

        Returns:
            FeeAccount if found, None otherwise.
        """
        stmt = select(FeeAccount).where(FeeAccount.active_order_id == order_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_by_student(self, student_id: str) -> List[FeeAccount]:
        """List a student's fee accounts, newest first."""
        result = await self.session.execute(
            select(FeeAccount)
            .where(FeeAccount.student_id == student_id)
            .order_by(FeeAccount.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_pending(self, limit: int = 100, offset: int = 0) -> List[FeeAccount]:
        """List active accounts that still have a balance.

        Args:
            limit: Maximum number of results.
            offset: Offset for pagination.

        Returns:
            List of FeeAccount instances ordered by due date.
        """
        result = await self.session.execute(
            select(FeeAccount)
            .where(FeeAccount.pending_amount > 0, FeeAccount.is_active.is_(True))
            .order_by(FeeAccount.due_date.asc(), FeeAccount.created_at.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_all(self, active_only: bool = True) -> List[FeeAccount]:
        """List fee accounts, optionally including deactivated ones."""
        stmt = select(FeeAccount).order_by(FeeAccount.created_at)
        if active_only:
            stmt = stmt.where(FeeAccount.is_active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def totals_by_status(self) -> Dict[str, Dict[str, int]]:
        """Aggregate account counts and amounts per status.

        Returns:
            Mapping of status to {count, total_owed, paid_amount, pending_amount}
            in minor units. Every status is present.
        """
        result = await self.session.execute(
            select(
                FeeAccount.status,
                func.count(FeeAccount.id),
                func.coalesce(func.sum(FeeAccount.total_owed), 0),
                func.coalesce(func.sum(FeeAccount.paid_amount), 0),
                func.coalesce(func.sum(FeeAccount.pending_amount), 0),
            )
            .where(FeeAccount.is_active.is_(True))
            .group_by(FeeAccount.status)
        )
        totals = {
            status.value: {"count": 0, "total_owed": 0, "paid_amount": 0, "pending_amount": 0}
            for status in FeeStatus
        }
        for status, count, owed, paid, pending in result.all():
            totals[status] = {
                "count": int(count),
                "total_owed": int(owed),
                "paid_amount": int(paid),
                "pending_amount": int(pending),
            }
        return totals

    async def set_active_order(self, account: FeeAccount, order_id: str, amount: int) -> FeeAccount:
        """Record a freshly issued gateway order as the account's in-flight order.

        Overwrites any previous unresolved order.
        """
        account.active_order_id = order_id
        account.active_order_amount = amount
        account.active_order_payment_id = None
        account.active_order_signature = None
        account.active_order_method = None
        account.active_order_captured = False
        await self.session.flush()
        logger.info(f"Fee account {account.id} active order set to {order_id}")
        return account
