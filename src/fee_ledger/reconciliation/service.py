"""Service layer for recording verified gateway payments and auditing the ledger."""

import uuid
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..config import Settings, get_settings
from ..connectors.base import GatewayConnectorBase
from ..database import FeeAccount, FeeAccountRepository
from ..exceptions import (
    ConcurrentUpdateError,
    FeeAccountNotFoundError,
    InvalidSignatureError,
)
from ..services import call_gateway
from ..signatures import verify_payment_signature, verify_webhook_signature
from .models import AuditStatus, LedgerAuditReport, ReconcileOutcome, VerifiedPayment
from .reconciler import LedgerAuditor, PaymentReconciler
from .report import ReportGenerator

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("fee_ledger.security")


class ReconciliationService:
    """Records verified payments on fee accounts and audits stored aggregates."""

    def __init__(
        self,
        session: AsyncSession,
        connector: Optional[GatewayConnectorBase] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the reconciliation service.

        Args:
            session: Async database session.
            connector: Gateway connector, needed only when client amounts are
                not trusted and must be read back from the gateway.
            settings: Runtime settings; read from the environment when omitted.
        """
        self.session = session
        self.connector = connector
        self.settings = settings or get_settings()
        self.fee_repo = FeeAccountRepository(session)
        self.reconciler = PaymentReconciler()

    async def _apply_with_retry(
        self,
        load: Callable[[bool], Awaitable[Optional[FeeAccount]]],
        payment: VerifiedPayment,
        not_found: FeeAccountNotFoundError,
    ) -> ReconcileOutcome:
        """Apply ``payment`` and commit, re-reading the account on conflicts.

        A concurrent writer bumps the account version, which makes our UPDATE
        match no row (StaleDataError); a duplicate delivery racing us trips the
        entry unique constraint (IntegrityError). Both roll back and re-apply
        against fresh state.
        """
        attempts = self.settings.reconcile_max_attempts
        for attempt in range(1, attempts + 1):
            account = await load(attempt > 1)
            if account is None:
                raise not_found
            account_id = account.id

            outcome = self.reconciler.apply(account, payment)
            if outcome.already_recorded:
                return outcome

            try:
                await self.session.flush()
                await self.session.commit()
            except (StaleDataError, IntegrityError) as e:
                await self.session.rollback()
                logger.warning(
                    f"Conflict recording payment {payment.payment_id} on fee account "
                    f"{account_id} (attempt {attempt}/{attempts}): {type(e).__name__}"
                )
                continue
            return outcome

        raise ConcurrentUpdateError(
            f"Fee account kept changing while recording payment {payment.payment_id}"
        )

    async def reconcile_client_confirmation(
        self,
        fee_id: str,
        order_id: str,
        payment_id: str,
        signature: str,
        amount_minor: int,
        method: str = "online",
        transaction_id: Optional[str] = None,
    ) -> ReconcileOutcome:
        """Record a payment the client reports after checkout.

        Args:
            fee_id: Fee account id.
            order_id: Gateway order id from the checkout result.
            payment_id: Gateway payment id from the checkout result.
            signature: Gateway signature over ``order_id|payment_id``.
            amount_minor: Amount claimed by the client, in minor units.
            method: Ledger payment method.
            transaction_id: Optional external transaction reference.

        Returns:
            ReconcileOutcome for the account.

        Raises:
            InvalidSignatureError: If the signature does not verify.
            FeeAccountNotFoundError: If the account does not exist.
            ConcurrentUpdateError: If retries are exhausted.
        """
        if not verify_payment_signature(order_id, payment_id, signature, self.settings.razorpay_key_secret):
            security_logger.warning(
                f"Rejected payment confirmation with invalid signature: fee={fee_id} "
                f"order={order_id} payment={payment_id}"
            )
            raise InvalidSignatureError("Invalid payment signature")

        if not self.settings.trust_client_amount:
            if self.connector is None:
                raise ValueError("A gateway connector is required when client amounts are not trusted")
            gateway_payment = await call_gateway(
                self.connector.fetch_payment,
                payment_id,
                timeout=self.settings.gateway_timeout_seconds,
            )
            if gateway_payment.amount != amount_minor:
                logger.warning(
                    f"Client reported {amount_minor} for payment {payment_id}, gateway "
                    f"says {gateway_payment.amount}; using gateway amount"
                )
            amount_minor = gateway_payment.amount

        payment = VerifiedPayment(
            order_id=order_id,
            payment_id=payment_id,
            amount=amount_minor,
            method=method,
            transaction_id=transaction_id,
            signature=signature,
        )

        async def load(refresh: bool) -> Optional[FeeAccount]:
            account = await self.fee_repo.get_by_id(fee_id, refresh=refresh)
            if (
                account is not None
                and self.settings.trust_client_amount
                and account.active_order_id == order_id
                and account.active_order_amount is not None
                and account.active_order_amount != amount_minor
            ):
                logger.warning(
                    f"Client amount {amount_minor} differs from order {order_id} "
                    f"amount {account.active_order_amount} on fee account {fee_id}"
                )
            return account

        return await self._apply_with_retry(load, payment, FeeAccountNotFoundError(fee_id=fee_id))

    def check_webhook_signature(self, body: bytes, signature: Optional[str]) -> None:
        """Verify a webhook delivery against the raw request body.

        Raises:
            InvalidSignatureError: If the signature is missing or wrong.
        """
        if not verify_webhook_signature(body, signature, self.settings.razorpay_webhook_secret):
            security_logger.warning(
                f"Rejected webhook with invalid signature ({len(body)} byte body)"
            )
            raise InvalidSignatureError("Invalid webhook signature")

    async def reconcile_webhook(
        self,
        order_id: str,
        payment_id: str,
        amount_minor: int,
        method: str = "online",
        occurred_at: Optional[datetime] = None,
    ) -> ReconcileOutcome:
        """Record a payment reported by a verified gateway webhook.

        Args:
            order_id: Gateway order id; matched against each account's active order.
            payment_id: Gateway payment id.
            amount_minor: Captured amount in minor units.
            method: Ledger payment method.
            occurred_at: When the gateway created the payment.

        Raises:
            FeeAccountNotFoundError: If no account has ``order_id`` in flight.
            ConcurrentUpdateError: If retries are exhausted.
        """
        payment = VerifiedPayment(
            order_id=order_id,
            payment_id=payment_id,
            amount=amount_minor,
            method=method,
            transaction_id=payment_id,
            occurred_at=occurred_at or datetime.utcnow(),
        )

        async def load(refresh: bool) -> Optional[FeeAccount]:
            return await self.fee_repo.get_by_active_order_id(order_id, refresh=refresh)

        return await self._apply_with_retry(load, payment, FeeAccountNotFoundError(order_id=order_id))

    async def run_audit(self, active_only: bool = False) -> LedgerAuditReport:
        """Check every stored account against its own ledger.

        Args:
            active_only: Skip deactivated accounts.

        Returns:
            LedgerAuditReport with results.
        """
        report_id = str(uuid.uuid4())
        report = LedgerAuditReport(
            id=report_id,
            status=AuditStatus.IN_PROGRESS,
            created_at=datetime.utcnow(),
        )
        logger.info(f"Starting ledger audit {report_id}")

        try:
            accounts = await self.fee_repo.list_all(active_only=active_only)
            discrepancies = LedgerAuditor().audit(accounts)

            inconsistent = {d.fee_id for d in discrepancies}
            report.total_accounts = len(accounts)
            report.total_entries = sum(len(a.entries) for a in accounts)
            report.inconsistent_accounts = len(inconsistent)
            report.consistent_accounts = len(accounts) - len(inconsistent)
            report.discrepancy_records = discrepancies
            report.status = AuditStatus.COMPLETED
            report.completed_at = datetime.utcnow()

            logger.info(
                f"Ledger audit {report_id} completed: "
                f"{report.consistent_accounts} consistent, "
                f"{report.inconsistent_accounts} inconsistent, "
                f"{report.total_discrepancies} discrepancies"
            )
        except Exception as e:
            logger.error(f"Ledger audit {report_id} failed: {e}")
            report.status = AuditStatus.FAILED
            report.error_message = str(e)
            report.completed_at = datetime.utcnow()

        return report

    def generate_report(
        self,
        report: LedgerAuditReport,
        format: str = "json",
        include_details: bool = True,
    ) -> str:
        """Render an audit report.

        Args:
            report: LedgerAuditReport to format.
            format: Output format ('json', 'csv', 'text', 'detailed_text').
            include_details: Include discrepancy records (JSON only).

        Returns:
            Formatted report string.
        """
        generator = ReportGenerator(report)

        if format == "json":
            return generator.to_json(include_details=include_details)
        elif format == "csv":
            return generator.to_csv()
        elif format == "text":
            return generator.to_summary_text()
        elif format == "detailed_text":
            return generator.to_detailed_text()
        else:
            raise ValueError(f"Unsupported report format: {format}")
