"""Ledger state transitions and consistency checks.

Nothing in this module performs I/O: it works on loaded FeeAccount objects
and leaves persistence to the service layer.
"""

import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import List

from ..database.models import (
    EntryStatus,
    FeeAccount,
    FeeStatus,
    PaymentEntry,
    to_major_units,
)
from .models import (
    DiscrepancyRecord,
    DiscrepancyType,
    FeePaidEvent,
    ReconcileOutcome,
    VerifiedPayment,
)

logger = logging.getLogger(__name__)


def derive_status(paid_amount: int, pending_amount: int) -> str:
    """Map the two aggregates onto a fee status.

    ``overdue`` is never produced here; only the scheduled due-date job sets it.
    """
    if pending_amount <= 0:
        return FeeStatus.PAID.value
    if paid_amount > 0:
        return FeeStatus.PARTIAL.value
    return FeeStatus.PENDING.value


def pending_for(total_owed: int, paid_amount: int) -> int:
    return max(total_owed - paid_amount, 0)


class PaymentReconciler:
    """Turns a verified gateway payment into a ledger mutation."""

    def apply(self, account: FeeAccount, payment: VerifiedPayment) -> ReconcileOutcome:
        """Append ``payment`` to the account's ledger and recompute aggregates.

        A payment whose (order_id, payment_id) pair is already on the ledger
        leaves the account untouched and is reported as already recorded.

        Args:
            account: Loaded fee account (entries included).
            payment: Payment whose signature has been verified.

        Returns:
            ReconcileOutcome carrying the FeePaidEvent for new entries.
        """
        existing = account.find_entry(payment.order_id, payment.payment_id)
        if existing is not None:
            logger.info(
                f"Payment {payment.payment_id} for order {payment.order_id} already "
                f"recorded on fee account {account.id}"
            )
            return ReconcileOutcome(
                fee_id=account.id,
                already_recorded=True,
                entry_id=existing.id,
                paid_amount=account.paid_amount,
                pending_amount=account.pending_amount,
                status=account.status,
            )

        entry = PaymentEntry(
            id=str(uuid.uuid4()),
            sequence=len(account.entries) + 1,
            amount=payment.amount,
            paid_at=payment.occurred_at,
            method=payment.method,
            transaction_id=payment.transaction_id or payment.payment_id,
            status=EntryStatus.COMPLETED.value,
            gateway_order_id=payment.order_id,
            gateway_payment_id=payment.payment_id,
            gateway_signature=payment.signature,
        )
        account.entries.append(entry)

        account.paid_amount = (account.paid_amount or 0) + payment.amount
        account.pending_amount = pending_for(account.total_owed, account.paid_amount)
        account.status = derive_status(account.paid_amount, account.pending_amount)

        if account.active_order_id != payment.order_id:
            account.active_order_id = payment.order_id
            account.active_order_amount = payment.amount
        account.active_order_payment_id = payment.payment_id
        account.active_order_method = payment.method
        account.active_order_captured = True
        if payment.signature:
            account.active_order_signature = payment.signature
        account.updated_at = datetime.utcnow()

        logger.info(
            f"Recorded payment {payment.payment_id} of {payment.amount} on fee account "
            f"{account.id}: paid={account.paid_amount} pending={account.pending_amount} "
            f"status={account.status}"
        )

        return ReconcileOutcome(
            fee_id=account.id,
            already_recorded=False,
            entry_id=entry.id,
            paid_amount=account.paid_amount,
            pending_amount=account.pending_amount,
            status=account.status,
            event=FeePaidEvent(
                fee_id=account.id,
                student_id=account.student_id,
                admission_number=account.admission_number,
                amount=to_major_units(payment.amount),
                payment_id=payment.payment_id,
                occurred_at=payment.occurred_at,
            ),
        )


_reconciler = PaymentReconciler()


def apply_payment(account: FeeAccount, payment: VerifiedPayment) -> ReconcileOutcome:
    """Apply a verified payment to an account; see ``PaymentReconciler.apply``."""
    return _reconciler.apply(account, payment)


class LedgerAuditor:
    """Checks stored aggregates against the ledger entries they summarise."""

    def audit_account(self, account: FeeAccount) -> List[DiscrepancyRecord]:
        """Return every inconsistency found on one account."""
        discrepancies: List[DiscrepancyRecord] = []
        now = datetime.utcnow()

        def record(kind: DiscrepancyType, field_name: str, stored, expected) -> None:
            discrepancies.append(DiscrepancyRecord(
                fee_id=account.id,
                student_id=account.student_id,
                discrepancy_type=kind,
                field_name=field_name,
                stored_value=stored,
                expected_value=expected,
                detected_at=now,
            ))

        expected_paid = account.completed_total()
        if account.paid_amount != expected_paid:
            record(DiscrepancyType.PAID_AMOUNT_MISMATCH, "paid_amount", account.paid_amount, expected_paid)

        if account.pending_amount < 0:
            record(DiscrepancyType.NEGATIVE_PENDING, "pending_amount", account.pending_amount, 0)

        expected_pending = pending_for(account.total_owed, account.paid_amount)
        if account.pending_amount != expected_pending:
            record(
                DiscrepancyType.PENDING_AMOUNT_MISMATCH, "pending_amount",
                account.pending_amount, expected_pending,
            )

        expected_status = derive_status(account.paid_amount, expected_pending)
        # overdue is written by the due-date job and is legitimate while a balance remains
        overdue_ok = account.status == FeeStatus.OVERDUE.value and expected_pending > 0
        if account.status != expected_status and not overdue_ok:
            record(DiscrepancyType.STATUS_MISMATCH, "status", account.status, expected_status)

        pairs = Counter(
            (e.gateway_order_id, e.gateway_payment_id)
            for e in account.entries
            if e.gateway_payment_id
        )
        for (order_id, payment_id), count in pairs.items():
            if count > 1:
                record(
                    DiscrepancyType.DUPLICATE_GATEWAY_PAYMENT, "entries",
                    f"{order_id}/{payment_id} x{count}", f"{order_id}/{payment_id} x1",
                )

        return discrepancies

    def audit(self, accounts: List[FeeAccount]) -> List[DiscrepancyRecord]:
        """Audit many accounts, returning all discrepancies found."""
        discrepancies: List[DiscrepancyRecord] = []
        for account in accounts:
            discrepancies.extend(self.audit_account(account))
        logger.info(
            f"Audited {len(accounts)} fee accounts: {len(discrepancies)} discrepancies"
        )
        return discrepancies
