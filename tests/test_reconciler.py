"""Tests for the ledger state transition and the ledger auditor."""

from datetime import datetime
from decimal import Decimal

import pytest

from fee_ledger.database import EntryStatus, FeeAccount, FeeStatus, PaymentEntry
from fee_ledger.reconciliation import (
    DiscrepancyType,
    LedgerAuditor,
    PaymentReconciler,
    VerifiedPayment,
    apply_payment,
    derive_status,
)


def make_account(total_owed: int = 500000, **kwargs) -> FeeAccount:
    return FeeAccount(id="fee-1", student_id="stu_001", total_owed=total_owed, **kwargs)


def make_payment(amount: int, order_id: str = "order_1", payment_id: str = "pay_1", **kwargs) -> VerifiedPayment:
    return VerifiedPayment(order_id=order_id, payment_id=payment_id, amount=amount, **kwargs)


class TestDeriveStatus:
    """Tests for status derivation boundaries."""

    def test_nothing_paid_is_pending(self):
        """No payments and a balance left is pending."""
        assert derive_status(0, 100) == FeeStatus.PENDING.value

    def test_some_paid_is_partial(self):
        """Any payment with a balance left is partial."""
        assert derive_status(1, 99) == FeeStatus.PARTIAL.value

    def test_no_balance_is_paid(self):
        """Zero pending is paid."""
        assert derive_status(100, 0) == FeeStatus.PAID.value

    def test_zero_owed_is_paid(self):
        """An account that owes nothing is paid."""
        assert derive_status(0, 0) == FeeStatus.PAID.value

    def test_one_paisa_short_is_partial(self):
        """Paying all but one paisa leaves the account partial with 1 pending."""
        account = make_account(500000)
        outcome = apply_payment(account, make_payment(499999))

        assert account.paid_amount == 499999
        assert account.pending_amount == 1
        assert account.status == FeeStatus.PARTIAL.value
        assert outcome.status == FeeStatus.PARTIAL.value

    def test_exact_total_is_paid(self):
        """Paying exactly the amount owed settles the account."""
        account = make_account(500000)
        outcome = apply_payment(account, make_payment(500000))

        assert account.paid_amount == account.total_owed
        assert account.pending_amount == 0
        assert account.status == FeeStatus.PAID.value
        assert outcome.status == FeeStatus.PAID.value

    def test_last_paisa_settles(self):
        """The payment covering the final paisa moves partial to paid."""
        account = make_account(500000)
        apply_payment(account, make_payment(499999, "order_1", "pay_1"))
        apply_payment(account, make_payment(1, "order_2", "pay_2"))

        assert account.paid_amount == 500000
        assert account.pending_amount == 0
        assert account.status == FeeStatus.PAID.value


class TestApplyPayment:
    """Tests for PaymentReconciler.apply."""

    def test_first_partial_payment(self):
        """A payment below the balance appends an entry and marks partial."""
        account = make_account(500000)
        outcome = apply_payment(account, make_payment(200000, method="upi"))

        assert outcome.already_recorded is False
        assert account.paid_amount == 200000
        assert account.pending_amount == 300000
        assert account.status == FeeStatus.PARTIAL.value
        assert len(account.entries) == 1

        entry = account.entries[0]
        assert entry.amount == 200000
        assert entry.method == "upi"
        assert entry.status == EntryStatus.COMPLETED.value
        assert entry.gateway_order_id == "order_1"
        assert entry.gateway_payment_id == "pay_1"
        assert entry.sequence == 1
        assert entry.id == outcome.entry_id

    def test_five_thousand_scenario(self):
        """2000 + duplicate 2000 + 3000 against 5000 owed ends paid with two entries."""
        account = make_account(500000)
        reconciler = PaymentReconciler()

        first = reconciler.apply(account, make_payment(200000, "order_1", "pay_1"))
        assert first.status == FeeStatus.PARTIAL.value
        assert first.pending_amount == 300000

        duplicate = reconciler.apply(account, make_payment(200000, "order_1", "pay_1"))
        assert duplicate.already_recorded is True
        assert duplicate.event is None
        assert account.paid_amount == 200000
        assert len(account.entries) == 1

        second = reconciler.apply(account, make_payment(300000, "order_2", "pay_2"))
        assert second.already_recorded is False
        assert account.paid_amount == 500000
        assert account.pending_amount == 0
        assert account.status == FeeStatus.PAID.value
        assert [e.sequence for e in account.entries] == [1, 2]

    def test_overpayment_clamps_pending_to_zero(self):
        """Paying more than owed leaves pending at zero, not negative."""
        account = make_account(100000)
        apply_payment(account, make_payment(150000))

        assert account.paid_amount == 150000
        assert account.pending_amount == 0
        assert account.status == FeeStatus.PAID.value

    def test_active_order_captured(self):
        """The matching active order is marked captured with payment details."""
        account = make_account(500000, active_order_id="order_1", active_order_amount=500000)
        apply_payment(account, make_payment(500000, signature="sig_abc", method="card"))

        active = account.active_order
        assert active["order_id"] == "order_1"
        assert active["payment_id"] == "pay_1"
        assert active["method"] == "card"
        assert active["signature"] == "sig_abc"
        assert active["captured"] is True
        assert active["amount"] == Decimal("5000.00")

    def test_different_order_replaces_active_order(self):
        """A payment for another order replaces the in-flight order."""
        account = make_account(500000, active_order_id="order_new", active_order_amount=300000)
        apply_payment(account, make_payment(200000, order_id="order_old", payment_id="pay_old"))

        assert account.active_order_id == "order_old"
        assert account.active_order_amount == 200000
        assert account.active_order_captured is True

    def test_same_payment_id_on_different_order_is_new_entry(self):
        """Idempotency is keyed on the (order, payment) pair."""
        account = make_account(500000)
        apply_payment(account, make_payment(100000, "order_1", "pay_1"))
        outcome = apply_payment(account, make_payment(100000, "order_2", "pay_1"))

        assert outcome.already_recorded is False
        assert len(account.entries) == 2

    def test_event_carries_major_units(self):
        """The emitted event reports the amount in rupees."""
        account = make_account(500000, admission_number="ADM-42")
        outcome = apply_payment(account, make_payment(123456))

        event = outcome.event
        assert event.fee_id == "fee-1"
        assert event.student_id == "stu_001"
        assert event.admission_number == "ADM-42"
        assert event.amount == Decimal("1234.56")
        assert event.payment_id == "pay_1"
        assert event.to_socket_payload() == {"feeId": "fee-1", "studentId": "stu_001", "amount": 1234.56}

    def test_transaction_id_defaults_to_payment_id(self):
        """Entries without an explicit transaction id use the gateway payment id."""
        account = make_account()
        apply_payment(account, make_payment(1000))
        assert account.entries[0].transaction_id == "pay_1"

    def test_verified_payment_rejects_non_positive_amount(self):
        """Zero amounts never reach the ledger."""
        with pytest.raises(ValueError):
            make_payment(0)


class TestLedgerAuditor:
    """Tests for ledger consistency checks."""

    def test_consistent_account(self):
        """An account built by the reconciler has no discrepancies."""
        account = make_account(500000)
        apply_payment(account, make_payment(200000))
        assert LedgerAuditor().audit_account(account) == []

    def test_paid_amount_drift(self):
        """A paid total that disagrees with the entries is reported."""
        account = make_account(500000)
        apply_payment(account, make_payment(200000))
        account.paid_amount = 250000

        kinds = {d.discrepancy_type for d in LedgerAuditor().audit_account(account)}
        assert DiscrepancyType.PAID_AMOUNT_MISMATCH in kinds
        assert DiscrepancyType.PENDING_AMOUNT_MISMATCH in kinds

    def test_status_drift(self):
        """A status that disagrees with the aggregates is reported."""
        account = make_account(500000)
        apply_payment(account, make_payment(500000))
        account.status = FeeStatus.PARTIAL.value

        records = LedgerAuditor().audit_account(account)
        assert len(records) == 1
        assert records[0].discrepancy_type == DiscrepancyType.STATUS_MISMATCH
        assert records[0].expected_value == "paid"

    def test_overdue_with_balance_is_consistent(self):
        """Overdue is legitimate while a balance remains."""
        account = make_account(500000)
        account.status = FeeStatus.OVERDUE.value
        assert LedgerAuditor().audit_account(account) == []

    def test_negative_pending(self):
        """A negative pending balance is reported."""
        account = make_account(500000)
        account.pending_amount = -1

        kinds = {d.discrepancy_type for d in LedgerAuditor().audit_account(account)}
        assert DiscrepancyType.NEGATIVE_PENDING in kinds

    def test_duplicate_gateway_payment(self):
        """The same gateway payment recorded twice is reported."""
        account = make_account(500000)
        for sequence in (1, 2):
            account.entries.append(PaymentEntry(
                sequence=sequence,
                amount=100000,
                paid_at=datetime.utcnow(),
                method="online",
                status=EntryStatus.COMPLETED.value,
                gateway_order_id="order_1",
                gateway_payment_id="pay_1",
            ))
        account.paid_amount = 200000
        account.pending_amount = 300000
        account.status = FeeStatus.PARTIAL.value

        records = LedgerAuditor().audit_account(account)
        assert [r.discrepancy_type for r in records] == [DiscrepancyType.DUPLICATE_GATEWAY_PAYMENT]

    def test_failed_entries_not_counted(self):
        """Only completed entries count toward the paid total."""
        account = make_account(500000)
        account.entries.append(PaymentEntry(
            sequence=1,
            amount=100000,
            paid_at=datetime.utcnow(),
            method="online",
            status=EntryStatus.FAILED.value,
        ))
        assert LedgerAuditor().audit_account(account) == []
