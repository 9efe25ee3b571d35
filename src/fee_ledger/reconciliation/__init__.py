"""Payment reconciliation for fee accounts.

This module records gateway payments on the fee ledger and checks the
ledger for drift.

Features:
- Idempotent ledger append with aggregate recompute
- Optimistic-concurrency retry around each reconciliation
- Ledger audits comparing stored aggregates with ledger entries
- Audit reports in JSON, CSV and text
"""

from .models import (
    VerifiedPayment,
    FeePaidEvent,
    ReconcileOutcome,
    DiscrepancyType,
    AuditStatus,
    DiscrepancyRecord,
    LedgerAuditReport,
)
from .reconciler import (
    PaymentReconciler,
    LedgerAuditor,
    apply_payment,
    derive_status,
)
from .service import ReconciliationService
from .report import ReportGenerator

__all__ = [
    # Models
    "VerifiedPayment",
    "FeePaidEvent",
    "ReconcileOutcome",
    "DiscrepancyType",
    "AuditStatus",
    "DiscrepancyRecord",
    "LedgerAuditReport",
    # Core Components
    "PaymentReconciler",
    "LedgerAuditor",
    "apply_payment",
    "derive_status",
    "ReconciliationService",
    "ReportGenerator",
]
