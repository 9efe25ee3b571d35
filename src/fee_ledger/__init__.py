# fee_ledger package
__version__ = "0.1.0"

from .database import (
    FeeAccount,
    PaymentEntry,
    FeeStatus,
    PaymentMethod,
    EntryStatus,
    FeeAccountRepository,
    init_db,
    close_db,
    get_db,
)
from .exceptions import (
    FeeLedgerError,
    FeeAccountNotFoundError,
    InvalidAmountError,
    InvalidSignatureError,
    GatewayRequestError,
    GatewayTimeoutError,
    ConcurrentUpdateError,
)
from .services import OrderService, FeeAccountService
from .signatures import verify_signature, verify_payment_signature, verify_webhook_signature

# Reconciliation exports
from .reconciliation import (
    ReconciliationService,
    VerifiedPayment,
    FeePaidEvent,
    ReconcileOutcome,
    LedgerAuditReport,
    apply_payment,
    derive_status,
    ReportGenerator,
)
