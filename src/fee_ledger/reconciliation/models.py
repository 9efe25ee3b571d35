"""Models for payment reconciliation and ledger audits."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field


class VerifiedPayment(BaseModel):
    """A gateway payment whose signature has already been checked."""
    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., description="Gateway order id")
    payment_id: str = Field(..., description="Gateway payment id")
    amount: int = Field(..., gt=0, description="Amount in minor units")
    method: str = Field(default="online", description="Ledger payment method")
    transaction_id: Optional[str] = Field(None, description="External transaction id")
    signature: Optional[str] = Field(None, description="Checkout signature, when the client forwarded one")
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class FeePaidEvent(BaseModel):
    """Emitted after a payment is recorded; consumed by the notifier."""
    fee_id: str
    student_id: str
    admission_number: Optional[str] = None
    amount: Decimal = Field(..., description="Amount in major units")
    payment_id: str
    occurred_at: datetime = Field(default_factory=datetime.utcnow)

    def to_socket_payload(self) -> Dict[str, Any]:
        """Payload published on the real-time channel."""
        return {"feeId": self.fee_id, "studentId": self.student_id, "amount": float(self.amount)}


class ReconcileOutcome(BaseModel):
    """Result of applying one verified payment to a fee account."""
    fee_id: str
    already_recorded: bool = False
    entry_id: Optional[str] = None
    paid_amount: int = Field(..., description="Paid total after the transition, minor units")
    pending_amount: int = Field(..., description="Pending total after the transition, minor units")
    status: str
    event: Optional[FeePaidEvent] = None


class DiscrepancyType(str, enum.Enum):
    """Ways a stored fee account can disagree with its own ledger."""
    PAID_AMOUNT_MISMATCH = "paid_amount_mismatch"
    PENDING_AMOUNT_MISMATCH = "pending_amount_mismatch"
    STATUS_MISMATCH = "status_mismatch"
    NEGATIVE_PENDING = "negative_pending"
    DUPLICATE_GATEWAY_PAYMENT = "duplicate_gateway_payment"


class AuditStatus(str, enum.Enum):
    """Status of an audit run."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class DiscrepancyRecord(BaseModel):
    """One inconsistency found on a fee account."""
    fee_id: str = Field(..., description="Fee account id")
    student_id: str = Field(..., description="Student reference")
    discrepancy_type: DiscrepancyType = Field(..., description="Type of discrepancy")
    field_name: str = Field(..., description="Name of the inconsistent field")
    stored_value: Any = Field(..., description="Value stored on the account")
    expected_value: Any = Field(..., description="Value derived from the ledger")
    detected_at: datetime = Field(default_factory=datetime.utcnow)


class LedgerAuditReport(BaseModel):
    """Complete audit report over a set of fee accounts."""
    id: str = Field(..., description="Report ID")
    status: AuditStatus = Field(default=AuditStatus.IN_PROGRESS)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(None)

    total_accounts: int = Field(default=0)
    total_entries: int = Field(default=0)
    consistent_accounts: int = Field(default=0)
    inconsistent_accounts: int = Field(default=0)

    discrepancy_records: List[DiscrepancyRecord] = Field(default_factory=list)
    error_message: Optional[str] = Field(None)

    @property
    def total_discrepancies(self) -> int:
        return len(self.discrepancy_records)

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return a summary of the report without detailed records."""
        return {
            "id": self.id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "statistics": {
                "total_accounts": self.total_accounts,
                "total_entries": self.total_entries,
                "consistent_accounts": self.consistent_accounts,
                "inconsistent_accounts": self.inconsistent_accounts,
                "total_discrepancies": self.total_discrepancies,
                "consistency_rate": (
                    f"{(self.consistent_accounts / self.total_accounts * 100):.2f}%"
                    if self.total_accounts > 0 else "N/A"
                ),
            },
            "error_message": self.error_message,
        }

    def to_full_dict(self) -> Dict[str, Any]:
        """Return the complete report including all discrepancies."""
        result = self.to_summary_dict()
        result["discrepancy_records"] = [r.model_dump(mode="json") for r in self.discrepancy_records]
        return result
