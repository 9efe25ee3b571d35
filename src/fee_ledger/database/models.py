"""SQLAlchemy models for fee accounts and their payment ledger."""

import uuid
import json
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    Boolean,
    Date,
    String,
    Integer,
    DateTime,
    ForeignKey,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column
import enum


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class FeeStatus(str, enum.Enum):
    """Aggregate status of a fee account."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethod(str, enum.Enum):
    """How a ledger entry was paid."""
    CASH = "cash"
    CHECK = "check"
    ONLINE = "online"
    TRANSFER = "transfer"
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"


class EntryStatus(str, enum.Enum):
    """Status of a single ledger entry."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def to_major_units(amount_minor: Optional[int]) -> Optional[Decimal]:
    """Convert integer minor units (paise) to a two-place decimal."""
    if amount_minor is None:
        return None
    return (Decimal(amount_minor) / 100).quantize(Decimal("0.01"))


class FeeAccount(Base):
    """One billing record per student per period."""
    __tablename__ = "fee_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    admission_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    semester: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    academic_year: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Amounts in minor units
    total_owed: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=FeeStatus.PENDING.value)

    fee_structure_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # In-flight gateway order, overwritten per attempt
    active_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    active_order_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    active_order_payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    active_order_signature: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    active_order_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    active_order_captured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Bumped on every UPDATE; a stale version fails the flush
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    entries: Mapped[List["PaymentEntry"]] = relationship(
        "PaymentEntry",
        back_populates="fee_account",
        cascade="all, delete-orphan",
        order_by="PaymentEntry.sequence",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_fee_accounts_student_id", "student_id"),
        Index("ix_fee_accounts_status", "status"),
        Index("ix_fee_accounts_active_order_id", "active_order_id"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("paid_amount", 0)
        kwargs.setdefault("status", FeeStatus.PENDING.value)
        kwargs.setdefault("is_active", True)
        kwargs.setdefault("active_order_captured", False)
        # Loaded-empty collection, so reading it after flush needs no lazy load
        kwargs.setdefault("entries", [])
        if "pending_amount" not in kwargs and "total_owed" in kwargs:
            kwargs["pending_amount"] = max(kwargs["total_owed"] - kwargs["paid_amount"], 0)
        super().__init__(**kwargs)

    @property
    def fee_structure(self) -> Optional[Dict[str, Any]]:
        """Get the fee component breakdown as a dictionary."""
        if self.fee_structure_json:
            return json.loads(self.fee_structure_json)
        return None

    @fee_structure.setter
    def fee_structure(self, value: Optional[Dict[str, Any]]) -> None:
        if value is not None:
            self.fee_structure_json = json.dumps(value)
        else:
            self.fee_structure_json = None

    @property
    def active_order(self) -> Optional[Dict[str, Any]]:
        """The in-flight gateway order, or None when no order was issued."""
        if not self.active_order_id:
            return None
        return {
            "order_id": self.active_order_id,
            "amount": to_major_units(self.active_order_amount),
            "payment_id": self.active_order_payment_id,
            "signature": self.active_order_signature,
            "method": self.active_order_method,
            "captured": bool(self.active_order_captured),
        }

    def find_entry(self, order_id: str, payment_id: str) -> Optional["PaymentEntry"]:
        """Return the entry recorded for a gateway (order, payment) pair."""
        for entry in self.entries:
            if entry.gateway_order_id == order_id and entry.gateway_payment_id == payment_id:
                return entry
        return None

    def completed_total(self) -> int:
        """Sum of completed entry amounts in minor units."""
        return sum(e.amount for e in self.entries if e.status == EntryStatus.COMPLETED.value)

    def to_dict(self, include_entries: bool = True) -> Dict[str, Any]:
        """Convert the account to its API representation (major units)."""
        result = {
            "id": self.id,
            "student_id": self.student_id,
            "admission_number": self.admission_number,
            "semester": self.semester,
            "academic_year": self.academic_year,
            "total_owed": to_major_units(self.total_owed),
            "paid_amount": to_major_units(self.paid_amount),
            "pending_amount": to_major_units(self.pending_amount),
            "status": self.status,
            "fee_structure": self.fee_structure,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_active": self.is_active,
            "active_order": self.active_order,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_entries:
            result["entries"] = [e.to_dict() for e in self.entries]
        return result


class PaymentEntry(Base):
    """One immutable line of a fee account's payment ledger."""
    __tablename__ = "payment_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    fee_account_id: Mapped[str] = mapped_column(String(36), ForeignKey("fee_accounts.id"), nullable=False)
    # Position within the account's ledger
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    method: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentMethod.ONLINE.value)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EntryStatus.COMPLETED.value)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    gateway_signature: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    fee_account: Mapped["FeeAccount"] = relationship("FeeAccount", back_populates="entries")

    __table_args__ = (
        UniqueConstraint(
            "fee_account_id", "gateway_order_id", "gateway_payment_id",
            name="uq_payment_entries_gateway_pair",
        ),
        Index("ix_payment_entries_fee_account_id", "fee_account_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the entry to its API representation (major units)."""
        return {
            "id": self.id,
            "amount": to_major_units(self.amount),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "method": self.method,
            "transaction_id": self.transaction_id,
            "status": self.status,
            "remarks": self.remarks,
            "razorpay": {
                "order_id": self.gateway_order_id,
                "payment_id": self.gateway_payment_id,
                "signature": self.gateway_signature,
            },
        }
