"""SQLAlchemy models for payment persistence."""

import uuid
import json
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import (
    String,
    DateTime,
    Numeric,
    Text,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import enum


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class PaymentStatus(str, enum.Enum):
    """Local payment record statuses."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class HistoryAction(str, enum.Enum):
    """Actions tracked in status history."""
    AUTHORIZE = "authorize"
    WEBHOOK = "webhook"
    REFUND = "refund"
    CANCEL = "cancel"


class PaymentRecord(Base):
    """One authorized payment, keyed by its conversation id."""
    __tablename__ = "payment_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    paid_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Gateway response kept for debugging
    raw_response_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_payment_records_status", "status"),
        Index("ix_payment_records_created_at", "created_at"),
    )

    @property
    def raw_response(self) -> Optional[Dict[str, Any]]:
        """Get raw gateway response as dictionary."""
        if self.raw_response_json:
            return json.loads(self.raw_response_json)
        return None

    @raw_response.setter
    def raw_response(self, value: Optional[Dict[str, Any]]) -> None:
        """Set raw gateway response from dictionary."""
        if value is not None:
            self.raw_response_json = json.dumps(value)
        else:
            self.raw_response_json = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary representation."""
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "status": self.status,
            "amount": str(self.amount) if self.amount is not None else None,
            "paidPrice": str(self.paid_price) if self.paid_price is not None else None,
            "currency": self.currency,
            "gatewayPaymentId": self.gateway_payment_id,
            "gatewayTransactionId": self.gateway_transaction_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class StatusHistory(Base):
    """Audit trail of everything that touched a payment record."""
    __tablename__ = "status_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Gateway event type for webhook rows
    event_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    detail_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_status_history_action", "action"),
    )

    @property
    def detail(self) -> Optional[Dict[str, Any]]:
        if self.detail_json:
            return json.loads(self.detail_json)
        return None

    @detail.setter
    def detail(self, value: Optional[Dict[str, Any]]) -> None:
        if value is not None:
            self.detail_json = json.dumps(value)
        else:
            self.detail_json = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "action": self.action,
            "newStatus": self.new_status,
            "eventType": self.event_type,
            "detail": self.detail,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
