"""SQLAlchemy models for PayPay payment persistence."""

import enum
from datetime import datetime
from typing import Optional, Dict, Any, Type, Union

from sqlalchemy import (
    String,
    Integer,
    SmallInteger,
    DateTime,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class PaymentState(int, enum.Enum):
    """Reconciliation state of a payment record."""
    INVALID = -1
    PENDING = 0
    PAID = 1
    CANCELLED = 2

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentState.PENDING


class PaymentMethod(str, enum.Enum):
    """PayPay payment method codes."""
    MULTIBANCO = "MB"
    CREDIT_CARD = "CC"
    MB_WAY = "MW"

    @property
    def uses_reference(self) -> bool:
        """Multibanco payments are stored in the reference table."""
        return self is PaymentMethod.MULTIBANCO


class PaymentTypeMarker(Base):
    """Records which payment method an order used."""
    __tablename__ = "paypay_payment_type"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    payment_type: Mapped[str] = mapped_column(String(2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class _PaymentRecordMixin:
    """Columns shared by both payment tables."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False)
    method: Mapped[str] = mapped_column(String(2), nullable=False)

    # Order total without decimal separator (19.99 -> 1999)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    state: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=PaymentState.PENDING.value)

    # Weak reference to the customer note currently shown for the order
    note_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def payment_state(self) -> PaymentState:
        return PaymentState(self.state)

    @property
    def payment_method(self) -> PaymentMethod:
        return PaymentMethod(self.method)

    @property
    def is_pending(self) -> bool:
        return self.state == PaymentState.PENDING.value

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "transaction_id": self.transaction_id,
            "method": self.method,
            "amount": self.amount,
            "state": self.payment_state.name.lower(),
            "note_id": self.note_id,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ReferencePayment(_PaymentRecordMixin, Base):
    """Multibanco reference issued for an order."""
    __tablename__ = "paypay_reference"

    reference: Mapped[str] = mapped_column(String(9), nullable=False)
    entity: Mapped[str] = mapped_column(String(5), nullable=False)
    expires_at: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_paypay_reference_transaction_id"),
        Index("ix_paypay_reference_state", "state"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary representation."""
        result = self._base_dict()
        result.update({
            "reference": self.reference,
            "entity": self.entity,
            "expires_at": self.expires_at,
        })
        return result


class GatewayPayment(_PaymentRecordMixin, Base):
    """Redirect payment (credit card, MB WAY) created for an order."""
    __tablename__ = "paypay_payment"

    token: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_paypay_payment_transaction_id"),
        Index("ix_paypay_payment_state", "state"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary representation."""
        result = self._base_dict()
        result.update({
            "token": self.token,
            "url": self.url,
        })
        return result


class WebhookSubscription(Base):
    """Webhook action successfully subscribed at PayPay."""
    __tablename__ = "paypay_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hooked: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    client_id: Mapped[str] = mapped_column(String(9), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the subscription to a dictionary representation."""
        return {
            "hooked": bool(self.hooked),
            "action": self.action,
            "url": self.url,
            "client_id": self.client_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


PaymentRecord = Union[ReferencePayment, GatewayPayment]


def table_for(method: PaymentMethod) -> Type[PaymentRecord]:
    """Return the model class storing records of the given method."""
    return ReferencePayment if method.uses_reference else GatewayPayment
