"""Models for payment reconciliation."""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WebhookAction(str, enum.Enum):
    """Hook actions PayPay notifies."""
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_EXPIRED = "payment_expired"
    PAYMENT_CANCELLED = "payment_cancelled"


class StatusKind(str, enum.Enum):
    """Payment status reported by the processor, whatever the channel."""
    PAID = "paid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PENDING = "pending"
    NOT_FOUND = "not_found"


class OutcomeType(str, enum.Enum):
    """Result of applying a processor status to a payment record."""
    PAID = "paid"
    CANCELLED = "cancelled"
    INVALID = "invalid"
    PENDING = "pending"
    ALREADY_TERMINAL = "already_terminal"
    NOT_FOUND = "not_found"
    ORDER_ERROR = "order_error"
    FAILED = "failed"


# HTTP status reported to PayPay for each outcome
OUTCOME_STATUS_CODES: Dict[OutcomeType, int] = {
    OutcomeType.PAID: 200,
    OutcomeType.CANCELLED: 200,
    OutcomeType.PENDING: 200,
    OutcomeType.ALREADY_TERMINAL: 200,
    OutcomeType.INVALID: 400,
    OutcomeType.NOT_FOUND: 400,
    OutcomeType.ORDER_ERROR: 400,
    OutcomeType.FAILED: 400,
}


class EventKind(str, enum.Enum):
    """Notifications produced for display surfaces."""
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_CANCELLED = "payment_cancelled"
    PAYMENT_EXPIRED = "payment_expired"
    PAYMENT_INVALID = "payment_invalid"
    PAYMENT_NOT_FOUND = "payment_not_found"
    PAYMENT_PENDING = "payment_pending"


EVENT_MESSAGES: Dict[EventKind, str] = {
    EventKind.PAYMENT_CONFIRMED: "Order payment has been confirmed.",
    EventKind.PAYMENT_CANCELLED: "Order payment has been cancelled.",
    EventKind.PAYMENT_EXPIRED: "Order payment has expired.",
    EventKind.PAYMENT_INVALID: "Payment amount differs from order.",
    EventKind.PAYMENT_NOT_FOUND: "Payment was not found.",
    EventKind.PAYMENT_PENDING: "Order payment is pending.",
}


class PaymentNotification(BaseModel):
    """One payment entry of a webhook request."""
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(..., alias="paymentId", min_length=1)
    payment_state: Optional[int] = Field(None, alias="paymentState")
    payment_cancelled: Optional[int] = Field(None, alias="paymentCancelled")
    payment_amount: Optional[Any] = Field(None, alias="paymentAmount")
    payment_date: Optional[str] = Field(None, alias="paymentDate")

    @field_validator("payment_id", "payment_date", mode="before")
    @classmethod
    def _coerce_str(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("payment_state", "payment_cancelled", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if value == "":
            return None
        return value


class ProcessorStatus(BaseModel):
    """A payment status supplied by a webhook delivery or a poll sweep."""
    transaction_id: str = Field(..., description="PayPay transaction id")
    kind: StatusKind
    amount: Optional[Any] = Field(None, description="Reported amount without decimal separator")
    date: Optional[str] = Field(None, description="Reported payment date")
    source: str = Field(default="webhook", description="Channel that supplied the status")


class ReconciliationEvent(BaseModel):
    """Plain notification of a reconciliation decision, rendered by callers."""
    kind: EventKind
    transaction_id: str
    order_id: Optional[int] = None
    message: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def create(cls, kind: EventKind, transaction_id: str, order_id: Optional[int] = None) -> "ReconciliationEvent":
        return cls(
            kind=kind,
            transaction_id=transaction_id,
            order_id=order_id,
            message=EVENT_MESSAGES[kind],
        )


class ReconciliationOutcome(BaseModel):
    """Result of one engine decision."""
    result: OutcomeType
    status_code: int
    transaction_id: str
    order_id: Optional[int] = None
    order_updated: bool = False
    paid_at: Optional[datetime] = None
    event: Optional[ReconciliationEvent] = None

    @property
    def changed_record(self) -> bool:
        return self.result in (OutcomeType.PAID, OutcomeType.CANCELLED, OutcomeType.INVALID)


class PollSummary(BaseModel):
    """Counters and events of one poll sweep."""
    paid_count: int = Field(default=0, description="Orders moved to paid")
    cancelled_count: int = Field(default=0, description="Orders moved to cancelled")
    invalid_count: int = Field(default=0, description="Records marked invalid")
    pending_count: int = Field(default=0, description="Payments still pending")
    total_processed: int = Field(default=0, description="Statuses returned by PayPay")
    events: List[ReconciliationEvent] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def processed_count(self) -> int:
        """Orders whose payment was settled by the sweep."""
        return self.paid_count + self.cancelled_count
