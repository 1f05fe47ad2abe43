"""Order adapter between reconciliation outcomes and the host shop.

The shop's orders and notes are reached through the OrderBook port. The
OrderAdapter turns reconciliation decisions into order status transitions
and keeps a single customer note describing the payment.
"""

import enum
import logging
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from .database import PaymentRecordStore
from .exceptions import OrderNotFoundError

logger = logging.getLogger(__name__)

# Order statuses used by the host shop
PENDING = "pending"
ON_HOLD = "on-hold"
PROCESSING = "processing"
COMPLETED = "completed"
CANCELLED = "cancelled"
FAILED = "failed"

PAID_STATUSES = (PROCESSING, COMPLETED)
NEEDS_PAYMENT_STATUSES = (PENDING, ON_HOLD, FAILED)


class NoteKind(str, enum.Enum):
    """Customer visible messages attached to an order."""
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_RECEIVED = "payment_received"
    ORDER_CANCELLED = "order_cancelled"
    PAYMENT_EXPIRED = "payment_expired"
    CANCELLED_BY_CUSTOMER = "cancelled_by_customer"
    PAYMENT_INVALID = "payment_invalid"


NOTE_MESSAGES: Dict[NoteKind, str] = {
    NoteKind.AWAITING_PAYMENT: "Awaiting Payment",
    NoteKind.PAYMENT_RECEIVED: "Thank you for your payment. Your order will be processed as soon as possible.",
    NoteKind.ORDER_CANCELLED: "Your order was cancelled. Please, contact the store owner.",
    NoteKind.PAYMENT_EXPIRED: "Unpaid order cancelled - time limit reached.",
    NoteKind.CANCELLED_BY_CUSTOMER: "Payment cancelled by customer.",
    NoteKind.PAYMENT_INVALID: "Your order was cancelled. Please, contact the store owner.",
}


def note_message(kind: NoteKind) -> str:
    """Return the customer message for a note kind."""
    return NOTE_MESSAGES[kind]


@dataclass
class OrderNote:
    """Note attached to an order."""
    id: int
    order_id: int
    content: str
    customer_note: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Order:
    """Snapshot of a host shop order."""
    id: int
    number: str
    total: Decimal
    status: str = PENDING
    transaction_id: Optional[str] = None
    date_paid: Optional[datetime] = None
    needs_processing: bool = True
    billing: Dict[str, str] = field(default_factory=dict)
    shipping: Dict[str, str] = field(default_factory=dict)
    customer: Dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status in PAID_STATUSES

    @property
    def needs_payment(self) -> bool:
        return self.status in NEEDS_PAYMENT_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.status == CANCELLED


class OrderBook(ABC):
    """Port to the host shop's orders."""

    @abstractmethod
    async def get_order(self, order_id: int) -> Order:
        """Load an order.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_status(self, order_id: int, status: str, note: str = "") -> bool:
        """Change an order's status, recording an optional private note."""
        raise NotImplementedError

    @abstractmethod
    async def payment_complete(self, order_id: int, transaction_id: str, date_paid: Optional[datetime]) -> bool:
        """Mark an order paid. Returns False if it no longer needs payment."""
        raise NotImplementedError

    @abstractmethod
    async def set_transaction_id(self, order_id: int, transaction_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add_note(self, order_id: int, content: str, customer_note: bool = False) -> int:
        """Attach a note to an order and return its id."""
        raise NotImplementedError

    @abstractmethod
    async def delete_note(self, note_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_note(self, note_id: int) -> Optional[OrderNote]:
        raise NotImplementedError

    @abstractmethod
    def return_url(self, order: Order) -> str:
        """URL of the page showing the order to the customer."""
        raise NotImplementedError


class InMemoryOrderBook(OrderBook):
    """
    In-memory order book for tests and the development server.

    Follows the shop semantics the adapter relies on: payment_complete moves
    an order needing payment to processing (or completed when it needs no
    processing) and refuses orders that no longer need payment.
    """

    def __init__(self, base_url: str = "http://localhost:8000"):
        self.base_url = base_url.rstrip("/")
        self._orders: Dict[int, Order] = {}
        self._notes: Dict[int, OrderNote] = {}
        self._note_ids = itertools.count(1)
        self.status_history: List[tuple] = []

    def add_order(self, order: Order) -> Order:
        self._orders[order.id] = order
        return order

    async def get_order(self, order_id: int) -> Order:
        order = self._orders.get(int(order_id))
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def update_status(self, order_id: int, status: str, note: str = "") -> bool:
        order = await self.get_order(order_id)
        if order.status == status:
            return False
        self.status_history.append((order.id, order.status, status))
        order.status = status
        if note:
            await self.add_note(order.id, note)
        return True

    async def payment_complete(self, order_id: int, transaction_id: str, date_paid: Optional[datetime]) -> bool:
        order = await self.get_order(order_id)
        if not order.needs_payment:
            return False
        order.transaction_id = str(transaction_id)
        order.date_paid = date_paid or datetime.utcnow()
        await self.update_status(order.id, PROCESSING if order.needs_processing else COMPLETED)
        return True

    async def set_transaction_id(self, order_id: int, transaction_id: str) -> None:
        order = await self.get_order(order_id)
        order.transaction_id = str(transaction_id)

    async def add_note(self, order_id: int, content: str, customer_note: bool = False) -> int:
        note_id = next(self._note_ids)
        self._notes[note_id] = OrderNote(
            id=note_id,
            order_id=int(order_id),
            content=content,
            customer_note=customer_note,
        )
        return note_id

    async def delete_note(self, note_id: int) -> None:
        self._notes.pop(note_id, None)

    async def get_note(self, note_id: int) -> Optional[OrderNote]:
        return self._notes.get(note_id)

    def notes_for(self, order_id: int) -> List[OrderNote]:
        return [n for n in self._notes.values() if n.order_id == order_id]

    def return_url(self, order: Order) -> str:
        return f"{self.base_url}/checkout/order-received/{order.id}"


class OrderAdapter:
    """Applies reconciliation decisions to shop orders."""

    def __init__(
        self,
        order_book: OrderBook,
        store: PaymentRecordStore,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the adapter.

        Args:
            order_book: Port to the host shop orders.
            store: Payment record store holding the note references.
            logger: Optional logger, defaults to the module logger.
        """
        self.order_book = order_book
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    async def get_order(self, order_id: int) -> Order:
        return await self.order_book.get_order(order_id)

    async def confirm_payment(
        self,
        order: Order,
        transaction_id: str,
        paid_at: Optional[datetime],
    ) -> bool:
        """Mark the order paid.

        Returns:
            True if the order moved to a paid status.
        """
        if not order.needs_payment:
            self.logger.warning(
                f"Order already processed/paid/cancelled "
                f"{{orderId={order.id}, paymentId={transaction_id}}}"
            )
            return False

        return await self.order_book.payment_complete(order.id, transaction_id, paid_at)

    async def cancel_payment(self, order: Order, note_kind: NoteKind) -> bool:
        """Cancel an unpaid order.

        A paid order is never cancelled.

        Returns:
            True if the order moved to cancelled.
        """
        if order.is_paid:
            self.logger.warning(
                f"Order {order.id} is already paid, not cancelling ({note_kind.value})"
            )
            return False

        return await self.order_book.update_status(order.id, CANCELLED, note_message(note_kind))

    async def await_payment(self, order: Order, transaction_id: str) -> bool:
        """Put an order on hold until PayPay reports the payment."""
        await self.order_book.set_transaction_id(order.id, transaction_id)
        return await self.order_book.update_status(
            order.id, ON_HOLD, note_message(NoteKind.AWAITING_PAYMENT)
        )

    async def add_payment_note(self, order_id: int, content: str) -> int:
        """Attach the payment details note shown while payment is pending."""
        return await self.order_book.add_note(order_id, content, customer_note=True)

    async def replace_note(self, order_id: int, note_kind: NoteKind) -> Optional[int]:
        """Replace the order's current payment note with a new message.

        Returns:
            The new note id, or None if the order has no payment record.
        """
        record = await self.store.find_by_order(order_id)
        if record is None:
            return None

        if record.note_id is not None:
            await self.order_book.delete_note(record.note_id)

        note_id = await self.order_book.add_note(order_id, note_message(note_kind), customer_note=True)
        await self.store.set_note_id(order_id, note_id)
        return note_id

    async def current_note(self, order_id: int) -> Optional[OrderNote]:
        """Return the payment note currently shown for an order."""
        note_id = await self.store.get_note_id(order_id)
        if note_id is None:
            return None
        return await self.order_book.get_note(note_id)

    def return_url(self, order: Order) -> str:
        return self.order_book.return_url(order)
