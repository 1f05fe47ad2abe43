"""Reconciliation engine.

Applies a processor status to a payment record:

    PENDING  --paid, amount matches-->  PAID
    PENDING  --cancelled / expired-->   CANCELLED
    PENDING  --paid, amount differs-->  INVALID
    PENDING  --transaction unknown-->   INVALID
    terminal --anything-->              no-op

State changes go through the store's conditional update, so when a webhook
delivery and a poll sweep race on the same transaction only one of them
touches the order.
"""

import logging
from datetime import datetime
from typing import Optional

from ..conversions import normalize_payment_date, parse_reported_amount, to_minor_units
from ..database import PaymentRecord, PaymentRecordStore, PaymentState
from ..exceptions import InvalidAmountError
from ..orders import NoteKind, Order, OrderAdapter
from .models import (
    OUTCOME_STATUS_CODES,
    EventKind,
    OutcomeType,
    ProcessorStatus,
    ReconciliationEvent,
    ReconciliationOutcome,
    StatusKind,
)

logger = logging.getLogger(__name__)

CANCEL_NOTES = {
    StatusKind.CANCELLED: NoteKind.ORDER_CANCELLED,
    StatusKind.EXPIRED: NoteKind.PAYMENT_EXPIRED,
}

CANCEL_EVENTS = {
    StatusKind.CANCELLED: EventKind.PAYMENT_CANCELLED,
    StatusKind.EXPIRED: EventKind.PAYMENT_EXPIRED,
}


class ReconciliationEngine:
    """Decides payment record transitions and drives the order side effects."""

    def __init__(
        self,
        store: PaymentRecordStore,
        orders: OrderAdapter,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the engine.

        Args:
            store: Payment record store.
            orders: Adapter to the host shop orders.
            logger: Optional logger, defaults to the module logger.
        """
        self.store = store
        self.orders = orders
        self.logger = logger or logging.getLogger(__name__)

    def _outcome(
        self,
        result: OutcomeType,
        transaction_id: str,
        order_id: Optional[int] = None,
        order_updated: bool = False,
        paid_at: Optional[datetime] = None,
        event_kind: Optional[EventKind] = None,
    ) -> ReconciliationOutcome:
        event = None
        if event_kind is not None:
            event = ReconciliationEvent.create(event_kind, transaction_id, order_id)
        return ReconciliationOutcome(
            result=result,
            status_code=OUTCOME_STATUS_CODES[result],
            transaction_id=transaction_id,
            order_id=order_id,
            order_updated=order_updated,
            paid_at=paid_at,
            event=event,
        )

    async def apply(self, status: ProcessorStatus) -> ReconciliationOutcome:
        """Apply a processor status to the matching payment record.

        Never raises for a missing record, a terminal record or an order
        that cannot be loaded; those are reported in the outcome.

        Args:
            status: Status reported by the processor.

        Returns:
            ReconciliationOutcome describing the decision.
        """
        transaction_id = str(status.transaction_id)
        self.logger.debug(f"Applying {status.source} status {status.kind.value} to transaction {transaction_id}")

        record = await self.store.find_by_transaction_id(transaction_id)
        if record is None:
            self.logger.error(f"Payment not found {{paymentId={transaction_id}, source={status.source}}}")
            return self._outcome(
                OutcomeType.NOT_FOUND,
                transaction_id,
                event_kind=EventKind.PAYMENT_NOT_FOUND,
            )

        order_id = record.order_id

        if record.payment_state.is_terminal:
            self.logger.warning(
                f"Order already processed/paid/cancelled "
                f"{{state={record.state}, paymentId={transaction_id}}}"
            )
            return self._outcome(OutcomeType.ALREADY_TERMINAL, transaction_id, order_id)

        if status.kind is StatusKind.PENDING:
            return self._outcome(
                OutcomeType.PENDING,
                transaction_id,
                order_id,
                event_kind=EventKind.PAYMENT_PENDING,
            )

        # An unknown transaction is invalid whatever state its order is in
        if status.kind is StatusKind.NOT_FOUND:
            self.logger.error(f"Payment was not found at PayPay {{paymentId={transaction_id}, orderId={order_id}}}")
            return await self._invalidate(record, None, EventKind.PAYMENT_NOT_FOUND)

        try:
            order = await self.orders.get_order(order_id)
        except Exception as e:
            self.logger.error(f"{e} (paymentId: {transaction_id}, orderId: {order_id})")
            return self._outcome(OutcomeType.ORDER_ERROR, transaction_id, order_id)

        if status.kind is StatusKind.PAID:
            if not self._amount_matches(order, status.amount):
                self.logger.error(
                    f"Payment amount differs from order "
                    f"{{paymentId={transaction_id}, orderId={order_id}, amount={status.amount}}}"
                )
                return await self._invalidate(record, order, EventKind.PAYMENT_INVALID)
            return await self._confirm(record, order, status)

        return await self._cancel(record, order, status.kind)

    async def apply_atomically(self, status: ProcessorStatus) -> ReconciliationOutcome:
        """Apply a status inside a savepoint.

        If an order side effect fails, the record transition is rolled back
        with it and the exception is raised to the caller, so a record is
        never left PAID or CANCELLED for an order that was not updated.
        """
        async with self.store.savepoint():
            return await self.apply(status)

    def failed_outcome(self, transaction_id: str, order_id: Optional[int] = None) -> ReconciliationOutcome:
        """Outcome reported for a payment whose reconciliation raised."""
        return self._outcome(OutcomeType.FAILED, str(transaction_id), order_id)

    def _amount_matches(self, order: Order, reported) -> bool:
        reported_amount = parse_reported_amount(reported)
        if reported_amount is None:
            return False
        try:
            return to_minor_units(order.total) == reported_amount
        except InvalidAmountError as e:
            self.logger.error(f"Order {order.id} total cannot be compared: {e}")
            return False

    def _lost_race(self, record: PaymentRecord) -> ReconciliationOutcome:
        self.logger.warning(
            f"Payment already settled by another request "
            f"{{paymentId={record.transaction_id}, orderId={record.order_id}}}"
        )
        return self._outcome(OutcomeType.ALREADY_TERMINAL, record.transaction_id, record.order_id)

    async def _confirm(self, record: PaymentRecord, order: Order, status: ProcessorStatus) -> ReconciliationOutcome:
        paid_at = normalize_payment_date(status.date)
        won = await self.store.update_state(
            record.order_id, record.payment_method, PaymentState.PAID, paid_at=paid_at
        )
        if not won:
            return self._lost_race(record)

        await self.store.settle_siblings(record.order_id, PaymentState.PAID, record.payment_method)

        order_updated = await self.orders.confirm_payment(order, record.transaction_id, paid_at)
        if order_updated:
            await self.orders.replace_note(order.id, NoteKind.PAYMENT_RECEIVED)

        return self._outcome(
            OutcomeType.PAID,
            record.transaction_id,
            order.id,
            order_updated=order_updated,
            paid_at=paid_at,
            event_kind=EventKind.PAYMENT_CONFIRMED,
        )

    async def _cancel(self, record: PaymentRecord, order: Order, kind: StatusKind) -> ReconciliationOutcome:
        won = await self.store.update_state(
            record.order_id, record.payment_method, PaymentState.CANCELLED
        )
        if not won:
            return self._lost_race(record)

        await self.store.settle_siblings(record.order_id, PaymentState.CANCELLED, record.payment_method)

        note_kind = CANCEL_NOTES[kind]
        order_updated = await self.orders.cancel_payment(order, note_kind)
        if order_updated:
            await self.orders.replace_note(order.id, note_kind)

        return self._outcome(
            OutcomeType.CANCELLED,
            record.transaction_id,
            order.id,
            order_updated=order_updated,
            event_kind=CANCEL_EVENTS[kind],
        )

    async def _invalidate(
        self,
        record: PaymentRecord,
        order: Optional[Order],
        event_kind: EventKind,
    ) -> ReconciliationOutcome:
        won = await self.store.mark_invalid(record.order_id, record.payment_method, record.transaction_id)
        if not won:
            return self._lost_race(record)

        if order is None:
            try:
                order = await self.orders.get_order(record.order_id)
            except Exception as e:
                self.logger.warning(
                    f"Invalid payment recorded but order not cancelled: {e} "
                    f"(paymentId: {record.transaction_id}, orderId: {record.order_id})"
                )
                return self._outcome(
                    OutcomeType.INVALID,
                    record.transaction_id,
                    record.order_id,
                    event_kind=event_kind,
                )

        order_updated = await self.orders.cancel_payment(order, NoteKind.PAYMENT_INVALID)
        if order_updated:
            await self.orders.replace_note(order.id, NoteKind.PAYMENT_INVALID)

        return self._outcome(
            OutcomeType.INVALID,
            record.transaction_id,
            order.id,
            order_updated=order_updated,
            event_kind=event_kind,
        )
