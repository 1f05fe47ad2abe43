"""Repository layer for payment record persistence."""

import logging
from datetime import datetime
from typing import Optional, Dict, List

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    GatewayPayment,
    PaymentMethod,
    PaymentRecord,
    PaymentState,
    PaymentTypeMarker,
    ReferencePayment,
    WebhookSubscription,
    table_for,
)

logger = logging.getLogger(__name__)

# Lookup precedence: transaction ids are only unique within a table
LOOKUP_ORDER = (ReferencePayment, GatewayPayment)


class PaymentRecordStore:
    """Repository for PayPay payment records.

    Multibanco references and redirect payments live in separate tables.
    State changes are conditional on the record still being pending, so two
    channels reconciling the same transaction cannot both win.
    """

    def __init__(self, session: AsyncSession, logger: Optional[logging.Logger] = None):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
            logger: Optional logger, defaults to the module logger.
        """
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    async def create(
        self,
        order_id: int,
        method: PaymentMethod,
        transaction_id: str,
        amount: int,
        note_id: Optional[int] = None,
        reference: Optional[str] = None,
        entity: Optional[str] = None,
        expires_at: Optional[str] = None,
        token: Optional[str] = None,
        url: Optional[str] = None,
    ) -> PaymentRecord:
        """Create a pending payment record and its payment type marker.

        Args:
            order_id: Owning order.
            method: Payment method used.
            transaction_id: Processor transaction identifier.
            amount: Order total without decimal separator.
            note_id: Customer note showing the payment details.
            reference: Multibanco reference.
            entity: Multibanco entity.
            expires_at: Multibanco reference expiry, as reported.
            token: Redirect payment token.
            url: Redirect payment URL.

        Returns:
            Created ReferencePayment or GatewayPayment instance.
        """
        common = dict(
            order_id=order_id,
            method=method.value,
            transaction_id=str(transaction_id),
            amount=amount,
            state=PaymentState.PENDING.value,
            note_id=note_id,
        )
        if method.uses_reference:
            record = ReferencePayment(
                reference=reference,
                entity=entity,
                expires_at=expires_at,
                **common,
            )
        else:
            record = GatewayPayment(token=token, url=url, **common)

        self.session.add(record)
        self.session.add(PaymentTypeMarker(order_id=order_id, payment_type=method.value))
        await self.session.flush()

        self.logger.info(
            f"Created {method.name} payment record for order {order_id} "
            f"(transaction {transaction_id})"
        )
        return record

    async def find_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        """Find a record by processor transaction id.

        The reference table is searched before the payment table.

        Args:
            transaction_id: Processor transaction identifier.

        Returns:
            The record if found, None otherwise.
        """
        for model in LOOKUP_ORDER:
            result = await self.session.execute(
                select(model).where(model.transaction_id == str(transaction_id))
            )
            record = result.scalar_one_or_none()
            if record is not None:
                return record
        return None

    async def find_by_order(self, order_id: int) -> Optional[PaymentRecord]:
        """Find the latest record of an order, reference table first."""
        for model in LOOKUP_ORDER:
            result = await self.session.execute(
                select(model)
                .where(model.order_id == order_id)
                .order_by(model.id.desc())
                .limit(1)
            )
            record = result.scalar_one_or_none()
            if record is not None:
                return record
        return None

    async def list_for_order(self, order_id: int) -> List[PaymentRecord]:
        """List every record of an order across both tables."""
        records: List[PaymentRecord] = []
        for model in LOOKUP_ORDER:
            result = await self.session.execute(
                select(model).where(model.order_id == order_id).order_by(model.id)
            )
            records.extend(result.scalars().all())
        return records

    async def update_state(
        self,
        order_id: int,
        method: PaymentMethod,
        new_state: PaymentState,
        paid_at: Optional[datetime] = None,
    ) -> bool:
        """Move the order's pending record for a method to a terminal state.

        Args:
            order_id: Owning order.
            method: Payment method of the record.
            new_state: Terminal state to apply.
            paid_at: Payment timestamp, for PAID transitions.

        Returns:
            True if a pending record was transitioned, False if there was
            none (already terminal or concurrently updated).

        Raises:
            ValueError: If new_state is PENDING.
        """
        if new_state is PaymentState.PENDING:
            raise ValueError("Records cannot be moved back to pending")

        model = table_for(method)
        values: Dict[str, object] = {
            "state": new_state.value,
            "updated_at": datetime.utcnow(),
        }
        if paid_at is not None:
            values["paid_at"] = paid_at

        result = await self.session.execute(
            update(model)
            .where(
                and_(
                    model.order_id == order_id,
                    model.method == method.value,
                    model.state == PaymentState.PENDING.value,
                )
            )
            .values(**values)
        )
        changed = result.rowcount > 0

        if changed:
            self.logger.info(
                f"Order {order_id} {method.name} payment moved to {new_state.name}"
            )
        return changed

    async def settle_siblings(
        self,
        order_id: int,
        new_state: PaymentState,
        exclude_method: PaymentMethod,
    ) -> int:
        """Apply a terminal state to the order's other pending attempts.

        Returns:
            Number of records transitioned.
        """
        if new_state is PaymentState.PENDING:
            raise ValueError("Records cannot be moved back to pending")

        settled = 0
        for model in LOOKUP_ORDER:
            result = await self.session.execute(
                update(model)
                .where(
                    and_(
                        model.order_id == order_id,
                        model.method != exclude_method.value,
                        model.state == PaymentState.PENDING.value,
                    )
                )
                .values(state=new_state.value, updated_at=datetime.utcnow())
            )
            settled += result.rowcount

        if settled:
            self.logger.info(
                f"Order {order_id}: {settled} other pending payment(s) moved to {new_state.name}"
            )
        return settled

    async def mark_invalid(self, order_id: int, method: PaymentMethod, transaction_id: str) -> bool:
        """Mark one pending transaction as invalid.

        Only the method's table is touched, since transaction ids are only
        unique within a table.

        Returns:
            True if a pending record was transitioned.
        """
        model = table_for(method)
        result = await self.session.execute(
            update(model)
            .where(
                and_(
                    model.order_id == order_id,
                    model.transaction_id == str(transaction_id),
                    model.state == PaymentState.PENDING.value,
                )
            )
            .values(state=PaymentState.INVALID.value, updated_at=datetime.utcnow())
        )
        changed = result.rowcount > 0

        if changed:
            self.logger.warning(f"Transaction {transaction_id} of order {order_id} marked as invalid")
        return changed

    def savepoint(self):
        """Open a savepoint; writes made inside it are undone if it fails.

        Example:
            async with store.savepoint():
                await store.update_state(...)
        """
        return self.session.begin_nested()

    async def list_pending(self) -> List[PaymentRecord]:
        """List pending records, one per order.

        When an order has pending records in both tables the reference
        record is kept.

        Returns:
            Pending records ordered by table precedence then creation.
        """
        pending: List[PaymentRecord] = []
        seen_orders = set()

        for model in LOOKUP_ORDER:
            result = await self.session.execute(
                select(model)
                .where(model.state == PaymentState.PENDING.value)
                .order_by(model.id)
            )
            for record in result.scalars().all():
                if record.order_id in seen_orders:
                    continue
                seen_orders.add(record.order_id)
                pending.append(record)

        return pending

    async def get_note_id(self, order_id: int) -> Optional[int]:
        """Return the id of the customer note linked to the order's payment."""
        record = await self.find_by_order(order_id)
        if record is None:
            return None
        return record.note_id

    async def set_note_id(self, order_id: int, note_id: Optional[int]) -> None:
        """Point every payment record of the order to a new customer note."""
        for model in LOOKUP_ORDER:
            await self.session.execute(
                update(model)
                .where(model.order_id == order_id)
                .values(note_id=note_id)
            )


class WebhookSubscriptionRepository:
    """Repository for subscribed webhook actions."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def record(self, action: str, url: str, client_id: str) -> WebhookSubscription:
        """Store an accepted webhook subscription.

        Args:
            action: Hook action subscribed.
            url: Callback URL registered at PayPay.
            client_id: NIF of the merchant account.

        Returns:
            Created WebhookSubscription instance.
        """
        subscription = WebhookSubscription(
            hooked=1,
            action=action,
            url=url,
            client_id=client_id,
        )
        self.session.add(subscription)
        await self.session.flush()

        logger.debug(f"Recorded webhook subscription {action} -> {url}")
        return subscription

    async def list_active(self) -> List[WebhookSubscription]:
        """List hooked subscriptions, newest first."""
        result = await self.session.execute(
            select(WebhookSubscription)
            .where(WebhookSubscription.hooked == 1)
            .order_by(WebhookSubscription.id.desc())
        )
        return list(result.scalars().all())
