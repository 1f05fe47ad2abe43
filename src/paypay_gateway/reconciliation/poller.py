"""Polling reconciler: batched status inquiry of every pending payment."""

import logging
from typing import Dict, Optional

from ..database import PaymentRecord, PaymentRecordStore
from ..processor import PaymentStatusResult, ProcessorClient
from .engine import ReconciliationEngine
from .models import (
    OutcomeType,
    PollSummary,
    ProcessorStatus,
    StatusKind,
)

logger = logging.getLogger(__name__)


def status_kind(result: PaymentStatusResult) -> StatusKind:
    """Classify one entry of a batched status inquiry."""
    if result.not_found:
        return StatusKind.NOT_FOUND
    if result.state == 1:
        return StatusKind.PAID
    if result.cancelled:
        return StatusKind.CANCELLED
    return StatusKind.PENDING


class PollingReconciler:
    """Sweeps pending payments and reconciles them with one PayPay inquiry."""

    def __init__(
        self,
        store: PaymentRecordStore,
        processor: ProcessorClient,
        engine: ReconciliationEngine,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the reconciler.

        Args:
            store: Payment record store.
            processor: PayPay webservice client.
            engine: Engine applying the reported statuses.
            logger: Optional logger, defaults to the module logger.
        """
        self.store = store
        self.processor = processor
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    async def reconcile_pending(self) -> PollSummary:
        """Check every pending payment at PayPay and apply the results.

        Returns:
            PollSummary with counters, events and per-order errors.

        Raises:
            ProcessorError: If the status inquiry fails.
        """
        summary = PollSummary()

        pending = await self.store.list_pending()
        if not pending:
            self.logger.info("No pending payments to check")
            return summary

        by_transaction: Dict[str, PaymentRecord] = {
            record.transaction_id: record for record in pending
        }
        transaction_ids = [record.transaction_id for record in pending]

        self.logger.info(f"Checking {len(transaction_ids)} pending payment(s) at PayPay")
        results = self.processor.check_batch_status(transaction_ids)

        for index, result in enumerate(results):
            # Position is only trusted when PayPay omits the payment id
            if result.transaction_id:
                record = by_transaction.get(result.transaction_id)
            else:
                record = pending[index] if index < len(pending) else None
            if record is None:
                self.logger.warning(f"Status returned for an unknown payment: {result.transaction_id}")
                continue

            summary.total_processed += 1
            transaction_id = record.transaction_id
            order_id = record.order_id

            try:
                outcome = await self.engine.apply_atomically(ProcessorStatus(
                    transaction_id=transaction_id,
                    kind=status_kind(result),
                    amount=result.amount,
                    date=result.date,
                    source="poll",
                ))
            except Exception as e:
                message = f"{e} (paymentId: {transaction_id}, orderId: {order_id})"
                self.logger.error(f"Poll sweep failed for a payment: {message}")
                summary.errors.append(message)
                continue

            if outcome.event is not None:
                summary.events.append(outcome.event)

            if outcome.result is OutcomeType.PAID and outcome.order_updated:
                summary.paid_count += 1
            elif outcome.result is OutcomeType.CANCELLED and outcome.order_updated:
                summary.cancelled_count += 1
            elif outcome.result is OutcomeType.INVALID:
                summary.invalid_count += 1
            elif outcome.result is OutcomeType.PENDING:
                summary.pending_count += 1
            elif outcome.result is OutcomeType.ORDER_ERROR:
                summary.errors.append(f"Order {outcome.order_id} could not be loaded (paymentId: {outcome.transaction_id})")

        self.logger.info(
            f"Poll sweep completed: {summary.paid_count} paid, "
            f"{summary.cancelled_count} cancelled, "
            f"{summary.invalid_count} invalid, "
            f"{summary.pending_count} pending"
        )
        return summary
