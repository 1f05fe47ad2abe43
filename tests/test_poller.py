"""Tests for the polling reconciler."""

import pytest
from decimal import Decimal

from paypay_gateway.checkout import CheckoutService
from paypay_gateway.database import PaymentMethod, PaymentState
from paypay_gateway.exceptions import ProcessorUnreachableError
from paypay_gateway.orders import CANCELLED, ON_HOLD, PROCESSING, InMemoryOrderBook, Order, OrderAdapter
from paypay_gateway.processor import PaymentStatusResult, SimulatorProcessor
from paypay_gateway.reconciliation import (
    EventKind,
    PollingReconciler,
    ReconciliationEngine,
    StatusKind,
    status_kind,
)


@pytest.fixture
def checkout(store, adapter, simulator, settings):
    return CheckoutService(store, adapter, simulator, settings)


@pytest.fixture
def reconciler(store, simulator, engine):
    return PollingReconciler(store, simulator, engine)


class TestStatusKind:
    """Tests for the classification of inquiry results."""

    def test_not_found(self):
        result = PaymentStatusResult(transaction_id="1", state=None, code="0062")
        assert status_kind(result) == StatusKind.NOT_FOUND

    def test_paid(self):
        assert status_kind(PaymentStatusResult(transaction_id="1", state=1)) == StatusKind.PAID

    def test_cancelled(self):
        result = PaymentStatusResult(transaction_id="1", state=0, cancelled=1)
        assert status_kind(result) == StatusKind.CANCELLED

    def test_pending(self):
        result = PaymentStatusResult(transaction_id="1", state=0, cancelled=0, code="0000")
        assert status_kind(result) == StatusKind.PENDING


class TestPollSweep:
    """Tests for reconcile_pending."""

    async def test_nothing_pending(self, reconciler, simulator):
        summary = await reconciler.reconcile_pending()

        assert summary.paid_count == 0
        assert summary.cancelled_count == 0
        assert summary.total_processed == 0
        assert simulator.batch_calls == []

    async def test_single_batched_inquiry(self, reconciler, checkout, simulator, make_order):
        """Test that every pending payment is checked in one request."""
        ids = []
        for order_id in (100, 101, 102):
            make_order(order_id)
            result = await checkout.initiate(order_id, PaymentMethod.MULTIBANCO)
            ids.append(result.transaction_id)

        summary = await reconciler.reconcile_pending()

        assert simulator.batch_calls == [ids]
        assert summary.total_processed == 3
        assert summary.pending_count == 3

    async def test_paid_and_cancelled_counts(self, reconciler, checkout, simulator, make_order):
        paid_order = make_order(100)
        cancelled_order = make_order(101)
        pending_order = make_order(102)
        paid = await checkout.initiate(100, PaymentMethod.MULTIBANCO)
        cancelled = await checkout.initiate(101, PaymentMethod.CREDIT_CARD)
        await checkout.initiate(102, PaymentMethod.MB_WAY)

        simulator.settle(paid.transaction_id, amount=1999)
        simulator.cancel(cancelled.transaction_id)

        summary = await reconciler.reconcile_pending()

        assert summary.paid_count == 1
        assert summary.cancelled_count == 1
        assert summary.pending_count == 1
        assert summary.processed_count == 2
        assert summary.errors == []
        assert paid_order.status == PROCESSING
        assert cancelled_order.status == CANCELLED
        assert pending_order.status == ON_HOLD
        kinds = [event.kind for event in summary.events]
        assert EventKind.PAYMENT_CONFIRMED in kinds
        assert EventKind.PAYMENT_CANCELLED in kinds

    async def test_unknown_transaction_marked_invalid(self, reconciler, checkout, simulator, make_order, store):
        """Test that a payment PayPay does not know is invalidated and not counted."""
        make_order(100)
        result = await checkout.initiate(100, PaymentMethod.MULTIBANCO)
        simulator.forget(result.transaction_id)

        summary = await reconciler.reconcile_pending()

        assert summary.paid_count == 0
        assert summary.cancelled_count == 0
        assert summary.invalid_count == 1
        assert summary.events[0].kind == EventKind.PAYMENT_NOT_FOUND
        assert await store.list_pending() == []

    async def test_amount_mismatch_is_invalid(self, reconciler, checkout, simulator, make_order, store, db_session):
        make_order(100, total="19.99")
        result = await checkout.initiate(100, PaymentMethod.MULTIBANCO)
        simulator.settle(result.transaction_id, amount=2000)

        summary = await reconciler.reconcile_pending()

        assert summary.paid_count == 0
        assert summary.invalid_count == 1
        record = await store.find_by_transaction_id(result.transaction_id)
        await db_session.refresh(record)
        assert record.state == PaymentState.INVALID.value

    async def test_second_sweep_skips_settled_payments(self, reconciler, checkout, simulator, make_order):
        make_order(100)
        result = await checkout.initiate(100, PaymentMethod.MULTIBANCO)
        simulator.settle(result.transaction_id)

        await reconciler.reconcile_pending()
        summary = await reconciler.reconcile_pending()

        assert summary.total_processed == 0
        assert len(simulator.batch_calls) == 1

    async def test_processor_failure_propagates(self, reconciler, checkout, simulator, make_order):
        make_order(100)
        await checkout.initiate(100, PaymentMethod.MULTIBANCO)
        simulator.config.unreachable = True

        with pytest.raises(ProcessorUnreachableError):
            await reconciler.reconcile_pending()


class CannedStatusProcessor(SimulatorProcessor):
    """Simulator answering status inquiries with fixed results."""

    def __init__(self, results):
        super().__init__()
        self.results = results

    def check_batch_status(self, transaction_ids):
        self.batch_calls.append(list(transaction_ids))
        return self.results


class TestResultMatching:
    """Tests for matching inquiry results to pending records."""

    async def test_unknown_payment_id_is_skipped(self, store, engine, make_order, make_payment):
        """Test that a result for another transaction never settles a pending record by position."""
        order = make_order(100)
        await make_payment(order, transaction_id="1001")
        processor = CannedStatusProcessor([PaymentStatusResult(transaction_id="999", state=1, amount=1999)])

        summary = await PollingReconciler(store, processor, engine).reconcile_pending()

        assert order.status == ON_HOLD
        assert summary.paid_count == 0
        assert summary.total_processed == 0
        assert [r.transaction_id for r in await store.list_pending()] == ["1001"]

    async def test_missing_payment_id_uses_position(self, store, engine, make_order, make_payment):
        order = make_order(100)
        await make_payment(order, transaction_id="1001")
        processor = CannedStatusProcessor([PaymentStatusResult(transaction_id=None, state=1, amount=1999)])

        summary = await PollingReconciler(store, processor, engine).reconcile_pending()

        assert order.status == PROCESSING
        assert summary.paid_count == 1


class FailingOrderBook(InMemoryOrderBook):
    """Order book whose payment completion fails for one order."""

    def __init__(self, failing_order_id, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failing_order_id = failing_order_id

    async def payment_complete(self, order_id, transaction_id, date_paid):
        if order_id == self.failing_order_id:
            raise RuntimeError("database is locked")
        return await super().payment_complete(order_id, transaction_id, date_paid)


class TestErrorIsolation:
    """Tests for per-order failures during a sweep."""

    async def test_failure_does_not_stop_sweep(self, store, simulator, settings, db_session):
        order_book = FailingOrderBook(100)
        adapter = OrderAdapter(order_book, store)
        engine = ReconciliationEngine(store, adapter)
        checkout = CheckoutService(store, adapter, simulator, settings)
        reconciler = PollingReconciler(store, simulator, engine)

        order_book.add_order(Order(id=100, number="100", total=Decimal("10.00")))
        healthy = order_book.add_order(Order(id=101, number="101", total=Decimal("10.00")))
        first = await checkout.initiate(100, PaymentMethod.MULTIBANCO)
        second = await checkout.initiate(101, PaymentMethod.MULTIBANCO)
        simulator.settle(first.transaction_id, amount=1000)
        simulator.settle(second.transaction_id, amount=1000)

        summary = await reconciler.reconcile_pending()

        assert len(summary.errors) == 1
        assert "database is locked" in summary.errors[0]
        assert "orderId: 100" in summary.errors[0]
        assert summary.paid_count == 1
        assert healthy.status == PROCESSING

        # The failed payment was rolled back and is retried by the next sweep
        failed = await store.find_by_transaction_id(first.transaction_id)
        await db_session.refresh(failed)
        assert failed.state == PaymentState.PENDING.value
        assert [r.order_id for r in await store.list_pending()] == [100]

    async def test_missing_order_is_reported(self, reconciler, store, simulator):
        await store.create(
            order_id=404,
            method=PaymentMethod.MULTIBANCO,
            transaction_id="7001",
            amount=1000,
            reference="111222333",
            entity="11249",
        )
        simulator.register("7001", 1000)
        simulator.settle("7001", amount=1000)

        summary = await reconciler.reconcile_pending()

        assert summary.paid_count == 0
        assert len(summary.errors) == 1
        assert "7001" in summary.errors[0]
        assert len(await store.list_pending()) == 1
