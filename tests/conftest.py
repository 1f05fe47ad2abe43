"""Shared test fixtures and configuration."""

import os
import pytest
from decimal import Decimal

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYPAY_ENVIRONMENT", "simulator")

from paypay_gateway.config import GatewaySettings, SIMULATOR
from paypay_gateway.conversions import to_minor_units
from paypay_gateway.database import (
    Base,
    PaymentMethod,
    PaymentRecordStore,
    create_async_engine,
    get_async_session_factory,
)
from paypay_gateway.orders import ON_HOLD, PENDING, InMemoryOrderBook, Order, OrderAdapter
from paypay_gateway.processor import SimulatorConfig, SimulatorProcessor
from paypay_gateway.reconciliation import ReconciliationEngine

SHOP_URL = "https://shop.example.com"


@pytest.fixture
def settings() -> GatewaySettings:
    """Return valid simulator settings."""
    return GatewaySettings(
        environment=SIMULATOR,
        platform_code="0004",
        private_key="Y1JgnTGN2lMOz8OE",
        client_id="510542700",
        site_url=SHOP_URL,
    )


@pytest.fixture
def simulator() -> SimulatorProcessor:
    """Create a simulator with reproducible references."""
    return SimulatorProcessor(SimulatorConfig(seed=42))


@pytest.fixture
def order_book() -> InMemoryOrderBook:
    return InMemoryOrderBook(SHOP_URL)


@pytest.fixture
def make_order(order_book):
    """Factory adding orders to the in-memory order book."""
    def _make(order_id: int = 100, total: str = "19.99", status: str = PENDING, **kwargs) -> Order:
        return order_book.add_order(Order(
            id=order_id,
            number=str(order_id),
            total=Decimal(total),
            status=status,
            billing={
                "first_name": "Maria",
                "last_name": "Silva",
                "email": "maria@example.com",
                "address_1": "Rua Augusta 10",
                "city": "Lisboa",
                "postcode": "1100-053",
                "country": "PT",
            },
            **kwargs,
        ))
    return _make


@pytest.fixture
def auth_headers():
    """Return headers with admin authentication."""
    return {"Authorization": "Bearer test_api_key_12345"}


# Database fixtures
@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    session_factory = get_async_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session) -> PaymentRecordStore:
    return PaymentRecordStore(db_session)


@pytest.fixture
def adapter(order_book, store) -> OrderAdapter:
    return OrderAdapter(order_book, store)


@pytest.fixture
def engine(store, adapter) -> ReconciliationEngine:
    return ReconciliationEngine(store, adapter)


@pytest.fixture
def make_payment(store, adapter, order_book):
    """Factory creating a pending payment record for an order.

    The order is put on hold and gets a payment details note, as checkout
    does.
    """
    async def _make(order: Order, transaction_id: str = "1001", method: PaymentMethod = PaymentMethod.MULTIBANCO):
        note_id = await adapter.add_payment_note(order.id, "Awaiting Payment")
        if method.uses_reference:
            fields = {"reference": "123456789", "entity": "11249", "expires_at": "2099-12-31 23:59:59"}
        else:
            fields = {"token": f"tok_{transaction_id}", "url": f"https://simulator.paypay.local/pay/{transaction_id}"}

        record = await store.create(
            order_id=order.id,
            method=method,
            transaction_id=transaction_id,
            amount=to_minor_units(order.total),
            note_id=note_id,
            **fields,
        )
        await order_book.update_status(order.id, ON_HOLD)
        return record
    return _make


@pytest.fixture
def customer_notes(order_book):
    """Return a helper listing the customer visible notes of an order."""
    def _notes(order_id: int):
        return [note.content for note in order_book.notes_for(order_id) if note.customer_note]
    return _notes
