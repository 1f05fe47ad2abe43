"""Database module for PayPay payment persistence."""

from .models import (
    Base,
    PaymentState,
    PaymentMethod,
    PaymentRecord,
    PaymentTypeMarker,
    ReferencePayment,
    GatewayPayment,
    WebhookSubscription,
    table_for,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    DatabaseManager,
)
from .repository import (
    PaymentRecordStore,
    WebhookSubscriptionRepository,
)

__all__ = [
    # Models
    "Base",
    "PaymentState",
    "PaymentMethod",
    "PaymentRecord",
    "PaymentTypeMarker",
    "ReferencePayment",
    "GatewayPayment",
    "WebhookSubscription",
    "table_for",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "DatabaseManager",
    # Repositories
    "PaymentRecordStore",
    "WebhookSubscriptionRepository",
]
