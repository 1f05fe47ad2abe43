# paypay_gateway package
__version__ = "0.1.0"

from .config import GatewaySettings
from .database import (
    PaymentMethod,
    PaymentState,
    PaymentRecordStore,
    init_db,
    close_db,
    get_db,
)
from .orders import Order, OrderBook, OrderAdapter, InMemoryOrderBook
from .checkout import CheckoutService, CheckoutResult
from .methods import METHOD_HANDLERS, get_method_handler

# Reconciliation exports
from .reconciliation import (
    ReconciliationEngine,
    WebhookDispatcher,
    PollingReconciler,
    ProcessorStatus,
    ReconciliationOutcome,
    PollSummary,
)
