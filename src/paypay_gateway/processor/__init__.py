"""PayPay webservice clients."""

from ..config import SIMULATOR, GatewaySettings
from .base import (
    PAYMENT_NOT_FOUND_CODE,
    ProcessorClient,
    BuyerInfo,
    Address,
    ReferenceRequest,
    ReferenceResult,
    CardPaymentRequest,
    CardPaymentResult,
    WebhookSubscriptionResult,
    PaymentStatusResult,
    PaymentOption,
)
from .http_client import PayPayClient
from .simulator import (
    SimulatorProcessor,
    SimulatorConfig,
    SimulatedTransaction,
)


def get_processor(settings: GatewaySettings) -> ProcessorClient:
    """Return the processor client for the configured environment."""
    if settings.environment == SIMULATOR:
        return SimulatorProcessor()
    return PayPayClient(settings)


__all__ = [
    # Base classes and models
    "PAYMENT_NOT_FOUND_CODE",
    "ProcessorClient",
    "BuyerInfo",
    "Address",
    "ReferenceRequest",
    "ReferenceResult",
    "CardPaymentRequest",
    "CardPaymentResult",
    "WebhookSubscriptionResult",
    "PaymentStatusResult",
    "PaymentOption",
    # Clients
    "PayPayClient",
    "SimulatorProcessor",
    "SimulatorConfig",
    "SimulatedTransaction",
    "get_processor",
]
