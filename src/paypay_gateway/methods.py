"""Payment method handlers.

Each PayPay payment method is served by a handler class registered in
METHOD_HANDLERS. A handler starts a payment at the processor for an order
and knows how to lay out the payment details shown to the customer.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from .config import GatewaySettings
from .conversions import from_minor_units, to_minor_units
from .database import PaymentMethod
from .orders import Order, OrderBook
from .processor import (
    Address,
    BuyerInfo,
    CardPaymentRequest,
    ProcessorClient,
    ReferenceRequest,
)

logger = logging.getLogger(__name__)


@dataclass
class RedirectInfo:
    """Where to send the customer after starting a payment."""
    redirect: str
    transaction_id: str
    amount: int
    result: str = "success"
    # Method specific record columns (reference, entity, token, url...)
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentLayout:
    """Display model of the payment details of an order."""
    method: PaymentMethod
    title: str
    rows: List[tuple] = field(default_factory=list)
    link: Optional[str] = None

    def render_text(self) -> str:
        lines = [self.title]
        lines.extend(f"{label}: {value}" for label, value in self.rows)
        if self.link:
            lines.append(self.link)
        return "\n".join(lines)


def format_reference(reference: str) -> str:
    """Split a Multibanco reference in groups of three digits."""
    reference = str(reference or "")
    return " ".join(reference[i:i + 3] for i in range(0, len(reference), 3))


def format_amount(amount: int) -> str:
    return f"{from_minor_units(amount)} €"


def _address(data: Dict[str, str]) -> Optional[Address]:
    if not data:
        return None
    return Address(
        country=data.get("country"),
        state=data.get("state"),
        state_name=data.get("state_name"),
        city=data.get("city"),
        street1=data.get("address_1"),
        street2=data.get("address_2"),
        post_code=data.get("postcode"),
    )


class PaymentMethodHandler(ABC):
    """Starts payments for one PayPay payment method."""

    method: PaymentMethod

    def __init__(
        self,
        processor: ProcessorClient,
        settings: GatewaySettings,
        order_book: OrderBook,
    ):
        self.processor = processor
        self.settings = settings
        self.order_book = order_book

    @abstractmethod
    def initiate(self, order: Order) -> RedirectInfo:
        """Create the payment at PayPay.

        Raises:
            ProcessorError: If the webservice call fails.
            InvalidAmountError: If the order total has more than two decimals.
        """
        raise NotImplementedError

    @abstractmethod
    def payment_layout(self, data: Dict[str, Any]) -> PaymentLayout:
        """Build the display model from stored payment data."""
        raise NotImplementedError

    @abstractmethod
    def record_fields(self, result: Any) -> Dict[str, Any]:
        """Method specific columns to store for a processor result."""
        raise NotImplementedError


class MultibancoHandler(PaymentMethodHandler):
    """Multibanco entity/reference payments, paid at ATMs or home banking."""

    method = PaymentMethod.MULTIBANCO
    title = "You can use the following information to pay your order in an ATM."

    def initiate(self, order: Order) -> RedirectInfo:
        amount = to_minor_units(order.total)
        result = self.processor.create_reference(ReferenceRequest(
            amount=amount,
            order_ref=str(order.number),
            method_code=self.method.value,
        ))
        logger.info(f"Multibanco reference issued for order {order.id} (transaction {result.transaction_id})")

        return RedirectInfo(
            redirect=self.order_book.return_url(order),
            transaction_id=result.transaction_id,
            amount=amount,
            fields=self.record_fields(result),
        )

    def record_fields(self, result) -> Dict[str, Any]:
        return {
            "reference": result.reference,
            "entity": result.entity,
            "expires_at": result.expiry,
        }

    def payment_layout(self, data: Dict[str, Any]) -> PaymentLayout:
        rows = [
            ("Entity", data.get("entity")),
            ("Reference", format_reference(data.get("reference"))),
            ("Amount", format_amount(data["amount"])),
        ]
        if data.get("expires_at"):
            rows.append(("Expiry date", data["expires_at"]))
        return PaymentLayout(method=self.method, title=self.title, rows=rows)


class CreditCardHandler(PaymentMethodHandler):
    """Redirect payments on the PayPay hosted page."""

    method = PaymentMethod.CREDIT_CARD
    title = "Use the link below to pay your order."

    def initiate(self, order: Order) -> RedirectInfo:
        amount = to_minor_units(order.total)
        customer = order.customer or order.billing
        result = self.processor.create_card_payment(CardPaymentRequest(
            amount=amount,
            order_ref=str(order.number),
            method_code=self.method.value,
            buyer=BuyerInfo(
                first_name=customer.get("first_name"),
                last_name=customer.get("last_name"),
                email=customer.get("email"),
                customer_id=customer.get("id"),
            ),
            billing=_address(order.billing),
            shipping=_address(order.shipping),
            return_url=self.order_book.return_url(order),
            cancel_url=self.settings.cancel_url(order.id),
        ))
        logger.info(f"{self.method.name} payment created for order {order.id} (transaction {result.transaction_id})")

        return RedirectInfo(
            redirect=result.url,
            transaction_id=result.transaction_id,
            amount=amount,
            fields=self.record_fields(result),
        )

    def record_fields(self, result) -> Dict[str, Any]:
        return {"token": result.token, "url": result.url}

    def payment_layout(self, data: Dict[str, Any]) -> PaymentLayout:
        return PaymentLayout(
            method=self.method,
            title=self.title,
            rows=[("Amount", format_amount(data["amount"]))],
            link=data.get("url"),
        )


class MbWayHandler(CreditCardHandler):
    """MB WAY payments, confirmed in the customer's phone app."""

    method = PaymentMethod.MB_WAY
    title = "Use the link below to pay your order with MB WAY."


METHOD_HANDLERS: Dict[PaymentMethod, Type[PaymentMethodHandler]] = {
    PaymentMethod.MULTIBANCO: MultibancoHandler,
    PaymentMethod.CREDIT_CARD: CreditCardHandler,
    PaymentMethod.MB_WAY: MbWayHandler,
}


def get_method_handler(
    method: PaymentMethod,
    processor: ProcessorClient,
    settings: GatewaySettings,
    order_book: OrderBook,
) -> PaymentMethodHandler:
    """Instantiate the handler registered for a payment method.

    Raises:
        ValueError: If no handler is registered for the method.
    """
    handler_class = METHOD_HANDLERS.get(PaymentMethod(method))
    if handler_class is None:
        raise ValueError(f"Payment method not supported: {method}")
    return handler_class(processor, settings, order_book)
