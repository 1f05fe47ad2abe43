"""Checkout service: starts PayPay payments and handles customer cancels."""

import logging
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .config import GatewaySettings
from .conversions import to_minor_units
from .database import PaymentMethod, PaymentRecordStore, PaymentState
from .exceptions import ProcessorError
from .methods import get_method_handler
from .orders import NoteKind, OrderAdapter
from .processor import PaymentOption, ProcessorClient

logger = logging.getLogger(__name__)


class CheckoutResult(BaseModel):
    """Answer given to the shop checkout."""
    result: str = Field(..., description="success or failed")
    redirect: str = Field(..., description="URL to send the customer to")
    transaction_id: Optional[str] = None
    message: Optional[str] = None


class CheckoutService:
    """Service for starting and abandoning PayPay payments."""

    def __init__(
        self,
        store: PaymentRecordStore,
        orders: OrderAdapter,
        processor: ProcessorClient,
        settings: GatewaySettings,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the checkout service.

        Args:
            store: Payment record store.
            orders: Adapter to the host shop orders.
            processor: PayPay webservice client.
            settings: Gateway settings.
            logger: Optional logger, defaults to the module logger.
        """
        self.store = store
        self.orders = orders
        self.processor = processor
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)

    async def initiate(self, order_id: int, method: PaymentMethod) -> CheckoutResult:
        """Start a payment for an order.

        Processor failures are logged and reported as a failed result so
        the customer can pick another method.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidAmountError: If the order total has more than two decimals.
        """
        method = PaymentMethod(method)
        order = await self.orders.get_order(order_id)
        handler = get_method_handler(method, self.processor, self.settings, self.orders.order_book)

        try:
            info = handler.initiate(order)
        except ProcessorError as e:
            self.logger.error(f"Payment creation failed for order {order.id}: {e}")
            return CheckoutResult(
                result="failed",
                redirect=self.orders.return_url(order),
                message=str(e),
            )

        layout = handler.payment_layout({**info.fields, "amount": info.amount})
        note_id = await self.orders.add_payment_note(order.id, layout.render_text())

        await self.store.create(
            order_id=order.id,
            method=method,
            transaction_id=info.transaction_id,
            amount=info.amount,
            note_id=note_id,
            **info.fields,
        )
        await self.orders.await_payment(order, info.transaction_id)

        return CheckoutResult(
            result=info.result,
            redirect=info.redirect,
            transaction_id=info.transaction_id,
        )

    async def cancel_by_customer(self, order_id: int) -> str:
        """Cancel the pending payment of an order abandoned by the customer.

        Returns:
            URL of the order page to redirect the customer to.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        order = await self.orders.get_order(order_id)

        cancelled = 0
        for record in await self.store.list_for_order(order.id):
            if not record.is_pending:
                continue
            if await self.store.update_state(order.id, record.payment_method, PaymentState.CANCELLED):
                cancelled += 1

        self.logger.info(f"Order {order.id} cancelled by customer ({cancelled} pending payment(s))")

        if await self.orders.cancel_payment(order, NoteKind.CANCELLED_BY_CUSTOMER):
            await self.orders.replace_note(order.id, NoteKind.CANCELLED_BY_CUSTOMER)

        return self.orders.return_url(order)

    def available_options(self, total: Union[Decimal, str]) -> List[PaymentOption]:
        """List the payment methods PayPay accepts for an order total.

        Raises:
            InvalidAmountError: If the total has more than two decimals.
            ProcessorError: If the webservice call fails.
        """
        return self.processor.validate_reference(to_minor_units(total))
