"""HTTP API of the PayPay gateway service.

Public routes receive PayPay webhooks and customer redirects; checkout
routes are called by the shop; admin routes require the API key.
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from . import __version__
from .auth import RECONCILE_RATE_LIMIT, limiter, verify_api_key
from .checkout import CheckoutResult, CheckoutService
from .config import GatewaySettings
from .database import (
    PaymentMethod,
    PaymentRecordStore,
    WebhookSubscriptionRepository,
    close_db,
    get_db,
    init_db,
)
from .exceptions import InvalidAmountError, OrderNotFoundError, PayPayError, ProcessorError
from .orders import InMemoryOrderBook, OrderAdapter, OrderBook
from .processor import ProcessorClient, get_processor
from .reconciliation import PollingReconciler, ReconciliationEngine, WebhookDispatcher
from .subscriptions import WebhookSubscriber

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="PayPay Gateway", version=__version__, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Process wide collaborators, replaced through dependency overrides in tests
_processor: Optional[ProcessorClient] = None
_order_book: OrderBook = InMemoryOrderBook()


def get_settings() -> GatewaySettings:
    return GatewaySettings.from_env()


def get_processor_client(settings: GatewaySettings = Depends(get_settings)) -> ProcessorClient:
    global _processor
    if _processor is None:
        _processor = get_processor(settings)
    return _processor


def get_order_book() -> OrderBook:
    return _order_book


def get_store(db: AsyncSession = Depends(get_db)) -> PaymentRecordStore:
    return PaymentRecordStore(db)


def get_order_adapter(
    order_book: OrderBook = Depends(get_order_book),
    store: PaymentRecordStore = Depends(get_store),
) -> OrderAdapter:
    return OrderAdapter(order_book, store)


def get_engine(
    store: PaymentRecordStore = Depends(get_store),
    orders: OrderAdapter = Depends(get_order_adapter),
) -> ReconciliationEngine:
    return ReconciliationEngine(store, orders)


def get_checkout_service(
    store: PaymentRecordStore = Depends(get_store),
    orders: OrderAdapter = Depends(get_order_adapter),
    processor: ProcessorClient = Depends(get_processor_client),
    settings: GatewaySettings = Depends(get_settings),
) -> CheckoutService:
    return CheckoutService(store, orders, processor, settings)


class CheckoutBody(BaseModel):
    method: PaymentMethod


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@app.post("/webhooks/paypay")
async def paypay_webhook(request: Request, engine: ReconciliationEngine = Depends(get_engine)):
    """
    Receive a PayPay webhook delivery.

    The response status is the worst status among the delivered payments;
    PayPay redelivers requests answered with an error.
    """
    try:
        body = await request.json()
    except ValueError:
        logger.error("Webhook request body is not valid JSON")
        return Response(status_code=400)

    if not isinstance(body, dict):
        return Response(status_code=400)

    dispatcher = WebhookDispatcher(engine)
    status_code = await dispatcher.handle(body.get("hookAction"), body.get("payments"))
    return Response(status_code=status_code)


@app.get("/paypay/cancel")
async def cancel_payment(
    order_id: int = Query(..., description="Order abandoned by the customer"),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Customer came back from the payment page without paying."""
    try:
        redirect = await checkout.cancel_by_customer(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return RedirectResponse(redirect, status_code=303)


@app.get("/checkout/payment-options")
async def payment_options(
    total: Decimal = Query(..., description="Order total"),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    try:
        options = checkout.available_options(total)
    except InvalidAmountError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProcessorError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return [option.model_dump() for option in options]


@app.post("/checkout/{order_id}", response_model=CheckoutResult)
async def start_checkout(
    order_id: int,
    body: CheckoutBody,
    checkout: CheckoutService = Depends(get_checkout_service),
):
    try:
        return await checkout.initiate(order_id, body.method)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidAmountError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/orders/{order_id}/payment-note")
async def payment_note(order_id: int, orders: OrderAdapter = Depends(get_order_adapter)):
    note = await orders.current_note(order_id)
    if note is None:
        raise HTTPException(status_code=404, detail="No payment note for this order")
    return {
        "order_id": order_id,
        "note_id": note.id,
        "content": note.content,
        "customer_note": note.customer_note,
    }


@app.post("/admin/reconcile")
@limiter.limit(RECONCILE_RATE_LIMIT)
async def reconcile(
    request: Request,
    store: PaymentRecordStore = Depends(get_store),
    engine: ReconciliationEngine = Depends(get_engine),
    processor: ProcessorClient = Depends(get_processor_client),
    api_key: str = Depends(verify_api_key),
):
    """
    Check every pending payment at PayPay.

    Returns the sweep counters, the events to show to the merchant and the
    orders that could not be reconciled.
    """
    reconciler = PollingReconciler(store, processor, engine)
    try:
        summary = await reconciler.reconcile_pending()
    except ProcessorError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return summary.model_dump(mode="json")


@app.post("/admin/webhooks/subscribe")
async def subscribe_webhooks(
    db: AsyncSession = Depends(get_db),
    processor: ProcessorClient = Depends(get_processor_client),
    settings: GatewaySettings = Depends(get_settings),
    api_key: str = Depends(verify_api_key),
) -> List[dict]:
    try:
        settings.validate_credentials()
    except PayPayError as e:
        raise HTTPException(status_code=400, detail=str(e))

    subscriber = WebhookSubscriber(processor, settings, WebhookSubscriptionRepository(db))
    try:
        results = await subscriber.subscribe_all()
    except ProcessorError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return [result.model_dump() for result in results]
