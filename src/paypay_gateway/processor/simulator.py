"""Simulator processor for exercising payment flows without the PayPay webservice."""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..exceptions import ProcessorProtocolError, ProcessorUnreachableError
from .base import (
    PAYMENT_NOT_FOUND_CODE,
    CardPaymentRequest,
    CardPaymentResult,
    PaymentOption,
    PaymentStatusResult,
    ProcessorClient,
    ReferenceRequest,
    ReferenceResult,
    WebhookSubscriptionResult,
)

logger = logging.getLogger(__name__)


@dataclass
class SimulatedTransaction:
    """In-memory representation of a simulated PayPay payment."""
    id: str
    amount: int
    method_code: str
    order_ref: str
    state: int = 0
    cancelled: int = 0
    paid_amount: Optional[int] = None
    paid_at: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    entity: str = "11249"
    unreachable: bool = False  # every call fails as if the network was down
    refuse_webhooks: bool = False
    payment_methods: List[str] = field(default_factory=lambda: ["MB", "CC", "MW"])
    seed: Optional[int] = None  # Random seed for reproducible references


class SimulatorProcessor(ProcessorClient):
    """
    Simulator processor for tests and local development.

    Features:
    - In-memory transaction storage
    - Test controls to settle, cancel or forget transactions
    - Unreachable and webhook refusal simulation
    - Counters of batched status inquiries
    """

    METHOD_NAMES = {
        "MB": "Multibanco",
        "CC": "Cartão de Crédito/Débito",
        "MW": "MB WAY",
    }

    def __init__(self, config: Optional[SimulatorConfig] = None):
        """Initialize the simulator with optional configuration."""
        self.config = config or SimulatorConfig()
        self._transactions: Dict[str, SimulatedTransaction] = {}
        self._rng = random.Random(self.config.seed)
        self._next_id = 1000
        self.batch_calls: List[List[str]] = []
        self.subscriptions: Dict[str, str] = {}
        logger.info("SimulatorProcessor initialized")

    def _check_reachable(self) -> None:
        if self.config.unreachable:
            raise ProcessorUnreachableError("Simulated PayPay outage")

    def _generate_id(self) -> str:
        """Generate a unique simulator transaction ID."""
        self._next_id += 1
        return str(self._next_id)

    def _store(self, amount: int, method_code: str, order_ref: str) -> SimulatedTransaction:
        txn = SimulatedTransaction(
            id=self._generate_id(),
            amount=amount,
            method_code=method_code,
            order_ref=order_ref,
        )
        self._transactions[txn.id] = txn
        return txn

    def create_reference(self, request: ReferenceRequest) -> ReferenceResult:
        """Issue a simulated Multibanco reference."""
        self._check_reachable()
        if request.amount <= 0:
            raise ProcessorProtocolError("Invalid PayPay MB response", code="0010")

        txn = self._store(request.amount, request.method_code, request.order_ref)
        reference = "".join(str(self._rng.randint(0, 9)) for _ in range(9))
        return ReferenceResult(
            reference=reference,
            entity=self.config.entity,
            amount=request.amount,
            expiry="2099-12-31 23:59:59",
            transaction_id=txn.id,
        )

    def create_card_payment(self, request: CardPaymentRequest) -> CardPaymentResult:
        """Create a simulated redirect payment."""
        self._check_reachable()
        txn = self._store(request.amount, request.method_code, request.order_ref)
        token = f"tok_{txn.id}_{self._rng.randint(1000, 9999)}"
        return CardPaymentResult(
            url=f"https://simulator.paypay.local/pay/{txn.id}",
            transaction_id=txn.id,
            token=token,
        )

    def subscribe_webhook(self, action: str, callback_url: str) -> WebhookSubscriptionResult:
        """Accept or refuse a webhook subscription."""
        self._check_reachable()
        if self.config.refuse_webhooks:
            return WebhookSubscriptionResult(
                action=action,
                accepted=False,
                message="Webhook subscription refused by simulator",
            )
        self.subscriptions[action] = callback_url
        return WebhookSubscriptionResult(action=action, accepted=True)

    def check_batch_status(self, transaction_ids: List[str]) -> List[PaymentStatusResult]:
        """Report the simulated status of several payments."""
        self._check_reachable()
        self.batch_calls.append([str(t) for t in transaction_ids])

        results = []
        for transaction_id in transaction_ids:
            txn = self._transactions.get(str(transaction_id))
            if txn is None:
                results.append(PaymentStatusResult(
                    transaction_id=str(transaction_id),
                    state=None,
                    code=PAYMENT_NOT_FOUND_CODE,
                ))
                continue
            results.append(PaymentStatusResult(
                transaction_id=txn.id,
                state=txn.state,
                cancelled=txn.cancelled,
                amount=txn.paid_amount if txn.paid_amount is not None else txn.amount,
                date=txn.paid_at,
                code="0000",
            ))
        return results

    def validate_reference(self, amount: int) -> List[PaymentOption]:
        """List the configured payment methods."""
        self._check_reachable()
        return [
            PaymentOption(
                code=code,
                name=self.METHOD_NAMES.get(code, code),
                description=self.METHOD_NAMES.get(code, code),
            )
            for code in self.config.payment_methods
        ]

    # Test controls

    def get_transaction(self, transaction_id: str) -> Optional[SimulatedTransaction]:
        return self._transactions.get(str(transaction_id))

    def register(self, transaction_id: str, amount: int, method_code: str = "MB") -> SimulatedTransaction:
        """Register a transaction created outside the simulator."""
        txn = SimulatedTransaction(
            id=str(transaction_id),
            amount=amount,
            method_code=method_code,
            order_ref=str(transaction_id),
        )
        self._transactions[txn.id] = txn
        return txn

    def settle(self, transaction_id: str, amount: Optional[int] = None, paid_at: str = "2024-06-01 12:00:00") -> None:
        """Mark a transaction paid, optionally with a different amount."""
        txn = self._transactions[str(transaction_id)]
        txn.state = 1
        txn.paid_amount = amount
        txn.paid_at = paid_at

    def cancel(self, transaction_id: str) -> None:
        """Mark a transaction cancelled or expired."""
        txn = self._transactions[str(transaction_id)]
        txn.state = 0
        txn.cancelled = 1

    def forget(self, transaction_id: str) -> None:
        """Drop a transaction so that inquiries report it unknown."""
        self._transactions.pop(str(transaction_id), None)
