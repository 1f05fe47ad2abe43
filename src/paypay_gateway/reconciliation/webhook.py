"""Webhook dispatcher for PayPay payment notifications."""

import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from ..exceptions import InvalidWebhookActionError, MalformedWebhookError, WebhookError
from .engine import ReconciliationEngine
from .models import (
    PaymentNotification,
    ProcessorStatus,
    ReconciliationOutcome,
    StatusKind,
    WebhookAction,
)

logger = logging.getLogger(__name__)

ACTION_STATUS = {
    WebhookAction.PAYMENT_CONFIRMED: StatusKind.PAID,
    WebhookAction.PAYMENT_EXPIRED: StatusKind.EXPIRED,
    WebhookAction.PAYMENT_CANCELLED: StatusKind.CANCELLED,
}


def parse_action(action: Any) -> WebhookAction:
    """Resolve a hook action.

    Raises:
        InvalidWebhookActionError: If the action is not a known hook action.
    """
    try:
        return WebhookAction(action)
    except ValueError:
        raise InvalidWebhookActionError(f"Invalid webhook action: {action!r}")


def parse_payments(payments: Any) -> List[PaymentNotification]:
    """Validate every payment entry of a webhook request.

    Raises:
        MalformedWebhookError: If the list is missing, empty or any entry
            is invalid.
    """
    if not isinstance(payments, list) or not payments:
        raise MalformedWebhookError("Webhook request has no payments")

    notifications = []
    for index, payment in enumerate(payments):
        if not isinstance(payment, dict):
            raise MalformedWebhookError(f"Webhook payment {index} is not an object")
        try:
            notifications.append(PaymentNotification.model_validate(payment))
        except ValidationError as e:
            raise MalformedWebhookError(f"Webhook payment {index} is invalid: {e.error_count()} error(s)") from e
    return notifications


def overall_status(outcomes: List[ReconciliationOutcome]) -> int:
    """Highest status among the outcomes, so one failed payment fails the delivery."""
    return max(outcome.status_code for outcome in outcomes)


class WebhookDispatcher:
    """Routes webhook payment notifications to the reconciliation engine.

    Holds no per-request state; one dispatcher can serve any number of
    deliveries.
    """

    def __init__(self, engine: ReconciliationEngine, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    async def dispatch(self, action: Any, payments: Any) -> List[ReconciliationOutcome]:
        """Apply every payment of a webhook request.

        The whole request is validated before any payment is applied. Each
        payment is applied in its own savepoint; a payment that raises is
        rolled back, reported as failed and does not stop the others.

        Raises:
            WebhookError: If the action or the payments list is invalid.
        """
        hook_action = parse_action(action)
        notifications = parse_payments(payments)
        kind = ACTION_STATUS[hook_action]

        outcomes = []
        for notification in notifications:
            self.logger.debug(f"{hook_action.value} received: {notification.model_dump(by_alias=True)}")
            try:
                outcome = await self.engine.apply_atomically(ProcessorStatus(
                    transaction_id=notification.payment_id,
                    kind=kind,
                    amount=notification.payment_amount,
                    date=notification.payment_date,
                    source="webhook",
                ))
            except Exception as e:
                self.logger.error(f"Webhook payment failed: {e} (paymentId: {notification.payment_id})")
                outcome = self.engine.failed_outcome(notification.payment_id)
            outcomes.append(outcome)
        return outcomes

    async def handle(self, action: Any, payments: Any) -> int:
        """Process a webhook request and return the HTTP status for PayPay."""
        try:
            outcomes = await self.dispatch(action, payments)
        except WebhookError as e:
            self.logger.error(str(e))
            return e.status_code

        return overall_status(outcomes)
