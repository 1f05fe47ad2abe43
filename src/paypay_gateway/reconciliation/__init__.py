"""Reconciliation of PayPay payment states onto shop orders.

Payment states reach the service through two channels:
- Webhook deliveries, handled by WebhookDispatcher
- Poll sweeps, handled by PollingReconciler

Both feed ProcessorStatus values to the ReconciliationEngine, which applies
conditional record transitions and drives the order side effects.
"""

from .models import (
    WebhookAction,
    StatusKind,
    OutcomeType,
    OUTCOME_STATUS_CODES,
    EventKind,
    PaymentNotification,
    ProcessorStatus,
    ReconciliationEvent,
    ReconciliationOutcome,
    PollSummary,
)
from .engine import ReconciliationEngine
from .webhook import WebhookDispatcher, overall_status, parse_action, parse_payments
from .poller import PollingReconciler, status_kind

__all__ = [
    # Models
    "WebhookAction",
    "StatusKind",
    "OutcomeType",
    "OUTCOME_STATUS_CODES",
    "EventKind",
    "PaymentNotification",
    "ProcessorStatus",
    "ReconciliationEvent",
    "ReconciliationOutcome",
    "PollSummary",
    # Core Components
    "ReconciliationEngine",
    "WebhookDispatcher",
    "parse_action",
    "parse_payments",
    "overall_status",
    "PollingReconciler",
    "status_kind",
]
