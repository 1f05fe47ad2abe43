"""Exceptions raised by the PayPay gateway integration."""

from typing import List, Optional


class PayPayError(Exception):
    """Base class for all gateway errors."""


class RecordNotFoundError(PayPayError):
    """No payment record exists for the given transaction or order."""


class OrderNotFoundError(PayPayError):
    """The host platform has no order with the given id."""


class InvalidAmountError(PayPayError, ValueError):
    """Amount is not a non-negative value with at most two decimal places."""


class WebhookError(PayPayError):
    """Webhook request that must be rejected as a whole.

    Attributes:
        status_code: HTTP status returned to the processor.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class InvalidWebhookActionError(WebhookError):
    """The hook action is not one of the subscribed actions."""


class MalformedWebhookError(WebhookError):
    """The payments list is missing, empty or has invalid entries."""


class ProcessorError(PayPayError):
    """Communication with the PayPay webservice failed."""


class ProcessorUnreachableError(ProcessorError):
    """The webservice could not be reached."""


class ProcessorProtocolError(ProcessorError):
    """The webservice answered with an error or an unexpected payload.

    Attributes:
        code: Processor error code, when one was returned.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class CredentialsError(ProcessorError):
    """The configured credentials were refused by the webservice."""


class SettingsError(PayPayError):
    """Gateway settings failed validation.

    Attributes:
        errors: Human readable validation messages.
    """

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
