"""Subscription of the PayPay webhook actions."""

import logging
from typing import List, Optional

from .config import GatewaySettings
from .database import WebhookSubscriptionRepository
from .exceptions import CredentialsError, ProcessorError, ProcessorProtocolError
from .processor import ProcessorClient, WebhookSubscriptionResult
from .reconciliation import WebhookAction

logger = logging.getLogger(__name__)

CREDENTIALS_MESSAGE = "Your credentials are not correct. Please, insert the correct credentials and try again."


class WebhookSubscriber:
    """Subscribes every webhook action to this service's callback URL."""

    def __init__(
        self,
        processor: ProcessorClient,
        settings: GatewaySettings,
        repository: WebhookSubscriptionRepository,
        logger: Optional[logging.Logger] = None,
    ):
        self.processor = processor
        self.settings = settings
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)

    async def subscribe_all(self) -> List[WebhookSubscriptionResult]:
        """Subscribe payment_confirmed, payment_expired and payment_cancelled.

        Accepted subscriptions are recorded. Stops at the first failure.

        Raises:
            CredentialsError: If the webservice call fails.
            ProcessorProtocolError: If PayPay refuses a subscription.
        """
        url = self.settings.webhook_url
        results = []

        for action in WebhookAction:
            try:
                result = self.processor.subscribe_webhook(action.value, url)
            except ProcessorError as e:
                self.logger.error(f"{CREDENTIALS_MESSAGE} ({e})")
                raise CredentialsError(CREDENTIALS_MESSAGE) from e

            if not result.accepted:
                message = result.message or f"Webhook subscription refused: {action.value}"
                self.logger.error(message)
                raise ProcessorProtocolError(message)

            await self.repository.record(action.value, url, self.settings.client_id)
            self.logger.info(f"Subscribed webhook {action.value} -> {url}")
            results.append(result)

        return results
