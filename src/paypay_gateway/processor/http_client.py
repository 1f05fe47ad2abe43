"""PayPay webservice client.

Operations are posted as JSON documents to ``<webservice_url>/<operation>``.
Every request carries a ``requestInfo`` block identifying the merchant
account; every response carries an ``integrationState`` block whose
``state`` is 1 when the request was accepted.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..config import GatewaySettings
from ..exceptions import ProcessorProtocolError, ProcessorUnreachableError
from .base import (
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

# Fields never written to the logs
SENSITIVE_FIELDS = {"hash", "token", "privateKey"}


def _scrub(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: "***" if key in SENSITIVE_FIELDS else _scrub(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [_scrub(item) for item in data]
    return data


def _address(address) -> Optional[Dict[str, Any]]:
    if address is None:
        return None
    return {
        "country": address.country,
        "state": address.state,
        "stateName": address.state_name,
        "city": address.city,
        "street1": address.street1,
        "street2": address.street2,
        "postCode": address.post_code,
    }


class PayPayClient(ProcessorClient):
    """
    Client for the PayPay webservice using httpx. Configured from
    GatewaySettings; an httpx.Client may be injected (tests use
    httpx.MockTransport).
    """

    def __init__(self, settings: GatewaySettings, http_client: Optional[httpx.Client] = None):
        self.settings = settings
        self._http = http_client or httpx.Client(timeout=settings.timeout)

    def _request_info(self) -> Dict[str, Any]:
        date_calc = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        digest = hashlib.sha256(
            f"{self.settings.private_key}{date_calc}".encode()
        ).hexdigest()
        return {
            "platformCode": self.settings.platform_code,
            "clientId": self.settings.client_id,
            "langCode": self.settings.lang_code,
            "dateCalc": date_calc,
            "hash": digest,
        }

    def _call(self, operation: str, payload: Dict[str, Any], check_state: bool = True) -> Dict[str, Any]:
        url = f"{self.settings.webservice_url}/{operation}"
        body = {"requestInfo": self._request_info(), **payload}
        logger.debug(f"PayPay {operation} request: {_scrub(body)}")

        try:
            response = self._http.post(url, json=body)
        except httpx.HTTPError as e:
            logger.error(f"PayPay {operation} unreachable: {e}")
            raise ProcessorUnreachableError(f"PayPay webservice unreachable: {e}") from e

        if response.status_code >= 400:
            raise ProcessorProtocolError(
                f"PayPay {operation} returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProcessorProtocolError(f"PayPay {operation} returned an invalid response") from e

        if not isinstance(data, dict):
            raise ProcessorProtocolError(f"PayPay {operation} returned an invalid response")

        logger.debug(f"PayPay {operation} response: {_scrub(data)}")

        if check_state:
            integration = data.get("integrationState") or {}
            if int(integration.get("state") or 0) != 1:
                raise ProcessorProtocolError(
                    integration.get("message") or f"PayPay {operation} was refused",
                    code=integration.get("code"),
                )
        return data

    def create_reference(self, request: ReferenceRequest) -> ReferenceResult:
        data = self._call("createPaymentReference", {
            "amount": request.amount,
            "productCode": request.order_ref,
            "paymentOptions": [{"code": request.method_code, "paymentMethodType": "DEFAULT"}],
        })
        if int(data.get("state") or 0) != 1 or not data.get("idPayment"):
            raise ProcessorProtocolError("Invalid PayPay MB response")

        return ReferenceResult(
            reference=str(data["reference"]),
            entity=str(data["atmEntity"]),
            amount=int(data["amount"]),
            expiry=data.get("validEndDate"),
            transaction_id=str(data["idPayment"]),
        )

    def create_card_payment(self, request: CardPaymentRequest) -> CardPaymentResult:
        data = self._call("doWebPayment", {
            "paymentOrder": {
                "amount": request.amount,
                "productCode": request.order_ref,
            },
            "method": request.method_code,
            "returnUrlSuccess": request.return_url,
            "returnUrlCancel": request.cancel_url,
            "returnUrlBack": request.return_url,
            "buyerInfo": {
                "firstName": request.buyer.first_name,
                "lastName": request.buyer.last_name,
                "email": request.buyer.email,
                "customerId": request.buyer.customer_id,
            },
            "billingAddress": _address(request.billing),
            "shippingAddress": _address(request.shipping),
        })
        if not data.get("url") or not data.get("idTransaction"):
            raise ProcessorProtocolError("Invalid PayPay payment response")

        return CardPaymentResult(
            url=data["url"],
            transaction_id=str(data["idTransaction"]),
            token=data.get("token"),
        )

    def subscribe_webhook(self, action: str, callback_url: str) -> WebhookSubscriptionResult:
        data = self._call(
            "subscribeToWebhook",
            {"action": action, "url": callback_url},
            check_state=False,
        )
        integration = data.get("integrationState") or {}
        return WebhookSubscriptionResult(
            action=action,
            accepted=bool(integration.get("state")),
            message=integration.get("message"),
        )

    def check_batch_status(self, transaction_ids: List[str]) -> List[PaymentStatusResult]:
        requested = [str(t) for t in transaction_ids]
        data = self._call("checkEntityPayments", {
            "payments": [{"paymentId": t} for t in requested],
        })

        results = []
        for index, payment in enumerate(data.get("payments") or []):
            transaction_id = payment.get("paymentId")
            if not transaction_id and index < len(requested):
                transaction_id = requested[index]
            state = payment.get("paymentState")
            results.append(PaymentStatusResult(
                transaction_id=str(transaction_id) if transaction_id else None,
                state=int(state) if state not in (None, "") else None,
                cancelled=int(payment.get("paymentCancelled") or 0),
                amount=payment.get("paymentAmount"),
                date=payment.get("paymentDate"),
                code=payment.get("code"),
            ))
        return results

    def validate_reference(self, amount: int) -> List[PaymentOption]:
        data = self._call("validatePaymentReference", {"amount": amount})
        return [
            PaymentOption(
                code=option["code"],
                name=option.get("name") or option["code"],
                description=option.get("description"),
                icon_url=option.get("iconUrl"),
            )
            for option in data.get("paymentOptions") or []
        ]

    def close(self) -> None:
        self._http.close()
