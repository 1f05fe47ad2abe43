"""Tests for the PayPay webservice client."""

import hashlib
import json
import pytest
import httpx

from paypay_gateway.config import TESTING, ENVIRONMENT_URLS, GatewaySettings
from paypay_gateway.exceptions import ProcessorProtocolError, ProcessorUnreachableError
from paypay_gateway.processor import (
    BuyerInfo,
    CardPaymentRequest,
    PayPayClient,
    ReferenceRequest,
)

OK = {"state": 1, "code": "0000", "message": "OK"}


class FakeWebservice:
    """Records requests and answers with canned responses."""

    def __init__(self, response=None, status_code=200, error=None):
        self.response = response if response is not None else {"integrationState": OK}
        self.status_code = status_code
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if isinstance(self.response, str):
            return httpx.Response(self.status_code, text=self.response)
        return httpx.Response(self.status_code, json=self.response)

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def client_settings():
    return GatewaySettings(
        environment=TESTING,
        platform_code="0004",
        private_key="Y1JgnTGN2lMOz8OE",
        client_id="510542700",
        site_url="https://shop.example.com",
    )


def make_client(settings, webservice):
    return PayPayClient(settings, http_client=httpx.Client(transport=httpx.MockTransport(webservice)))


class TestRequests:
    """Tests for request construction."""

    def test_request_info(self, client_settings):
        webservice = FakeWebservice({"integrationState": OK, "paymentOptions": []})
        client = make_client(client_settings, webservice)

        client.validate_reference(1999)

        request = webservice.requests[0]
        assert str(request.url) == f"{ENVIRONMENT_URLS[TESTING]}/validatePaymentReference"
        body = webservice.last_body
        info = body["requestInfo"]
        assert info["platformCode"] == "0004"
        assert info["clientId"] == "510542700"
        assert info["langCode"] == "PT"
        expected = hashlib.sha256(f"Y1JgnTGN2lMOz8OE{info['dateCalc']}".encode()).hexdigest()
        assert info["hash"] == expected
        assert "Y1JgnTGN2lMOz8OE" not in request.content.decode()
        assert body["amount"] == 1999

    def test_create_reference(self, client_settings):
        webservice = FakeWebservice({
            "integrationState": OK,
            "state": 1,
            "idPayment": 12345,
            "reference": "123456789",
            "atmEntity": "11249",
            "amount": 1999,
            "validEndDate": "2024-06-30 23:59:59",
        })
        client = make_client(client_settings, webservice)

        result = client.create_reference(ReferenceRequest(amount=1999, order_ref="100"))

        assert result.transaction_id == "12345"
        assert result.reference == "123456789"
        assert result.entity == "11249"
        assert result.expiry == "2024-06-30 23:59:59"
        assert webservice.last_body["paymentOptions"] == [{"code": "MB", "paymentMethodType": "DEFAULT"}]

    def test_create_reference_without_payment_id(self, client_settings):
        webservice = FakeWebservice({"integrationState": OK, "state": 0})
        client = make_client(client_settings, webservice)

        with pytest.raises(ProcessorProtocolError):
            client.create_reference(ReferenceRequest(amount=1999, order_ref="100"))

    def test_create_card_payment(self, client_settings):
        webservice = FakeWebservice({
            "integrationState": OK,
            "url": "https://paypay.pt/pay/abc",
            "idTransaction": 777,
            "token": "tok_abc",
        })
        client = make_client(client_settings, webservice)

        result = client.create_card_payment(CardPaymentRequest(
            amount=500,
            order_ref="100",
            method_code="MW",
            buyer=BuyerInfo(first_name="Maria", email="maria@example.com"),
            return_url="https://shop.example.com/checkout/order-received/100",
            cancel_url="https://shop.example.com/paypay/cancel?order_id=100",
        ))

        assert result.url == "https://paypay.pt/pay/abc"
        assert result.transaction_id == "777"
        body = webservice.last_body
        assert body["method"] == "MW"
        assert body["paymentOrder"] == {"amount": 500, "productCode": "100"}
        assert body["returnUrlCancel"].endswith("order_id=100")
        assert body["buyerInfo"]["firstName"] == "Maria"
        assert body["billingAddress"] is None


class TestErrors:
    """Tests for webservice failures."""

    def test_refused_request(self, client_settings):
        webservice = FakeWebservice({"integrationState": {"state": 0, "code": "0013", "message": "Invalid hash"}})
        client = make_client(client_settings, webservice)

        with pytest.raises(ProcessorProtocolError) as exc_info:
            client.validate_reference(1999)

        assert str(exc_info.value) == "Invalid hash"
        assert exc_info.value.code == "0013"

    def test_http_error_status(self, client_settings):
        client = make_client(client_settings, FakeWebservice(status_code=500))

        with pytest.raises(ProcessorProtocolError):
            client.validate_reference(1999)

    def test_invalid_json(self, client_settings):
        client = make_client(client_settings, FakeWebservice("<html>maintenance</html>"))

        with pytest.raises(ProcessorProtocolError):
            client.validate_reference(1999)

    def test_unreachable(self, client_settings):
        webservice = FakeWebservice(error=httpx.ConnectError("connection refused"))
        client = make_client(client_settings, webservice)

        with pytest.raises(ProcessorUnreachableError):
            client.check_batch_status(["1001"])


class TestStatusInquiry:
    """Tests for checkEntityPayments."""

    def test_batch_results(self, client_settings):
        webservice = FakeWebservice({
            "integrationState": OK,
            "payments": [
                {"paymentId": "1001", "paymentState": 1, "paymentCancelled": 0,
                 "paymentAmount": 1999, "paymentDate": "2024-06-01 12:00:00", "code": "0000"},
                {"paymentState": 0, "paymentCancelled": 1, "code": "0000"},
                {"paymentId": "1003", "paymentState": "", "code": "0062"},
            ],
        })
        client = make_client(client_settings, webservice)

        results = client.check_batch_status(["1001", "1002", "1003"])

        assert webservice.last_body["payments"] == [
            {"paymentId": "1001"}, {"paymentId": "1002"}, {"paymentId": "1003"},
        ]
        assert len(webservice.requests) == 1
        assert [r.transaction_id for r in results] == ["1001", "1002", "1003"]
        assert results[0].state == 1
        assert results[0].amount == 1999
        assert results[1].cancelled == 1
        assert results[2].state is None
        assert results[2].not_found


class TestWebhookSubscription:
    """Tests for subscribeToWebhook."""

    def test_accepted(self, client_settings):
        client = make_client(client_settings, FakeWebservice())

        result = client.subscribe_webhook("payment_confirmed", "https://shop.example.com/webhooks/paypay")

        assert result.accepted is True

    def test_refused_is_not_raised(self, client_settings):
        webservice = FakeWebservice({"integrationState": {"state": 0, "message": "Invalid URL"}})
        client = make_client(client_settings, webservice)

        result = client.subscribe_webhook("payment_confirmed", "https://shop.example.com/webhooks/paypay")

        assert result.accepted is False
        assert result.message == "Invalid URL"
        assert webservice.last_body["action"] == "payment_confirmed"


class TestPaymentOptions:
    """Tests for validatePaymentReference."""

    def test_options(self, client_settings):
        webservice = FakeWebservice({
            "integrationState": OK,
            "paymentOptions": [
                {"code": "MB", "name": "Multibanco", "iconUrl": "https://paypay.pt/mb.png"},
                {"code": "CC"},
            ],
        })
        client = make_client(client_settings, webservice)

        options = client.validate_reference(1999)

        assert [o.code for o in options] == ["MB", "CC"]
        assert options[0].icon_url == "https://paypay.pt/mb.png"
        assert options[1].name == "CC"
