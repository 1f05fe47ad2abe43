from abc import ABC, abstractmethod
from typing import Optional, List, Any
from pydantic import BaseModel, Field

# Result code PayPay returns for an unknown payment in a status inquiry
PAYMENT_NOT_FOUND_CODE = "0062"


# Canonical models
class BuyerInfo(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    customer_id: Optional[str] = None


class Address(BaseModel):
    country: Optional[str] = None
    state: Optional[str] = None
    state_name: Optional[str] = None
    city: Optional[str] = None
    street1: Optional[str] = None
    street2: Optional[str] = None
    post_code: Optional[str] = None


class ReferenceRequest(BaseModel):
    amount: int  # order total without decimal separator
    order_ref: str
    method_code: str = "MB"


class ReferenceResult(BaseModel):
    reference: str
    entity: str
    amount: int
    expiry: Optional[str] = None
    transaction_id: str


class CardPaymentRequest(BaseModel):
    amount: int
    order_ref: str
    method_code: str = "CC"
    buyer: BuyerInfo = Field(default_factory=BuyerInfo)
    billing: Optional[Address] = None
    shipping: Optional[Address] = None
    return_url: str
    cancel_url: str


class CardPaymentResult(BaseModel):
    url: str
    transaction_id: str
    token: Optional[str] = None


class WebhookSubscriptionResult(BaseModel):
    action: str
    accepted: bool
    message: Optional[str] = None


class PaymentStatusResult(BaseModel):
    """One entry of a batched status inquiry."""
    transaction_id: Optional[str] = None
    state: Optional[int] = None  # 1 paid, 0 not paid, None when unknown
    cancelled: int = 0
    amount: Optional[Any] = None
    date: Optional[str] = None
    code: Optional[str] = None

    @property
    def not_found(self) -> bool:
        return not self.state and self.code == PAYMENT_NOT_FOUND_CODE


class PaymentOption(BaseModel):
    code: str
    name: str
    description: Optional[str] = None
    icon_url: Optional[str] = None


class ProcessorClient(ABC):
    """
    PayPay webservice contract. Every call is blocking and raises a
    ProcessorError subclass on failure; nothing is retried.
    """

    @abstractmethod
    def create_reference(self, request: ReferenceRequest) -> ReferenceResult:
        """
        Issue a Multibanco entity/reference pair for an order.
        """
        raise NotImplementedError

    @abstractmethod
    def create_card_payment(self, request: CardPaymentRequest) -> CardPaymentResult:
        """
        Create a redirect payment (credit card, MB WAY) and return its URL.
        """
        raise NotImplementedError

    @abstractmethod
    def subscribe_webhook(self, action: str, callback_url: str) -> WebhookSubscriptionResult:
        raise NotImplementedError

    @abstractmethod
    def check_batch_status(self, transaction_ids: List[str]) -> List[PaymentStatusResult]:
        """
        Query the status of several payments in a single request. Results
        come back in request order.
        """
        raise NotImplementedError

    @abstractmethod
    def validate_reference(self, amount: int) -> List[PaymentOption]:
        """
        List the payment methods available for an amount.
        """
        raise NotImplementedError
