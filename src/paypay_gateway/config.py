"""Gateway settings loaded from the environment."""

import os
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .exceptions import SettingsError

logger = logging.getLogger(__name__)

TESTING = "testing"
PRODUCTION = "production"
DEVELOPMENT = "development"
SIMULATOR = "simulator"

ENVIRONMENTS = (TESTING, PRODUCTION, DEVELOPMENT, SIMULATOR)

# Webservice endpoints per environment. PAYPAY_API_URL overrides them and is
# required for the development environment.
ENVIRONMENT_URLS: Dict[str, str] = {
    TESTING: "https://paypay.acin.pt/paypaybeta/paypayservices/paypayservices_c",
    PRODUCTION: "https://www.paypay.pt/paypay/paypayservices/paypayservices_c",
}

NIF_FIRST_DIGITS = {1, 2, 3, 5, 6, 7, 8, 9}


def validate_nif(nif: str) -> bool:
    """Check a Portuguese NIF (tax number) using its modulo 11 check digit.

    Args:
        nif: Nine digit tax number.

    Returns:
        True if the NIF is well formed and the check digit matches.
    """
    nif = (nif or "").strip()
    if len(nif) != 9 or not nif.isdigit() or int(nif[0]) not in NIF_FIRST_DIGITS:
        return False

    total = sum(int(digit) * (9 - i) for i, digit in enumerate(nif[:8]))
    check_digit = 11 - (total % 11)
    if check_digit >= 10:
        check_digit = 0
    return check_digit == int(nif[8])


class GatewaySettings(BaseModel):
    """Merchant account configuration for the PayPay webservice."""
    environment: str = Field(default=TESTING, description="testing, production, development or simulator")
    platform_code: str = Field(default="", description="Platform code issued by PayPay support")
    private_key: str = Field(default="", description="Encryption key issued by PayPay support")
    client_id: str = Field(default="", description="NIF associated to the PayPay account")
    lang_code: str = Field(default="PT", description="Two letter language code")
    api_url: Optional[str] = Field(default=None, description="Explicit webservice URL")
    site_url: str = Field(default="http://localhost:8000", description="Public URL of this service")
    timeout: float = Field(default=30.0, description="Webservice timeout in seconds")

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        """Build settings from PAYPAY_* environment variables."""
        return cls(
            environment=os.getenv("PAYPAY_ENVIRONMENT", TESTING).lower(),
            platform_code=os.getenv("PAYPAY_PLATFORM_CODE", ""),
            private_key=os.getenv("PAYPAY_PRIVATE_KEY", ""),
            client_id=os.getenv("PAYPAY_CLIENT_ID", ""),
            lang_code=os.getenv("PAYPAY_LANG_CODE", "PT")[:2].upper(),
            api_url=os.getenv("PAYPAY_API_URL") or None,
            site_url=os.getenv("PAYPAY_SITE_URL", "http://localhost:8000").rstrip("/"),
            timeout=float(os.getenv("PAYPAY_TIMEOUT", "30")),
        )

    @property
    def webservice_url(self) -> str:
        """Resolve the webservice URL for the configured environment."""
        if self.api_url:
            return self.api_url.rstrip("/")
        if self.environment in ENVIRONMENT_URLS:
            return ENVIRONMENT_URLS[self.environment]
        raise SettingsError([f"PAYPAY_API_URL is required for the {self.environment} environment"])

    @property
    def webhook_url(self) -> str:
        """URL PayPay posts webhook notifications to."""
        return f"{self.site_url}/webhooks/paypay"

    def cancel_url(self, order_id: int) -> str:
        """URL the customer is sent to when abandoning a redirect payment."""
        return f"{self.site_url}/paypay/cancel?order_id={order_id}"

    def validation_errors(self) -> List[str]:
        """Return the list of problems with the current settings."""
        errors: List[str] = []

        if self.environment not in ENVIRONMENTS:
            errors.append(f"Unknown environment: {self.environment}")

        if not self.client_id:
            errors.append("NIF cannot be empty")
        elif not validate_nif(self.client_id):
            errors.append("NIF is not valid")

        if not self.platform_code:
            errors.append("Platform Code cannot be empty")

        if not self.private_key:
            errors.append("Encryption Key cannot be empty")

        return errors

    def validate_credentials(self) -> None:
        """Raise SettingsError when the settings cannot be used.

        Raises:
            SettingsError: Listing every validation problem found.
        """
        errors = self.validation_errors()
        if errors:
            for error in errors:
                logger.error(f"Invalid PayPay settings: {error}")
            raise SettingsError(errors)
