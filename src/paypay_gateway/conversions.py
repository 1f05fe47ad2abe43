"""Amount and date conversions shared by checkout and reconciliation.

Amounts travel to and from PayPay as integers obtained by formatting the
decimal value with two decimal places and removing the separator
(19.99 -> 1999). Values that do not fit that shape are rejected instead of
being rounded.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from .exceptions import InvalidAmountError

# Timezone PayPay reports payment dates in.
PROCESSOR_TIMEZONE = ZoneInfo("Europe/London")

TWO_PLACES = Decimal("0.01")


def to_minor_units(value: Union[Decimal, str, int, float]) -> int:
    """Convert an order total to the integer form used by PayPay.

    Args:
        value: Decimal amount, e.g. Decimal("19.99") or "19.99".

    Returns:
        Integer amount without decimal separator, e.g. 1999.

    Raises:
        InvalidAmountError: If the value is negative, not a number or has
            more than two significant decimal places.
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Invalid amount: {value!r}") from e

    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise InvalidAmountError(f"Negative amount: {value!r}")
    if amount != amount.quantize(TWO_PLACES):
        raise InvalidAmountError(f"Amount has more than two decimal places: {value!r}")

    formatted = format(amount.quantize(TWO_PLACES), "f")
    return int(formatted.replace(".", ""))


def from_minor_units(amount: int) -> Decimal:
    """Convert a PayPay integer amount back to a decimal value."""
    return (Decimal(amount) / 100).quantize(TWO_PLACES)


def parse_reported_amount(value: Any) -> Optional[int]:
    """Parse an amount reported by the processor.

    Returns None when the value is missing or is not a non-negative integer,
    so that callers treat it as a mismatch.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    text = str(value).strip()
    if not text.isdigit():
        return None
    return int(text)


def normalize_payment_date(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Normalize a processor payment date to the processor timezone.

    Naive values are taken as UTC, aware values are converted. The server's
    local timezone is never used.

    Returns:
        Aware datetime in PROCESSOR_TIMEZONE, or None when no usable date
        was given.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(PROCESSOR_TIMEZONE)
