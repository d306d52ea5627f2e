"""Input validation and sanitization for payment fields."""

from __future__ import annotations

import re
import secrets
import string
import time
from decimal import Decimal, InvalidOperation

from paylink.core.errors import ValidationError

MIN_AMOUNT: Decimal = Decimal("1")
MAX_AMOUNT: Decimal = Decimal("100000")
MIN_TIMER_DURATION: int = 1
MAX_TIMER_DURATION: int = 60
MAX_MERCHANT_NAME_LENGTH: int = 100
ORDER_ID_PREFIX: str = "UPI"

UPI_ID_RE = re.compile(r"^[\w.-]+@[\w.-]+$")
UTR_RE = re.compile(r"^[A-Z0-9]{8,20}$")
MERCHANT_NAME_RE = re.compile(r"^[a-zA-Z0-9\s.-]+$")
ORDER_ID_RE = re.compile(r"^UPI\d+[A-Z0-9]{5}$")

_ORDER_ID_ALPHABET: str = string.ascii_uppercase + string.digits


def is_valid_upi_id(value: str | None) -> bool:
    return bool(value) and UPI_ID_RE.fullmatch(value) is not None


def sanitize_upi_id(value: str) -> str:
    return re.sub(r"\s", "", value.strip().lower())


def validate_upi_id(value: str | None, field: str = "vpa") -> str:
    cleaned = sanitize_upi_id(value or "")
    if not is_valid_upi_id(cleaned):
        raise ValidationError("Invalid UPI ID format", details={"field": field})
    return cleaned


def validate_amount(value: Decimal | int | float | str) -> Decimal:
    """Return the amount as a 2-place Decimal within the allowed range."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Invalid amount", details={"field": "amount"}) from exc
    if not amount.is_finite():
        raise ValidationError("Invalid amount", details={"field": "amount"})
    if amount < MIN_AMOUNT or amount > MAX_AMOUNT:
        raise ValidationError("Amount must be between ₹1 and ₹1,00,000", details={"field": "amount"})
    if amount != amount.quantize(Decimal("0.01")):
        raise ValidationError("Amount cannot have more than two decimal places", details={"field": "amount"})
    return amount.quantize(Decimal("0.01"))


def normalize_utr(value: str | None) -> str:
    """Trim and uppercase a UTR, then check it is 8-20 alphanumerics."""
    cleaned = (value or "").strip().upper()
    if not UTR_RE.fullmatch(cleaned):
        raise ValidationError("UTR must be 8-20 alphanumeric characters", details={"field": "utr"})
    return cleaned


def validate_merchant_name(value: str | None) -> str:
    cleaned = re.sub(r"\s+", " ", (value or "").strip())
    if not cleaned:
        raise ValidationError("Merchant name is required", details={"field": "merchantName"})
    if len(cleaned) > MAX_MERCHANT_NAME_LENGTH:
        raise ValidationError("Merchant name cannot exceed 100 characters", details={"field": "merchantName"})
    if not MERCHANT_NAME_RE.fullmatch(cleaned):
        raise ValidationError("Merchant name contains invalid characters", details={"field": "merchantName"})
    return cleaned


def validate_timer_duration(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Timer duration must be a whole number of minutes", details={"field": "timerDuration"})
    if not MIN_TIMER_DURATION <= value <= MAX_TIMER_DURATION:
        raise ValidationError("Timer duration must be between 1 and 60 minutes", details={"field": "timerDuration"})
    return value


def is_valid_order_id(value: str) -> bool:
    return ORDER_ID_RE.fullmatch(value) is not None


def generate_order_id() -> str:
    """``UPI`` + millisecond timestamp + 5 random uppercase alphanumerics."""
    suffix = "".join(secrets.choice(_ORDER_ID_ALPHABET) for _ in range(5))
    return f"{ORDER_ID_PREFIX}{int(time.time() * 1000)}{suffix}"
