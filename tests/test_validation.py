"""Payment field validation tests."""

from decimal import Decimal

import pytest

from paylink.core.errors import ValidationError
from paylink.utils.validation import (
    generate_order_id,
    is_valid_order_id,
    is_valid_upi_id,
    normalize_utr,
    validate_amount,
    validate_merchant_name,
    validate_timer_duration,
    validate_upi_id,
)


@pytest.mark.parametrize("value", ["1", 1, "100000", "99.99", Decimal("250.5")])
def test_amounts_in_range_are_accepted(value) -> None:
    amount = validate_amount(value)

    assert isinstance(amount, Decimal)
    assert amount == amount.quantize(Decimal("0.01"))


@pytest.mark.parametrize("value", ["0.99", "0", "-5", "100000.01", "12.345", "abc", "NaN", "Infinity"])
def test_amounts_out_of_range_or_malformed_are_rejected(value) -> None:
    with pytest.raises(ValidationError):
        validate_amount(value)


def test_upi_id_is_sanitized_before_validation() -> None:
    assert validate_upi_id("  Acme.Store@UPI ") == "acme.store@upi"
    assert is_valid_upi_id("merchant-1@okaxis")
    assert not is_valid_upi_id("no-at-sign")
    with pytest.raises(ValidationError) as exc_info:
        validate_upi_id("bad@", field="staticUpiId")
    assert exc_info.value.details == {"field": "staticUpiId"}


def test_utr_is_trimmed_and_uppercased() -> None:
    assert normalize_utr("  abc123def456 ") == "ABC123DEF456"


@pytest.mark.parametrize("value", ["1234567", "A" * 21, "12345-6789", "", None])
def test_malformed_utr_is_rejected(value) -> None:
    with pytest.raises(ValidationError):
        normalize_utr(value)


def test_merchant_name_rules() -> None:
    assert validate_merchant_name("  Acme   Stores ") == "Acme Stores"
    with pytest.raises(ValidationError):
        validate_merchant_name("")
    with pytest.raises(ValidationError):
        validate_merchant_name("Acme & Co")
    with pytest.raises(ValidationError):
        validate_merchant_name("A" * 101)


@pytest.mark.parametrize("value", [0, 61, True, "9", 9.5])
def test_timer_duration_must_be_whole_minutes_in_range(value) -> None:
    with pytest.raises(ValidationError):
        validate_timer_duration(value)


def test_generated_order_ids_match_format() -> None:
    ids = {generate_order_id() for _ in range(50)}

    assert len(ids) == 50
    assert all(is_valid_order_id(order_id) for order_id in ids)
    assert all(order_id.startswith("UPI") for order_id in ids)
