"""UPI deep-link generation tests."""

from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest

from paylink.utils.upi_links import (
    UpiLinkParams,
    app_store_urls,
    build_payment_page_url,
    generate_all_upi_links,
    generate_app_link,
    generate_upi_link,
    get_app_store_url,
)

PARAMS = UpiLinkParams(vpa="acme@upi", amount=Decimal("100"), merchant_name="Acme", order_id="UPI1700000000000ABCDE")


def test_standard_link_carries_payee_amount_note_and_reference() -> None:
    link = generate_upi_link(PARAMS)

    assert link.startswith("upi://pay?")
    query = parse_qs(urlsplit(link).query)
    assert query == {
        "pa": ["acme@upi"],
        "am": ["100.00"],
        "tn": ["Payment to Acme"],
        "tr": ["UPI1700000000000ABCDE"],
    }


def test_app_links_use_app_schemes() -> None:
    assert generate_app_link("gpay", PARAMS).startswith("tez://upi/pay?")
    assert generate_app_link("phonepe", PARAMS).startswith("phonepe://pay?")
    assert generate_app_link("paytm", PARAMS).startswith("paytmmp://pay?")
    assert generate_app_link("bhim", PARAMS).startswith("upi://pay?")
    with pytest.raises(ValueError):
        generate_app_link("unknown", PARAMS)


def test_all_links_follow_enabled_apps() -> None:
    links = generate_all_upi_links(PARAMS, ["phonepe", "nonexistent"])

    assert set(links) == {"standard", "phonepe"}
    assert set(generate_all_upi_links(PARAMS)) == {"standard", "gpay", "phonepe", "paytm", "bhim"}


def test_store_and_payment_page_urls() -> None:
    assert "play.google.com" in get_app_store_url("gpay")
    assert "apps.apple.com" in get_app_store_url("gpay", platform="ios")
    with pytest.raises(ValueError):
        get_app_store_url("unknown")
    urls = app_store_urls(["phonepe", "nonexistent"])
    assert set(urls) == {"phonepe"}
    assert set(urls["phonepe"]) == {"android", "ios"}
    assert build_payment_page_url("https://pay.example.com/", "UPI1") == "https://pay.example.com/pay/UPI1"
