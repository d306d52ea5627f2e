"""UPI deep-link generation for the standard scheme and popular payment apps."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

STANDARD_SCHEME: str = "upi://pay"


@dataclass(frozen=True)
class UpiApp:
    name: str
    scheme: str
    package_id: str
    play_store_url: str
    app_store_url: str


UPI_APPS: dict[str, UpiApp] = {
    "gpay": UpiApp(
        name="Google Pay",
        scheme="tez://upi/pay",
        package_id="com.google.android.apps.nbu.paisa.user",
        play_store_url="https://play.google.com/store/apps/details?id=com.google.android.apps.nbu.paisa.user",
        app_store_url="https://apps.apple.com/app/google-pay/id1193357041",
    ),
    "phonepe": UpiApp(
        name="PhonePe",
        scheme="phonepe://pay",
        package_id="com.phonepe.app",
        play_store_url="https://play.google.com/store/apps/details?id=com.phonepe.app",
        app_store_url="https://apps.apple.com/app/phonepe/id1170055821",
    ),
    "paytm": UpiApp(
        name="Paytm",
        scheme="paytmmp://pay",
        package_id="net.one97.paytm",
        play_store_url="https://play.google.com/store/apps/details?id=net.one97.paytm",
        app_store_url="https://apps.apple.com/app/paytm/id473941634",
    ),
    # BHIM handles the plain upi:// scheme.
    "bhim": UpiApp(
        name="BHIM",
        scheme=STANDARD_SCHEME,
        package_id="in.org.npci.upiapp",
        play_store_url="https://play.google.com/store/apps/details?id=in.org.npci.upiapp",
        app_store_url="https://apps.apple.com/app/bhim/id1200315258",
    ),
}


@dataclass(frozen=True)
class UpiLinkParams:
    vpa: str
    amount: Decimal
    merchant_name: str
    order_id: str | None = None
    note: str | None = None

    def query(self) -> str:
        params: dict[str, str] = {
            "pa": self.vpa,
            "am": format_amount(self.amount),
            "tn": self.note or f"Payment to {self.merchant_name}",
        }
        if self.order_id:
            params["tr"] = self.order_id
        return urlencode(params)


def format_amount(amount: Decimal) -> str:
    return f"{Decimal(amount).quantize(Decimal('0.01')):f}"


def generate_upi_link(params: UpiLinkParams) -> str:
    return f"{STANDARD_SCHEME}?{params.query()}"


def generate_app_link(app: str, params: UpiLinkParams) -> str:
    config = UPI_APPS.get(app)
    if config is None:
        raise ValueError(f"Unsupported UPI app: {app}")
    return f"{config.scheme}?{params.query()}"


def generate_all_upi_links(params: UpiLinkParams, enabled_apps: list[str] | None = None) -> dict[str, str]:
    """Standard link under ``standard`` plus one link per enabled, known app."""
    links: dict[str, str] = {"standard": generate_upi_link(params)}
    for app in enabled_apps if enabled_apps is not None else list(UPI_APPS):
        if app not in UPI_APPS:
            logger.warning("[UPI] ignoring unknown app %r", app)
            continue
        links[app] = generate_app_link(app, params)
    return links


def get_app_store_url(app: str, platform: str = "android") -> str:
    config = UPI_APPS.get(app)
    if config is None:
        raise ValueError(f"Unsupported UPI app: {app}")
    return config.app_store_url if platform == "ios" else config.play_store_url


def app_store_urls(apps: list[str]) -> dict[str, dict[str, str]]:
    """Install links per platform for each known app, shown when a deep link does not open."""
    return {
        app: {"android": get_app_store_url(app), "ios": get_app_store_url(app, platform="ios")}
        for app in apps
        if app in UPI_APPS
    }


def build_payment_page_url(base_url: str, order_id: str) -> str:
    return f"{base_url.rstrip('/')}/pay/{order_id}"
