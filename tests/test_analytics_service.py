"""Analytics report tests: merchant totals, rates and display-name fallback."""

from datetime import timedelta
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from paylink.core.errors import NotFoundError
from paylink.core.permissions import Identity, Role
from paylink.db.base import Base
from paylink.services import analytics_service, order_service
from paylink.utils.client import ClientContext
from paylink.utils.time import utc_now

MERCHANT = Identity.for_role("11", "sess-merchant", Role.MERCHANT)
ADMIN = Identity.for_role("1", "sess-admin", Role.ADMIN)
PAYER = ClientContext(ip_address="203.0.113.9", user_agent="payer-browser")


def _session_factory(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'analytics.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _lookup(user_id: str) -> str:
    if user_id == "11":
        return "Mira Shah"
    raise NotFoundError("User not found")


def _window():
    now = utc_now()
    return now - timedelta(days=1), now + timedelta(days=1)


def test_top_merchants_totals_keep_exact_paise(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        for amount in ("1000.10", "1000.20", "1001.10", "1002.20"):
            order_service.create_order(
                db, identity=MERCHANT, amount=amount, merchant_name="Acme", vpa="acme@upi", context=PAYER
            )
        start, end = _window()
        merchants = analytics_service.top_merchants(db, start, end, _lookup)

    assert merchants == [
        {
            "userId": "11",
            "displayName": "Mira Shah",
            "ordersCreated": 4,
            "ordersCompleted": 0,
            "successRate": 0.0,
            "totalAmount": "4003.60",
        }
    ]


def test_report_rates_and_unknown_user_fallback(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        done = order_service.create_order(
            db, identity=MERCHANT, amount="100", merchant_name="Acme", vpa="acme@upi", context=PAYER
        )
        order_service.create_order(db, identity=MERCHANT, amount="50", merchant_name="Acme", vpa="acme@upi", context=PAYER)
        order_service.submit_utr(db, done.order_id, "ABCD12345678", context=PAYER)
        order_service.decide_order(db, done.order_id, "completed", identity=ADMIN)

        start, end = _window()
        report = analytics_service.build_analytics(db, start=start, end=end, lookup=_lookup)

    assert report["orderMetrics"]["totalOrders"] == 2
    assert report["orderMetrics"]["conversionRate"] == 50.0
    assert report["orderMetrics"]["byStatus"]["pending"] == 1
    names = {entry["userId"]: entry["displayName"] for entry in report["userActivity"]}
    assert names["11"] == "Mira Shah"
    assert names["1"] == analytics_service.UNKNOWN_USER
    assert names["anonymous"] == analytics_service.UNKNOWN_USER
