"""Order endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from paylink.auth import get_client_context, get_current_identity, rate_limit, require_capability
from paylink.core.permissions import Capability, Identity
from paylink.db.session import get_db
from paylink.models import Order
from paylink.schemas.common import Pagination
from paylink.schemas.order import (
    ExpireOrdersResponse,
    OrderCreate,
    OrderCreatedResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusUpdate,
    PaymentPageResponse,
    UtrSubmission,
    UtrSubmissionResponse,
)
from paylink.services import order_service, settings_service
from paylink.utils.client import ClientContext
from paylink.utils.time import utc_now
from paylink.utils.upi_links import app_store_urls

router: APIRouter = APIRouter()


def _serialize_order(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=order.order_id,
        amount=order.amount,
        merchant_name=order.merchant_name,
        vpa=order.vpa,
        status=order.status,
        utr=order.utr,
        created_by=order.created_by,
        created_at=order.created_at,
        expires_at=order.expires_at,
        status_updated_at=order.status_updated_at,
        verified_by=order.verified_by,
        payment_page_url=order.payment_page_url,
        upi_deep_link=order.upi_deep_link,
        can_submit_utr=order_service.can_submit_utr(order),
    )


@router.post(
    "",
    response_model=OrderCreatedResponse,
    status_code=201,
    dependencies=[Depends(rate_limit("order_creation"))],
)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    context: ClientContext = Depends(get_client_context),
) -> OrderCreatedResponse:
    """Create a payment link for the calling merchant."""
    order = order_service.create_order(
        db,
        identity=identity,
        amount=payload.amount,
        merchant_name=payload.merchant_name,
        vpa=payload.vpa,
        context=context,
    )
    enabled = settings_service.enabled_apps(settings_service.get_settings(db))
    return OrderCreatedResponse(
        order_id=order.order_id,
        amount=order.amount,
        merchant_name=order.merchant_name,
        vpa=order.vpa,
        status=order.status,
        payment_page_url=order.payment_page_url,
        upi_links=order_service.order_links(order, enabled),
        created_at=order.created_at,
        expires_at=order.expires_at,
    )


@router.get("", response_model=OrderListResponse)
def list_orders(
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=order_service.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> OrderListResponse:
    orders, total = order_service.list_orders(db, identity=identity, status=status, page=page, limit=limit)
    return OrderListResponse(
        orders=[_serialize_order(order) for order in orders],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/stats", response_model=OrderStatsResponse)
def order_stats(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> OrderStatsResponse:
    return OrderStatsResponse(**order_service.order_stats(db, identity=identity))


@router.post("/expire", response_model=ExpireOrdersResponse)
def expire_orders(
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.VERIFY_ORDERS)),
) -> ExpireOrdersResponse:
    """Expire every overdue pending order."""
    expired = order_service.expire_overdue_orders(db)
    return ExpireOrdersResponse(expired=expired, count=len(expired))


@router.get("/{order_id}", response_model=PaymentPageResponse)
def get_payment_page(order_id: str, db: Session = Depends(get_db)) -> PaymentPageResponse:
    """Public payer view; expires the order first when its deadline passed."""
    now = utc_now()
    order = order_service.get_order(db, order_id, now)
    enabled = settings_service.enabled_apps(settings_service.get_settings(db))
    return PaymentPageResponse(
        order_id=order.order_id,
        amount=order.amount,
        merchant_name=order.merchant_name,
        vpa=order.vpa,
        status=order.status,
        created_at=order.created_at,
        expires_at=order.expires_at,
        can_submit_utr=order_service.can_submit_utr(order, now),
        time_remaining=order_service.time_remaining(order, now),
        utr_submitted=order.utr is not None,
        upi_links=order_service.order_links(order, enabled),
        enabled_apps=enabled,
        app_store_urls=app_store_urls(enabled),
    )


@router.post(
    "/{order_id}/utr",
    response_model=UtrSubmissionResponse,
    dependencies=[Depends(rate_limit("utr_submission"))],
)
def submit_utr(
    order_id: str,
    payload: UtrSubmission,
    db: Session = Depends(get_db),
    context: ClientContext = Depends(get_client_context),
) -> UtrSubmissionResponse:
    order = order_service.submit_utr(db, order_id, payload.utr, context=context)
    return UtrSubmissionResponse(order_id=order.order_id, status=order.status, utr=order.utr or "")


@router.put("/{order_id}/status", response_model=OrderResponse)
def decide_order(
    order_id: str,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    context: ClientContext = Depends(get_client_context),
) -> OrderResponse:
    """Mark an order awaiting verification as completed or failed."""
    order = order_service.decide_order(
        db,
        order_id,
        payload.status,
        identity=identity,
        reason=payload.reason,
        context=context,
    )
    return _serialize_order(order)
