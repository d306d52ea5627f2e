"""Order lifecycle: creation, lazy expiry, UTR submission and verification.

Every status change is a conditional UPDATE on the expected current status,
so of two concurrent requests racing on one order exactly one wins and the
other gets ``ConflictError``. Expiry is applied lazily whenever an order is
read, and in bulk by ``expire_overdue_orders``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paylink.core.config import settings
from paylink.core.errors import AuthorizationError, ConflictError, InternalError, NotFoundError, ValidationError
from paylink.core.permissions import Capability, Identity
from paylink.models import Order
from paylink.services import audit_service, settings_service
from paylink.services.order_status import (
    DECISION_OUTCOMES,
    EXPIRED,
    ORDER_STATUSES,
    PENDING,
    PENDING_VERIFICATION,
    TERMINAL_STATUSES,
    compare_and_set_status,
)
from paylink.utils.client import ClientContext
from paylink.utils.time import ensure_utc, seconds_until, utc_now
from paylink.utils.upi_links import UpiLinkParams, build_payment_page_url, generate_all_upi_links
from paylink.utils.validation import (
    generate_order_id,
    is_valid_order_id,
    normalize_utr,
    validate_amount,
    validate_merchant_name,
    validate_upi_id,
)

logger = logging.getLogger(__name__)

ORDER_ID_ATTEMPTS: int = 5
MAX_PAGE_SIZE: int = 100


def is_expired(order: Order, now: datetime) -> bool:
    return ensure_utc(now) >= ensure_utc(order.expires_at)


def can_submit_utr(order: Order, now: datetime | None = None) -> bool:
    now = now or utc_now()
    return order.status == PENDING and order.utr is None and not is_expired(order, now)


def time_remaining(order: Order, now: datetime | None = None) -> int:
    """Seconds left to pay; zero once the order left ``pending``."""
    if order.status != PENDING:
        return 0
    return seconds_until(order.expires_at, now or utc_now())


def order_links(order: Order, enabled: list[str] | None = None) -> dict[str, str]:
    params = UpiLinkParams(
        vpa=order.vpa,
        amount=Decimal(order.amount),
        merchant_name=order.merchant_name,
        order_id=order.order_id,
    )
    return generate_all_upi_links(params, enabled)


def _unique_order_id(db: Session) -> str:
    for _ in range(ORDER_ID_ATTEMPTS):
        candidate = generate_order_id()
        if db.scalar(select(Order.id).where(Order.order_id == candidate).limit(1)) is None:
            return candidate
    raise InternalError("Could not allocate a unique order id")


def create_order(
    db: Session,
    *,
    identity: Identity,
    amount: Decimal | int | float | str,
    merchant_name: str,
    vpa: str,
    context: ClientContext | None = None,
    now: datetime | None = None,
) -> Order:
    identity.require(Capability.CREATE_ORDER)
    clean_amount = validate_amount(amount)
    clean_name = validate_merchant_name(merchant_name)
    clean_vpa = validate_upi_id(vpa)

    current_settings = settings_service.get_settings(db)
    # A configured static UPI id overrides the submitted VPA.
    payee_vpa = current_settings.static_upi_id or clean_vpa
    now = now or utc_now()
    order_id = _unique_order_id(db)

    links = generate_all_upi_links(
        UpiLinkParams(vpa=payee_vpa, amount=clean_amount, merchant_name=clean_name, order_id=order_id),
        settings_service.enabled_apps(current_settings),
    )
    context = context or ClientContext()
    order = Order(
        order_id=order_id,
        amount=clean_amount,
        merchant_name=clean_name,
        vpa=payee_vpa,
        status=PENDING,
        created_by=identity.user_id,
        created_at=now,
        expires_at=now + timedelta(minutes=current_settings.timer_duration),
        payment_page_url=build_payment_page_url(settings.public_base_url, order_id),
        upi_deep_link=links["standard"],
        request_metadata={"customerIp": context.ip_address, "userAgent": context.user_agent},
    )
    db.add(order)
    audit_service.log_action(
        db,
        action=audit_service.ORDER_CREATED,
        entity_type=audit_service.ENTITY_ORDER,
        target_id=order_id,
        performed_by=identity.user_id,
        details={
            "amount": f"{clean_amount:f}",
            "merchantName": clean_name,
            "vpa": payee_vpa,
            "timerDuration": current_settings.timer_duration,
        },
        context=context,
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Order id collision, please retry") from exc
    db.refresh(order)
    logger.info(
        "[ORDER] created order=%s by user=%s amount=%s expires_at=%s",
        order_id,
        identity.user_id,
        clean_amount,
        order.expires_at,
    )
    return order


def _expire_if_due(db: Session, order: Order, now: datetime) -> None:
    if order.status != PENDING or not is_expired(order, now):
        return
    metadata = dict(order.request_metadata or {})
    metadata.update({"expiredAt": now.isoformat(), "expiredBy": audit_service.SYSTEM_ACTOR})
    won = compare_and_set_status(
        db,
        order.order_id,
        expected=PENDING,
        new=EXPIRED,
        now=now,
        conditions=(Order.expires_at <= now,),
        values={"request_metadata": metadata},
    )
    if won:
        audit_service.log_action(
            db,
            action=audit_service.ORDER_STATUS_UPDATED,
            entity_type=audit_service.ENTITY_ORDER,
            target_id=order.order_id,
            performed_by=audit_service.SYSTEM_ACTOR,
            details={"oldStatus": PENDING, "newStatus": EXPIRED, "reason": "Order expired automatically"},
        )
        logger.info("[ORDER] order=%s expired", order.order_id)
    db.commit()
    db.refresh(order)


def get_order(db: Session, order_id: str, now: datetime | None = None) -> Order:
    """Load an order, expiring it first when its deadline has passed."""
    if not is_valid_order_id(order_id):
        raise NotFoundError("Order not found")
    order = db.scalar(select(Order).where(Order.order_id == order_id).limit(1))
    if order is None:
        raise NotFoundError("Order not found")
    _expire_if_due(db, order, now or utc_now())
    return order


def _lost_race(db: Session, order: Order) -> ConflictError:
    db.rollback()
    db.refresh(order)
    logger.warning("[ORDER] concurrent update on order=%s, now %s", order.order_id, order.status)
    return ConflictError(
        "Order was updated by another request",
        details={"orderId": order.order_id, "status": order.status},
    )


def submit_utr(
    db: Session,
    order_id: str,
    utr: str,
    *,
    context: ClientContext | None = None,
    now: datetime | None = None,
) -> Order:
    """Attach the payer's UTR and move the order to ``pending-verification``."""
    now = now or utc_now()
    order = get_order(db, order_id, now)

    if order.utr:
        raise ConflictError("UTR already submitted for this order")
    if order.status == EXPIRED:
        raise ConflictError("Order has expired. UTR submission not allowed.")
    if order.status != PENDING:
        raise ConflictError(f"Order status is {order.status}. UTR can only be submitted for pending orders.")

    clean_utr = normalize_utr(utr)
    duplicate = db.scalar(
        select(Order.order_id).where(Order.utr == clean_utr, Order.order_id != order.order_id).limit(1)
    )
    if duplicate is not None:
        raise ConflictError("This UTR has already been used for another order")

    context = context or ClientContext()
    metadata = dict(order.request_metadata or {})
    metadata.update(
        {
            "utrSubmittedAt": now.isoformat(),
            "utrSubmissionIp": context.ip_address,
            "utrSubmissionUserAgent": context.user_agent,
        }
    )
    try:
        won = compare_and_set_status(
            db,
            order.order_id,
            expected=PENDING,
            new=PENDING_VERIFICATION,
            now=now,
            conditions=(Order.utr.is_(None), Order.expires_at > now),
            values={"utr": clean_utr, "request_metadata": metadata},
        )
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("This UTR has already been used for another order") from exc
    if not won:
        raise _lost_race(db, order)

    audit_service.log_action(
        db,
        action=audit_service.UTR_SUBMITTED,
        entity_type=audit_service.ENTITY_ORDER,
        target_id=order.order_id,
        performed_by=audit_service.ANONYMOUS_ACTOR,
        details={"utr": clean_utr, "orderOwner": order.created_by, "amount": f"{Decimal(order.amount):f}"},
        context=context,
    )
    audit_service.log_action(
        db,
        action=audit_service.ORDER_STATUS_UPDATED,
        entity_type=audit_service.ENTITY_ORDER,
        target_id=order.order_id,
        performed_by=audit_service.ANONYMOUS_ACTOR,
        details={"oldStatus": PENDING, "newStatus": PENDING_VERIFICATION, "reason": "UTR submitted by payer"},
        context=context,
    )
    db.commit()
    db.refresh(order)
    logger.info("[ORDER] utr submitted for order=%s", order.order_id)
    return order


def _ensure_can_decide(identity: Identity, order: Order) -> None:
    if identity.can(Capability.VERIFY_ORDERS):
        return
    if identity.can(Capability.MANAGE_OWN_LINKS) and order.created_by == identity.user_id:
        return
    raise AuthorizationError("You are not allowed to verify this order")


def decide_order(
    db: Session,
    order_id: str,
    outcome: str,
    *,
    identity: Identity,
    reason: str | None = None,
    context: ClientContext | None = None,
    now: datetime | None = None,
) -> Order:
    """Record the verification outcome (``completed`` or ``failed``)."""
    if outcome not in DECISION_OUTCOMES:
        raise ValidationError("Status must be completed or failed", details={"field": "status"})
    now = now or utc_now()
    order = get_order(db, order_id, now)
    _ensure_can_decide(identity, order)

    if order.status in TERMINAL_STATUSES:
        raise ConflictError(f"Order is already {order.status} and can no longer change.")
    if order.status != PENDING_VERIFICATION:
        raise ConflictError(f"Order status is {order.status}. Only orders pending verification can be decided.")

    won = compare_and_set_status(
        db,
        order.order_id,
        expected=PENDING_VERIFICATION,
        new=outcome,
        now=now,
        values={"verified_by": identity.user_id},
    )
    if not won:
        raise _lost_race(db, order)

    details: dict[str, Any] = {"oldStatus": PENDING_VERIFICATION, "newStatus": outcome, "utr": order.utr}
    if reason:
        details["reason"] = reason
    audit_service.log_action(
        db,
        action=audit_service.ORDER_STATUS_UPDATED,
        entity_type=audit_service.ENTITY_ORDER,
        target_id=order.order_id,
        performed_by=identity.user_id,
        details=details,
        context=context,
    )
    db.commit()
    db.refresh(order)
    logger.info("[ORDER] order=%s marked %s by user=%s", order.order_id, outcome, identity.user_id)
    return order


def expire_overdue_orders(db: Session, now: datetime | None = None, created_by: str | None = None) -> list[str]:
    """Expire every pending order whose deadline passed. Returns the expired ids."""
    now = now or utc_now()
    conditions = [Order.status == PENDING, Order.expires_at <= now]
    if created_by is not None:
        conditions.append(Order.created_by == created_by)
    candidates = db.scalars(select(Order).where(*conditions)).all()

    expired: list[str] = []
    for order in candidates:
        metadata = dict(order.request_metadata or {})
        metadata.update({"expiredAt": now.isoformat(), "expiredBy": audit_service.SYSTEM_ACTOR})
        won = compare_and_set_status(
            db,
            order.order_id,
            expected=PENDING,
            new=EXPIRED,
            now=now,
            conditions=(Order.expires_at <= now,),
            values={"request_metadata": metadata},
        )
        if not won:
            continue
        audit_service.log_action(
            db,
            action=audit_service.ORDER_STATUS_UPDATED,
            entity_type=audit_service.ENTITY_ORDER,
            target_id=order.order_id,
            performed_by=audit_service.SYSTEM_ACTOR,
            details={"oldStatus": PENDING, "newStatus": EXPIRED, "reason": "Order expired automatically"},
        )
        expired.append(order.order_id)
    db.commit()
    if expired:
        logger.info("[ORDER] expired %s overdue orders", len(expired))
    return expired


def _owner_scope(identity: Identity) -> str | None:
    if identity.can(Capability.VIEW_ALL_ORDERS):
        return None
    if identity.can(Capability.VIEW_OWN_ORDERS):
        return identity.user_id
    raise AuthorizationError("Access denied. Required permission: view_own_orders")


def list_orders(
    db: Session,
    *,
    identity: Identity,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
    now: datetime | None = None,
) -> tuple[list[Order], int]:
    owner = _owner_scope(identity)
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown status: {status}", details={"field": "status", "allowed": ORDER_STATUSES})
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    expire_overdue_orders(db, now, created_by=owner)

    conditions = []
    if owner is not None:
        conditions.append(Order.created_by == owner)
    if status is not None:
        conditions.append(Order.status == status)
    total = db.scalar(select(func.count(Order.id)).where(*conditions)) or 0
    orders = db.scalars(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(orders), int(total)


def order_stats(db: Session, *, identity: Identity, now: datetime | None = None) -> dict[str, Any]:
    owner = _owner_scope(identity)
    expire_overdue_orders(db, now, created_by=owner)
    stmt = select(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.amount), 0)).group_by(Order.status)
    if owner is not None:
        stmt = stmt.where(Order.created_by == owner)

    by_status = {status: 0 for status in ORDER_STATUSES}
    completed_amount = Decimal("0")
    for status, count, amount in db.execute(stmt).all():
        by_status[status] = int(count)
        if status == "completed":
            completed_amount = Decimal(str(amount)).quantize(Decimal("0.01"))
    total = sum(by_status.values())
    return {
        "total": total,
        "byStatus": by_status,
        "completedAmount": f"{completed_amount:f}",
        "conversionRate": round(by_status["completed"] / total * 100, 2) if total else 0.0,
    }
