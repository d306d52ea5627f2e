"""Admin analytics over the audit log and orders."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from paylink.models import AuditLog, Order
from paylink.services.order_status import COMPLETED, FAILED, ORDER_STATUSES, PENDING_VERIFICATION
from paylink.utils.time import ensure_utc

logger = logging.getLogger(__name__)

UNKNOWN_USER: str = "Unknown User"
TOP_MERCHANTS_LIMIT: int = 10

DisplayNameLookup = Callable[[str], str]


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def resolve_display_names(user_ids: set[str], lookup: DisplayNameLookup) -> dict[str, str]:
    """Best-effort display names; failures fall back to ``Unknown User``."""
    names: dict[str, str] = {}
    for user_id in user_ids:
        try:
            names[user_id] = lookup(user_id) or UNKNOWN_USER
        except Exception:
            logger.warning("[ANALYTICS] display name lookup failed for user=%s", user_id)
            names[user_id] = UNKNOWN_USER
    return names


def action_counts(db: Session, start: datetime, end: datetime) -> list[dict[str, Any]]:
    rows = db.execute(
        select(AuditLog.action, func.count(AuditLog.id), func.max(AuditLog.timestamp))
        .where(AuditLog.timestamp >= start, AuditLog.timestamp <= end)
        .group_by(AuditLog.action)
        .order_by(func.count(AuditLog.id).desc())
    ).all()
    return [
        {"action": action, "count": int(count), "lastOccurrence": ensure_utc(last).isoformat() if last else None}
        for action, count, last in rows
    ]


def user_activity(db: Session, start: datetime, end: datetime, lookup: DisplayNameLookup) -> list[dict[str, Any]]:
    rows = db.execute(
        select(AuditLog.performed_by, AuditLog.action, func.count(AuditLog.id), func.max(AuditLog.timestamp))
        .where(AuditLog.timestamp >= start, AuditLog.timestamp <= end)
        .group_by(AuditLog.performed_by, AuditLog.action)
    ).all()

    per_user: dict[str, dict[str, Any]] = {}
    for performed_by, action, count, last in rows:
        entry = per_user.setdefault(
            performed_by,
            {"userId": performed_by, "totalActions": 0, "actionBreakdown": {}, "lastActivity": None},
        )
        entry["totalActions"] += int(count)
        entry["actionBreakdown"][action] = int(count)
        if last is not None:
            last_iso = ensure_utc(last).isoformat()
            if entry["lastActivity"] is None or last_iso > entry["lastActivity"]:
                entry["lastActivity"] = last_iso

    names = resolve_display_names(set(per_user), lookup)
    for user_id, entry in per_user.items():
        entry["displayName"] = names[user_id]
    return sorted(per_user.values(), key=lambda item: item["totalActions"], reverse=True)


def order_metrics(db: Session, start: datetime, end: datetime) -> dict[str, Any]:
    rows = db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.created_at >= start, Order.created_at <= end)
        .group_by(Order.status)
    ).all()
    by_status = {status: 0 for status in ORDER_STATUSES}
    for status, count in rows:
        by_status[status] = int(count)
    total = sum(by_status.values())
    return {
        "totalOrders": total,
        "byStatus": by_status,
        "conversionRate": _rate(by_status[COMPLETED], total),
        "failureRate": _rate(by_status[FAILED], total),
        "verificationPendingRate": _rate(by_status[PENDING_VERIFICATION], total),
    }


def activity_by_day(db: Session, start: datetime, end: datetime) -> list[dict[str, Any]]:
    rows = db.execute(
        select(AuditLog.timestamp, AuditLog.action).where(AuditLog.timestamp >= start, AuditLog.timestamp <= end)
    ).all()
    days: dict[str, dict[str, int]] = {}
    for timestamp, action in rows:
        day = ensure_utc(timestamp).date().isoformat()
        counts = days.setdefault(day, {})
        counts[action] = counts.get(action, 0) + 1
    return [
        {"date": day, "total": sum(counts.values()), "actions": counts}
        for day, counts in sorted(days.items())
    ]


def top_merchants(db: Session, start: datetime, end: datetime, lookup: DisplayNameLookup) -> list[dict[str, Any]]:
    completed = func.sum(case((Order.status == COMPLETED, 1), else_=0))
    rows = db.execute(
        select(Order.created_by, func.count(Order.id), completed, func.coalesce(func.sum(Order.amount), 0))
        .where(Order.created_at >= start, Order.created_at <= end)
        .group_by(Order.created_by)
        .order_by(func.count(Order.id).desc())
        .limit(TOP_MERCHANTS_LIMIT)
    ).all()
    names = resolve_display_names({row[0] for row in rows}, lookup)
    return [
        {
            "userId": user_id,
            "displayName": names[user_id],
            "ordersCreated": int(total),
            "ordersCompleted": int(done or 0),
            "successRate": _rate(int(done or 0), int(total)),
            "totalAmount": f"{_money(amount):f}",
        }
        for user_id, total, done, amount in rows
    ]


def build_analytics(db: Session, *, start: datetime, end: datetime, lookup: DisplayNameLookup) -> dict[str, Any]:
    if start > end:
        start, end = end, start
    return {
        "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
        "actionStats": action_counts(db, start, end),
        "userActivity": user_activity(db, start, end, lookup),
        "orderMetrics": order_metrics(db, start, end),
        "activityByDay": activity_by_day(db, start, end),
        "topMerchants": top_merchants(db, start, end, lookup),
    }
