"""Audit log helpers.

``log_action`` adds the entry to the caller's transaction so a state change
and its audit row commit (or fail) together. ``log_action_best_effort`` uses
its own session and never raises; it is for paths such as identity webhooks
where an audit failure must not fail the triggering request.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from paylink.db import session as db_session
from paylink.models import AuditLog
from paylink.utils.client import ClientContext

logger = logging.getLogger(__name__)

ORDER_CREATED: str = "order_created"
ORDER_STATUS_UPDATED: str = "order_status_updated"
UTR_SUBMITTED: str = "utr_submitted"
USER_CREATED: str = "user_created"
USER_DELETED: str = "user_deleted"
USER_ROLE_UPDATED: str = "user_role_updated"
SETTINGS_UPDATED: str = "settings_updated"
LOGIN_ATTEMPT: str = "login_attempt"
LOGOUT: str = "logout"

AUDIT_ACTIONS: tuple[str, ...] = (
    ORDER_CREATED,
    ORDER_STATUS_UPDATED,
    UTR_SUBMITTED,
    USER_CREATED,
    USER_DELETED,
    USER_ROLE_UPDATED,
    SETTINGS_UPDATED,
    LOGIN_ATTEMPT,
    LOGOUT,
)

ENTITY_ORDER: str = "order"
ENTITY_USER: str = "user"
ENTITY_SETTINGS: str = "settings"
ENTITY_AUTH: str = "auth"

SYSTEM_ACTOR: str = "system"
ANONYMOUS_ACTOR: str = "anonymous"


def log_action(
    db: Session,
    *,
    action: str,
    entity_type: str,
    performed_by: str,
    target_id: str | None = None,
    details: dict[str, Any] | None = None,
    context: ClientContext | None = None,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        target_id=target_id,
        performed_by=performed_by,
        details=details,
        ip_address=context.ip_address if context else None,
        user_agent=context.user_agent if context else None,
    )
    db.add(entry)
    return entry


def log_action_best_effort(
    *,
    action: str,
    entity_type: str,
    performed_by: str,
    target_id: str | None = None,
    details: dict[str, Any] | None = None,
    context: ClientContext | None = None,
) -> bool:
    """Write an audit entry in a separate session; log and swallow failures."""
    try:
        with db_session.SessionLocal() as db:
            log_action(
                db,
                action=action,
                entity_type=entity_type,
                performed_by=performed_by,
                target_id=target_id,
                details=details,
                context=context,
            )
            db.commit()
    except Exception:
        logger.exception("[AUDIT] failed to record %s for target=%s", action, target_id)
        return False
    return True


def list_audit_logs(
    db: Session,
    *,
    action: str | None = None,
    target_id: str | None = None,
    performed_by: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[AuditLog], int]:
    conditions = []
    if action:
        conditions.append(AuditLog.action == action)
    if target_id:
        conditions.append(AuditLog.target_id == target_id)
    if performed_by:
        conditions.append(AuditLog.performed_by == performed_by)
    if start is not None:
        conditions.append(AuditLog.timestamp >= start)
    if end is not None:
        conditions.append(AuditLog.timestamp <= end)

    total = db.scalar(select(func.count(AuditLog.id)).where(*conditions)) or 0
    entries = db.scalars(
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(entries), int(total)
