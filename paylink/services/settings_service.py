"""System settings singleton with change history."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paylink.core.errors import ValidationError
from paylink.models import SettingsHistory, SystemSettings
from paylink.models.system_settings import SETTINGS_ROW_ID
from paylink.services import audit_service
from paylink.utils.client import ClientContext
from paylink.utils.time import ensure_utc, utc_now
from paylink.utils.upi_links import UPI_APPS
from paylink.utils.validation import validate_timer_duration, validate_upi_id

logger = logging.getLogger(__name__)

DEFAULT_TIMER_DURATION: int = 9
SETTINGS_TARGET_ID: str = "system_settings"
UPDATABLE_FIELDS: frozenset[str] = frozenset({"timer_duration", "static_upi_id", "enabled_upi_apps"})

CHANGE_TYPE_UPDATE: str = "update"
CHANGE_TYPE_RESET: str = "reset"


def default_enabled_apps() -> dict[str, bool]:
    return {app: True for app in UPI_APPS}


def get_settings(db: Session) -> SystemSettings:
    """Return the settings row, creating it with defaults on first read."""
    current = db.get(SystemSettings, SETTINGS_ROW_ID)
    if current is not None:
        return current

    current = SystemSettings(
        id=SETTINGS_ROW_ID,
        timer_duration=DEFAULT_TIMER_DURATION,
        static_upi_id=None,
        enabled_upi_apps=default_enabled_apps(),
        updated_by=audit_service.SYSTEM_ACTOR,
        updated_at=utc_now(),
    )
    db.add(current)
    try:
        db.commit()
    except IntegrityError:
        # Another request materialized the row first.
        db.rollback()
        current = db.get(SystemSettings, SETTINGS_ROW_ID)
        if current is None:
            raise
        return current
    db.refresh(current)
    logger.info("[SETTINGS] initialized defaults")
    return current


def enabled_apps(current: SystemSettings) -> list[str]:
    """Known app keys switched on, in display order."""
    flags = current.enabled_upi_apps or {}
    return [app for app in UPI_APPS if flags.get(app, False)]


def serialize_settings(current: SystemSettings) -> dict[str, Any]:
    updated_at = ensure_utc(current.updated_at).isoformat() if current.updated_at else None
    return {
        "timerDuration": current.timer_duration,
        "staticUpiId": current.static_upi_id,
        "enabledUpiApps": {app: bool((current.enabled_upi_apps or {}).get(app, False)) for app in UPI_APPS},
        "updatedBy": current.updated_by,
        "updatedAt": updated_at,
    }


def _validate_app_flags(value: Any) -> dict[str, bool]:
    if not isinstance(value, dict):
        raise ValidationError("enabledUpiApps must be an object of app flags", details={"field": "enabledUpiApps"})
    unknown = sorted(set(value) - set(UPI_APPS))
    if unknown:
        raise ValidationError(
            f"Unknown UPI apps: {', '.join(unknown)}",
            details={"field": "enabledUpiApps", "allowed": list(UPI_APPS)},
        )
    for app, flag in value.items():
        if not isinstance(flag, bool):
            raise ValidationError(f"Flag for {app} must be true or false", details={"field": "enabledUpiApps"})
    return dict(value)


def _normalize_updates(updates: dict[str, Any]) -> dict[str, Any]:
    unknown = sorted(set(updates) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown settings fields: {', '.join(unknown)}")

    normalized: dict[str, Any] = {}
    if "timer_duration" in updates:
        normalized["timer_duration"] = validate_timer_duration(updates["timer_duration"])
    if "static_upi_id" in updates:
        raw = updates["static_upi_id"]
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            normalized["static_upi_id"] = None
        elif isinstance(raw, str):
            normalized["static_upi_id"] = validate_upi_id(raw, field="staticUpiId")
        else:
            raise ValidationError("Invalid UPI ID format", details={"field": "staticUpiId"})
    if "enabled_upi_apps" in updates:
        normalized["enabled_upi_apps"] = _validate_app_flags(updates["enabled_upi_apps"])
    return normalized


def update_settings(
    db: Session,
    updates: dict[str, Any],
    *,
    updated_by: str,
    context: ClientContext | None = None,
    change_type: str = CHANGE_TYPE_UPDATE,
    now: datetime | None = None,
) -> SystemSettings:
    """Apply a partial update, then append history and audit entries.

    ``enabled_upi_apps`` merges per app; apps left out keep their flag.
    An empty ``static_upi_id`` clears the override. History and audit rows
    are written even when nothing changed.
    """
    normalized = _normalize_updates(updates)
    current = get_settings(db)
    now = now or utc_now()

    changes: dict[str, Any] = {}
    if "timer_duration" in normalized and normalized["timer_duration"] != current.timer_duration:
        changes["timerDuration"] = {"old": current.timer_duration, "new": normalized["timer_duration"]}
        current.timer_duration = normalized["timer_duration"]

    if "static_upi_id" in normalized and normalized["static_upi_id"] != current.static_upi_id:
        changes["staticUpiId"] = {"old": current.static_upi_id, "new": normalized["static_upi_id"]}
        current.static_upi_id = normalized["static_upi_id"]

    if "enabled_upi_apps" in normalized:
        merged = dict(current.enabled_upi_apps or {})
        app_changes: dict[str, Any] = {}
        for app, flag in normalized["enabled_upi_apps"].items():
            previous = bool(merged.get(app, False))
            if previous != flag:
                app_changes[app] = {"old": previous, "new": flag}
            merged[app] = flag
        if app_changes:
            changes["enabledUpiApps"] = app_changes
        # Reassign so the JSON column is flagged dirty.
        current.enabled_upi_apps = merged

    current.updated_by = updated_by
    current.updated_at = now
    snapshot = serialize_settings(current)

    db.add(
        SettingsHistory(
            changed_at=now,
            updated_by=updated_by,
            change_type=change_type,
            changes=changes,
            snapshot=snapshot,
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
        )
    )
    audit_service.log_action(
        db,
        action=audit_service.SETTINGS_UPDATED,
        entity_type=audit_service.ENTITY_SETTINGS,
        target_id=SETTINGS_TARGET_ID,
        performed_by=updated_by,
        details={"changeType": change_type, "changes": changes},
        context=context,
    )
    db.commit()
    db.refresh(current)
    logger.info("[SETTINGS] %s by user=%s fields=%s", change_type, updated_by, sorted(changes))
    return current


def reset_to_defaults(
    db: Session,
    *,
    updated_by: str,
    context: ClientContext | None = None,
    now: datetime | None = None,
) -> SystemSettings:
    return update_settings(
        db,
        {
            "timer_duration": DEFAULT_TIMER_DURATION,
            "static_upi_id": None,
            "enabled_upi_apps": default_enabled_apps(),
        },
        updated_by=updated_by,
        context=context,
        change_type=CHANGE_TYPE_RESET,
        now=now,
    )


def get_settings_history(db: Session, limit: int = 50) -> list[SettingsHistory]:
    rows = db.scalars(
        select(SettingsHistory).order_by(SettingsHistory.changed_at.desc(), SettingsHistory.id.desc()).limit(limit)
    ).all()
    return list(rows)
