"""Admin endpoints: settings, audit trail, analytics and user management."""

from datetime import datetime, time, timezone

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from paylink.auth import get_client_context, get_identity_provider, get_session_tracker, require_capability
from paylink.core.errors import NotFoundError, ValidationError
from paylink.core.permissions import Capability, Identity
from paylink.db.session import get_db
from paylink.models import SystemSettings, User
from paylink.schemas.audit import AuditLogEntry, AuditLogListResponse
from paylink.schemas.common import Pagination
from paylink.schemas.settings import SettingsHistoryEntry, SettingsHistoryResponse, SettingsResponse, SettingsUpdate
from paylink.schemas.user import (
    ForceLogoutResponse,
    SessionStatsResponse,
    UserCreate,
    UserListResponse,
    UserRead,
    UserRoleUpdate,
)
from paylink.services import analytics_service, audit_service, settings_service, user_service
from paylink.utils.client import ClientContext
from paylink.utils.time import default_report_window, ensure_utc, utc_now

router = APIRouter()


def _settings_response(current: SystemSettings) -> SettingsResponse:
    return SettingsResponse.model_validate(settings_service.serialize_settings(current))


def _parse_report_date(value: str | None, *, end_of_day: bool) -> datetime | None:
    """Accept an ISO date or datetime; bare dates cover the whole day."""
    if not value:
        return None
    try:
        if len(value) == 10:
            day = datetime.fromisoformat(value).date()
            return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc


@router.get("/settings", response_model=SettingsResponse)
def get_settings(
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.UPDATE_SETTINGS)),
) -> SettingsResponse:
    return _settings_response(settings_service.get_settings(db))


@router.put("/settings", response_model=SettingsResponse)
def update_settings(
    payload: SettingsUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.UPDATE_SETTINGS)),
    context: ClientContext = Depends(get_client_context),
) -> SettingsResponse:
    updated = settings_service.update_settings(
        db,
        payload.model_dump(exclude_unset=True),
        updated_by=identity.user_id,
        context=context,
    )
    return _settings_response(updated)


@router.post("/settings/reset", response_model=SettingsResponse)
def reset_settings(
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.UPDATE_SETTINGS)),
    context: ClientContext = Depends(get_client_context),
) -> SettingsResponse:
    return _settings_response(settings_service.reset_to_defaults(db, updated_by=identity.user_id, context=context))


@router.get("/settings/history", response_model=SettingsHistoryResponse)
def settings_history(
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.UPDATE_SETTINGS)),
) -> SettingsHistoryResponse:
    rows = settings_service.get_settings_history(db, limit=limit)
    return SettingsHistoryResponse(history=[SettingsHistoryEntry.model_validate(row) for row in rows])


@router.get("/audit-logs", response_model=AuditLogListResponse)
def audit_logs(
    action: str | None = None,
    target_id: str | None = Query(default=None, alias="targetId"),
    performed_by: str | None = Query(default=None, alias="performedBy"),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.VIEW_ANALYTICS)),
) -> AuditLogListResponse:
    if action is not None and action not in audit_service.AUDIT_ACTIONS:
        raise ValidationError(f"Unknown action: {action}", details={"allowed": list(audit_service.AUDIT_ACTIONS)})
    entries, total = audit_service.list_audit_logs(
        db,
        action=action,
        target_id=target_id,
        performed_by=performed_by,
        start=_parse_report_date(start_date, end_of_day=False),
        end=_parse_report_date(end_date, end_of_day=True),
        page=page,
        limit=limit,
    )
    return AuditLogListResponse(
        logs=[AuditLogEntry.model_validate(entry) for entry in entries],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/analytics")
def analytics(
    request: Request,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.VIEW_ANALYTICS)),
) -> dict:
    default_start, default_end = default_report_window(utc_now())
    start = _parse_report_date(start_date, end_of_day=False) or default_start
    end = _parse_report_date(end_date, end_of_day=True) or default_end
    return analytics_service.build_analytics(
        db,
        start=start,
        end=end,
        lookup=get_identity_provider(request).get_display_name,
    )


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
) -> UserListResponse:
    users, total = user_service.list_users(db, page=page, limit=limit)
    return UserListResponse(
        users=[UserRead.model_validate(user) for user in users],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.post("/users", response_model=UserRead, status_code=201)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.CREATE_USER)),
    context: ClientContext = Depends(get_client_context),
) -> User:
    return user_service.create_user(
        db,
        username=payload.username,
        password=payload.password,
        role=payload.role,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        created_by=identity.user_id,
        context=context,
    )


@router.put("/users/{user_id}/role", response_model=UserRead)
def update_user_role(
    user_id: int,
    payload: UserRoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
    context: ClientContext = Depends(get_client_context),
) -> User:
    """Change a user's role and end their sessions so the new role applies at once."""
    user = user_service.update_user_role(db, user_id, payload.role, performed_by=identity.user_id, context=context)
    get_session_tracker(request).invalidate_user_sessions(str(user.id))
    return user


@router.post("/users/{user_id}/logout", response_model=ForceLogoutResponse)
def force_logout(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
    context: ClientContext = Depends(get_client_context),
) -> ForceLogoutResponse:
    if user_service.get_user_by_id(db, user_id) is None:
        raise NotFoundError("User not found")
    ended = get_session_tracker(request).invalidate_user_sessions(str(user_id))
    audit_service.log_action(
        db,
        action=audit_service.LOGOUT,
        entity_type=audit_service.ENTITY_AUTH,
        performed_by=identity.user_id,
        target_id=str(user_id),
        details={"scope": "forced", "sessionsEnded": ended},
        context=context,
    )
    db.commit()
    return ForceLogoutResponse(user_id=str(user_id), sessions_ended=ended)


@router.get("/sessions/stats", response_model=SessionStatsResponse)
def session_stats(
    request: Request,
    identity: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
) -> SessionStatsResponse:
    return SessionStatsResponse(**get_session_tracker(request).stats())
