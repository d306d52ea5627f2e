"""Authentication endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from paylink.auth import (
    get_client_context,
    get_current_identity,
    get_identity_provider,
    get_session_tracker,
    rate_limit,
)
from paylink.core.config import settings
from paylink.core.csrf import CSRF_COOKIE_NAME, generate_csrf_token
from paylink.core.errors import AuthenticationError
from paylink.core.identity import SESSION_COOKIE_NAME
from paylink.core.permissions import Identity
from paylink.db.session import get_db
from paylink.schemas.auth import (
    ActiveSession,
    ActiveSessionsResponse,
    CsrfTokenResponse,
    LoginRequest,
    LogoutResponse,
    SessionResponse,
    TokenResponse,
)
from paylink.services import account_service, audit_service
from paylink.utils.client import ClientContext

logger = logging.getLogger(__name__)

router: APIRouter = APIRouter()

CLEAR_SITE_DATA: str = '"cache", "cookies", "storage"'


def _signed_out_response(message: str, sessions_ended: int) -> JSONResponse:
    response = JSONResponse(LogoutResponse(message=message, sessions_ended=sessions_ended).model_dump(by_alias=True))
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    response.delete_cookie(CSRF_COOKIE_NAME, path="/")
    response.headers["Clear-Site-Data"] = CLEAR_SITE_DATA
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
    response.headers["Pragma"] = "no-cache"
    return response


@router.get("/csrf", response_model=CsrfTokenResponse)
def issue_csrf_token(response: Response) -> CsrfTokenResponse:
    """Issue a double-submit token: send it back in ``x-csrf-token`` on mutating requests."""
    token = generate_csrf_token()
    response.set_cookie(
        CSRF_COOKIE_NAME,
        token,
        httponly=False,
        secure=settings.cookie_secure,
        samesite="strict",
        path="/",
    )
    return CsrfTokenResponse(csrf_token=token)


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(rate_limit("auth"))])
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    context: ClientContext = Depends(get_client_context),
) -> TokenResponse:
    user = account_service.authenticate_user(db, payload.username, payload.password)
    if user is None:
        audit_service.log_action_best_effort(
            action=audit_service.LOGIN_ATTEMPT,
            entity_type=audit_service.ENTITY_AUTH,
            performed_by=audit_service.ANONYMOUS_ACTOR,
            target_id=payload.username.strip()[:128] or None,
            details={"success": False},
            context=context,
        )
        logger.info("[AUTH] failed login for username=%s", payload.username)
        raise AuthenticationError("Incorrect username or password")

    token, session_id = get_identity_provider(request).issue_session(user)
    get_session_tracker(request).create_session(
        user_id=str(user.id),
        session_id=session_id,
        role=user.role,
        context=context,
    )
    audit_service.log_action(
        db,
        action=audit_service.LOGIN_ATTEMPT,
        entity_type=audit_service.ENTITY_AUTH,
        performed_by=str(user.id),
        target_id=str(user.id),
        details={"success": True, "sessionId": session_id},
        context=context,
    )
    db.commit()

    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=settings.jwt_expire_minutes * 60,
        path="/",
    )
    return TokenResponse(access_token=token, session_id=session_id, user_id=str(user.id), role=user.role)


@router.post("/logout")
def logout(
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    context: ClientContext = Depends(get_client_context),
) -> JSONResponse:
    get_session_tracker(request).invalidate_session(identity.session_id)
    audit_service.log_action(
        db,
        action=audit_service.LOGOUT,
        entity_type=audit_service.ENTITY_AUTH,
        performed_by=identity.user_id,
        target_id=identity.user_id,
        details={"sessionId": identity.session_id, "scope": "current"},
        context=context,
    )
    db.commit()
    return _signed_out_response("Logged out successfully", 1)


@router.post("/logout-all")
def logout_all(
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    context: ClientContext = Depends(get_client_context),
) -> JSONResponse:
    ended = get_session_tracker(request).invalidate_user_sessions(identity.user_id)
    audit_service.log_action(
        db,
        action=audit_service.LOGOUT,
        entity_type=audit_service.ENTITY_AUTH,
        performed_by=identity.user_id,
        target_id=identity.user_id,
        details={"scope": "all", "sessionsEnded": ended},
        context=context,
    )
    db.commit()
    return _signed_out_response("Logged out from all sessions", ended)


@router.get("/session", response_model=SessionResponse)
def session_status(request: Request, identity: Identity = Depends(get_current_identity)) -> SessionResponse:
    return SessionResponse(
        user_id=identity.user_id,
        session_id=identity.session_id,
        role=identity.role.value,
        capabilities=sorted(capability.value for capability in identity.capabilities),
        ip_changed=getattr(request.state, "ip_changed", False),
    )


@router.get("/sessions", response_model=ActiveSessionsResponse)
def active_sessions(request: Request, identity: Identity = Depends(get_current_identity)) -> ActiveSessionsResponse:
    sessions = get_session_tracker(request).user_sessions(identity.user_id)
    return ActiveSessionsResponse(
        sessions=[
            ActiveSession(
                session_id=session.session_id,
                last_activity=datetime.fromtimestamp(session.last_activity, tz=timezone.utc),
                ip_address=session.ip_address,
                user_agent=session.user_agent,
                current=session.session_id == identity.session_id,
            )
            for session in sessions
        ]
    )
