"""Identity provider seam: resolves request credentials to an ``Identity``.

``LocalIdentityProvider`` verifies JWTs issued at login against the local
user table. Another provider can be swapped in on ``app.state`` as long as it
implements ``IdentityProvider``.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable
from typing import Protocol

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from paylink.core.config import settings
from paylink.core.errors import AuthenticationError, ExternalServiceError, NotFoundError
from paylink.core.permissions import Identity, normalize_role
from paylink.core.security import create_access_token, verify_token
from paylink.db import session as db_session
from paylink.models import User

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME: str = "session"
# Revocations outlive the token lifetime by this much to absorb clock drift.
REVOCATION_GRACE_SECONDS: int = 60

Clock = Callable[[], float]


class IdentityProvider(Protocol):
    def authenticate(self, request: HTTPConnection, db: Session) -> Identity: ...

    def issue_session(self, user: User) -> tuple[str, str]: ...

    def revoke_session(self, session_id: str) -> None: ...

    def revoke_user_sessions(self, user_id: str) -> None: ...

    def get_display_name(self, user_id: str) -> str: ...

    def purge_expired(self) -> int: ...


def extract_token(request: HTTPConnection) -> str | None:
    """Bearer token from the Authorization header, else the session cookie."""
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(SESSION_COOKIE_NAME) or None


class LocalIdentityProvider:
    def __init__(self, clock: Clock = time.time) -> None:
        # session id -> moment after which any token carrying it has expired
        self._revoked_sessions: dict[str, float] = {}
        self._revoked_before: dict[str, float] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def issue_session(self, user: User) -> tuple[str, str]:
        """Return ``(token, session_id)`` for a freshly authenticated user."""
        session_id = secrets.token_urlsafe(24)
        token = create_access_token({"sub": str(user.id), "sid": session_id, "auth_time": self._clock()})
        return token, session_id

    def authenticate(self, request: HTTPConnection, db: Session) -> Identity:
        token = extract_token(request)
        if not token:
            raise AuthenticationError("Authentication required")

        payload = verify_token(token)
        user_id = payload.get("sub")
        session_id = payload.get("sid")
        if not user_id or not session_id:
            raise AuthenticationError("Invalid token payload")
        if self._is_revoked(str(user_id), str(session_id), payload.get("auth_time")):
            raise AuthenticationError("Session has been revoked")

        try:
            user = db.get(User, int(user_id))
        except OperationalError as exc:
            logger.error("[AUTH] user store unavailable: %s", exc)
            raise ExternalServiceError("Authentication service unavailable") from exc
        except ValueError as exc:
            raise AuthenticationError("Invalid token payload") from exc
        if user is None or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        return Identity.for_role(str(user.id), str(session_id), normalize_role(user.role))

    def revoke_session(self, session_id: str) -> None:
        with self._lock:
            self._revoked_sessions[session_id] = self._clock() + self._retention_seconds()

    def revoke_user_sessions(self, user_id: str) -> None:
        with self._lock:
            self._revoked_before[user_id] = self._clock()

    def purge_expired(self) -> int:
        """Forget revocations whose tokens can no longer pass signature checks."""
        now = self._clock()
        retention = self._retention_seconds()
        with self._lock:
            stale_sessions = [sid for sid, until in self._revoked_sessions.items() if until <= now]
            for sid in stale_sessions:
                del self._revoked_sessions[sid]
            stale_users = [uid for uid, cutoff in self._revoked_before.items() if cutoff + retention <= now]
            for uid in stale_users:
                del self._revoked_before[uid]
        purged = len(stale_sessions) + len(stale_users)
        if purged:
            logger.debug("[AUTH] purged %s expired revocations", purged)
        return purged

    def get_display_name(self, user_id: str) -> str:
        with db_session.SessionLocal() as db:
            try:
                user = db.get(User, int(user_id))
            except ValueError as exc:
                raise NotFoundError("User not found") from exc
            if user is None:
                raise NotFoundError("User not found")
            return user.display_name

    def _retention_seconds(self) -> int:
        return settings.jwt_expire_minutes * 60 + REVOCATION_GRACE_SECONDS

    def _is_revoked(self, user_id: str, session_id: str, auth_time: object) -> bool:
        with self._lock:
            if session_id in self._revoked_sessions:
                return True
            cutoff = self._revoked_before.get(user_id)
        if cutoff is None:
            return False
        return not isinstance(auth_time, (int, float)) or auth_time <= cutoff
