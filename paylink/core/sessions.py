"""Tracking of active login sessions: idle timeout and per-user cap."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Protocol

from paylink.core.config import settings
from paylink.utils.client import ClientContext

if TYPE_CHECKING:
    from paylink.core.identity import IdentityProvider

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class SessionInfo:
    user_id: str
    session_id: str
    role: str
    last_activity: float
    ip_address: str
    user_agent: str


@dataclass(frozen=True)
class SessionCheck:
    valid: bool
    reason: str = "ok"
    ip_changed: bool = False


class SessionStore(Protocol):
    def get(self, session_id: str) -> SessionInfo | None: ...

    def put(self, info: SessionInfo) -> None: ...

    def delete(self, session_id: str) -> SessionInfo | None: ...

    def touch(self, session_id: str, last_activity: float) -> SessionInfo | None: ...

    def all(self) -> list[SessionInfo]: ...


class InMemorySessionStore:
    """Process-local session store. Not shared between instances."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionInfo] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SessionInfo | None:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, info: SessionInfo) -> None:
        with self._lock:
            self._sessions[info.session_id] = info

    def delete(self, session_id: str) -> SessionInfo | None:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def touch(self, session_id: str, last_activity: float) -> SessionInfo | None:
        """Refresh activity only while the session still exists."""
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            updated = replace(current, last_activity=last_activity)
            self._sessions[session_id] = updated
            return updated

    def all(self) -> list[SessionInfo]:
        with self._lock:
            return list(self._sessions.values())


class SessionTracker:
    def __init__(
        self,
        store: SessionStore,
        *,
        identity_provider: IdentityProvider | None = None,
        idle_timeout_seconds: float | None = None,
        max_sessions_per_user: int | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.store = store
        self.identity_provider = identity_provider
        self.idle_timeout_seconds = (
            idle_timeout_seconds if idle_timeout_seconds is not None else settings.session_idle_timeout_seconds
        )
        self.max_sessions_per_user = (
            max_sessions_per_user if max_sessions_per_user is not None else settings.max_sessions_per_user
        )
        self._clock = clock

    def create_session(self, *, user_id: str, session_id: str, role: str, context: ClientContext) -> SessionInfo:
        """Record a new login and evict the user's least recently active sessions beyond the cap."""
        info = SessionInfo(
            user_id=user_id,
            session_id=session_id,
            role=role,
            last_activity=self._clock(),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        self.store.put(info)
        self._enforce_session_cap(user_id)
        logger.info("[SESSION] created session=%s user=%s role=%s", session_id, user_id, role)
        return info

    def validate(self, session_id: str, context: ClientContext | None = None) -> SessionCheck:
        session = self.store.get(session_id)
        if session is None:
            return SessionCheck(valid=False, reason="unknown")

        now = self._clock()
        if now - session.last_activity > self.idle_timeout_seconds:
            self.store.delete(session_id)
            logger.info("[SESSION] session=%s expired after inactivity", session_id)
            return SessionCheck(valid=False, reason="expired")

        ip_changed = False
        if context is not None and context.ip_address != session.ip_address:
            ip_changed = True
            logger.warning("[SESSION] IP address mismatch for session=%s", session_id)

        if self.store.touch(session_id, now) is None:
            # Logged out or swept while this request was being checked.
            return SessionCheck(valid=False, reason="unknown")
        return SessionCheck(valid=True, ip_changed=ip_changed)

    def invalidate_session(self, session_id: str) -> bool:
        """Drop the local record and try to revoke the identity-provider session."""
        removed = self.store.delete(session_id)
        self._revoke_remote(session_id)
        return removed is not None

    def invalidate_user_sessions(self, user_id: str) -> int:
        removed = 0
        for session in self.user_sessions(user_id):
            if self.store.delete(session.session_id) is not None:
                removed += 1
        if self.identity_provider is not None:
            try:
                self.identity_provider.revoke_user_sessions(user_id)
            except Exception:
                logger.exception("[SESSION] failed to revoke identity-provider sessions for user=%s", user_id)
        logger.info("[SESSION] invalidated %s sessions for user=%s", removed, user_id)
        return removed

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [s for s in self.store.all() if now - s.last_activity > self.idle_timeout_seconds]
        for session in expired:
            self.store.delete(session.session_id)
        if expired:
            logger.info("[SESSION] swept %s idle sessions", len(expired))
        return len(expired)

    def user_sessions(self, user_id: str) -> list[SessionInfo]:
        # Ties on last_activity fall back to insertion order so newer sessions win.
        ranked = [(s.last_activity, index, s) for index, s in enumerate(self.store.all()) if s.user_id == user_id]
        ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [s for _, _, s in ranked]

    def stats(self) -> dict[str, object]:
        sessions = self.store.all()
        by_role: dict[str, int] = {}
        for session in sessions:
            by_role[session.role] = by_role.get(session.role, 0) + 1
        return {
            "total_sessions": len(sessions),
            "active_users": len({s.user_id for s in sessions}),
            "sessions_by_role": by_role,
        }

    def _enforce_session_cap(self, user_id: str) -> None:
        sessions = self.user_sessions(user_id)
        for stale in sessions[self.max_sessions_per_user:]:
            logger.info("[SESSION] evicting session=%s for user=%s (cap reached)", stale.session_id, user_id)
            self.invalidate_session(stale.session_id)

    def _revoke_remote(self, session_id: str) -> None:
        if self.identity_provider is None:
            return
        try:
            self.identity_provider.revoke_session(session_id)
        except Exception:
            logger.exception("[SESSION] failed to revoke identity-provider session=%s", session_id)
