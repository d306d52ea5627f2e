"""Request dependencies: identity resolution, capability checks and named rate limits."""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from paylink.core.errors import AuthenticationError
from paylink.core.identity import IdentityProvider
from paylink.core.permissions import Capability, Identity
from paylink.core.rate_limit import RateLimiterRegistry
from paylink.core.sessions import SessionTracker
from paylink.db.session import get_db
from paylink.utils.client import ClientContext, client_context, client_key

logger = logging.getLogger(__name__)


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_session_tracker(request: Request) -> SessionTracker:
    return request.app.state.session_tracker


def get_rate_limiters(request: Request) -> RateLimiterRegistry:
    return request.app.state.rate_limiters


def get_client_context(request: Request) -> ClientContext:
    return client_context(request)


def rate_limit(name: str) -> Callable[[Request, Response], None]:
    """Build a dependency enforcing the named limiter for the calling client."""

    def _limit(request: Request, response: Response) -> None:
        result = get_rate_limiters(request).get(name).enforce(client_key(request))
        for header, value in result.headers().items():
            response.headers[header] = value

    return _limit


def get_current_identity(request: Request, db: Session = Depends(get_db)) -> Identity:
    """Resolve the caller, then validate and refresh the tracked session."""
    identity = get_identity_provider(request).authenticate(request, db)
    check = get_session_tracker(request).validate(identity.session_id, client_context(request))
    if not check.valid:
        if check.reason == "expired":
            raise AuthenticationError("Session expired due to inactivity. Please sign in again.")
        raise AuthenticationError("Session not found. Please sign in again.")
    request.state.identity = identity
    request.state.ip_changed = check.ip_changed
    return identity


def require_capability(capability: Capability) -> Callable[..., Identity]:
    """Build a dependency that returns the identity only if it holds ``capability``."""

    def _checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        identity.require(capability)
        return identity

    return _checker
