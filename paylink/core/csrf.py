"""Double-submit cookie CSRF protection.

The token is not bound to the session id; a stronger scheme would derive it
from the session. Safe methods are exempt.
"""

from __future__ import annotations

import hmac
import secrets

from starlette.requests import Request

from paylink.core.errors import CSRFError

CSRF_TOKEN_HEADER: str = "x-csrf-token"
CSRF_COOKIE_NAME: str = "csrf-token"
SAFE_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})


def generate_csrf_token() -> str:
    """Return a 256-bit random hex token."""
    return secrets.token_hex(32)


def tokens_match(header_token: str | None, cookie_token: str | None) -> bool:
    if not header_token or not cookie_token:
        return False
    return hmac.compare_digest(header_token.encode("utf-8"), cookie_token.encode("utf-8"))


def validate_csrf(request: Request) -> None:
    """Raise ``CSRFError`` when a mutating request lacks a matching token."""
    if request.method.upper() in SAFE_METHODS:
        return
    header_token = request.headers.get(CSRF_TOKEN_HEADER)
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
    if not tokens_match(header_token, cookie_token):
        raise CSRFError()
