"""Request provenance helpers (client IP, user agent)."""

from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import HTTPConnection

UNKNOWN: str = "unknown"


@dataclass(frozen=True)
class ClientContext:
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN


def forwarded_ip(request: HTTPConnection) -> str | None:
    """Return the first address of X-Forwarded-For / X-Real-IP, if any."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    return real_ip.strip() if real_ip else None


def client_ip(request: HTTPConnection) -> str:
    ip = forwarded_ip(request)
    if ip:
        return ip
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN


def user_agent(request: HTTPConnection) -> str:
    return request.headers.get("user-agent") or UNKNOWN


def client_context(request: HTTPConnection) -> ClientContext:
    return ClientContext(ip_address=client_ip(request), user_agent=user_agent(request))


def client_key(request: HTTPConnection) -> str:
    """Identity used for rate limiting.

    The bare peer address when the request arrives directly; the address plus
    user agent when it is missing or came through a proxy header.
    """
    if forwarded_ip(request) is None and request.client and request.client.host:
        return request.client.host
    return f"{client_ip(request)}:{user_agent(request)}"
