"""Double-submit CSRF token tests."""

import pytest
from starlette.requests import Request

from paylink.core.csrf import CSRF_COOKIE_NAME, CSRF_TOKEN_HEADER, generate_csrf_token, tokens_match, validate_csrf
from paylink.core.errors import CSRFError


def _request(method: str, header: str | None = None, cookie: str | None = None) -> Request:
    headers: list[tuple[bytes, bytes]] = []
    if header is not None:
        headers.append((CSRF_TOKEN_HEADER.encode(), header.encode()))
    if cookie is not None:
        headers.append((b"cookie", f"{CSRF_COOKIE_NAME}={cookie}".encode()))
    return Request({"type": "http", "method": method, "path": "/", "headers": headers, "query_string": b""})


def test_generated_token_is_64_hex_chars() -> None:
    token = generate_csrf_token()

    assert len(token) == 64
    int(token, 16)
    assert token != generate_csrf_token()


def test_tokens_match_requires_both_values() -> None:
    assert tokens_match("abc", "abc")
    assert not tokens_match("abc", "abd")
    assert not tokens_match(None, "abc")
    assert not tokens_match("abc", "")


def test_safe_methods_skip_validation() -> None:
    validate_csrf(_request("GET"))
    validate_csrf(_request("HEAD"))


@pytest.mark.parametrize(
    ("header", "cookie"),
    [(None, None), ("token-a", None), (None, "token-a"), ("token-a", "token-b")],
)
def test_mutating_request_without_matching_pair_is_rejected(header, cookie) -> None:
    with pytest.raises(CSRFError) as exc_info:
        validate_csrf(_request("POST", header=header, cookie=cookie))

    assert exc_info.value.status_code == 403
    assert exc_info.value.code == "CSRF_TOKEN_INVALID"


def test_mutating_request_with_matching_pair_passes() -> None:
    token = generate_csrf_token()

    validate_csrf(_request("PUT", header=token, cookie=token))
