"""Local identity provider: token resolution and revocation bookkeeping."""

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from starlette.requests import Request

from paylink.core.config import settings
from paylink.core.errors import AuthenticationError
from paylink.core.identity import REVOCATION_GRACE_SECONDS, LocalIdentityProvider
from paylink.core.permissions import Role
from paylink.core.security import get_password_hash
from paylink.db.base import Base
from paylink.models import User


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _session_factory(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'identity.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _bearer_request(token: str) -> Request:
    headers = [(b"authorization", f"Bearer {token}".encode())]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


def _seed_user(db) -> User:
    user = User(username="merchant", password_hash=get_password_hash("merchant-pass"), role="merchant", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_issued_token_resolves_to_identity(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    provider = LocalIdentityProvider()

    with session_local() as db:
        user = _seed_user(db)
        token, session_id = provider.issue_session(user)
        identity = provider.authenticate(_bearer_request(token), db)

    assert identity.user_id == str(user.id)
    assert identity.session_id == session_id
    assert identity.role is Role.MERCHANT


def test_revoked_session_is_rejected(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    provider = LocalIdentityProvider()

    with session_local() as db:
        user = _seed_user(db)
        token, session_id = provider.issue_session(user)
        provider.revoke_session(session_id)

        with pytest.raises(AuthenticationError):
            provider.authenticate(_bearer_request(token), db)


def test_revocations_are_purged_once_tokens_lapse() -> None:
    clock = FakeClock()
    provider = LocalIdentityProvider(clock=clock)
    for index in range(1000):
        provider.revoke_session(f"sid-{index}")
    provider.revoke_user_sessions("42")

    assert provider.purge_expired() == 0

    clock.now += settings.jwt_expire_minutes * 60 + REVOCATION_GRACE_SECONDS
    assert provider.purge_expired() == 1001
    assert provider.purge_expired() == 0


def test_purge_keeps_revocations_still_guarding_live_tokens() -> None:
    clock = FakeClock()
    provider = LocalIdentityProvider(clock=clock)
    provider.revoke_session("old")
    clock.now += settings.jwt_expire_minutes * 60
    provider.revoke_session("recent")

    clock.now += REVOCATION_GRACE_SECONDS
    assert provider.purge_expired() == 1
    assert provider._is_revoked("1", "recent", clock.now)
    assert not provider._is_revoked("1", "old", clock.now)
