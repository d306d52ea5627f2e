"""FastAPI entrypoint for the UPI payment-link service."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI

from paylink.api.v1.api import api_router
from paylink.core.config import settings
from paylink.core.identity import LocalIdentityProvider
from paylink.core.logging import configure_logging
from paylink.core.middleware import install_exception_handlers, install_security_middleware
from paylink.core.rate_limit import build_rate_limiters
from paylink.core.sessions import InMemorySessionStore, SessionTracker
from paylink.db import session as db_session
from paylink.db.base import Base
from paylink.services.account_service import ensure_default_admin

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
install_exception_handlers(app)
install_security_middleware(app)
app.include_router(api_router, prefix="/api/v1")


async def _sweep_periodically(target: FastAPI) -> None:
    """Purge idle sessions, stale rate-limit counters and lapsed revocations."""
    while True:
        await asyncio.sleep(settings.sweep_interval_seconds)
        try:
            target.state.session_tracker.sweep_expired()
            target.state.rate_limiters.purge_expired()
            target.state.identity_provider.purge_expired()
        except Exception:
            logger.exception("[SWEEP] background cleanup failed; retrying next interval")


@app.on_event("startup")
async def startup() -> None:
    configure_logging()
    if settings.jwt_secret_key.startswith("dev-only"):
        logger.warning("JWT_SECRET_KEY not set; using development fallback secret.")
    Base.metadata.create_all(bind=db_session.engine)
    with db_session.SessionLocal() as session:
        try:
            admin_present = ensure_default_admin(session)
            logger.info("[BOOTSTRAP] admin present: %s", "yes" if admin_present else "no")
        except Exception:
            logger.exception("[BOOTSTRAP] Admin bootstrap failed; continuing startup.")

    identity_provider = LocalIdentityProvider()
    app.state.identity_provider = identity_provider
    app.state.rate_limiters = build_rate_limiters()
    app.state.session_tracker = SessionTracker(InMemorySessionStore(), identity_provider=identity_provider)
    app.state.sweep_task = asyncio.create_task(_sweep_periodically(app))


@app.on_event("shutdown")
async def shutdown() -> None:
    task = getattr(app.state, "sweep_task", None)
    if task is None:
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "environment": settings.app_env}
