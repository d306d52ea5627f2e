"""Account provisioning and credential checks."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from paylink.core.config import settings
from paylink.core.security import get_password_hash, verify_password
from paylink.models import User
from paylink.utils.time import utc_now

logger = logging.getLogger(__name__)


def ensure_default_admin(db: Session) -> bool:
    """Ensure the configured bootstrap admin exists and is active.

    Does nothing unless both ``ADMIN_USER`` and ``ADMIN_PASS`` are set.

    Returns:
        bool: True when the admin user exists after this call.
    """
    if not settings.admin_user or not settings.admin_pass:
        logger.info("[BOOTSTRAP] ADMIN_USER/ADMIN_PASS not set; skipping admin bootstrap")
        return False

    existing_admin = db.scalar(select(User).where(User.username == settings.admin_user).limit(1))
    if existing_admin is not None:
        updates_applied = False
        if not existing_admin.is_active:
            existing_admin.is_active = True
            updates_applied = True
            logger.info("[BOOTSTRAP] Admin exists but was inactive; account re-activated.")
        if existing_admin.role != "admin":
            logger.warning(
                "[BOOTSTRAP] Bootstrap account %s had role=%s; restoring admin.",
                existing_admin.username,
                existing_admin.role,
            )
            existing_admin.role = "admin"
            updates_applied = True
        if updates_applied:
            db.commit()
        logger.info("[BOOTSTRAP] Admin exists")
        return True

    admin = User(
        username=settings.admin_user,
        password_hash=get_password_hash(settings.admin_pass),
        role="admin",
        is_active=True,
    )
    db.add(admin)
    db.commit()
    logger.warning("[SECURITY] Bootstrap admin account %s created from environment.", settings.admin_user)
    return True


def authenticate_user(db: Session, username: str, password: str) -> User | None:
    user = db.scalar(select(User).where(User.username == username.strip()).limit(1))
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    user.last_login_at = utc_now()
    db.commit()
    db.refresh(user)
    return user
