"""User service operations."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from paylink.core.errors import ConflictError, NotFoundError, ValidationError
from paylink.core.permissions import normalize_role
from paylink.core.security import get_password_hash
from paylink.models import User
from paylink.services import audit_service
from paylink.utils.client import ClientContext

logger = logging.getLogger(__name__)


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.scalar(select(User).where(User.username == username).limit(1))


def get_user_by_id(db: Session, user_id: int | str) -> User | None:
    try:
        return db.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


def list_users(db: Session, *, page: int = 1, limit: int = 50) -> tuple[list[User], int]:
    total = db.scalar(select(func.count(User.id))) or 0
    users = db.scalars(select(User).order_by(User.id).offset((max(page, 1) - 1) * limit).limit(limit)).all()
    return list(users), int(total)


def create_user(
    db: Session,
    *,
    username: str,
    password: str,
    role: str,
    created_by: str,
    email: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    context: ClientContext | None = None,
) -> User:
    clean_username = username.strip()
    if not clean_username:
        raise ValidationError("Username is required", details={"field": "username"})
    if get_user_by_username(db, clean_username) is not None:
        raise ConflictError("Username already exists")
    try:
        password_hash = get_password_hash(password)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"field": "password"}) from exc

    canonical_role = normalize_role(role)
    user = User(
        username=clean_username,
        password_hash=password_hash,
        role=canonical_role.value,
        email=email,
        first_name=first_name,
        last_name=last_name,
        is_active=True,
    )
    db.add(user)
    db.flush()
    audit_service.log_action(
        db,
        action=audit_service.USER_CREATED,
        entity_type=audit_service.ENTITY_USER,
        target_id=str(user.id),
        performed_by=created_by,
        details={"username": clean_username, "email": email, "role": canonical_role.value},
        context=context,
    )
    db.commit()
    db.refresh(user)
    logger.info("[USERS] created user=%s role=%s by=%s", user.id, canonical_role.value, created_by)
    return user


def update_user_role(
    db: Session,
    user_id: int | str,
    role: str,
    *,
    performed_by: str,
    context: ClientContext | None = None,
) -> User:
    user = get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    new_role = normalize_role(role)
    previous_role = user.role
    user.role = new_role.value
    audit_service.log_action(
        db,
        action=audit_service.USER_ROLE_UPDATED,
        entity_type=audit_service.ENTITY_USER,
        target_id=str(user.id),
        performed_by=performed_by,
        details={"previousRole": previous_role, "newRole": new_role.value},
        context=context,
    )
    db.commit()
    db.refresh(user)
    logger.info("[USERS] role for user=%s changed %s -> %s by=%s", user.id, previous_role, new_role.value, performed_by)
    return user
