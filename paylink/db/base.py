"""Shared SQLAlchemy base declarative class and model imports."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for ORM models."""


# Import model modules so metadata is populated before create_all.
from paylink.models import audit_log as _audit_log  # noqa: E402,F401
from paylink.models import order as _order  # noqa: E402,F401
from paylink.models import system_settings as _system_settings  # noqa: E402,F401
from paylink.models import user as _user  # noqa: E402,F401
