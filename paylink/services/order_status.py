"""Order status transition helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, update
from sqlalchemy.orm import Session

from paylink.models.order import Order

PENDING: str = "pending"
PENDING_VERIFICATION: str = "pending-verification"
COMPLETED: str = "completed"
FAILED: str = "failed"
EXPIRED: str = "expired"

ORDER_STATUSES: list[str] = [PENDING, PENDING_VERIFICATION, COMPLETED, EXPIRED, FAILED]
DECISION_OUTCOMES: frozenset[str] = frozenset({COMPLETED, FAILED})

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PENDING_VERIFICATION, EXPIRED},
    PENDING_VERIFICATION: {COMPLETED, FAILED},
    COMPLETED: set(),
    FAILED: set(),
    EXPIRED: set(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def can_transition(current: str, new: str) -> bool:
    """Return whether order can move from current to new status."""
    return new in ALLOWED_TRANSITIONS.get(current, set())


def compare_and_set_status(
    db: Session,
    order_id: str,
    *,
    expected: str,
    new: str,
    now: datetime,
    conditions: tuple[ColumnElement[bool], ...] = (),
    values: dict[str, Any] | None = None,
) -> bool:
    """Move ``order_id`` from ``expected`` to ``new`` only if it is still ``expected``.

    Runs a single conditional UPDATE inside the caller's transaction and
    returns True when exactly this call changed the row. A False result means
    another request transitioned the order first.
    """
    if not can_transition(expected, new):
        raise ValueError(f"Transition {expected} -> {new} is not allowed")

    stmt = (
        update(Order)
        .where(Order.order_id == order_id, Order.status == expected, *conditions)
        .values(status=new, status_updated_at=now, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1
