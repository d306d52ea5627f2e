"""Payment order model."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paylink.db.base import Base


class Order(Base):
    """A short-lived UPI payment request shared with a payer."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    merchant_name: Mapped[str] = mapped_column(String(100), nullable=False)
    vpa: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    utr: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_page_url: Mapped[str] = mapped_column(String(512), nullable=False)
    upi_deep_link: Mapped[str] = mapped_column(Text, nullable=False)
    # Request provenance: creator IP/UA, UTR submission details, expiry marker.
    request_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("uq_orders_order_id", "order_id", unique=True),
        Index("uq_orders_utr", "utr", unique=True),
        Index("ix_orders_status_expires_at", "status", "expires_at"),
        Index("ix_orders_created_by", "created_by"),
    )
