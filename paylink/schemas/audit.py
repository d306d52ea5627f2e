"""Audit log schemas."""

from typing import Any

from paylink.schemas.common import ApiModel, Pagination, UtcDatetime


class AuditLogEntry(ApiModel):
    id: int
    timestamp: UtcDatetime
    action: str
    entity_type: str
    target_id: str | None = None
    performed_by: str
    details: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class AuditLogListResponse(ApiModel):
    logs: list[AuditLogEntry]
    pagination: Pagination
