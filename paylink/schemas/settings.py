"""System settings API schemas."""

from typing import Any

from paylink.schemas.common import ApiModel, UtcDatetime


class SettingsResponse(ApiModel):
    timer_duration: int
    static_upi_id: str | None = None
    enabled_upi_apps: dict[str, bool]
    updated_by: str | None = None
    updated_at: UtcDatetime | None = None


class SettingsUpdate(ApiModel):
    """Partial update; omitted fields keep their value."""

    timer_duration: Any = None
    static_upi_id: str | None = None
    enabled_upi_apps: dict[str, Any] | None = None


class SettingsHistoryEntry(ApiModel):
    id: int
    changed_at: UtcDatetime
    updated_by: str
    change_type: str
    changes: dict[str, Any]
    snapshot: dict[str, Any]
    ip_address: str | None = None
    user_agent: str | None = None


class SettingsHistoryResponse(ApiModel):
    history: list[SettingsHistoryEntry]
