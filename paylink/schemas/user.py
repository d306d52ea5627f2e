"""User management schemas."""

from pydantic import Field

from paylink.schemas.common import ApiModel, Pagination, UtcDatetime


class UserCreate(ApiModel):
    username: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=8)
    role: str = "merchant"
    email: str | None = None
    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)


class UserRoleUpdate(ApiModel):
    role: str


class UserRead(ApiModel):
    id: int
    username: str
    role: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    display_name: str
    is_active: bool
    created_at: UtcDatetime
    last_login_at: UtcDatetime | None = None


class UserListResponse(ApiModel):
    users: list[UserRead]
    pagination: Pagination


class ForceLogoutResponse(ApiModel):
    user_id: str
    sessions_ended: int


class SessionStatsResponse(ApiModel):
    total_sessions: int
    active_users: int
    sessions_by_role: dict[str, int]
