"""Authentication-related request and response schemas."""

from paylink.schemas.common import ApiModel, UtcDatetime


class LoginRequest(ApiModel):
    """Payload for user login."""

    username: str
    password: str


class TokenResponse(ApiModel):
    """JWT response payload."""

    access_token: str
    token_type: str = "bearer"
    session_id: str
    user_id: str
    role: str


class CsrfTokenResponse(ApiModel):
    csrf_token: str


class SessionResponse(ApiModel):
    user_id: str
    session_id: str
    role: str
    capabilities: list[str]
    ip_changed: bool = False


class ActiveSession(ApiModel):
    session_id: str
    last_activity: UtcDatetime
    ip_address: str
    user_agent: str
    current: bool


class ActiveSessionsResponse(ApiModel):
    sessions: list[ActiveSession]


class LogoutResponse(ApiModel):
    message: str
    sessions_ended: int = 1
