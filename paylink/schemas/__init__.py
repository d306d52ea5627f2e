"""Schema exports."""

from paylink.schemas.audit import AuditLogEntry, AuditLogListResponse
from paylink.schemas.auth import (
    ActiveSession,
    ActiveSessionsResponse,
    CsrfTokenResponse,
    LoginRequest,
    LogoutResponse,
    SessionResponse,
    TokenResponse,
)
from paylink.schemas.common import ApiModel, Pagination
from paylink.schemas.order import (
    ExpireOrdersResponse,
    OrderCreate,
    OrderCreatedResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusUpdate,
    PaymentPageResponse,
    UtrSubmission,
    UtrSubmissionResponse,
)
from paylink.schemas.settings import SettingsHistoryEntry, SettingsHistoryResponse, SettingsResponse, SettingsUpdate
from paylink.schemas.user import (
    ForceLogoutResponse,
    SessionStatsResponse,
    UserCreate,
    UserListResponse,
    UserRead,
    UserRoleUpdate,
)

__all__ = [
    "ActiveSession",
    "ActiveSessionsResponse",
    "ApiModel",
    "AuditLogEntry",
    "AuditLogListResponse",
    "CsrfTokenResponse",
    "ExpireOrdersResponse",
    "ForceLogoutResponse",
    "LoginRequest",
    "LogoutResponse",
    "OrderCreate",
    "OrderCreatedResponse",
    "OrderListResponse",
    "OrderResponse",
    "OrderStatsResponse",
    "OrderStatusUpdate",
    "Pagination",
    "PaymentPageResponse",
    "SessionResponse",
    "SessionStatsResponse",
    "SettingsHistoryEntry",
    "SettingsHistoryResponse",
    "SettingsResponse",
    "SettingsUpdate",
    "TokenResponse",
    "UserCreate",
    "UserListResponse",
    "UserRead",
    "UserRoleUpdate",
    "UtrSubmission",
    "UtrSubmissionResponse",
]
