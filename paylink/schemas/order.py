"""Order API schemas."""

from decimal import Decimal

from pydantic import Field

from paylink.schemas.common import Amount, ApiModel, Pagination, UtcDatetime


class OrderCreate(ApiModel):
    """Create a payment link."""

    amount: Decimal
    merchant_name: str
    vpa: str


class OrderCreatedResponse(ApiModel):
    order_id: str
    amount: Amount
    merchant_name: str
    vpa: str
    status: str
    payment_page_url: str
    upi_links: dict[str, str]
    created_at: UtcDatetime
    expires_at: UtcDatetime


class OrderResponse(ApiModel):
    """Order as seen by its creator or an admin."""

    order_id: str
    amount: Amount
    merchant_name: str
    vpa: str
    status: str
    utr: str | None = None
    created_by: str
    created_at: UtcDatetime
    expires_at: UtcDatetime
    status_updated_at: UtcDatetime | None = None
    verified_by: str | None = None
    payment_page_url: str
    upi_deep_link: str
    can_submit_utr: bool = Field(default=False, alias="canSubmitUTR")


class PaymentPageResponse(ApiModel):
    """Public payer view of an order."""

    order_id: str
    amount: Amount
    merchant_name: str
    vpa: str
    status: str
    created_at: UtcDatetime
    expires_at: UtcDatetime
    can_submit_utr: bool = Field(alias="canSubmitUTR")
    time_remaining: int
    utr_submitted: bool
    upi_links: dict[str, str]
    enabled_apps: list[str]
    app_store_urls: dict[str, dict[str, str]]


class UtrSubmission(ApiModel):
    utr: str


class UtrSubmissionResponse(ApiModel):
    order_id: str
    status: str
    utr: str
    message: str = "UTR submitted successfully. Payment is pending verification."


class OrderStatusUpdate(ApiModel):
    """Verification outcome for an order awaiting review."""

    status: str
    reason: str | None = Field(default=None, max_length=500)


class OrderListResponse(ApiModel):
    orders: list[OrderResponse]
    pagination: Pagination


class OrderStatsResponse(ApiModel):
    total: int
    by_status: dict[str, int]
    completed_amount: Amount
    conversion_rate: float


class ExpireOrdersResponse(ApiModel):
    expired: list[str]
    count: int
