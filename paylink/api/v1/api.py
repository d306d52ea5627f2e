"""API v1 router composition."""

from fastapi import APIRouter, Depends

from paylink.api.v1.endpoints import admin, auth, orders, webhooks
from paylink.auth import rate_limit

api_router: APIRouter = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(rate_limit("admin"))],
)
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
