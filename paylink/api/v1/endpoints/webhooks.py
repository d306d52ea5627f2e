"""Identity-provider webhook receiver.

Events are authenticated by an HMAC-SHA256 signature of the raw body in
``x-webhook-signature`` (hex, optionally prefixed with ``sha256=``). Audit
writes here are best-effort: a failed write is logged, never returned.
"""

import hashlib
import hmac
import json
import logging
from typing import Any

from fastapi import APIRouter, Request

from paylink.core.config import settings
from paylink.core.errors import AuthenticationError, InternalError, ValidationError
from paylink.services import audit_service

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER: str = "x-webhook-signature"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]
    return hmac.compare_digest(compute_signature(secret, body), provided)


def _role_of(attributes: Any) -> str | None:
    if not isinstance(attributes, dict):
        return None
    metadata = attributes.get("public_metadata")
    if not isinstance(metadata, dict):
        return None
    role = metadata.get("role")
    return role if isinstance(role, str) else None


def _handle_user_created(data: dict[str, Any]) -> None:
    audit_service.log_action_best_effort(
        action=audit_service.USER_CREATED,
        entity_type=audit_service.ENTITY_USER,
        target_id=str(data.get("id")),
        performed_by=audit_service.SYSTEM_ACTOR,
        details={
            "email": data.get("email"),
            "firstName": data.get("first_name"),
            "lastName": data.get("last_name"),
            "role": _role_of(data) or "merchant",
            "source": "identity_webhook",
        },
    )


def _handle_user_updated(data: dict[str, Any]) -> None:
    previous_role = _role_of(data.get("previous_attributes"))
    new_role = _role_of(data)
    if previous_role is None or previous_role == new_role:
        return
    audit_service.log_action_best_effort(
        action=audit_service.USER_ROLE_UPDATED,
        entity_type=audit_service.ENTITY_USER,
        target_id=str(data.get("id")),
        performed_by=audit_service.SYSTEM_ACTOR,
        details={"previousRole": previous_role, "newRole": new_role, "source": "identity_webhook"},
    )


def _handle_user_deleted(data: dict[str, Any]) -> None:
    audit_service.log_action_best_effort(
        action=audit_service.USER_DELETED,
        entity_type=audit_service.ENTITY_USER,
        target_id=str(data.get("id")),
        performed_by=audit_service.SYSTEM_ACTOR,
        details={"source": "identity_webhook"},
    )


EVENT_HANDLERS = {
    "user.created": _handle_user_created,
    "user.updated": _handle_user_updated,
    "user.deleted": _handle_user_deleted,
}


@router.post("/identity")
async def identity_webhook(request: Request) -> dict[str, Any]:
    if not settings.webhook_secret:
        logger.error("[WEBHOOK] IDENTITY_WEBHOOK_SECRET is not configured")
        raise InternalError("Webhook secret not configured")

    body = await request.body()
    if not verify_signature(settings.webhook_secret, body, request.headers.get(SIGNATURE_HEADER)):
        logger.warning("[WEBHOOK] rejected event with invalid signature")
        raise AuthenticationError("Invalid webhook signature")

    try:
        event = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Webhook body must be JSON") from exc
    if not isinstance(event, dict):
        raise ValidationError("Webhook body must be a JSON object")

    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("[WEBHOOK] ignoring unhandled event type=%s", event_type)
        return {"received": True, "handled": False}

    data = event.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("Webhook data must be a JSON object")
    handler(data)
    logger.info("[WEBHOOK] processed event type=%s", event_type)
    return {"received": True, "handled": True}
