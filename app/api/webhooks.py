"""
Webhook endpoints for external integrations.

Handles:
- Whop subscription lifecycle events (membership, invoice, payment)

CRITICAL: Once the request is authentic and parseable we return 200 OK,
even when processing failed, so Whop does not keep retrying. Failures are
logged and reported to Sentry instead.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.deps import get_storage
from app.core.config import settings
from app.core.sentry import capture_business_error
from app.models.webhook import WebhookResponse, WhopWebhookEvent
from app.modules.billing.reconciler import WebhookReconciler, verify_signature
from app.storage.base import Storage

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "whop-signature"


@router.post("/whop")
async def whop_webhook(request: Request, storage: Storage = Depends(get_storage)):
    """
    Receive a Whop webhook.

    The signature (hex HMAC-SHA256 of the raw body, header `whop-signature`)
    is only enforced in production with WHOP_WEBHOOK_SECRET configured.

    Status codes:
    - 401: signature header missing
    - 403: signature does not match
    - 400: body is not JSON, or has no data.user_id
    - 200: everything else, with success=false when processing failed

    Usage:
        curl -X POST http://localhost:5000/api/webhooks/whop \
          -H "Content-Type: application/json" \
          -d '{"type": "membership.activated", "data": {"user_id": "user_1", "plan_id": "plan_pro"}}'
    """
    body = await request.body()

    if settings.is_production and settings.WHOP_WEBHOOK_SECRET:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            logger.warning("Whop webhook rejected: missing signature")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing webhook signature")
        if not verify_signature(body, signature, settings.WHOP_WEBHOOK_SECRET):
            logger.warning("Whop webhook rejected: invalid signature")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid webhook signature")

    try:
        payload = json.loads(body)
        event = WhopWebhookEvent.model_validate(payload)
    except (ValueError, UnicodeDecodeError, ValidationError) as e:
        logger.warning(f"Invalid Whop webhook payload: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")

    if event.data is None or not event.data.user_id:
        logger.warning(f"Whop webhook {event.type} missing user_id")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user_id in webhook data")

    logger.info(
        f"Whop webhook received: {event.type} for user {event.data.user_id}",
        extra={"event_type": event.type, "tenant_id": event.data.user_id}
    )

    try:
        outcome = await WebhookReconciler(storage).apply(event)
    except Exception as e:
        capture_business_error(
            e,
            context={
                "operation": "whop_webhook",
                "event_type": event.type,
                "tenant_id": event.data.user_id,
            },
        )
        response = WebhookResponse(
            success=False,
            message="Webhook processing failed",
            error=None if settings.is_production else str(e),
        )
        return JSONResponse(status_code=status.HTTP_200_OK, content=response.to_dict())

    return WebhookResponse(outcome=outcome).to_dict()
