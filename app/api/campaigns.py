"""
Campaign send endpoint.

POST /api/send-email

Status codes:
- 200: sent (or simulated in demo mode)
- 400: missing fields, bad address, or nobody to send to
- 403: plan limit hit; body carries the denial reason
- 500: email provider failed; no usage is recorded
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.api.deps import get_email_sender, get_storage, require_tenant_id
from app.api.schemas import SendEmailRequest
from app.core.email_service import EmailDeliveryError, EmailSender
from app.modules.billing.plans import EmailType
from app.modules.billing.quota import QuotaExceededError
from app.modules.campaigns.recipients import NoRecipientsError
from app.modules.campaigns.service import CampaignRequest, CampaignService
from app.modules.subscribers.service import InvalidEmailError
from app.storage.base import Storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send-email")
async def send_email(
    body: SendEmailRequest,
    storage: Storage = Depends(get_storage),
    sender: EmailSender = Depends(get_email_sender),
):
    """Send a marketing or transactional campaign within the tenant's plan."""
    tenant_id = require_tenant_id(body.tenant_id)

    missing = body.missing_fields()
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}",
        )

    # Anything other than 'transactional' is billed as marketing
    email_type = EmailType.TRANSACTIONAL if body.type.strip().lower() == "transactional" else EmailType.MARKETING

    request = CampaignRequest(
        tenant_id=tenant_id,
        campaign_name=body.campaign_name,
        subject=body.subject,
        html=body.html,
        email_type=email_type,
        recipient_type=body.recipient_type,
        to=body.to_list,
        custom_emails=body.custom_emails,
    )

    try:
        result = await CampaignService(storage, sender).send(request)
    except QuotaExceededError as e:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={
                "success": False,
                "message": e.decision.message,
                "reason": e.decision.reason.value,
            },
        )
    except (InvalidEmailError, NoRecipientsError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except EmailDeliveryError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send email",
        )

    message = "Email sent successfully"
    if result.demo:
        message += " (demo mode)"

    return {
        "success": True,
        "message": message,
        "emailId": result.email_id,
        "recipients": result.recipient_count,
        "type": result.email_type.value,
        "demo": result.demo,
        "usage": result.usage,
    }
