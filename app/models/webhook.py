"""
Pydantic models for webhook requests and responses.

These models validate incoming Whop subscription lifecycle events.
Whop sends more fields than we use; unknown fields are kept but ignored.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class WhopEventType(str, Enum):
    MEMBERSHIP_ACTIVATED = "membership.activated"
    MEMBERSHIP_DEACTIVATED = "membership.deactivated"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAST_DUE = "invoice.past_due"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"


class WhopEventData(BaseModel):
    """
    Event payload.

    user_id is the tenant the event is about. When seller_id is present the
    event also describes a purchase from that seller, and the buyer (user
    email/username, or the explicit buyer_* fields) becomes one of the
    seller's subscribers.
    """

    model_config = ConfigDict(extra="allow")

    user_id: Optional[str] = Field(None, description="Whop user id of the tenant")
    plan_id: Optional[str] = Field(None, description="Whop plan id (mapped via the plan catalog)")
    user_email: Optional[str] = None
    user_username: Optional[str] = None

    seller_id: Optional[str] = Field(None, description="Tenant that sold to this user")
    buyer_email: Optional[str] = None
    buyer_name: Optional[str] = None

    @property
    def buyer_address(self) -> Optional[str]:
        return self.buyer_email or self.user_email

    @property
    def buyer_display_name(self) -> str:
        return self.buyer_name or self.user_username or ""


class WhopWebhookEvent(BaseModel):
    """
    Whop webhook envelope.

    Example:
        {"type": "membership.activated",
         "data": {"user_id": "user_123", "plan_id": "plan_growth", "user_email": "a@b.co"}}
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field("", description="Event type, e.g. membership.activated")
    data: Optional[WhopEventData] = None

    @property
    def event_type(self) -> Optional[WhopEventType]:
        try:
            return WhopEventType(self.type)
        except ValueError:
            return None


class WebhookResponse(BaseModel):
    """
    Standard webhook response.

    IMPORTANT: Once the signature and JSON checks pass we always return
    200 OK, even when processing failed, so Whop does not retry.
    """
    success: bool = True
    message: str = "Webhook processed"
    outcome: Optional[str] = Field(None, description="What the reconciler did")
    error: Optional[str] = Field(None, description="Error detail (non-production only)")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
