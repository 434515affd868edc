"""Pydantic request bodies for the JSON API.

Every body accepts the tenant id as `tenantId` or the dashboard's
`whopUserId`. Ids are checked in the route (require_tenant_id) so a missing
one is a 400 with the usual message rather than a generic validation error.
"""

from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.models.accounts import SubscriberStatus
from app.modules.campaigns.recipients import RecipientType

TENANT_ID_ALIASES = AliasChoices("tenantId", "whopUserId", "tenant_id")


class TenantScoped(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: Optional[str] = Field(None, validation_alias=TENANT_ID_ALIASES)


class SendEmailRequest(TenantScoped):
    """Body of POST /api/send-email."""

    campaign_name: Optional[str] = Field(None, validation_alias=AliasChoices("campaignName", "campaign_name"))
    subject: Optional[str] = None
    html: Optional[str] = None
    type: Optional[str] = Field(None, description="'marketing' or 'transactional'")
    recipient_type: Optional[RecipientType] = Field(
        None, validation_alias=AliasChoices("recipientType", "recipient_type")
    )
    to: Optional[Union[str, List[str]]] = None
    custom_emails: Optional[List[str]] = Field(None, validation_alias=AliasChoices("customEmails", "custom_emails"))

    @property
    def to_list(self) -> Optional[List[str]]:
        if self.to is None:
            return None
        return [self.to] if isinstance(self.to, str) else list(self.to)

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.campaign_name:
            missing.append("campaignName")
        if not self.subject:
            missing.append("subject")
        if not self.html:
            missing.append("html")
        if not self.type:
            missing.append("type")
        if not self.to_list and self.recipient_type is None:
            missing.append("to or recipientType")
        return missing


class UserUpdateRequest(TenantScoped):
    """Body of POST /api/user/update (partial profile update)."""

    email: Optional[str] = Field(None, max_length=255)
    name: Optional[str] = Field(None, max_length=255)


class AddSubscriberRequest(TenantScoped):
    email: str = Field("", max_length=255)
    name: Optional[str] = Field("", max_length=255)


class BulkSubscriberRow(BaseModel):
    email: str = Field("", max_length=255)
    name: Optional[str] = Field("", max_length=255)


class BulkAddRequest(TenantScoped):
    subscribers: List[BulkSubscriberRow] = Field(default_factory=list)

    @field_validator("subscribers")
    @classmethod
    def validate_not_empty(cls, v):
        if not v:
            raise ValueError("subscribers must contain at least one entry")
        return v


class UpdateSubscriberRequest(TenantScoped):
    name: Optional[str] = Field(None, max_length=255)
    status: Optional[SubscriberStatus] = None


class VipRequest(TenantScoped):
    is_vip: Optional[bool] = Field(None, validation_alias=AliasChoices("isVip", "is_vip", "vip"))
