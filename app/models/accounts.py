"""
Storage-agnostic account models (Pydantic, NOT database models).

TenantAccount and SubscriberRecord are what the billing and subscriber
services work with; every Storage backend maps its rows to these.

Writes go through TenantPatch / SubscriberPatch. They are closed
allow-lists: unknown fields are rejected and only explicitly set fields
are applied.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.modules.billing.plans import PlanKey


class SubscriberStatus(str, Enum):
    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"


class TenantAccount(BaseModel):
    """
    A tenant's profile and usage ledger.

    Reset markers are kept as the raw stored strings ('YYYY-MM-DD' and
    'YYYY-MM') so a malformed value reaches the reset logic instead of
    failing here.
    """

    tenant_id: str = Field(..., description="Whop user id")
    plan: str = Field(PlanKey.FREE.value, description="Plan catalog key")
    email: str = ""
    name: str = ""

    contacts_count: int = 0
    daily_marketing_sent: int = 0
    monthly_marketing_sent: int = 0
    daily_transactional_sent: int = 0
    monthly_transactional_sent: int = 0

    last_daily_reset: Optional[str] = Field(None, description="UTC date of last daily reset")
    last_monthly_reset: Optional[str] = Field(None, description="UTC year-month of last monthly reset")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def sent_count(self, period: str, email_type: str) -> int:
        """Counter value for e.g. ('daily', 'marketing')."""
        return getattr(self, f"{period}_{email_type}_sent")


class SubscriberRecord(BaseModel):
    """A contact on a tenant's list."""

    id: int
    tenant_id: str
    email: str
    name: str = ""
    status: SubscriberStatus = SubscriberStatus.ACTIVE
    is_vip: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "status": self.status.value,
            "is_vip": self.is_vip,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class TenantPatch(BaseModel):
    """Fields of a tenant that may be written."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    plan: Optional[PlanKey] = None
    email: Optional[str] = Field(None, max_length=255)
    name: Optional[str] = Field(None, max_length=255)

    contacts_count: Optional[int] = Field(None, ge=0)
    daily_marketing_sent: Optional[int] = Field(None, ge=0)
    monthly_marketing_sent: Optional[int] = Field(None, ge=0)
    daily_transactional_sent: Optional[int] = Field(None, ge=0)
    monthly_transactional_sent: Optional[int] = Field(None, ge=0)

    last_daily_reset: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    last_monthly_reset: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}$")

    def changes(self) -> Dict[str, Any]:
        """Only the fields that were explicitly set."""
        return self.model_dump(exclude_unset=True)

    def merged(self, other: "TenantPatch") -> "TenantPatch":
        """Combine two patches; fields set on `other` win."""
        return TenantPatch(**{**self.changes(), **other.changes()})

    def __bool__(self) -> bool:
        return bool(self.model_fields_set)


class SubscriberPatch(BaseModel):
    """Fields of a subscriber that may be written."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    name: Optional[str] = Field(None, max_length=255)
    status: Optional[SubscriberStatus] = None
    is_vip: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def __bool__(self) -> bool:
        return bool(self.model_fields_set)
