"""
Tenant model - a Whop merchant account using the marketing API.

Holds the plan key, profile fields, and the usage ledger (counters + reset markers).
"""

from datetime import datetime, date
from sqlalchemy import CheckConstraint, Column, String, DateTime, Integer, Date
from sqlalchemy.orm import relationship

from app.core.database import Base


class Tenant(Base):
    """
    Whop user account.

    Created lazily on first lookup with free-plan defaults, or by a
    membership.activated webhook. Never hard-deleted.
    """

    __tablename__ = "tenants"
    __table_args__ = (
        CheckConstraint(
            "contacts_count >= 0 AND daily_marketing_sent >= 0 AND monthly_marketing_sent >= 0 "
            "AND daily_transactional_sent >= 0 AND monthly_transactional_sent >= 0",
            name="ck_tenants_counters_non_negative",
        ),
    )

    tenant_id = Column(String(255), primary_key=True)  # Whop user id
    email = Column(String(255), default="", nullable=False)
    name = Column(String(255), default="", nullable=False)
    plan = Column(String(50), default="free", nullable=False, index=True)  # PlanKey value

    # Usage ledger
    contacts_count = Column(Integer, default=0, nullable=False)
    daily_marketing_sent = Column(Integer, default=0, nullable=False)
    monthly_marketing_sent = Column(Integer, default=0, nullable=False)
    daily_transactional_sent = Column(Integer, default=0, nullable=False)
    monthly_transactional_sent = Column(Integer, default=0, nullable=False)
    last_daily_reset = Column(Date, default=date.today, nullable=True)
    last_monthly_reset = Column(String(7), nullable=True)  # 'YYYY-MM'

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    subscribers = relationship(
        "Subscriber",
        back_populates="tenant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Tenant {self.tenant_id} plan={self.plan}>"
