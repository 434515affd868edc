"""
Subscriber model - a contact on a tenant's mailing list.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base


class Subscriber(Base):
    """
    Mailing list entry, unique per (tenant, email).

    status is 'active' or 'unsubscribed'; is_vip marks the narrower VIP segment.
    """

    __tablename__ = "subscribers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_subscribers_tenant_email"),
        Index("ix_subscribers_tenant_status", "tenant_id", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(
        String(255),
        ForeignKey("tenants.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String(255), nullable=False)
    name = Column(String(255), default="", nullable=False)
    status = Column(String(50), default="active", nullable=False)  # 'active' | 'unsubscribed'
    is_vip = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="subscribers")

    def __repr__(self):
        return f"<Subscriber {self.email} tenant={self.tenant_id}>"
