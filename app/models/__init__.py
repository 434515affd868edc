"""
Database models package.

Import all models here so Alembic can discover them for migrations.
"""

from app.models.tenant import Tenant
from app.models.subscriber import Subscriber

__all__ = [
    "Tenant",
    "Subscriber",
]
