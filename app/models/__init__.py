"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for Alembic autogenerate).
"""

from app.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin
from app.models.region import Region
from app.models.admin import Admin, admin_regions
from app.models.activity_log import ActivityLog

__all__ = [
    "Base",
    "IntegerPrimaryKeyMixin",
    "TimestampMixin",
    "Region",
    "Admin",
    "admin_regions",
    "ActivityLog",
]
