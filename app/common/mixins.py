"""
Common mixins for owner-scoped models
"""
from sqlalchemy import Column, DateTime, Integer, ForeignKey
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func


class OwnerMixin:
    """Mixin for models owned by a single user; every query must filter on owner_id"""

    @declared_attr
    def owner_id(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
