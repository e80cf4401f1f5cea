from sqlalchemy import Column, Integer, String, Text

from app.database.database import Base
from app.common.mixins import OwnerMixin, TimestampMixin


class Item(Base, OwnerMixin, TimestampMixin):
    """Billable line-item category (e.g. a service type)"""
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Item(id={self.id}, name='{self.name}')>"
