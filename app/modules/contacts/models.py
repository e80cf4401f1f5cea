"""
Clients billed by an owner.
"""
from sqlalchemy import Column, Integer, String

from app.database.database import Base
from app.common.mixins import OwnerMixin, TimestampMixin


class Client(Base, OwnerMixin, TimestampMixin):
    """A billable client; invoices require one, expenses may reference one"""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=False)
    organization = Column(String(200), nullable=True)
    email = Column(String(255), nullable=True)
    mobile_number = Column(String(30), nullable=True)
    address = Column(String(500), nullable=True)
    gstin = Column(String(20), nullable=True)
    pan = Column(String(20), nullable=True)

    def __repr__(self):
        return f"<Client(id={self.id}, full_name='{self.full_name}')>"
