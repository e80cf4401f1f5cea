"""
Owner profile.

Authentication is handled outside this service; the row only carries the
details printed on rendered documents and the defaults used at creation time.
"""
from sqlalchemy import Column, Integer, String

from app.database.database import Base
from app.common.mixins import TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    mobile_number = Column(String(30), nullable=True)
    organization = Column(String(200), nullable=True)
    gstin = Column(String(20), nullable=True)
    pan = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)
    currency = Column(String(3), nullable=True)
    # Artifact store path of the logo image, read verbatim when rendering
    logo = Column(String(500), nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"
