from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import relationship

from app.database.database import Base
from app.common.mixins import OwnerMixin, TimestampMixin


project_clients = Table(
    "project_clients",
    Base.metadata,
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("client_id", Integer, ForeignKey("clients.id", ondelete="CASCADE"), primary_key=True),
)


class Project(Base, OwnerMixin, TimestampMixin):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    clients = relationship("Client", secondary=project_clients, order_by="Client.id")

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}')>"
