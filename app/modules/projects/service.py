from typing import List
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.modules.contacts.models import Client
from app.modules.projects.models import Project, project_clients

logger = logging.getLogger(__name__)


def get_project_clients(db: Session, project_id: int, owner_id: int) -> List[Client]:
    """Clients linked to an owner's project, ordered by id; empty when the project is unknown"""
    stmt = (
        select(Client)
        .join(project_clients, project_clients.c.client_id == Client.id)
        .join(Project, Project.id == project_clients.c.project_id)
        .where(
            Project.id == project_id,
            Project.owner_id == owner_id,
            Client.owner_id == owner_id,
        )
        .order_by(Client.id)
    )
    return list(db.execute(stmt).scalars().all())
