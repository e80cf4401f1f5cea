from typing import Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StoreUnavailable, ValidationFailed
from app.modules.items.models import Item

logger = logging.getLogger(__name__)


class ItemService:
    def __init__(self, db: Session):
        self.db = db

    def find_by_name(self, owner_id: int, name: str) -> Optional[Item]:
        """Case-insensitive lookup; the oldest match wins when names collide"""
        stmt = (
            select(Item)
            .where(Item.owner_id == owner_id, func.lower(Item.name) == name.strip().lower())
            .order_by(Item.id)
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def get_or_create_item_by_name(self, owner_id: int, name: str, description: Optional[str] = None) -> Item:
        if not name or not name.strip():
            raise ValidationFailed("Item name is required")

        try:
            item = self.find_by_name(owner_id, name)
            if item:
                return item

            item = Item(owner_id=owner_id, name=name.strip(), description=description)
            self.db.add(item)
            self.db.commit()
            self.db.refresh(item)
            logger.info(f"Created item '{item.name}' ({item.id}) for owner {owner_id}")
            return item
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationFailed(f"Owner {owner_id} cannot own item '{name}'") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not resolve item '{name}' for owner {owner_id}: {e}")
            raise StoreUnavailable(f"Could not resolve item '{name}'") from e
