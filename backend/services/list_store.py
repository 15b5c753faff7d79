"""
List Store - read/write adapter between the ingestion engine and the shopping list repository

The persistence layer only knows whole-list reads and whole-array item writes.
There is no version token compared at write time, so two writers racing on the
same list can still lose an update; the engine narrows that window by reading
immediately before every write.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from models import Item, ShoppingListCreate, ShoppingListResponse
from utils.debug import Loggers
from utils.errors import ListNotFoundError, PersistenceWriteError

logger = logging.getLogger(__name__)


class ListStore:
    """Engine-facing view of the shopping list repository"""

    def __init__(self, repository):
        self._repository = repository

    async def read(self, list_id: str) -> ShoppingListResponse:
        """Return the current state of a list. Raises ListNotFoundError."""
        doc = await self._repository.find_by_id(list_id)
        if not doc:
            raise ListNotFoundError(list_id)
        return ShoppingListResponse(**doc)

    async def write(self, list_id: str, items: List[Item]) -> None:
        """Replace a list's items array.

        Raises ListNotFoundError if the row is gone, PersistenceWriteError on
        any storage failure.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            rowcount = await self._repository.update_list(list_id, {
                "items": [item.model_dump() for item in items],
                "updated_at": now,
            })
        except Exception as e:
            Loggers.db.error("Shopping list write failed", list_id=list_id, error=str(e))
            raise PersistenceWriteError(list_id, str(e)) from e

        if not rowcount:
            raise ListNotFoundError(list_id)

    async def create(self, data: ShoppingListCreate) -> str:
        """Create an empty list and return its id"""
        list_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        await self._repository.create({
            "id": list_id,
            "name": data.name,
            "icon": data.icon or "",
            "owner_id": data.owner_id,
            "collaborators": sorted(set(data.collaborators or [])),
            "items": [],
            "created_at": now,
            "updated_at": now,
        })
        logger.info(f"Shopping list created: {list_id}")
        return list_id

    async def delete(self, list_id: str) -> None:
        if not await self._repository.delete_list(list_id):
            raise ListNotFoundError(list_id)
        logger.info(f"Shopping list deleted: {list_id}")

    async def list_for_user(self, user_id: str) -> List[ShoppingListResponse]:
        docs = await self._repository.find_by_user(user_id)
        return [ShoppingListResponse(**doc) for doc in docs]

    # Direct mutations that do not pass through the ingestion pipeline

    async def delete_item(self, list_id: str, item_id: str) -> bool:
        """Remove one item. Returns False when the item does not exist."""
        shopping_list = await self.read(list_id)
        remaining = [item for item in shopping_list.items if item.id != item_id]
        if len(remaining) == len(shopping_list.items):
            return False
        await self.write(list_id, remaining)
        return True

    async def toggle_checked(self, list_id: str, item_id: str) -> Optional[Item]:
        """Flip an item's checked flag. Returns the updated item, or None if missing."""
        shopping_list = await self.read(list_id)
        toggled = None
        items = []
        for item in shopping_list.items:
            if item.id == item_id:
                item = item.model_copy(update={"checked": not item.checked})
                toggled = item
            items.append(item)
        if toggled is None:
            return None
        await self.write(list_id, items)
        return toggled
