"""
Shopping List Repository - Handles all shopping list-related database operations
"""
from typing import Optional, List
from .base_repository import BaseRepository


class ShoppingListRepository(BaseRepository):
    """Repository for shopping list operations"""

    JSON_FIELDS = ["items", "collaborators"]

    def __init__(self):
        super().__init__("shopping_lists")

    async def find_by_id(self, list_id: str) -> Optional[dict]:
        """Find shopping list by ID"""
        return await self.find_one(
            {"id": list_id},
            json_fields=self.JSON_FIELDS
        )

    async def find_by_user(self, user_id: str, limit: int = 100) -> List[dict]:
        """Find all shopping lists a user owns or collaborates on"""
        return await self.find_many(
            '"owner_id" = $1 OR "collaborators"::jsonb ? $1',
            [user_id],
            json_fields=self.JSON_FIELDS,
            order_by="created_at",
            order_dir="DESC",
            limit=limit
        )

    async def create(self, list_data: dict) -> dict:
        """Create a new shopping list"""
        return await self.insert(list_data, json_fields=self.JSON_FIELDS)

    async def update_list(self, list_id: str, data: dict) -> int:
        """Update shopping list data; `items` is always replaced whole"""
        return await self.update(
            {"id": list_id},
            data,
            json_fields=self.JSON_FIELDS
        )

    async def delete_list(self, list_id: str) -> int:
        """Delete a shopping list"""
        return await self.delete({"id": list_id})


# Singleton instance
shopping_list_repository = ShoppingListRepository()
