# Repository layer for PostgreSQL database operations
from .base_repository import BaseRepository
from .shopping_list_repository import ShoppingListRepository

__all__ = [
    "BaseRepository",
    "ShoppingListRepository",
]
