"""
Test doubles shared by the test modules
"""
import copy

from models import NormalizedItem
from utils.errors import NormalizationError


class FakeShoppingListRepository:
    """Dict-backed stand-in for ShoppingListRepository"""

    def __init__(self):
        self.lists = {}
        self.writes = 0
        self.fail_writes = False

    def add_list(self, list_id, items=None, owner_id="user-1", collaborators=None):
        self.lists[list_id] = {
            "id": list_id,
            "name": f"List {list_id}",
            "icon": "🛒",
            "owner_id": owner_id,
            "collaborators": collaborators or [],
            "items": [dict(item) for item in (items or [])],
            "created_at": "2026-01-19T16:33:22+00:00",
            "updated_at": "2026-01-19T16:33:22+00:00",
        }

    def items(self, list_id):
        return self.lists[list_id]["items"]

    async def find_by_id(self, list_id):
        doc = self.lists.get(list_id)
        return copy.deepcopy(doc) if doc else None

    async def find_by_user(self, user_id, limit=100):
        return [copy.deepcopy(doc) for doc in self.lists.values()
                if doc["owner_id"] == user_id or user_id in doc["collaborators"]][:limit]

    async def create(self, list_data):
        self.lists[list_data["id"]] = copy.deepcopy(list_data)
        return list_data

    async def update_list(self, list_id, data):
        if self.fail_writes:
            raise ConnectionError("database is unreachable")
        if list_id not in self.lists:
            return 0
        self.lists[list_id].update(copy.deepcopy(data))
        self.writes += 1
        return 1

    async def delete_list(self, list_id):
        return 1 if self.lists.pop(list_id, None) else 0


class FakeNormalizer:
    """
    Returns a canonical record derived from a lookup table.

    Names in `failures` raise NormalizationError; unknown names canonicalize
    to their title-cased form.
    """

    def __init__(self, table=None, failures=()):
        self.table = table or {}
        self.failures = set(failures)
        self.calls = []

    async def normalize(self, name, qty=1, unit=None):
        self.calls.append(name)
        if name in self.failures:
            raise NormalizationError("service timed out")
        canonical, category = self.table.get(name, (name.strip().title(), "Other"))
        return NormalizedItem(name=name, canonical_name=canonical, category=category,
                              icon="🛒", qty=qty, unit=unit)


def make_item(item_id, canonical_name, qty=1, unit="", notes="", store="", checked=False, **extra):
    item = {
        "id": item_id,
        "name": extra.pop("name", canonical_name),
        "canonical_name": canonical_name,
        "category": extra.pop("category", "Other"),
        "icon": extra.pop("icon", "🛒"),
        "qty": qty,
        "unit": unit,
        "notes": notes,
        "store": store,
        "urgent": extra.pop("urgent", False),
        "gf": extra.pop("gf", False),
        "checked": checked,
    }
    item.update(extra)
    return item


