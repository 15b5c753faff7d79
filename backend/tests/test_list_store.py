"""
List Store tests against the in-memory repository
"""
import pytest
from unittest.mock import AsyncMock

from helpers import make_item
from models import Item, ShoppingListCreate
from services.list_store import ListStore
from utils.errors import ListNotFoundError, PersistenceWriteError


@pytest.mark.asyncio
async def test_read_returns_typed_list(store, repository):
    repository.add_list("l1", items=[make_item("a", "Milk", qty=2)])

    shopping_list = await store.read("l1")

    assert shopping_list.id == "l1"
    assert isinstance(shopping_list.items[0], Item)
    assert shopping_list.items[0].qty == 2


@pytest.mark.asyncio
async def test_read_missing_list_raises(store):
    with pytest.raises(ListNotFoundError):
        await store.read("nope")


@pytest.mark.asyncio
async def test_write_replaces_items(store, repository):
    repository.add_list("l1", items=[make_item("a", "Milk")])

    await store.write("l1", [Item(**make_item("b", "Bread"))])

    assert [item["id"] for item in repository.items("l1")] == ["b"]
    assert repository.lists["l1"]["updated_at"] != "2026-01-19T16:33:22+00:00"


@pytest.mark.asyncio
async def test_write_to_deleted_list_raises_not_found(store):
    with pytest.raises(ListNotFoundError):
        await store.write("gone", [])


@pytest.mark.asyncio
async def test_write_failure_is_wrapped():
    repository = AsyncMock()
    repository.update_list.side_effect = OSError("connection reset")
    store = ListStore(repository)

    with pytest.raises(PersistenceWriteError, match="connection reset"):
        await store.write("l1", [])


@pytest.mark.asyncio
async def test_create_and_list_for_user(store):
    list_id = await store.create(ShoppingListCreate(
        name="Weekly", owner_id="owner", collaborators=["friend", "friend"]))

    created = await store.read(list_id)
    assert created.name == "Weekly"
    assert created.items == []
    assert created.collaborators == ["friend"]

    assert [l.id for l in await store.list_for_user("friend")] == [list_id]
    assert await store.list_for_user("stranger") == []


@pytest.mark.asyncio
async def test_delete(store, repository):
    repository.add_list("l1")

    await store.delete("l1")

    assert "l1" not in repository.lists
    with pytest.raises(ListNotFoundError):
        await store.delete("l1")


@pytest.mark.asyncio
async def test_delete_item(store, repository):
    repository.add_list("l1", items=[make_item("a", "Milk"), make_item("b", "Bread")])

    assert await store.delete_item("l1", "a") is True
    assert await store.delete_item("l1", "a") is False
    assert [item["id"] for item in repository.items("l1")] == ["b"]


@pytest.mark.asyncio
async def test_toggle_checked(store, repository):
    repository.add_list("l1", items=[make_item("a", "Milk")])

    toggled = await store.toggle_checked("l1", "a")
    assert toggled.checked is True
    assert repository.items("l1")[0]["checked"] is True

    toggled = await store.toggle_checked("l1", "a")
    assert toggled.checked is False

    assert await store.toggle_checked("l1", "missing") is None
