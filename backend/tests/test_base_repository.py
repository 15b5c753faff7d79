"""
Unit Tests for BaseRepository and ShoppingListRepository
Tests datetime conversion, JSON columns and the SQL the list repository issues
"""
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

from database.repositories.base_repository import BaseRepository
from database.repositories.shopping_list_repository import ShoppingListRepository


def mock_pool(conn):
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    pool.acquire.return_value.__aexit__.return_value = False
    return pool


class TestDatetimeConversion:
    """Timestamps are handed to asyncpg as naive UTC datetimes"""

    def test_iso_string_with_offset(self):
        repo = BaseRepository("shopping_lists")

        result = repo._convert_datetime_strings({
            "id": "l1",
            "updated_at": "2026-01-19T18:33:22.599811+02:00",
        })

        assert result["updated_at"] == datetime(2026, 1, 19, 16, 33, 22, 599811)
        assert result["id"] == "l1"

    def test_z_suffix(self):
        repo = BaseRepository("shopping_lists")

        result = repo._convert_datetime_strings({"created_at": "2026-01-19T16:33:22Z"})

        assert result["created_at"].tzinfo is None

    def test_non_datetime_values_untouched(self):
        repo = BaseRepository("shopping_lists")
        data = {
            "name": "Groceries for the weekend",
            "icon": "🛒",
            "short": "2026",
            "items": '[{"id": "a"}]',
        }

        assert repo._convert_datetime_strings(data) == data


class TestJSONColumns:

    def test_items_serialized_without_escaping(self):
        repo = BaseRepository("shopping_lists")

        result = repo._serialize_json_fields(
            {"items": [{"name": "חלב", "qty": 1}], "collaborators": ["u2"]},
            ["items", "collaborators"]
        )

        assert isinstance(result["items"], str)
        assert "חלב" in result["items"]
        assert result["collaborators"] == '["u2"]'

    def test_already_serialized_left_as_is(self):
        repo = BaseRepository("shopping_lists")

        result = repo._serialize_json_fields({"items": "[]"}, ["items"])
        assert result["items"] == "[]"

    def test_deserialize(self):
        repo = BaseRepository("shopping_lists")

        result = repo._deserialize_json_fields(
            {"items": '[{"id": "a"}]', "collaborators": "not json"},
            ["items", "collaborators"]
        )

        assert result["items"] == [{"id": "a"}]
        assert result["collaborators"] == "not json"
        assert repo._deserialize_json_fields(None, ["items"]) is None


def test_where_numbers_placeholders_from_start():
    repo = BaseRepository("shopping_lists")

    sql, values = repo._where({"id": "l1", "owner_id": "u1"}, start=3)

    assert sql == '"id" = $3 AND "owner_id" = $4'
    assert values == ["l1", "u1"]


class TestShoppingListRepository:

    @pytest.mark.asyncio
    async def test_update_list_replaces_items_and_reports_rowcount(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="UPDATE 1")
        repo = ShoppingListRepository()

        with patch.object(repo, "_get_db", AsyncMock(return_value=mock_pool(conn))):
            rowcount = await repo.update_list("l1", {"items": [{"id": "a", "qty": 2}]})

        assert rowcount == 1
        query, items_json, list_id = conn.execute.call_args.args
        assert query == 'UPDATE shopping_lists SET "items" = $1 WHERE "id" = $2'
        assert items_json == '[{"id": "a", "qty": 2}]'
        assert list_id == "l1"

    @pytest.mark.asyncio
    async def test_update_missing_list_returns_zero(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="UPDATE 0")
        repo = ShoppingListRepository()

        with patch.object(repo, "_get_db", AsyncMock(return_value=mock_pool(conn))):
            assert await repo.update_list("gone", {"items": []}) == 0

    @pytest.mark.asyncio
    async def test_find_by_id_decodes_json_columns(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value={
            "id": "l1", "items": '[{"id": "a"}]', "collaborators": '["u2"]',
        })
        repo = ShoppingListRepository()

        with patch.object(repo, "_get_db", AsyncMock(return_value=mock_pool(conn))):
            doc = await repo.find_by_id("l1")

        assert doc["items"] == [{"id": "a"}]
        assert doc["collaborators"] == ["u2"]

    @pytest.mark.asyncio
    async def test_find_by_id_missing(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value=None)
        repo = ShoppingListRepository()

        with patch.object(repo, "_get_db", AsyncMock(return_value=mock_pool(conn))):
            assert await repo.find_by_id("gone") is None

    @pytest.mark.asyncio
    async def test_find_by_user_matches_owner_or_collaborator(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(return_value=[])
        repo = ShoppingListRepository()

        with patch.object(repo, "_get_db", AsyncMock(return_value=mock_pool(conn))):
            assert await repo.find_by_user("u2") == []

        query, user_id = conn.fetch.call_args.args
        assert '"owner_id" = $1 OR "collaborators"::jsonb ? $1' in query
        assert query.endswith("ORDER BY created_at DESC LIMIT 100")
        assert user_id == "u2"


if __name__ == "__main__":
    # Run tests with: python -m pytest backend/tests/test_base_repository.py -v
    pytest.main([__file__, "-v"])
