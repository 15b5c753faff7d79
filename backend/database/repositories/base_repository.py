"""
Base Repository with common database operations
"""
import json
import asyncpg
import time
import logging
from datetime import datetime, timezone
from typing import Optional, List, Any, Dict
from ..connection import get_db, dict_from_row, rows_to_dicts
from utils.debug import log_db_query

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base class for all repositories with common CRUD operations"""

    def __init__(self, table_name: str):
        self.table_name = table_name

    def _quote_identifier(self, identifier: str) -> str:
        """Quote a column/table identifier for PostgreSQL to preserve case"""
        return f'"{identifier}"'

    async def _get_db(self) -> asyncpg.Pool:
        """Get database connection pool"""
        return await get_db()

    def _serialize_json_fields(self, data: dict, json_fields: List[str]) -> dict:
        """Serialize JSON fields to strings"""
        result = data.copy()
        for field in json_fields:
            if field in result and result[field] is not None:
                if not isinstance(result[field], str):
                    result[field] = json.dumps(result[field], ensure_ascii=False)
        return result

    def _deserialize_json_fields(self, data: dict, json_fields: List[str]) -> dict:
        """Deserialize JSON strings to objects"""
        if data is None:
            return None
        result = data.copy()
        for field in json_fields:
            if field in result and result[field] is not None:
                if isinstance(result[field], str):
                    try:
                        result[field] = json.loads(result[field])
                    except json.JSONDecodeError:
                        pass
        return result

    def _convert_datetime_strings(self, data: dict) -> dict:
        """Convert ISO datetime strings to naive UTC datetimes for asyncpg.

        PostgreSQL TIMESTAMP columns (without timezone) expect naive datetime objects.
        """
        result = data.copy()
        for key, value in result.items():
            if isinstance(value, str) and len(value) >= 19:
                # Format: 2026-01-19T16:33:22.599811+00:00 or 2026-01-19T16:33:22
                if 'T' in value and value[4] == '-' and value[7] == '-':
                    try:
                        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
                        if dt.tzinfo is not None:
                            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
                        result[key] = dt
                    except (ValueError, TypeError):
                        # Not a valid datetime string, keep as-is
                        pass
            elif isinstance(value, datetime):
                if value.tzinfo is not None:
                    result[key] = value.astimezone(timezone.utc).replace(tzinfo=None)
        return result

    def _where(self, conditions: Dict[str, Any], start: int = 1) -> tuple:
        """Build a WHERE clause body and its values from equality conditions"""
        clauses = []
        values = []
        for i, (key, value) in enumerate(conditions.items(), start):
            clauses.append(f"{self._quote_identifier(key)} = ${i}")
            values.append(value)
        return " AND ".join(clauses), values

    async def find_one(
        self,
        conditions: Dict[str, Any],
        json_fields: List[str] = None
    ) -> Optional[dict]:
        """Find a single record matching conditions"""
        start_time = time.time()
        pool = await self._get_db()

        where_sql, values = self._where(conditions)
        query = f"SELECT * FROM {self.table_name} WHERE {where_sql} LIMIT 1"

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *values)

            duration_ms = (time.time() - start_time) * 1000
            log_db_query("SELECT", self.table_name, duration_ms,
                         rows_affected=1 if row else 0,
                         query_params=conditions)

            if row is None:
                return None

            result = dict_from_row(row)
            if json_fields:
                result = self._deserialize_json_fields(result, json_fields)
            return result
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_db_query("SELECT", self.table_name, duration_ms, error=str(e))
            raise

    async def find_many(
        self,
        where_sql: str = None,
        values: List[Any] = None,
        json_fields: List[str] = None,
        order_by: str = None,
        order_dir: str = "ASC",
        limit: int = None
    ) -> List[dict]:
        """Find multiple records matching a WHERE clause body"""
        start_time = time.time()
        pool = await self._get_db()

        query = f"SELECT * FROM {self.table_name}"
        if where_sql:
            query += f" WHERE {where_sql}"
        if order_by:
            query += f" ORDER BY {order_by} {order_dir}"
        if limit:
            query += f" LIMIT {limit}"

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(query, *(values or []))

            duration_ms = (time.time() - start_time) * 1000
            log_db_query("SELECT_MANY", self.table_name, duration_ms,
                         rows_affected=len(rows))

            results = rows_to_dicts(rows)
            if json_fields:
                results = [self._deserialize_json_fields(r, json_fields) for r in results]
            return results
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_db_query("SELECT_MANY", self.table_name, duration_ms, error=str(e))
            raise

    async def insert(
        self,
        data: dict,
        json_fields: List[str] = None
    ) -> dict:
        """Insert a new record"""
        start_time = time.time()
        pool = await self._get_db()

        data = self._convert_datetime_strings(data)
        if json_fields:
            data = self._serialize_json_fields(data, json_fields)

        columns = ", ".join([self._quote_identifier(k) for k in data.keys()])
        placeholders = ", ".join([f"${i+1}" for i in range(len(data))])
        values = list(data.values())

        query = f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders})"

        try:
            async with pool.acquire() as conn:
                await conn.execute(query, *values)

            duration_ms = (time.time() - start_time) * 1000
            log_db_query("INSERT", self.table_name, duration_ms,
                         rows_affected=1,
                         query_params={"id": data.get("id")})

            return data
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_db_query("INSERT", self.table_name, duration_ms, error=str(e))
            raise

    async def update(
        self,
        conditions: Dict[str, Any],
        data: dict,
        json_fields: List[str] = None
    ) -> int:
        """Update records matching conditions"""
        start_time = time.time()
        pool = await self._get_db()

        data = self._convert_datetime_strings(data)
        if json_fields:
            data = self._serialize_json_fields(data, json_fields)

        set_clauses = []
        values = []
        for i, (key, value) in enumerate(data.items(), 1):
            set_clauses.append(f"{self._quote_identifier(key)} = ${i}")
            values.append(value)

        where_sql, where_values = self._where(conditions, start=len(values) + 1)
        values.extend(where_values)

        query = f"UPDATE {self.table_name} SET {', '.join(set_clauses)} WHERE {where_sql}"

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(query, *values)

            # Parse rowcount from result string (e.g., "UPDATE 1")
            rowcount = int(result.split()[-1]) if result else 0

            duration_ms = (time.time() - start_time) * 1000
            log_db_query("UPDATE", self.table_name, duration_ms,
                         rows_affected=rowcount,
                         query_params=conditions)

            return rowcount
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_db_query("UPDATE", self.table_name, duration_ms, error=str(e))
            raise

    async def delete(self, conditions: Dict[str, Any]) -> int:
        """Delete records matching conditions"""
        start_time = time.time()
        pool = await self._get_db()

        where_sql, values = self._where(conditions)
        query = f"DELETE FROM {self.table_name} WHERE {where_sql}"

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(query, *values)

            # Parse rowcount from result string (e.g., "DELETE 1")
            rowcount = int(result.split()[-1]) if result else 0

            duration_ms = (time.time() - start_time) * 1000
            log_db_query("DELETE", self.table_name, duration_ms,
                         rows_affected=rowcount,
                         query_params=conditions)

            return rowcount
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_db_query("DELETE", self.table_name, duration_ms, error=str(e))
            raise
