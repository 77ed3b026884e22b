"""SQLite index for managed skills, their sync targets and runtime settings."""
from __future__ import annotations

import aiosqlite
import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, TypeVar, Generic
from uuid import uuid4

from skills_hub.database.base import BaseTable, BaseDatabase

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=dict)


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class SQLiteTable(BaseTable[T], Generic[T]):
    """SQLite table implementation of BaseTable interface."""

    # Columns stored as JSON text
    json_fields: tuple[str, ...] = ()
    # Whether the table carries created_at / updated_at columns
    timestamps = True
    order_by = "created_at DESC"

    def __init__(self, table_name: str, db_path: Path):
        self.table_name = table_name
        self.db_path = db_path

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with foreign keys enforced.

        Usage:
            async with self._get_connection() as conn:
                # use conn
        """
        async with aiosqlite.connect(str(self.db_path)) as conn:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON")
            yield conn

    def _row_to_dict(self, row: aiosqlite.Row) -> dict:
        """Convert a SQLite row to a dictionary, parsing JSON fields."""
        if row is None:
            return None
        result = dict(row)
        for key in self.json_fields:
            value = result.get(key)
            if isinstance(value, str):
                try:
                    result[key] = json.loads(value)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring malformed JSON in {self.table_name}.{key} for {result.get('id')}")
                    result[key] = None
        return result

    def _serialize_value(self, value) -> str | int | float | None:
        """Serialize a value for SQLite storage."""
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        if isinstance(value, bool):
            return 1 if value else 0
        return value

    async def _fetch_all(self, query: str, params: tuple = ()) -> list[T]:
        async with self._get_connection() as conn:
            async with conn.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_dict(row) for row in rows]

    async def _fetch_one(self, query: str, params: tuple = ()) -> Optional[T]:
        async with self._get_connection() as conn:
            async with conn.execute(query, params) as cursor:
                row = await cursor.fetchone()
                return self._row_to_dict(row) if row else None

    async def put(self, item: T) -> T:
        """Insert or update an item."""
        if "id" not in item:
            item["id"] = str(uuid4())
        if self.timestamps:
            if "created_at" not in item:
                item["created_at"] = now_ms()
            item["updated_at"] = now_ms()

        columns = list(item.keys())
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{col} = excluded.{col}" for col in columns if col not in ("id", "created_at"))
        values = [self._serialize_value(item[col]) for col in columns]

        async with self._get_connection() as conn:
            await conn.execute(
                f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders}) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                values
            )
            await conn.commit()
        return item

    async def get(self, item_id: str) -> Optional[T]:
        """Get an item by ID."""
        return await self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE id = ?",
            (item_id,)
        )

    async def list(self) -> list[T]:
        """List all items."""
        return await self._fetch_all(f"SELECT * FROM {self.table_name} ORDER BY {self.order_by}")

    async def delete(self, item_id: str) -> bool:
        """Delete an item by ID."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"DELETE FROM {self.table_name} WHERE id = ?",
                (item_id,)
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def update(self, item_id: str, updates: dict) -> Optional[T]:
        """Update an item."""
        if not updates:
            return await self.get(item_id)

        if self.timestamps:
            updates.setdefault("updated_at", now_ms())

        async with self._get_connection() as conn:
            columns = list(updates.keys())
            set_clause = ", ".join(f"{col} = ?" for col in columns)
            values = [self._serialize_value(updates[col]) for col in columns]
            values.append(item_id)

            cursor = await conn.execute(
                f"UPDATE {self.table_name} SET {set_clause} WHERE id = ?",
                values
            )
            await conn.commit()

            if cursor.rowcount == 0:
                return None

        return await self.get(item_id)


class SQLiteSkillsTable(SQLiteTable[T], Generic[T]):
    """Managed skills, unique by case-insensitive name and by central path."""

    json_fields = ("metadata",)
    order_by = "updated_at DESC"

    async def get_by_name(self, name: str) -> Optional[T]:
        return await self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE name_key = ?",
            (name.casefold(),)
        )

    async def get_by_central_path(self, central_path: str) -> Optional[T]:
        return await self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE central_path = ?",
            (central_path,)
        )


class SQLiteSkillTargetsTable(SQLiteTable[T], Generic[T]):
    """Sync targets, one row per (skill, tool) pair.

    Rows are upserted on the (skill_id, tool) key rather than on id, so
    re-syncing a skill to the same tool replaces the previous record.
    """

    timestamps = False
    order_by = "tool ASC"

    async def put(self, item: T) -> T:
        """Insert or replace the target for item's (skill_id, tool)."""
        if "id" not in item:
            item["id"] = str(uuid4())

        columns = list(item.keys())
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(
            f"{col} = excluded.{col}" for col in columns if col not in ("id", "skill_id", "tool")
        )
        values = [self._serialize_value(item[col]) for col in columns]

        async with self._get_connection() as conn:
            await conn.execute(
                f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders}) "
                f"ON CONFLICT(skill_id, tool) DO UPDATE SET {updates}",
                values
            )
            await conn.commit()
        return item

    async def list_by_skill(self, skill_id: str) -> list[T]:
        """List all targets of a skill, ordered by tool key."""
        return await self._fetch_all(
            f"SELECT * FROM {self.table_name} WHERE skill_id = ? ORDER BY tool ASC",
            (skill_id,)
        )

    async def get_by_skill_and_tool(self, skill_id: str, tool: str) -> Optional[T]:
        return await self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE skill_id = ? AND tool = ?",
            (skill_id, tool)
        )

    async def delete_by_skill_and_tool(self, skill_id: str, tool: str) -> bool:
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"DELETE FROM {self.table_name} WHERE skill_id = ? AND tool = ?",
                (skill_id, tool)
            )
            await conn.commit()
            return cursor.rowcount > 0


class SQLiteSettingsTable(SQLiteTable[T], Generic[T]):
    """Key/value store for settings changed at runtime."""

    order_by = "id ASC"

    async def get_value(self, key: str) -> Optional[str]:
        row = await self.get(key)
        return row["value"] if row else None

    async def set_value(self, key: str, value: str) -> None:
        await self.put({"id": key, "value": value})

    async def get_json(self, key: str):
        raw = await self.get_value(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring malformed setting {key!r}")
            return None

    async def set_json(self, key: str, value) -> None:
        await self.set_value(key, json.dumps(value))


class SQLiteDatabase(BaseDatabase):
    """SQLite database client implementing BaseDatabase interface."""

    SCHEMA_VERSION = 1

    # SQL Schema for all tables
    SCHEMA = """
    -- Managed skills
    CREATE TABLE IF NOT EXISTS skills (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        name_key TEXT NOT NULL UNIQUE,
        -- Provenance
        source_type TEXT NOT NULL,
        source_ref TEXT,
        source_subpath TEXT,
        source_revision TEXT,
        -- Central repository copy
        central_path TEXT NOT NULL UNIQUE,
        content_hash TEXT,
        metadata TEXT,
        status TEXT DEFAULT 'ok',
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL,
        last_sync_at INTEGER
    );
    CREATE INDEX IF NOT EXISTS idx_skills_updated_at ON skills(updated_at);

    -- Per-tool sync targets
    CREATE TABLE IF NOT EXISTS skill_targets (
        id TEXT PRIMARY KEY,
        skill_id TEXT NOT NULL,
        tool TEXT NOT NULL,
        target_path TEXT NOT NULL,
        mode TEXT NOT NULL,
        status TEXT DEFAULT 'ok',
        last_error TEXT,
        synced_at INTEGER,
        UNIQUE(skill_id, tool),
        FOREIGN KEY (skill_id) REFERENCES skills(id) ON DELETE CASCADE
    );
    CREATE INDEX IF NOT EXISTS idx_skill_targets_skill_id ON skill_targets(skill_id);

    -- Runtime settings (central repo path, git cache knobs, installed tools)
    CREATE TABLE IF NOT EXISTS settings (
        id TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    );
    """

    def __init__(self, db_path: str | Path):
        """Initialize SQLite database.

        Args:
            db_path: Path to the SQLite database file. Parent directories are created.
        """
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self._initialized = False

        self._skills = SQLiteSkillsTable[dict]("skills", self.db_path)
        self._skill_targets = SQLiteSkillTargetsTable[dict]("skill_targets", self.db_path)
        self._settings = SQLiteSettingsTable[dict]("settings", self.db_path)

    async def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        async with aiosqlite.connect(str(self.db_path)) as conn:
            await conn.executescript(self.SCHEMA)
            await conn.commit()
            await self._run_migrations(conn)

        self._initialized = True
        logger.info(f"Skill index ready at {self.db_path}")

    async def _run_migrations(self, conn: aiosqlite.Connection) -> None:
        """Bring an older index up to SCHEMA_VERSION."""
        cursor = await conn.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        version = row[0] if row else 0

        if version < 1:
            # Version 0 indexes predate per-target error tracking
            cursor = await conn.execute("PRAGMA table_info(skill_targets)")
            column_names = [col[1] for col in await cursor.fetchall()]
            if "last_error" not in column_names:
                logger.info("Running migration: Adding last_error column to skill_targets table")
                await conn.execute("ALTER TABLE skill_targets ADD COLUMN last_error TEXT")

        if version != self.SCHEMA_VERSION:
            await conn.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await conn.commit()

    @property
    def skills(self) -> SQLiteSkillsTable:
        """Get the skills table."""
        return self._skills

    @property
    def skill_targets(self) -> SQLiteSkillTargetsTable:
        """Get the skill targets table."""
        return self._skill_targets

    @property
    def settings(self) -> SQLiteSettingsTable:
        """Get the settings table."""
        return self._settings

    async def health_check(self) -> bool:
        """Check if the database is healthy."""
        try:
            async with aiosqlite.connect(str(self.db_path)) as conn:
                await conn.execute("SELECT 1")
            return True
        except aiosqlite.Error:
            return False
