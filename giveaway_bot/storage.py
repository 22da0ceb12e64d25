"""SQLite persistence helpers for giveaways and exclusion records."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .models import ExcludedRole, ExcludedUser, Giveaway

LOGGER = logging.getLogger(__name__)

_GIVEAWAY_COLUMNS = (
    "id",
    "guild_id",
    "channel_id",
    "creator_id",
    "title",
    "description",
    "image_uri",
    "start_time",
    "end_time",
    "winner_count",
    "entrants",
    "winner_ids",
    "end_handled",
    "message_id",
    "log_message_id",
)


class GiveawayStorage:
    """Async wrapper around the SQLite database holding bot state."""

    def __init__(self, path: Path) -> None:
        """Initialise the storage helper with the database file location."""
        self.path = path
        self._lock = asyncio.Lock()

    # --- Giveaways --------------------------------------------------------

    async def load_giveaways(self) -> List[Giveaway]:
        """Load every persisted giveaway, ended ones included."""
        async with self._lock:
            return await asyncio.to_thread(self._read_giveaways)

    async def save_giveaway(self, giveaway: Giveaway) -> None:
        """Insert the giveaway, or update it when the id already exists."""
        await self.save_giveaways((giveaway,))

    async def save_giveaways(self, giveaways: Sequence[Giveaway]) -> None:
        """Persist several giveaways in a single transaction."""
        if not giveaways:
            return
        rows = [self._giveaway_row(giveaway) for giveaway in giveaways]
        async with self._lock:
            await asyncio.to_thread(self._write_giveaways, rows)

    # --- Exclusions -------------------------------------------------------

    async def add_excluded_role(self, record: ExcludedRole) -> None:
        await self._add_exclusion("excluded_roles", "role_id", record.guild_id, record.role_id, record)

    async def remove_excluded_role(self, record: ExcludedRole) -> None:
        await self._remove_exclusion("excluded_roles", "role_id", record.guild_id, record.role_id)

    async def query_excluded_roles(self, guild_id: int) -> List[ExcludedRole]:
        rows = await self._query_exclusions("excluded_roles", "role_id", guild_id)
        return [
            ExcludedRole(
                guild_id=guild_id,
                role_id=int(row["role_id"]),
                reason=row["reason"],
                staff_member_id=int(row["staff_member_id"]),
            )
            for row in rows
        ]

    async def add_excluded_user(self, record: ExcludedUser) -> None:
        await self._add_exclusion("excluded_users", "user_id", record.guild_id, record.user_id, record)

    async def remove_excluded_user(self, record: ExcludedUser) -> None:
        await self._remove_exclusion("excluded_users", "user_id", record.guild_id, record.user_id)

    async def query_excluded_users(self, guild_id: int) -> List[ExcludedUser]:
        rows = await self._query_exclusions("excluded_users", "user_id", guild_id)
        return [
            ExcludedUser(
                guild_id=guild_id,
                user_id=int(row["user_id"]),
                reason=row["reason"],
                staff_member_id=int(row["staff_member_id"]),
            )
            for row in rows
        ]

    # --- Internal helpers -------------------------------------------------

    async def _add_exclusion(
        self,
        table: str,
        key_column: str,
        guild_id: int,
        target_id: int,
        record: ExcludedRole | ExcludedUser,
    ) -> None:
        query = (
            f"INSERT INTO {table}(guild_id, {key_column}, reason, staff_member_id) "
            "VALUES (?, ?, ?, ?)"
        )
        params = (guild_id, target_id, record.reason, record.staff_member_id)
        async with self._lock:
            await asyncio.to_thread(self._execute, query, params)

    async def _remove_exclusion(
        self, table: str, key_column: str, guild_id: int, target_id: int
    ) -> None:
        query = f"DELETE FROM {table} WHERE guild_id = ? AND {key_column} = ?"
        async with self._lock:
            await asyncio.to_thread(self._execute, query, (guild_id, target_id))

    async def _query_exclusions(
        self, table: str, key_column: str, guild_id: int
    ) -> List[sqlite3.Row]:
        query = (
            f"SELECT {key_column}, reason, staff_member_id FROM {table} "
            f"WHERE guild_id = ? ORDER BY {key_column}"
        )
        async with self._lock:
            return await asyncio.to_thread(self._fetchall, query, (guild_id,))

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        self._ensure_schema(conn)
        return conn

    def _execute(self, query: str, params: Iterable) -> None:
        conn = self._connect()
        try:
            conn.execute("BEGIN")
            conn.execute(query, tuple(params))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetchall(self, query: str, params: Iterable) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return list(conn.execute(query, tuple(params)))
        finally:
            conn.close()

    def _write_giveaways(self, rows: List[tuple]) -> None:
        placeholders = ", ".join("?" for _ in _GIVEAWAY_COLUMNS)
        updates = ", ".join(
            f"{column} = excluded.{column}" for column in _GIVEAWAY_COLUMNS[1:]
        )
        query = (
            f"INSERT INTO giveaways({', '.join(_GIVEAWAY_COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )
        conn = self._connect()
        try:
            conn.execute("BEGIN")
            conn.executemany(query, rows)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _read_giveaways(self) -> List[Giveaway]:
        conn = self._connect()
        try:
            giveaways: List[Giveaway] = []
            for row in conn.execute("SELECT * FROM giveaways ORDER BY start_time"):
                try:
                    giveaways.append(self._giveaway_from_row(row))
                except (TypeError, ValueError) as exc:
                    LOGGER.warning("Skipping unreadable giveaway row: %s", exc)
            return giveaways
        finally:
            conn.close()

    @staticmethod
    def _giveaway_row(giveaway: Giveaway) -> tuple:
        return (
            giveaway.id.bytes,
            giveaway.guild_id,
            giveaway.channel_id,
            giveaway.creator_id,
            giveaway.title,
            giveaway.description,
            giveaway.image_uri,
            giveaway.start_time.isoformat(),
            giveaway.end_time.isoformat(),
            giveaway.winner_count,
            json.dumps(list(map(int, giveaway.entrants))),
            json.dumps(list(map(int, giveaway.winner_ids))),
            1 if giveaway.end_handled else 0,
            giveaway.message_id,
            giveaway.log_message_id,
        )

    @staticmethod
    def _giveaway_from_row(row: sqlite3.Row) -> Giveaway:
        entrants = json.loads(row["entrants"]) if row["entrants"] else []
        winner_ids = json.loads(row["winner_ids"]) if row["winner_ids"] else []
        return Giveaway(
            id=uuid.UUID(bytes=bytes(row["id"])),
            guild_id=int(row["guild_id"]),
            channel_id=int(row["channel_id"]),
            creator_id=int(row["creator_id"]),
            title=row["title"],
            description=row["description"],
            image_uri=row["image_uri"],
            start_time=_parse_datetime(row["start_time"]),
            end_time=_parse_datetime(row["end_time"]),
            winner_count=int(row["winner_count"]),
            entrants=[int(value) for value in entrants],
            winner_ids=[int(value) for value in winner_ids],
            end_handled=bool(row["end_handled"]),
            message_id=int(row["message_id"] or 0),
            log_message_id=int(row["log_message_id"] or 0),
        )

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS giveaways (
                id BLOB PRIMARY KEY,
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                creator_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT NOT NULL,
                image_uri TEXT,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                winner_count INTEGER NOT NULL,
                entrants TEXT,
                winner_ids TEXT,
                end_handled INTEGER NOT NULL,
                message_id INTEGER NOT NULL DEFAULT 0,
                log_message_id INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS excluded_roles (
                guild_id INTEGER NOT NULL,
                role_id INTEGER NOT NULL,
                reason TEXT,
                staff_member_id INTEGER NOT NULL,
                PRIMARY KEY (guild_id, role_id)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS excluded_users (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                reason TEXT,
                staff_member_id INTEGER NOT NULL,
                PRIMARY KEY (guild_id, user_id)
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_giveaways_guild
            ON giveaways(guild_id)
            """
        )


def _parse_datetime(value: Optional[str]) -> datetime:
    if not value:
        raise ValueError("missing timestamp")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
