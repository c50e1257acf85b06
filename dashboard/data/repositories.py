from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime

from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from dashboard.constants import DAILY_LOGS_COLLECTION, HABITS_COLLECTION, LOCAL_RECORDS_TABLE
from dashboard.data.tiers import PersistenceTier
from dashboard.errors import TransientIOError

logger = logging.getLogger(__name__)


def create_local_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, future=True)


async def init_local_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {LOCAL_RECORDS_TABLE} (
                    collection TEXT NOT NULL,
                    record_key TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, record_key)
                )
                """
            )
        )


class DurableTier(PersistenceTier):
    """Local SQL-backed record store that survives restarts.

    Writes for the same record key are serialised through a per-key lock, so
    the last dispatched write is the last one committed.
    """

    def __init__(self, engine: AsyncEngine, collection: str, key_field: str):
        self.engine = engine
        self.collection = collection
        self.key_field = key_field
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _decode(self, raw):
        try:
            parsed = json.loads(raw or "{}")
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None

    async def get_all(self) -> list[dict]:
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(
                    sql_text(
                        f"SELECT record_key, payload_json FROM {LOCAL_RECORDS_TABLE} "
                        "WHERE collection = :collection ORDER BY record_key"
                    ),
                    {"collection": self.collection},
                )).fetchall()
        except SQLAlchemyError as exc:
            raise TransientIOError(f"Local store unavailable: {exc}") from exc
        records = []
        for row in rows:
            parsed = self._decode(row[1])
            if parsed is None:
                logger.warning("Dropping unreadable local %s record %s", self.collection, row[0])
                continue
            records.append(parsed)
        return records

    async def get_one(self, key: str) -> dict | None:
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(
                    sql_text(
                        f"SELECT payload_json FROM {LOCAL_RECORDS_TABLE} "
                        "WHERE collection = :collection AND record_key = :record_key"
                    ),
                    {"collection": self.collection, "record_key": str(key)},
                )).fetchone()
        except SQLAlchemyError as exc:
            raise TransientIOError(f"Local store unavailable: {exc}") from exc
        return self._decode(row[0]) if row else None

    async def put(self, record: dict) -> dict:
        key = self.key_of(record)
        async with self._lock(key):
            try:
                async with self.engine.begin() as conn:
                    await conn.execute(
                        sql_text(
                            f"""
                            INSERT INTO {LOCAL_RECORDS_TABLE} (collection, record_key, payload_json, updated_at)
                            VALUES (:collection, :record_key, :payload_json, :updated_at)
                            ON CONFLICT(collection, record_key) DO UPDATE SET
                                payload_json = EXCLUDED.payload_json,
                                updated_at = EXCLUDED.updated_at
                            """
                        ),
                        {
                            "collection": self.collection,
                            "record_key": key,
                            "payload_json": json.dumps(record, ensure_ascii=False),
                            "updated_at": datetime.utcnow().isoformat(),
                        },
                    )
            except SQLAlchemyError as exc:
                raise TransientIOError(f"Local store write failed: {exc}") from exc
        return record

    async def delete(self, key: str) -> None:
        key = str(key)
        async with self._lock(key):
            try:
                async with self.engine.begin() as conn:
                    await conn.execute(
                        sql_text(
                            f"DELETE FROM {LOCAL_RECORDS_TABLE} "
                            "WHERE collection = :collection AND record_key = :record_key"
                        ),
                        {"collection": self.collection, "record_key": key},
                    )
            except SQLAlchemyError as exc:
                raise TransientIOError(f"Local store delete failed: {exc}") from exc


def habit_store(engine: AsyncEngine) -> DurableTier:
    return DurableTier(engine, HABITS_COLLECTION, "id")


def daily_log_store(engine: AsyncEngine) -> DurableTier:
    return DurableTier(engine, DAILY_LOGS_COLLECTION, "date")
