from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod

from dashboard.constants import DAILY_LOG_MIRROR_PREFIX, HABIT_MIRROR_PREFIX
from dashboard.data.api_client import ApiClient
from dashboard.errors import NotFoundError

logger = logging.getLogger(__name__)


class PersistenceTier(ABC):
    """Keyed record store shared by the remote, durable and ephemeral tiers.

    Records cross this boundary as plain JSON-compatible dicts; decoding into
    models happens in the coordinator.
    """

    key_field = "id"

    def key_of(self, record: dict) -> str:
        return str(record[self.key_field])

    @abstractmethod
    async def get_all(self) -> list[dict]:
        ...

    @abstractmethod
    async def get_one(self, key: str) -> dict | None:
        ...

    @abstractmethod
    async def put(self, record: dict) -> dict | None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class EphemeralTier(PersistenceTier):
    def __init__(self, prefix: str, key_field: str, store: dict | None = None):
        self.prefix = prefix
        self.key_field = key_field
        self.store = store if store is not None else {}

    def _storage_key(self, key) -> str:
        return f"{self.prefix}{key}"

    def _decode(self, raw):
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(parsed, dict) or not parsed.get(self.key_field):
            return None
        return parsed

    async def get_all(self) -> list[dict]:
        records = []
        for storage_key in list(self.store):
            if not storage_key.startswith(self.prefix):
                continue
            parsed = self._decode(self.store.get(storage_key))
            if parsed is None:
                logger.debug("Skipping unreadable mirror entry %s", storage_key)
                continue
            records.append(parsed)
        return records

    async def get_one(self, key: str) -> dict | None:
        raw = self.store.get(self._storage_key(key))
        if raw is None:
            return None
        return self._decode(raw)

    async def put(self, record: dict) -> dict:
        self.store[self._storage_key(self.key_of(record))] = json.dumps(record, ensure_ascii=False)
        return record

    async def delete(self, key: str) -> None:
        self.store.pop(self._storage_key(key), None)


def habit_mirror(store: dict | None = None) -> EphemeralTier:
    return EphemeralTier(HABIT_MIRROR_PREFIX, "id", store)


def daily_log_mirror(store: dict | None = None) -> EphemeralTier:
    return EphemeralTier(DAILY_LOG_MIRROR_PREFIX, "date", store)


class RemoteHabitTier(PersistenceTier):
    key_field = "id"

    def __init__(self, client: ApiClient):
        self.client = client

    async def get_all(self) -> list[dict]:
        payload = await self.client.request("GET", "/habits")
        items = (payload or {}).get("habits", []) if isinstance(payload, dict) else []
        return [item for item in items if isinstance(item, dict)]

    async def get_one(self, key: str) -> dict | None:
        try:
            payload = await self.client.request("GET", f"/habits/{key}")
        except NotFoundError:
            return None
        return (payload or {}).get("habit")

    async def create(self, record: dict) -> dict | None:
        payload = await self.client.request("POST", "/habits", json=record)
        return (payload or {}).get("habit")

    async def put(self, record: dict) -> dict | None:
        payload = await self.client.request("PUT", f"/habits/{self.key_of(record)}", json=record)
        return (payload or {}).get("habit")

    async def toggle_today(self, key: str) -> dict | None:
        try:
            payload = await self.client.request("POST", f"/habits/{key}/complete")
        except NotFoundError:
            return None
        return (payload or {}).get("habit")

    async def delete(self, key: str) -> None:
        try:
            await self.client.request("DELETE", f"/habits/{key}")
        except NotFoundError:
            logger.info("Habit %s already absent remotely", key)


class RemoteLogTier(PersistenceTier):
    key_field = "date"

    def __init__(self, client: ApiClient):
        self.client = client

    async def get_all(self) -> list[dict]:
        payload = await self.client.request("GET", "/daily-log/week")
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict) and isinstance(item.get("date"), str)]

    async def get_one(self, key: str) -> dict | None:
        try:
            payload = await self.client.request("GET", f"/daily-log/{key}")
        except NotFoundError:
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("date"), str):
            return None
        return payload

    async def put(self, record: dict) -> dict | None:
        return await self.client.request("POST", "/daily-log", json=record)

    async def delete(self, key: str) -> None:
        try:
            await self.client.request("DELETE", f"/daily-log/{key}")
        except NotFoundError:
            logger.info("Daily log %s already absent remotely", key)
