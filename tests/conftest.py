from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from dashboard.data.repositories import create_local_engine, daily_log_store, habit_store, init_local_db
from dashboard.data.tiers import PersistenceTier, daily_log_mirror, habit_mirror
from dashboard.errors import ConflictError, TransientIOError
from dashboard.habits import HabitBoard
from dashboard.ledger import CompletionLedger
from dashboard.models import DailyLog, Habit
from dashboard.sync import SyncCoordinator

FIXED_TODAY = date(2024, 1, 13)
BACKEND_TOKEN = "test-secret"
OWNER_EMAIL = "owner@example.com"


class FakeRemote(PersistenceTier):
    """In-memory stand-in for the remote store with failure and latency knobs."""

    def __init__(self, key_field: str = "id"):
        self.key_field = key_field
        self.store: dict[str, dict] = {}
        self.calls: list[tuple[str, object]] = []
        self.delays: list[float] = []
        self.fail = False
        self.fail_keys: set[str] = set()
        self.reject: Exception | None = None

    def _check(self, key=None) -> None:
        if self.fail or (key is not None and key in self.fail_keys):
            raise TransientIOError("remote unreachable")

    async def get_all(self) -> list[dict]:
        self.calls.append(("get_all", None))
        self._check()
        return [dict(record) for record in self.store.values()]

    async def get_one(self, key: str) -> dict | None:
        self._check()
        record = self.store.get(key)
        return dict(record) if record else None

    async def put(self, record: dict) -> dict:
        key = self.key_of(record)
        self.calls.append(("put", dict(record)))
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        self._check(key)
        if self.reject is not None:
            raise self.reject
        self.store[key] = dict(record)
        return dict(record)

    async def delete(self, key: str) -> None:
        self.calls.append(("delete", key))
        self._check(key)
        self.store.pop(key, None)

    async def create(self, record: dict) -> dict:
        self._check()
        wanted = record["name"].lower()
        if any(item["name"].lower() == wanted for item in self.store.values()):
            raise ConflictError("Habit already exists")
        return await self.put(record)

    async def toggle_today(self, key: str) -> dict | None:
        self.calls.append(("toggle_today", key))
        self._check(key)
        record = self.store.get(key)
        if record is None:
            return None
        ledger = CompletionLedger.from_records(record.get("completions") or [])
        ledger.toggle(FIXED_TODAY)
        self.store[key] = {**record, "completions": ledger.to_records()}
        return dict(self.store[key])

    def puts(self) -> list[dict]:
        return [payload for kind, payload in self.calls if kind == "put"]


@pytest.fixture
def today() -> date:
    return FIXED_TODAY


@pytest.fixture
async def local_engine(tmp_path):
    engine = create_local_engine(f"sqlite+aiosqlite:///{tmp_path / 'local.db'}")
    await init_local_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def mirror() -> dict:
    return {}


@pytest.fixture
def log_remote() -> FakeRemote:
    return FakeRemote(key_field="date")


@pytest.fixture
def habit_remote() -> FakeRemote:
    return FakeRemote(key_field="id")


@pytest.fixture
def log_coordinator(log_remote, local_engine, mirror) -> SyncCoordinator:
    return SyncCoordinator(
        log_remote,
        daily_log_store(local_engine),
        daily_log_mirror(mirror),
        decode=DailyLog.from_payload,
        autosave_delay=0.05,
        newest_first=True,
        name="daily logs",
    )


@pytest.fixture
def habit_coordinator(habit_remote, local_engine, mirror, today) -> SyncCoordinator:
    return SyncCoordinator(
        habit_remote,
        habit_store(local_engine),
        habit_mirror(mirror),
        decode=lambda raw: Habit.from_payload(raw, today=today),
        autosave_delay=0.05,
        name="habits",
    )


@pytest.fixture
def board(habit_coordinator, habit_remote, today) -> HabitBoard:
    return HabitBoard(habit_coordinator, habit_remote, clock=lambda: today)


@pytest.fixture
async def backend_app(tmp_path, monkeypatch):
    from backend import db, settings as backend_settings
    from backend.db_init import init_db
    from backend.main import create_app

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'backend.db'}")
    monkeypatch.setenv("BACKEND_SESSION_SECRET", BACKEND_TOKEN)
    monkeypatch.setenv("ALLOWED_EMAILS", f"{OWNER_EMAIL},partner@example.com")
    backend_settings.reset_settings()
    await db.dispose_engine()
    await init_db()
    yield create_app()
    await db.dispose_engine()
    backend_settings.reset_settings()


@pytest.fixture
async def api(backend_app):
    transport = httpx.ASGITransport(app=backend_app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Email": OWNER_EMAIL, "X-Backend-Token": BACKEND_TOKEN},
    ) as client:
        yield client
