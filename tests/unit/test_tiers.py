import asyncio
import json

import httpx
import pytest

from dashboard.data.api_client import ApiClient
from dashboard.data.repositories import daily_log_store, habit_store
from dashboard.data.tiers import RemoteHabitTier, RemoteLogTier, daily_log_mirror, habit_mirror
from dashboard.errors import ConflictError, TransientIOError


async def test_ephemeral_tier_prefixes_keys_and_skips_garbage(mirror):
    logs = daily_log_mirror(mirror)
    habits = habit_mirror(mirror)
    await logs.put({"date": "2024-01-13", "work_summary": "hi"})
    await habits.put({"id": "h1", "name": "Read"})
    mirror["daily-log-2024-01-12"] = "{not json"
    mirror["daily-log-2024-01-11"] = json.dumps(["wrong", "shape"])

    assert "daily-log-2024-01-13" in mirror
    assert await logs.get_all() == [{"date": "2024-01-13", "work_summary": "hi"}]
    assert await habits.get_all() == [{"id": "h1", "name": "Read"}]
    assert await logs.get_one("2024-01-12") is None

    await logs.delete("2024-01-13")
    await logs.delete("2024-01-13")
    assert await logs.get_all() == []


async def test_durable_tier_persists_by_collection(local_engine):
    logs = daily_log_store(local_engine)
    habits = habit_store(local_engine)
    await logs.put({"date": "2024-01-13", "hours_worked": 2.0})
    await logs.put({"date": "2024-01-13", "hours_worked": 5.0})
    await habits.put({"id": "2024-01-13", "name": "same key, other collection"})

    assert await logs.get_all() == [{"date": "2024-01-13", "hours_worked": 5.0}]
    assert await logs.get_one("2024-01-13") == {"date": "2024-01-13", "hours_worked": 5.0}
    assert await habits.get_one("2024-01-13") == {"id": "2024-01-13", "name": "same key, other collection"}

    await logs.delete("2024-01-13")
    assert await logs.get_one("2024-01-13") is None
    assert len(await habits.get_all()) == 1


async def test_durable_tier_serialises_writes_per_key(local_engine):
    logs = daily_log_store(local_engine)
    await asyncio.gather(*(logs.put({"date": "2024-01-13", "hours_worked": float(n)}) for n in range(5)))
    assert await logs.get_one("2024-01-13") == {"date": "2024-01-13", "hours_worked": 4.0}


async def test_durable_tier_survives_a_new_engine(tmp_path):
    from dashboard.data.repositories import create_local_engine, init_local_db

    url = f"sqlite+aiosqlite:///{tmp_path / 'restart.db'}"
    engine = create_local_engine(url)
    await init_local_db(engine)
    await daily_log_store(engine).put({"date": "2024-01-13"})
    await engine.dispose()

    engine = create_local_engine(url)
    await init_local_db(engine)
    try:
        assert await daily_log_store(engine).get_all() == [{"date": "2024-01-13"}]
    finally:
        await engine.dispose()


async def test_durable_tier_reports_unavailable_store(tmp_path):
    from dashboard.data.repositories import create_local_engine

    engine = create_local_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        with pytest.raises(TransientIOError):
            await daily_log_store(engine).get_all()
    finally:
        await engine.dispose()


def _client(handler) -> ApiClient:
    return ApiClient("http://remote", "token", "owner@example.com", transport=httpx.MockTransport(handler))


async def test_remote_habit_tier_unwraps_envelopes():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path == "/habits":
            return httpx.Response(200, json={"habits": [{"id": "h1"}, "junk"]})
        if request.url.path == "/habits/h1/complete":
            return httpx.Response(200, json={"habit": {"id": "h1", "recent": [1] + [0] * 27}})
        if request.method == "PUT":
            return httpx.Response(200, json={"habit": json.loads(request.content)})
        if request.method == "POST" and request.url.path == "/habits":
            return httpx.Response(409, json={"detail": "Habit already exists"})
        return httpx.Response(404, json={"detail": "Habit not found"})

    client = _client(handler)
    tier = RemoteHabitTier(client)
    try:
        assert await tier.get_all() == [{"id": "h1"}]
        assert (await tier.toggle_today("h1"))["recent"][0] == 1
        assert await tier.put({"id": "h1", "name": "Read"}) == {"id": "h1", "name": "Read"}
        assert await tier.get_one("missing") is None
        assert await tier.toggle_today("missing") is None
        await tier.delete("missing")
        with pytest.raises(ConflictError):
            await tier.create({"name": "Read"})
    finally:
        await client.aclose()


async def test_remote_log_tier_handles_week_and_missing_days():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/daily-log/week":
            return httpx.Response(200, json=[{"date": "2024-01-13"}, {"no": "date"}])
        if request.url.path == "/daily-log/2024-01-12":
            return httpx.Response(200, json=None)
        if request.method == "POST":
            return httpx.Response(200, json=json.loads(request.content))
        return httpx.Response(404, json={"detail": "Daily log not found"})

    client = _client(handler)
    tier = RemoteLogTier(client)
    try:
        assert await tier.get_all() == [{"date": "2024-01-13"}]
        assert await tier.get_one("2024-01-12") is None
        assert await tier.get_one("2024-01-11") is None
        assert await tier.put({"date": "2024-01-13"}) == {"date": "2024-01-13"}
        await tier.delete("2024-01-11")
    finally:
        await client.aclose()
