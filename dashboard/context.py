from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from dashboard import calendar_math
from dashboard.daily_log import DailyLogBook
from dashboard.data.api_client import ApiClient
from dashboard.data.repositories import create_local_engine, daily_log_store, habit_store, init_local_db
from dashboard.data.tiers import RemoteHabitTier, RemoteLogTier, daily_log_mirror, habit_mirror
from dashboard.habits import HabitBoard
from dashboard.logging_config import configure_logging
from dashboard.models import DailyLog, Habit
from dashboard.settings import DashboardSettings, get_settings
from dashboard.sync import LoadResult, SyncCoordinator


@dataclass
class DashboardContext:
    settings: DashboardSettings
    engine: AsyncEngine
    api: ApiClient
    habits: HabitBoard
    logs: DailyLogBook
    mirror: Dict[str, Any] = field(default_factory=dict)

    async def load_all(self) -> Dict[str, LoadResult]:
        return {
            "habits": await self.habits.load(),
            "logs": await self.logs.load(),
        }

    async def close(self) -> None:
        await self.habits.coordinator.flush()
        await self.logs.coordinator.flush()
        await self.habits.coordinator.drain()
        await self.logs.coordinator.drain()
        await self.api.aclose()
        await self.engine.dispose()


async def open_context(settings=None, transport=None, mirror=None, clock=calendar_math.today) -> DashboardContext:
    settings = settings or get_settings()
    configure_logging()
    engine = create_local_engine(settings.local_database_url)
    await init_local_db(engine)
    api = ApiClient.from_settings(settings, transport=transport)
    mirror = mirror if mirror is not None else {}

    habit_remote = RemoteHabitTier(api)
    habit_sync = SyncCoordinator(
        habit_remote,
        habit_store(engine),
        habit_mirror(mirror),
        decode=lambda raw: Habit.from_payload(raw, today=clock()),
        autosave_delay=settings.autosave_delay_seconds,
        name="habits",
    )
    log_sync = SyncCoordinator(
        RemoteLogTier(api),
        daily_log_store(engine),
        daily_log_mirror(mirror),
        decode=DailyLog.from_payload,
        autosave_delay=settings.autosave_delay_seconds,
        newest_first=True,
        name="daily logs",
    )
    return DashboardContext(
        settings=settings,
        engine=engine,
        api=api,
        habits=HabitBoard(
            habit_sync,
            habit_remote,
            completion_mode=settings.completion_mode,
            clock=clock,
            lookback_days=settings.streak_lookback_days,
        ),
        logs=DailyLogBook(log_sync, clock=clock),
        mirror=mirror,
    )
