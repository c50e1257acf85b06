from __future__ import annotations

import logging

from dashboard import calendar_math
from dashboard.constants import COMPLETION_MODES, STREAK_LOOKBACK_DAYS
from dashboard.data.tiers import RemoteHabitTier
from dashboard.errors import ConflictError, TransientIOError, ValidationError
from dashboard.metrics import habit_metrics
from dashboard.models import DerivedMetrics, Frequency, Habit, SyncState
from dashboard.sync import LoadResult, SyncCoordinator
from dashboard.visualizations import build_month_grid

logger = logging.getLogger(__name__)


def _sanitize_habit_name(raw_value) -> str:
    return " ".join(str(raw_value or "").split()).strip()[:60]


class HabitBoard:
    """Habit list with completion marking and derived views.

    Metrics are always recomputed from the in-memory ledgers and never wait on
    persistence.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        remote: RemoteHabitTier,
        completion_mode: str = "toggle",
        clock=calendar_math.today,
        lookback_days: int = STREAK_LOOKBACK_DAYS,
    ):
        if completion_mode not in COMPLETION_MODES:
            raise ValueError(f"Unknown completion mode: {completion_mode}")
        self.coordinator = coordinator
        self.remote = remote
        self.completion_mode = completion_mode
        self.clock = clock
        self.lookback_days = lookback_days

    async def load(self) -> LoadResult:
        return await self.coordinator.load()

    def habits(self) -> list[Habit]:
        return sorted(self.coordinator.records(), key=lambda habit: habit.created_at, reverse=True)

    def get(self, habit_id) -> Habit | None:
        return self.coordinator.get(habit_id)

    def state(self, habit_id) -> SyncState:
        return self.coordinator.state(habit_id)

    async def create_habit(self, name, description="", times_per_day=1, frequency=Frequency.DAILY) -> Habit:
        clean_name = _sanitize_habit_name(name)
        if not clean_name:
            raise ValidationError("Please enter habit name")
        for habit in self.coordinator.records():
            if habit.name.lower() == clean_name.lower():
                raise ConflictError("Habit already exists")

        draft = Habit(
            name=clean_name,
            description=description or "",
            times_per_day=times_per_day,
            frequency=frequency,
        )
        try:
            created = await self.remote.create(draft.to_payload())
        except TransientIOError as exc:
            logger.warning("Creating habit %r offline: %s", clean_name, exc)
            return await self.coordinator.adopt(draft, SyncState.OFFLINE)

        habit = Habit.from_payload(created, today=self.clock()) if created else draft
        return await self.coordinator.adopt(habit, SyncState.SYNCED)

    async def mark_today(self, habit_id) -> Habit | None:
        habit = self.get(habit_id)
        if habit is None:
            return None
        if self.completion_mode == "toggle" and not self.coordinator.is_unsynced(habit_id):
            try:
                toggled = await self.remote.toggle_today(habit_id)
            except TransientIOError as exc:
                logger.warning("Toggling habit %s offline: %s", habit_id, exc)
            else:
                if toggled is not None:
                    await self.coordinator.adopt(Habit.from_payload(toggled, today=self.clock()))
                    return self.get(habit_id)
                logger.info("Habit %s unknown remotely, saving full state", habit_id)

        # Increment mode and offline replay push the whole ledger.
        updated = habit.model_copy(deep=True)
        today = self.clock()
        if self.completion_mode == "increment":
            updated.completions.increment(today)
        else:
            updated.completions.toggle(today)
        await self.coordinator.manual_save(habit_id, updated)
        return self.get(habit_id)

    async def delete_habit(self, habit_id) -> bool:
        return await self.coordinator.delete(habit_id)

    def metrics(self, habit_id) -> DerivedMetrics | None:
        habit = self.get(habit_id)
        if habit is None:
            return None
        return habit_metrics(habit, today=self.clock(), lookback_days=self.lookback_days)

    def month_grid(self, habit_id, year: int, month: int):
        habit = self.get(habit_id)
        if habit is None:
            return []
        return build_month_grid(
            habit.completions,
            habit.created_day,
            year,
            month,
            habit.times_per_day,
            today=self.clock(),
        )

    def filter(self, search: str = "", frequency=None) -> list[Habit]:
        needle = (search or "").strip().lower()
        wanted = Frequency(frequency) if frequency and frequency != "all" else None
        matches = []
        for habit in self.habits():
            if wanted is not None and habit.frequency != wanted:
                continue
            if needle and needle not in habit.name.lower() and needle not in habit.description.lower():
                continue
            matches.append(habit)
        return matches
