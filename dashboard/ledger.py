from __future__ import annotations

from datetime import date

from dashboard.calendar_math import day_difference, format_iso_date, normalize_day, shift_days
from dashboard.constants import MAX_INTENSITY


class CompletionLedger:
    """Sparse per-day completion record for one habit.

    At most one entry exists per calendar day. ``run_length`` (the run ending at
    ``last_completed_day``) and ``best_run`` are maintained incrementally on
    insert and always equal what :meth:`recompute` derives from the day set.
    """

    def __init__(self, entries=None):
        self._days: dict[date, int] = {}
        self.last_completed_day: date | None = None
        self.run_length = 0
        self.best_run = 0
        for day, count in dict(entries or {}).items():
            count = int(count or 0)
            if count > 0:
                self._days[normalize_day(day)] = count
        self.recompute()

    @classmethod
    def from_records(cls, records) -> "CompletionLedger":
        entries: dict[date, int] = {}
        for item in records or []:
            if isinstance(item, dict):
                raw_day = item.get("date") or item.get("day")
                if raw_day is None:
                    continue
                count = int(item.get("count", 1) or 0)
            else:
                raw_day = item
                count = 1
            try:
                day = normalize_day(raw_day)
            except (TypeError, ValueError):
                continue
            entries[day] = entries.get(day, 0) + count
        return cls(entries)

    @classmethod
    def from_recent_window(cls, window, today) -> "CompletionLedger":
        anchor = normalize_day(today)
        entries = {}
        for offset, count in enumerate(window or []):
            try:
                value = int(count or 0)
            except (TypeError, ValueError):
                value = 0
            if value > 0:
                entries[shift_days(anchor, -offset)] = value
        return cls(entries)

    def to_records(self) -> list[dict]:
        return [{"date": format_iso_date(day), "count": self._days[day]} for day in self.days()]

    def copy(self) -> "CompletionLedger":
        return CompletionLedger(self._days)

    def days(self) -> list[date]:
        return sorted(self._days)

    def contains(self, day) -> bool:
        return normalize_day(day) in self._days

    def count_on(self, day) -> int:
        return min(self._days.get(normalize_day(day), 0), MAX_INTENSITY)

    def toggle(self, day) -> bool:
        key = normalize_day(day)
        if key in self._days:
            del self._days[key]
            self.recompute()
            return False
        self._days[key] = 1
        self._after_insert(key)
        return True

    def increment(self, day) -> int:
        key = normalize_day(day)
        current = self._days.get(key, 0)
        if current >= MAX_INTENSITY:
            return current
        self._days[key] = current + 1
        if current == 0:
            self._after_insert(key)
        return current + 1

    def _after_insert(self, day: date) -> None:
        if self.last_completed_day is None:
            self.run_length = 1
        else:
            gap = day_difference(day, self.last_completed_day)
            if gap == 1:
                self.run_length += 1
            elif gap > 1:
                self.run_length = 1
            else:
                # backfilled day, runs behind the pointer may have merged
                self.recompute()
                return
        self.last_completed_day = day
        self.best_run = max(self.best_run, self.run_length)

    def derive_counters(self) -> tuple[date | None, int, int]:
        ordered = self.days()
        if not ordered:
            return None, 0, 0
        best = 0
        run = 0
        previous = None
        for day in ordered:
            if previous is not None and day_difference(day, previous) == 1:
                run += 1
            else:
                run = 1
            best = max(best, run)
            previous = day
        return ordered[-1], run, best

    def recompute(self) -> None:
        self.last_completed_day, self.run_length, self.best_run = self.derive_counters()

    def __contains__(self, day) -> bool:
        return self.contains(day)

    def __iter__(self):
        return iter(self.days())

    def __len__(self) -> int:
        return len(self._days)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CompletionLedger):
            return NotImplemented
        return self._days == other._days

    def __repr__(self) -> str:
        return f"CompletionLedger(days={len(self._days)}, last={self.last_completed_day})"
