from __future__ import annotations

import math

from dashboard import calendar_math
from dashboard.constants import (
    MAX_INTENSITY,
    MAX_PROGRESS_PERCENT,
    MAX_PROGRESS_RATIO,
    RECENT_WINDOW_DAYS,
    STREAK_LOOKBACK_DAYS,
    WEEK_DAYS,
)
from dashboard.ledger import CompletionLedger
from dashboard.models import DerivedMetrics


def _clamp_target(target):
    # zero keeps the presence-based ratio, negatives and garbage fall back to one per day
    try:
        value = int(target)
    except (TypeError, ValueError):
        return 1
    if value < 0:
        return 1
    return value


def _window_counts(window):
    counts = []
    for value in window or []:
        try:
            counts.append(max(0, int(value or 0)))
        except (TypeError, ValueError):
            counts.append(0)
    return counts


def _present_offsets(ledger: CompletionLedger, today, lookback_days: int):
    anchor = calendar_math.normalize_day(today)
    return [
        ledger.contains(calendar_math.shift_days(anchor, -offset))
        for offset in range(max(0, int(lookback_days)))
    ]


def _presence(source, today, lookback_days):
    if isinstance(source, CompletionLedger):
        return _present_offsets(source, today or calendar_math.today(), lookback_days)
    return [count > 0 for count in _window_counts(source)[: max(0, int(lookback_days))]]


def current_streak(source, today=None, lookback_days: int = STREAK_LOOKBACK_DAYS) -> int:
    """Consecutive completed days ending today; an incomplete today yields 0."""
    count = 0
    for present in _presence(source, today, lookback_days):
        if not present:
            break
        count += 1
    return count


def longest_streak(source, today=None, lookback_days: int = STREAK_LOOKBACK_DAYS) -> int:
    longest = 0
    run = 0
    for present in _presence(source, today, lookback_days):
        if present:
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return longest


def recent_window(ledger: CompletionLedger, today=None, width: int = RECENT_WINDOW_DAYS) -> list[int]:
    anchor = calendar_math.normalize_day(today or calendar_math.today())
    window = [0] * width
    for offset in range(width):
        window[offset] = min(ledger.count_on(calendar_math.shift_days(anchor, -offset)), MAX_INTENSITY)
    return window


def progress_ratio(count, target) -> float:
    count = max(0, int(count or 0))
    target = _clamp_target(target)
    if target > 0:
        return min(count / target, MAX_PROGRESS_RATIO)
    return 1.0 if count > 0 else 0.0


def percent(ratio) -> int:
    capped = min(max(float(ratio), 0.0), MAX_PROGRESS_RATIO)
    return min(int(math.floor(capped * 100 + 0.5)), MAX_PROGRESS_PERCENT)


def _mean_percent(ratios) -> int:
    ratios = list(ratios)
    if not ratios:
        return 0
    return percent(sum(ratios) / len(ratios))


def today_progress(window, target) -> int:
    counts = _window_counts(window)
    return percent(progress_ratio(counts[0] if counts else 0, target))


def weekly_progress(window, target) -> int:
    counts = _window_counts(window)[:WEEK_DAYS]
    return _mean_percent(progress_ratio(count, target) for count in counts)


def monthly_progress(ledger: CompletionLedger, created_day, year: int, month: int, target, today=None) -> int:
    from dashboard.visualizations import build_month_grid

    cells = build_month_grid(ledger, created_day, year, month, target, today=today)
    return _mean_percent(cell.ratio for cell in cells)


def habit_metrics(habit, today=None, lookback_days: int = STREAK_LOOKBACK_DAYS) -> DerivedMetrics:
    anchor = calendar_math.normalize_day(today or calendar_math.today())
    ledger = habit.completions
    window = recent_window(ledger, anchor)
    return DerivedMetrics(
        current_streak=current_streak(ledger, anchor, lookback_days),
        longest_streak=longest_streak(ledger, anchor, lookback_days),
        recent=window,
        today_percent=today_progress(window, habit.times_per_day),
        weekly_percent=weekly_progress(window, habit.times_per_day),
        monthly_percent=monthly_progress(
            ledger,
            habit.created_day,
            anchor.year,
            anchor.month,
            habit.times_per_day,
            today=anchor,
        ),
    )
