from __future__ import annotations

from datetime import date

import numpy as np

from dashboard import calendar_math
from dashboard.constants import (
    RATIO_COLOR_EMPTY,
    RATIO_COLOR_MAX,
    RATIO_COLOR_STEPS,
    RECENT_WINDOW_DAYS,
    WEEK_DAYS,
)
from dashboard.ledger import CompletionLedger
from dashboard.metrics import progress_ratio, recent_window
from dashboard.models import DayCell


def build_month_grid(ledger: CompletionLedger, created_day, year: int, month: int, target, today=None) -> list[DayCell]:
    """Project a habit onto one calendar month, one cell per day in order.

    Days outside the rolling window count as zero, future days and days before
    ``created_day`` are kept for layout but marked inactive.
    """
    anchor = calendar_math.normalize_day(today or calendar_math.today())
    created = calendar_math.normalize_day(created_day)
    window = recent_window(ledger, anchor, RECENT_WINDOW_DAYS)

    cells = []
    for day_number in range(1, calendar_math.days_in_month(year, month) + 1):
        current = date(year, month, day_number)
        days_ago = calendar_math.day_difference(anchor, current)
        count = window[days_ago] if 0 <= days_ago < len(window) else 0
        cells.append(
            DayCell(
                date=current,
                count=count,
                active=created <= current <= anchor,
                ratio=progress_ratio(count, target),
            )
        )
    return cells


def color_for_ratio(ratio) -> str:
    if ratio <= 0:
        return RATIO_COLOR_EMPTY
    for threshold, color in RATIO_COLOR_STEPS:
        if ratio < threshold:
            return color
    return RATIO_COLOR_MAX


def mini_bar_data(cells, buckets: int = 4) -> list[int]:
    total = len(cells)
    bars = []
    for idx in range(buckets):
        start = (idx * total) // buckets
        end = ((idx + 1) * total) // buckets
        segment = cells[start:end]
        if not segment:
            bars.append(0)
            continue
        done = sum(1 for cell in segment if cell.ratio >= 1)
        bars.append(int(done * 100 / len(segment) + 0.5))
    return bars


def recent_heatmap(window, columns: int = WEEK_DAYS):
    values = [int(value or 0) for value in window or []]
    rows = max(1, -(-len(values) // columns))
    z = np.zeros((rows, columns), dtype=int)
    for offset, value in enumerate(values):
        z[offset // columns, offset % columns] = value
    return z
