from __future__ import annotations

import pandas as pd

from dashboard import calendar_math
from dashboard.metrics import habit_metrics

HABIT_COLUMNS = [
    "id",
    "name",
    "description",
    "frequency",
    "times_per_day",
    "created_at",
    "current_streak",
    "longest_streak",
    "today_percent",
    "weekly_percent",
    "monthly_percent",
    "recent",
]
LOG_COLUMNS = ["date", "work_summary", "key_learnings", "issues_faced", "hours_worked"]


def habits_frame(habits, today=None) -> pd.DataFrame:
    anchor = calendar_math.normalize_day(today or calendar_math.today())
    rows = []
    for habit in habits:
        metrics = habit_metrics(habit, today=anchor)
        rows.append(
            {
                "id": habit.id,
                "name": habit.name,
                "description": habit.description,
                "frequency": habit.frequency.value,
                "times_per_day": habit.times_per_day,
                "created_at": habit.created_at.isoformat(),
                **metrics.as_dict(),
            }
        )
    if not rows:
        return pd.DataFrame(columns=HABIT_COLUMNS)
    return pd.DataFrame(rows, columns=HABIT_COLUMNS)


def logs_frame(logs) -> pd.DataFrame:
    if not logs:
        return pd.DataFrame(columns=LOG_COLUMNS)
    df = pd.DataFrame([log.to_payload() for log in logs], columns=LOG_COLUMNS)
    df["key_learnings"] = df["key_learnings"].apply(lambda lines: " | ".join(lines or []))
    df["hours_worked"] = df["hours_worked"].fillna(0).astype(float)
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df = df.sort_values("date", ascending=False).reset_index(drop=True)
    return df
