from __future__ import annotations

from sqlalchemy import text as sql_text

from backend.db import get_engine


HABITS_TABLE = "habits"
HABIT_COMPLETIONS_TABLE = "habit_completions"
DAILY_LOGS_TABLE = "daily_logs"


async def init_db():
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {HABITS_TABLE} (
                    id TEXT PRIMARY KEY,
                    user_email TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    times_per_day INTEGER DEFAULT 1,
                    frequency TEXT DEFAULT 'Daily',
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    UNIQUE (user_email, name)
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {HABIT_COMPLETIONS_TABLE} (
                    habit_id TEXT NOT NULL,
                    user_email TEXT NOT NULL,
                    date TEXT NOT NULL,
                    count INTEGER DEFAULT 1,
                    PRIMARY KEY (habit_id, date)
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {DAILY_LOGS_TABLE} (
                    user_email TEXT NOT NULL,
                    date TEXT NOT NULL,
                    work_summary TEXT DEFAULT '',
                    key_learnings_json TEXT DEFAULT '[]',
                    issues_faced TEXT DEFAULT '',
                    hours_worked REAL DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT,
                    PRIMARY KEY (user_email, date)
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"CREATE INDEX IF NOT EXISTS idx_habit_completions_user ON {HABIT_COMPLETIONS_TABLE} (user_email, date)"
            )
        )
