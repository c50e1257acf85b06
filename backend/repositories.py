from __future__ import annotations

import json
import logging
from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import text as sql_text

from backend.db import get_sessionmaker
from backend.db_init import DAILY_LOGS_TABLE, HABIT_COMPLETIONS_TABLE, HABITS_TABLE
from backend.settings import get_settings
from dashboard import calendar_math
from dashboard.constants import FREQUENCIES
from dashboard.errors import ConflictError, NotFoundError
from dashboard.ledger import CompletionLedger
from dashboard.metrics import current_streak, longest_streak, recent_window

logger = logging.getLogger(__name__)

HABIT_SELECT_COLUMNS = [
    "id",
    "user_email",
    "name",
    "description",
    "times_per_day",
    "frequency",
    "created_at",
    "updated_at",
]


def _new_id() -> str:
    return uuid4().hex


def _now_iso() -> str:
    return datetime.utcnow().isoformat()


def _sanitize_habit_name(raw_value) -> str:
    return " ".join(str(raw_value or "").split()).strip()[:60]


def _normalize_frequency(value) -> str:
    wanted = str(value or "").strip().lower()
    for item in FREQUENCIES:
        if item.lower() == wanted:
            return item
    return "Daily"


def _normalize_target(value) -> int:
    try:
        target = int(value)
    except (TypeError, ValueError):
        return 1
    return max(1, target)


def _normalize_created_at(value) -> str:
    if not value:
        return datetime.now().isoformat()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).isoformat()
    except ValueError:
        return datetime.now().isoformat()


def normalize_day_iso(value) -> str:
    try:
        return calendar_math.format_iso_date(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid date format") from exc


def _format_habit(row: dict, completions: dict, today: date) -> dict:
    lookback = get_settings().streak_lookback_days
    ledger = CompletionLedger(completions)
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row.get("description") or "",
        "created_at": row["created_at"],
        "times_per_day": _normalize_target(row.get("times_per_day")),
        "frequency": _normalize_frequency(row.get("frequency")),
        "completions": ledger.to_records(),
        "recent": recent_window(ledger, today),
        "current_streak": current_streak(ledger, today, lookback),
        "longest_streak": longest_streak(ledger, today, lookback),
    }


async def _completions_by_habit(session, user_email: str, habit_id: str | None = None) -> dict[str, dict]:
    params = {"user_email": user_email}
    query = f"SELECT habit_id, date, count FROM {HABIT_COMPLETIONS_TABLE} WHERE user_email = :user_email"
    if habit_id is not None:
        query += " AND habit_id = :habit_id"
        params["habit_id"] = habit_id
    rows = (await session.execute(sql_text(query), params)).mappings().all()
    grouped: dict[str, dict] = {}
    for row in rows:
        grouped.setdefault(row["habit_id"], {})[row["date"]] = int(row.get("count") or 1)
    return grouped


async def _habit_row(session, habit_id: str) -> dict | None:
    row = (await session.execute(
        sql_text(f"SELECT {', '.join(HABIT_SELECT_COLUMNS)} FROM {HABITS_TABLE} WHERE id = :id"),
        {"id": habit_id},
    )).mappings().fetchone()
    return dict(row) if row else None


async def _name_taken(session, user_email: str, name: str, exclude_id: str | None = None) -> bool:
    row = (await session.execute(
        sql_text(
            f"SELECT id FROM {HABITS_TABLE} "
            "WHERE user_email = :user_email AND LOWER(name) = LOWER(:name) AND id != :exclude_id"
        ),
        {"user_email": user_email, "name": name, "exclude_id": exclude_id or ""},
    )).fetchone()
    return row is not None


async def _replace_completions(session, user_email: str, habit_id: str, completions) -> None:
    await session.execute(
        sql_text(f"DELETE FROM {HABIT_COMPLETIONS_TABLE} WHERE habit_id = :habit_id"),
        {"habit_id": habit_id},
    )
    ledger = CompletionLedger.from_records(completions)
    for record in ledger.to_records():
        await session.execute(
            sql_text(
                f"INSERT INTO {HABIT_COMPLETIONS_TABLE} (habit_id, user_email, date, count) "
                "VALUES (:habit_id, :user_email, :date, :count)"
            ),
            {"habit_id": habit_id, "user_email": user_email, **record},
        )


async def list_habits(user_email: str, today: date | None = None) -> list[dict]:
    anchor = today or calendar_math.today()
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"SELECT {', '.join(HABIT_SELECT_COLUMNS)} FROM {HABITS_TABLE} "
                "WHERE user_email = :user_email ORDER BY created_at DESC"
            ),
            {"user_email": user_email},
        )).mappings().all()
        completions = await _completions_by_habit(session, user_email)
    return [_format_habit(dict(row), completions.get(row["id"], {}), anchor) for row in rows]


async def get_habit(user_email: str, habit_id: str, today: date | None = None) -> dict | None:
    anchor = today or calendar_math.today()
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = await _habit_row(session, habit_id)
        if not row or row["user_email"] != user_email:
            return None
        completions = await _completions_by_habit(session, user_email, habit_id)
    return _format_habit(row, completions.get(habit_id, {}), anchor)


async def create_habit(user_email: str, payload: dict) -> dict:
    name = _sanitize_habit_name(payload.get("name"))
    if not name:
        raise ValueError("Habit name cannot be empty")
    habit_id = str(payload.get("id") or "").strip() or _new_id()
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        if await _name_taken(session, user_email, name):
            raise ConflictError("Habit already exists")
        if await _habit_row(session, habit_id):
            habit_id = _new_id()
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {HABITS_TABLE}
                (id, user_email, name, description, times_per_day, frequency, created_at, updated_at)
                VALUES (:id, :user_email, :name, :description, :times_per_day, :frequency, :created_at, :updated_at)
                """
            ),
            {
                "id": habit_id,
                "user_email": user_email,
                "name": name,
                "description": str(payload.get("description") or ""),
                "times_per_day": _normalize_target(payload.get("times_per_day")),
                "frequency": _normalize_frequency(payload.get("frequency")),
                "created_at": _normalize_created_at(payload.get("created_at")),
                "updated_at": _now_iso(),
            },
        )
        await session.commit()
    logger.info("Created habit %s for %s", habit_id, user_email)
    return await get_habit(user_email, habit_id)


async def upsert_habit(user_email: str, habit_id: str, payload: dict) -> dict:
    name = _sanitize_habit_name(payload.get("name"))
    if not name:
        raise ValueError("Habit name cannot be empty")
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        existing = await _habit_row(session, habit_id)
        if existing and existing["user_email"] != user_email:
            raise ConflictError("Habit id belongs to another owner")
        if await _name_taken(session, user_email, name, exclude_id=habit_id):
            raise ConflictError("Habit already exists")
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {HABITS_TABLE}
                (id, user_email, name, description, times_per_day, frequency, created_at, updated_at)
                VALUES (:id, :user_email, :name, :description, :times_per_day, :frequency, :created_at, :updated_at)
                ON CONFLICT(id) DO UPDATE SET
                    name = EXCLUDED.name,
                    description = EXCLUDED.description,
                    times_per_day = EXCLUDED.times_per_day,
                    frequency = EXCLUDED.frequency,
                    updated_at = EXCLUDED.updated_at
                """
            ),
            {
                "id": habit_id,
                "user_email": user_email,
                "name": name,
                "description": str(payload.get("description") or ""),
                "times_per_day": _normalize_target(payload.get("times_per_day")),
                "frequency": _normalize_frequency(payload.get("frequency")),
                "created_at": (existing or {}).get("created_at") or _normalize_created_at(payload.get("created_at")),
                "updated_at": _now_iso(),
            },
        )
        if payload.get("completions") is not None:
            await _replace_completions(session, user_email, habit_id, payload["completions"])
        await session.commit()
    return await get_habit(user_email, habit_id)


async def toggle_completion(user_email: str, habit_id: str, today: date | None = None) -> dict:
    anchor = today or calendar_math.today()
    day_iso = anchor.isoformat()
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = await _habit_row(session, habit_id)
        if not row or row["user_email"] != user_email:
            raise NotFoundError("Habit not found")
        existing = (await session.execute(
            sql_text(
                f"SELECT count FROM {HABIT_COMPLETIONS_TABLE} WHERE habit_id = :habit_id AND date = :date"
            ),
            {"habit_id": habit_id, "date": day_iso},
        )).fetchone()
        if existing:
            await session.execute(
                sql_text(f"DELETE FROM {HABIT_COMPLETIONS_TABLE} WHERE habit_id = :habit_id AND date = :date"),
                {"habit_id": habit_id, "date": day_iso},
            )
        else:
            await session.execute(
                sql_text(
                    f"INSERT INTO {HABIT_COMPLETIONS_TABLE} (habit_id, user_email, date, count) "
                    "VALUES (:habit_id, :user_email, :date, 1)"
                ),
                {"habit_id": habit_id, "user_email": user_email, "date": day_iso},
            )
        await session.execute(
            sql_text(f"UPDATE {HABITS_TABLE} SET updated_at = :updated_at WHERE id = :id"),
            {"id": habit_id, "updated_at": _now_iso()},
        )
        await session.commit()
    return await get_habit(user_email, habit_id, today=anchor)


async def delete_habit(user_email: str, habit_id: str) -> bool:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = await _habit_row(session, habit_id)
        if not row or row["user_email"] != user_email:
            return False
        await session.execute(
            sql_text(f"DELETE FROM {HABIT_COMPLETIONS_TABLE} WHERE habit_id = :habit_id"),
            {"habit_id": habit_id},
        )
        await session.execute(
            sql_text(f"DELETE FROM {HABITS_TABLE} WHERE id = :id AND user_email = :user_email"),
            {"id": habit_id, "user_email": user_email},
        )
        await session.commit()
    return True


def _format_log(row: dict) -> dict:
    try:
        learnings = json.loads(row.get("key_learnings_json") or "[]")
    except ValueError:
        learnings = []
    if not isinstance(learnings, list):
        learnings = []
    return {
        "date": row["date"],
        "work_summary": row.get("work_summary") or "",
        "key_learnings": [str(line) for line in learnings if str(line).strip()],
        "issues_faced": row.get("issues_faced") or "",
        "hours_worked": float(row.get("hours_worked") or 0),
        "updated_at": row.get("updated_at"),
    }


async def get_daily_log(user_email: str, day_iso: str) -> dict | None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = (await session.execute(
            sql_text(
                f"SELECT * FROM {DAILY_LOGS_TABLE} WHERE user_email = :user_email AND date = :date"
            ),
            {"user_email": user_email, "date": day_iso},
        )).mappings().fetchone()
    return _format_log(dict(row)) if row else None


async def list_daily_logs(user_email: str) -> list[dict]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"SELECT * FROM {DAILY_LOGS_TABLE} WHERE user_email = :user_email ORDER BY date DESC"
            ),
            {"user_email": user_email},
        )).mappings().all()
    return [_format_log(dict(row)) for row in rows]


async def save_daily_log(user_email: str, payload: dict) -> dict:
    if not payload.get("date"):
        raise ValueError("Date is required")
    day_iso = normalize_day_iso(payload["date"])
    current = await get_daily_log(user_email, day_iso) or {}
    merged = {
        "work_summary": payload.get("work_summary"),
        "key_learnings": payload.get("key_learnings"),
        "issues_faced": payload.get("issues_faced"),
        "hours_worked": payload.get("hours_worked"),
    }
    for key, value in list(merged.items()):
        if value is None:
            merged[key] = current.get(key)
    now = _now_iso()
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {DAILY_LOGS_TABLE}
                (user_email, date, work_summary, key_learnings_json, issues_faced, hours_worked, created_at, updated_at)
                VALUES (:user_email, :date, :work_summary, :key_learnings_json, :issues_faced, :hours_worked, :now, :now)
                ON CONFLICT(user_email, date) DO UPDATE SET
                    work_summary = EXCLUDED.work_summary,
                    key_learnings_json = EXCLUDED.key_learnings_json,
                    issues_faced = EXCLUDED.issues_faced,
                    hours_worked = EXCLUDED.hours_worked,
                    updated_at = EXCLUDED.updated_at
                """
            ),
            {
                "user_email": user_email,
                "date": day_iso,
                "work_summary": merged["work_summary"] or "",
                "key_learnings_json": json.dumps(
                    [str(line).strip() for line in merged["key_learnings"] or [] if str(line).strip()],
                    ensure_ascii=False,
                ),
                "issues_faced": merged["issues_faced"] or "",
                "hours_worked": max(0.0, float(merged["hours_worked"] or 0)),
                "now": now,
            },
        )
        await session.commit()
    return await get_daily_log(user_email, day_iso)


async def delete_daily_log(user_email: str, day_iso: str) -> bool:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        result = await session.execute(
            sql_text(f"DELETE FROM {DAILY_LOGS_TABLE} WHERE user_email = :user_email AND date = :date"),
            {"user_email": user_email, "date": day_iso},
        )
        await session.commit()
    return bool(result.rowcount)
