import asyncio
import json
from datetime import date, datetime, timezone

import pytest

from dashboard.daily_log import DailyLogBook, build_backup, parse_backup
from dashboard.errors import ValidationError
from dashboard.models import DailyLog, SyncState


@pytest.fixture
def book(log_coordinator, today):
    return DailyLogBook(log_coordinator, clock=lambda: today)


def test_open_today_returns_blank_log(book):
    log = book.open_today()
    assert log.date == "2024-01-13"
    assert log.work_summary == ""
    assert book.get(date(2024, 1, 13)) is None


async def test_edit_then_autosave(book, log_remote):
    book.edit(date(2024, 1, 13), work_summary="Paired on sync", key_learnings="debounce\nsequence numbers")
    book.edit("2024-01-13", hours_worked=6)
    assert book.state("2024-01-13") is SyncState.DIRTY
    assert book.get("2024-01-13").work_summary == "Paired on sync"

    await asyncio.sleep(0.15)
    await book.coordinator.drain()
    assert len(log_remote.puts()) == 1
    assert log_remote.store["2024-01-13"]["key_learnings"] == ["debounce", "sequence numbers"]
    assert log_remote.store["2024-01-13"]["hours_worked"] == 6.0
    assert book.state("2024-01-13") is SyncState.SYNCED


def test_edit_rejects_unknown_fields(book):
    with pytest.raises(ValidationError):
        book.edit("2024-01-13", mood="great")


async def test_save_blank_log_and_existing_log(book, log_remote):
    assert await book.save("2024-01-12") is SyncState.SYNCED
    assert "2024-01-12" in log_remote.store

    book.edit("2024-01-12", issues_faced="flaky CI")
    assert await book.save("2024-01-12") is SyncState.SYNCED
    assert book.coordinator.pending() == []
    assert log_remote.store["2024-01-12"]["issues_faced"] == "flaky CI"


async def test_logs_are_listed_newest_first(book):
    for day in ("2024-01-11", "2024-01-13", "2024-01-12"):
        await book.save(day)
    assert [log.date for log in book.logs()] == ["2024-01-13", "2024-01-12", "2024-01-11"]


async def test_delete_removes_log(book, log_remote):
    await book.save("2024-01-13")
    assert await book.delete(date(2024, 1, 13)) is True
    assert book.get("2024-01-13") is None
    assert "2024-01-13" not in log_remote.store


@pytest.mark.parametrize("text", ["not json", "[]", '{"meta": {}}', '{"logs": {"date": "2024-01-13"}}', None])
def test_parse_backup_rejects_invalid_files(text):
    with pytest.raises(ValidationError):
        parse_backup(text)


async def test_restore_backup_round_trip(book, log_remote):
    text = json.dumps(
        {
            "meta": {"app": "DailyLog Pro", "version": "1.0"},
            "logs": [
                {"date": "2024-01-10", "workSummary": "a", "keyLearnings": ["x"], "hoursWorked": 2},
                {"date": "2024-01-11", "workSummary": "b"},
            ],
        }
    )
    report = await book.restore_backup(text)
    assert report.pushed == ["2024-01-10", "2024-01-11"]
    assert log_remote.store["2024-01-10"]["key_learnings"] == ["x"]

    stamp = datetime(2024, 1, 13, 12, 0, tzinfo=timezone.utc)
    backup = book.backup_payload(exported_at=stamp)
    assert backup["meta"] == {"app": "DailyLog Pro", "version": "1.0", "exportedAt": "2024-01-13T12:00:00+00:00"}
    assert [log["date"] for log in backup["logs"]] == ["2024-01-11", "2024-01-10"]
    assert parse_backup(json.dumps(backup)) == backup["logs"]


def test_build_backup_stamps_export_time():
    backup = build_backup([DailyLog(date="2024-01-13")])
    assert backup["meta"]["exportedAt"]
    assert backup["logs"][0]["date"] == "2024-01-13"
