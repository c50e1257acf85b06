from datetime import date, datetime

import pytest

from dashboard.errors import ValidationError
from dashboard.models import DailyLog, DerivedMetrics, Frequency, Habit


def test_habit_decodes_camel_case_payload():
    habit = Habit.from_payload(
        {
            "_id": "abc123",
            "name": "  Morning   run ",
            "createdAt": "2024-01-10T09:30:00",
            "timesPerDay": 0,
            "frequency": "weekly",
            "datesCompleted": ["2024-01-10T07:00:00", "2024-01-11T07:00:00"],
        }
    )
    assert habit.id == "abc123"
    assert habit.name == "Morning run"
    assert habit.created_day == date(2024, 1, 10)
    assert habit.times_per_day == 1
    assert habit.frequency is Frequency.WEEKLY
    assert habit.completions.days() == [date(2024, 1, 10), date(2024, 1, 11)]


def test_habit_defaults_fill_missing_fields():
    habit = Habit.from_payload({"times_per_day": "many", "frequency": "Yearly"})
    assert habit.id
    assert habit.name == "Untitled"
    assert habit.times_per_day == 1
    assert habit.frequency is Frequency.DAILY
    assert len(habit.completions) == 0


def test_habit_rebuilds_ledger_from_recent_window(today):
    habit = Habit.from_payload({"id": "h1", "name": "Read", "recent": [1, 1, 0, 2]}, today=today)
    assert habit.completions.to_records() == [
        {"date": "2024-01-10", "count": 2},
        {"date": "2024-01-12", "count": 1},
        {"date": "2024-01-13", "count": 1},
    ]


def test_habit_prefers_explicit_completions_over_recent(today):
    habit = Habit.from_payload(
        {"id": "h1", "name": "Read", "recent": [1] * 28, "completions": [{"date": "2024-01-02", "count": 1}]},
        today=today,
    )
    assert habit.completions.days() == [date(2024, 1, 2)]


def test_habit_payload_round_trips_through_json():
    habit = Habit(id="h1", name="Read", created_at=datetime(2024, 1, 10, 8, 0))
    habit.completions.toggle(date(2024, 1, 12))
    payload = habit.to_payload()
    assert payload["completions"] == [{"date": "2024-01-12", "count": 1}]
    assert payload["frequency"] == "Daily"
    assert Habit.from_payload(payload).to_payload() == payload


def test_habit_rejects_non_object_and_bad_timestamp():
    with pytest.raises(ValidationError):
        Habit.from_payload(["not", "a", "dict"])
    with pytest.raises(ValidationError):
        Habit.from_payload({"name": "Read", "created_at": "yesterday-ish"})


def test_daily_log_requires_a_date():
    with pytest.raises(ValidationError):
        DailyLog.from_payload({"workSummary": "Wrote tests"})
    with pytest.raises(ValidationError):
        DailyLog.from_payload({"date": ""})


def test_daily_log_normalizes_fields():
    log = DailyLog.from_payload(
        {
            "date": "2024-01-13T17:45:00",
            "workSummary": "Shipped the export",
            "keyLearnings": "first\n\n  second  \n",
            "issuesFaced": None,
            "hoursWorked": "-3",
        }
    )
    assert log.date == "2024-01-13"
    assert log.work_summary == "Shipped the export"
    assert log.key_learnings == ["first", "second"]
    assert log.issues_faced == ""
    assert log.hours_worked == 0.0


def test_daily_log_payload_uses_snake_case_keys():
    payload = DailyLog(date="2024-01-13", hours_worked=6.5).to_payload()
    assert payload == {
        "date": "2024-01-13",
        "work_summary": "",
        "key_learnings": [],
        "issues_faced": "",
        "hours_worked": 6.5,
    }


def test_derived_metrics_as_dict():
    data = DerivedMetrics(current_streak=2, longest_streak=5).as_dict()
    assert data["current_streak"] == 2
    assert data["recent"] == [0] * 28
