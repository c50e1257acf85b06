import random
from datetime import date, timedelta

from dashboard.ledger import CompletionLedger


def test_toggle_inserts_then_removes():
    ledger = CompletionLedger()
    assert ledger.toggle(date(2024, 1, 10)) is True
    assert ledger.contains("2024-01-10")
    assert ledger.count_on(date(2024, 1, 10)) == 1
    assert ledger.toggle("2024-01-10T21:00:00") is False
    assert not ledger.contains(date(2024, 1, 10))
    assert ledger.count_on(date(2024, 1, 10)) == 0


def test_double_toggle_is_a_no_op_on_membership_and_counters():
    ledger = CompletionLedger({date(2024, 1, 1): 1, date(2024, 1, 2): 1, date(2024, 1, 5): 1})
    before = (ledger.days(), ledger.last_completed_day, ledger.run_length, ledger.best_run)
    ledger.toggle(date(2024, 1, 3))
    ledger.toggle(date(2024, 1, 3))
    assert (ledger.days(), ledger.last_completed_day, ledger.run_length, ledger.best_run) == before


def test_incremental_counters_track_runs():
    ledger = CompletionLedger()
    for day in (10, 11, 13):
        ledger.toggle(date(2024, 1, day))
    assert ledger.last_completed_day == date(2024, 1, 13)
    assert ledger.run_length == 1
    assert ledger.best_run == 2

    # backfilling the gap merges both runs
    ledger.toggle(date(2024, 1, 12))
    assert ledger.run_length == 4
    assert ledger.best_run == 4


def test_incremental_counters_always_match_recompute():
    rng = random.Random(7)
    start = date(2023, 6, 1)
    ledger = CompletionLedger()
    for _ in range(500):
        day = start + timedelta(days=rng.randrange(60))
        if rng.random() < 0.3:
            ledger.increment(day)
        else:
            ledger.toggle(day)
        assert (ledger.last_completed_day, ledger.run_length, ledger.best_run) == ledger.derive_counters()


def test_count_on_is_capped_for_display():
    ledger = CompletionLedger.from_records([{"date": "2024-01-10", "count": 9}])
    assert ledger.count_on(date(2024, 1, 10)) == 4


def test_increment_caps_and_never_removes():
    ledger = CompletionLedger()
    counts = [ledger.increment(date(2024, 1, 10)) for _ in range(6)]
    assert counts == [1, 2, 3, 4, 4, 4]
    assert ledger.contains(date(2024, 1, 10))
    assert len(ledger) == 1


def test_from_records_merges_timestamps_on_the_same_day():
    ledger = CompletionLedger.from_records(["2024-01-10T08:00:00", "2024-01-10T19:00:00", "2024-01-11", "garbage"])
    assert ledger.days() == [date(2024, 1, 10), date(2024, 1, 11)]
    assert ledger.count_on("2024-01-10") == 2


def test_from_recent_window_maps_offsets_to_days():
    ledger = CompletionLedger.from_recent_window([1, 0, 3, "x", None], date(2024, 1, 13))
    assert ledger.to_records() == [
        {"date": "2024-01-11", "count": 3},
        {"date": "2024-01-13", "count": 1},
    ]


def test_copy_is_independent():
    ledger = CompletionLedger({"2024-01-10": 1})
    clone = ledger.copy()
    clone.toggle("2024-01-11")
    assert clone != ledger
    assert "2024-01-11" not in ledger
    assert list(ledger) == [date(2024, 1, 10)]
