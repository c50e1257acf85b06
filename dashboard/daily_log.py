from __future__ import annotations

import json
from datetime import datetime, timezone

from dashboard import calendar_math
from dashboard.constants import BACKUP_APP_NAME, BACKUP_VERSION
from dashboard.errors import ValidationError
from dashboard.models import DailyLog, SyncState
from dashboard.sync import LoadResult, RestoreReport, SyncCoordinator

EDITABLE_FIELDS = {"work_summary", "key_learnings", "issues_faced", "hours_worked"}


def parse_backup(text) -> list[dict]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid backup file") from exc
    if not isinstance(data, dict) or not isinstance(data.get("logs"), list):
        raise ValidationError("Invalid backup file")
    return data["logs"]


def build_backup(logs, exported_at=None) -> dict:
    stamp = exported_at or datetime.now(timezone.utc)
    return {
        "meta": {
            "app": BACKUP_APP_NAME,
            "version": BACKUP_VERSION,
            "exportedAt": stamp.isoformat(),
        },
        "logs": [log.to_payload() for log in logs],
    }


class DailyLogBook:
    def __init__(self, coordinator: SyncCoordinator, clock=calendar_math.today):
        self.coordinator = coordinator
        self.clock = clock

    async def load(self) -> LoadResult:
        return await self.coordinator.load()

    def logs(self) -> list[DailyLog]:
        return self.coordinator.records()

    def state(self, day) -> SyncState:
        return self.coordinator.state(calendar_math.format_iso_date(day))

    def get(self, day) -> DailyLog | None:
        return self.coordinator.get(calendar_math.format_iso_date(day))

    def open(self, day) -> DailyLog:
        existing = self.get(day)
        if existing is not None:
            return existing
        return DailyLog(date=calendar_math.format_iso_date(day))

    def open_today(self) -> DailyLog:
        return self.open(self.clock())

    def edit(self, day, **fields) -> DailyLog:
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown daily log fields: {', '.join(sorted(unknown))}")
        payload = self.open(day).to_payload()
        payload.update(fields)
        return self.coordinator.edit(DailyLog.from_payload(payload))

    async def save(self, day) -> SyncState:
        if self.get(day) is None:
            log = self.open(day)
            return await self.coordinator.manual_save(log.date, log)
        return await self.coordinator.manual_save(calendar_math.format_iso_date(day))

    async def delete(self, day) -> bool:
        return await self.coordinator.delete(calendar_math.format_iso_date(day))

    async def restore_backup(self, text) -> RestoreReport:
        return await self.coordinator.restore(parse_backup(text))

    def backup_payload(self, exported_at=None) -> dict:
        return build_backup(self.logs(), exported_at=exported_at)
