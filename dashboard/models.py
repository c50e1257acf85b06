from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic import ValidationError as PydanticValidationError

from dashboard import calendar_math
from dashboard.constants import RECENT_WINDOW_DAYS
from dashboard.errors import ValidationError
from dashboard.ledger import CompletionLedger


def _new_id() -> str:
    return uuid4().hex


def _clean_text(value) -> str:
    if value is None:
        return ""
    return str(value)


class Frequency(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


class SyncState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"
    OFFLINE = "offline"
    SYNCED = "synced"


class Habit(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    id: str = Field(default_factory=_new_id, validation_alias=AliasChoices("id", "_id"))
    name: str = "Untitled"
    description: str = ""
    created_at: datetime = Field(
        default_factory=datetime.now,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )
    times_per_day: int = Field(1, validation_alias=AliasChoices("times_per_day", "timesPerDay"))
    frequency: Frequency = Frequency.DAILY
    completions: CompletionLedger = Field(default_factory=CompletionLedger)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        if value is None or not str(value).strip():
            return _new_id()
        return str(value).strip()

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value):
        clean = " ".join(_clean_text(value).split())
        return clean or "Untitled"

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value):
        return _clean_text(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value):
        if value is None or value == "":
            return datetime.now()
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, datetime.min.time())
        if isinstance(value, datetime) and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone().replace(tzinfo=None)
            return parsed
        return value

    @field_validator("times_per_day", mode="before")
    @classmethod
    def _coerce_target(cls, value):
        try:
            target = int(value)
        except (TypeError, ValueError):
            return 1
        return max(1, target)

    @field_validator("frequency", mode="before")
    @classmethod
    def _coerce_frequency(cls, value):
        if isinstance(value, Frequency):
            return value
        wanted = _clean_text(value).strip().lower()
        for item in Frequency:
            if item.value.lower() == wanted:
                return item
        return Frequency.DAILY

    @field_validator("completions", mode="before")
    @classmethod
    def _coerce_completions(cls, value):
        if isinstance(value, CompletionLedger):
            return value
        return CompletionLedger.from_records(value or [])

    @field_serializer("completions")
    def _dump_completions(self, ledger: CompletionLedger):
        return ledger.to_records()

    @property
    def created_day(self) -> date:
        return calendar_math.normalize_day(self.created_at)

    @classmethod
    def from_payload(cls, raw: Any, today=None) -> "Habit":
        if not isinstance(raw, dict):
            raise ValidationError("Habit payload must be an object")
        data = dict(raw)
        completions = None
        for key in ("completions", "dates_completed", "datesCompleted"):
            if data.get(key) is not None:
                completions = data.pop(key)
                break
        if completions is None and isinstance(data.get("recent"), list):
            anchor = today or calendar_math.today()
            data["completions"] = CompletionLedger.from_recent_window(data["recent"][:RECENT_WINDOW_DAYS], anchor)
        else:
            data["completions"] = CompletionLedger.from_records(completions or [])
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid habit payload: {exc}") from exc

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")


class DailyLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    work_summary: str = Field("", validation_alias=AliasChoices("work_summary", "workSummary"))
    key_learnings: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_learnings", "keyLearnings"),
    )
    issues_faced: str = Field("", validation_alias=AliasChoices("issues_faced", "issuesFaced"))
    hours_worked: float = Field(0.0, validation_alias=AliasChoices("hours_worked", "hoursWorked"))

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("Date is required")
        return calendar_math.format_iso_date(value)

    @field_validator("work_summary", "issues_faced", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return _clean_text(value)

    @field_validator("key_learnings", mode="before")
    @classmethod
    def _coerce_learnings(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split("\n")
        return [str(line).strip() for line in value if str(line).strip()]

    @field_validator("hours_worked", mode="before")
    @classmethod
    def _coerce_hours(cls, value):
        try:
            hours = float(value)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, hours)

    @classmethod
    def from_payload(cls, raw: Any) -> "DailyLog":
        if not isinstance(raw, dict):
            raise ValidationError("Daily log payload must be an object")
        if not raw.get("date"):
            raise ValidationError("Date is required")
        try:
            return cls.model_validate(raw)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid daily log payload: {exc}") from exc

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class DayCell:
    date: date
    count: int
    active: bool
    ratio: float


@dataclass(frozen=True)
class DerivedMetrics:
    current_streak: int = 0
    longest_streak: int = 0
    recent: List[int] = field(default_factory=lambda: [0] * RECENT_WINDOW_DAYS)
    today_percent: int = 0
    weekly_percent: int = 0
    monthly_percent: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
