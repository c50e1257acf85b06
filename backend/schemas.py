from __future__ import annotations

from typing import Optional, List, Dict, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CompletionEntry(BaseModel):
    date: str
    count: int = 1


class HabitCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str
    description: str = ""
    times_per_day: int = Field(1, validation_alias=AliasChoices("times_per_day", "timesPerDay"))
    frequency: str = "Daily"
    created_at: Optional[str] = Field(None, validation_alias=AliasChoices("created_at", "createdAt"))


class HabitUpsert(HabitCreate):
    completions: Optional[List[CompletionEntry]] = None


class HabitResponse(BaseModel):
    id: str
    name: str
    description: str
    created_at: str
    times_per_day: int
    frequency: str
    completions: List[CompletionEntry]
    recent: List[int]
    current_streak: int
    longest_streak: int


class HabitEnvelope(BaseModel):
    habit: HabitResponse


class HabitListResponse(BaseModel):
    habits: List[HabitResponse]


class DailyLogPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: Optional[str] = None
    work_summary: Optional[str] = Field(None, validation_alias=AliasChoices("work_summary", "workSummary"))
    key_learnings: Optional[List[str]] = Field(None, validation_alias=AliasChoices("key_learnings", "keyLearnings"))
    issues_faced: Optional[str] = Field(None, validation_alias=AliasChoices("issues_faced", "issuesFaced"))
    hours_worked: Optional[float] = Field(None, validation_alias=AliasChoices("hours_worked", "hoursWorked"))


class DailyLogResponse(BaseModel):
    date: str
    work_summary: str
    key_learnings: List[str]
    issues_faced: str
    hours_worked: float
    updated_at: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
    detail: Optional[Dict[str, Any]] = None
