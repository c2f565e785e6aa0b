from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

Mood = Literal["low", "moderate", "high"]
TaskType = Literal["assignment", "exam_prep", "general_study", "typing_game"]


class SessionStart(BaseModel):
    started_at: Optional[datetime] = None
    # The web client sends time_allocated / mood / task_description
    planned_minutes: int = Field(
        default=30, ge=1, le=480,
        validation_alias=AliasChoices("planned_minutes", "time_allocated"),
    )
    mood_at_start: Mood = Field(
        default="moderate", validation_alias=AliasChoices("mood_at_start", "mood"),
    )
    task_type: TaskType = "general_study"
    task_id: Optional[str] = None
    notes: Optional[str] = Field(
        default=None, max_length=2000,
        validation_alias=AliasChoices("notes", "task_description"),
    )
    model_config = {"extra": "ignore"}


class SessionComplete(BaseModel):
    duration_actual: Optional[int] = Field(
        default=None, ge=0, le=24 * 60,
        validation_alias=AliasChoices("duration_actual", "durationActual"),
    )
    notes: Optional[str] = Field(default=None, max_length=2000)
    # Client's local calendar date; invalid values fall back to the server date
    local_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("local_date", "clientDate"),
    )
    model_config = {"extra": "ignore"}

    @field_validator("local_date")
    @classmethod
    def validate_local_date(cls, v):
        if v is not None and len(v) > 32:
            raise ValueError("local_date too long")
        return v or None


class StatsReport(BaseModel):
    total_study_time: int
    total_sessions: int
    current_streak: int
    longest_streak: int
    last_session_date: Optional[str] = None
