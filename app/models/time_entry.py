"""Time entry model definitions."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_CAP_MINUTES = 960  # 16 hours


class TimeEntryState(str, Enum):
    """Current phase of a work session."""

    WORKING = "WORKING"
    ON_BREAK = "ON_BREAK"
    CLOCKED_OUT = "CLOCKED_OUT"


class FlagStatus(str, Enum):
    """Review state of a time entry."""

    NONE = "NONE"
    OVER_CAP = "OVER_CAP"
    RESOLVED = "RESOLVED"
    FORGOT_CLOCK_OUT = "FORGOT_CLOCK_OUT"


class BreakInterval(BaseModel):
    """One break taken during a session. ``end`` is None while the break runs."""

    start: datetime
    end: Optional[datetime] = None


class TimeEntry(BaseModel):
    """Full time entry model with database fields."""

    id: Optional[str] = Field(default=None, alias="_id", serialization_alias="id")
    user_id: str
    job_id: Optional[str] = None

    clock_in: datetime
    clock_out: Optional[datetime] = None
    state: TimeEntryState = TimeEntryState.WORKING
    work_accum_seconds: int = 0
    last_state_change_at: datetime

    # Mirror of the most recent break; accounting lives in work_accum_seconds
    break_start: Optional[datetime] = None
    break_end: Optional[datetime] = None
    breaks: list[BreakInterval] = Field(default_factory=list)

    cap_minutes: int = DEFAULT_CAP_MINUTES
    flag_status: FlagStatus = FlagStatus.NONE
    over_cap_at: Optional[datetime] = None

    wrong_recorded_net_seconds: Optional[int] = None
    correction_note: Optional[str] = None
    correction_applied_at: Optional[datetime] = None

    duration_hours: Optional[float] = None
    notes: str = ""

    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"populate_by_name": True}

    @property
    def is_open(self) -> bool:
        """True while the session has no clock-out."""
        return self.clock_out is None


class ClockInRequest(BaseModel):
    """Request model for clocking in."""

    job_id: Optional[str] = None


class ClockOutRequest(BaseModel):
    """Request model for clocking out."""

    notes: str = ""


class ForgotClockOutRequest(BaseModel):
    """Request model for the forgot-to-clock-out correction."""

    actual_end_time: datetime
    note: str = ""


class ResolveFlagRequest(BaseModel):
    """Request model for a manager resolving an over-cap entry."""

    note: str = Field(min_length=1)


class CorrectionResult(BaseModel):
    """Figures shown to the worker after a correction."""

    entry_id: Optional[str] = None
    wrong_recorded_hours: float
    corrected_hours: float
    difference_hours: float
    flag_status: FlagStatus


class SweepReport(BaseModel):
    """Outcome of one soft cap sweep over open entries."""

    processed: int = 0
    flagged: int = 0
    errors: list[str] = Field(default_factory=list)


class TimeClockStatus(BaseModel):
    """Current clock state of a user."""

    entry: Optional[TimeEntry] = None
    net_work_seconds: int = 0
    net_work_hours: float = 0.0
    effective_net_work_hours: float = 0.0
    near_cap: bool = False
    over_cap: bool = False
