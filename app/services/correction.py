"""Forgot-to-clock-out correction.

The figure the system believed before the fix is frozen on the entry as
``wrong_recorded_net_seconds`` and is never recomputed afterwards.
"""
from datetime import datetime

from app.errors import IllegalTransitionError, ValidationError
from app.models.time_entry import (
    CorrectionResult,
    FlagStatus,
    TimeEntry,
    TimeEntryState,
)
from app.services.time_entry_state import SECONDS_PER_HOUR, close_entry
from app.utils.clock import clip_interval, elapsed_seconds, to_utc


def recorded_net_seconds(entry: TimeEntry, now: datetime) -> int:
    """Net seconds the entry would report if it were clocked out at ``now``."""
    scratch = entry.model_copy(deep=True)
    close_entry(scratch, now)
    return scratch.work_accum_seconds


def break_seconds_until(entry: TimeEntry, end_time: datetime) -> int:
    """Break time recorded on the entry, clipped to ``end_time``."""
    if entry.breaks:
        return sum(
            clip_interval(b.start, b.end or end_time, end_time) for b in entry.breaks
        )
    if entry.break_start is not None:
        return clip_interval(entry.break_start, entry.break_end or end_time, end_time)
    return 0


def corrected_net_seconds(entry: TimeEntry, actual_end_time: datetime) -> int:
    """Elapsed time from clock-in to the actual end, minus clipped breaks."""
    total = elapsed_seconds(entry.clock_in, actual_end_time)
    return max(0, total - break_seconds_until(entry, actual_end_time))


def apply_forgot_clock_out(
    entry: TimeEntry,
    actual_end_time: datetime,
    now: datetime,
    note: str = "",
) -> CorrectionResult:
    """
    Close an entry the worker forgot to clock out of.

    Args:
        entry: The worker's open entry (mutated in place)
        actual_end_time: When the worker really stopped
        now: The single instant this correction runs at
        note: Free-text explanation stored on the entry

    Returns:
        Wrong, corrected and difference hours for display

    Raises:
        IllegalTransitionError: If the entry is closed or was already corrected
        ValidationError: If actual_end_time is outside [clock_in, now]
    """
    if entry.state == TimeEntryState.CLOCKED_OUT or entry.clock_out is not None:
        raise IllegalTransitionError("Time entry is already clocked out")
    if entry.wrong_recorded_net_seconds is not None:
        raise IllegalTransitionError("Time entry has already been corrected")

    actual_end_time = to_utc(actual_end_time)
    if actual_end_time < to_utc(entry.clock_in):
        raise ValidationError("Actual end time cannot be before clock-in")
    if actual_end_time > to_utc(now):
        raise ValidationError("Actual end time cannot be in the future")

    wrong_seconds = recorded_net_seconds(entry, now)
    corrected_seconds = corrected_net_seconds(entry, actual_end_time)

    was_on_break = entry.state == TimeEntryState.ON_BREAK
    entry.clock_out = actual_end_time
    entry.duration_hours = corrected_seconds / SECONDS_PER_HOUR
    entry.state = TimeEntryState.CLOCKED_OUT
    entry.work_accum_seconds = corrected_seconds
    entry.last_state_change_at = actual_end_time
    if was_on_break:
        entry.break_end = actual_end_time
        if entry.breaks and entry.breaks[-1].end is None:
            entry.breaks[-1].end = actual_end_time
    entry.flag_status = FlagStatus.FORGOT_CLOCK_OUT
    entry.wrong_recorded_net_seconds = wrong_seconds
    entry.correction_note = note or None
    entry.correction_applied_at = now
    entry.updated_at = now

    return CorrectionResult(
        entry_id=entry.id,
        wrong_recorded_hours=wrong_seconds / SECONDS_PER_HOUR,
        corrected_hours=corrected_seconds / SECONDS_PER_HOUR,
        difference_hours=(wrong_seconds - corrected_seconds) / SECONDS_PER_HOUR,
        flag_status=entry.flag_status,
    )
