"""Time entry state machine.

Transitions mutate the given entry in place. Preconditions are checked
before any field is written, so a rejected transition leaves the entry
exactly as it was.

Settlement folds the live WORKING delta into ``work_accum_seconds``. Break
time is never settled, so it can never reach the accumulator.
"""
from datetime import datetime
from typing import Optional

from app.errors import IllegalTransitionError
from app.models.time_entry import (
    DEFAULT_CAP_MINUTES,
    BreakInterval,
    FlagStatus,
    TimeEntry,
    TimeEntryState,
)
from app.utils.clock import elapsed_seconds

SECONDS_PER_HOUR = 3600


def initialize(
    user_id: str,
    now: datetime,
    cap_minutes: int = DEFAULT_CAP_MINUTES,
    job_id: Optional[str] = None,
) -> TimeEntry:
    """
    Create a fresh WORKING entry starting at ``now``.

    Args:
        user_id: Owner of the session
        now: Clock-in instant
        cap_minutes: Soft cap threshold, fixed for the life of the entry
        job_id: Optional job the session is booked against

    Returns:
        New, unsaved time entry
    """
    return TimeEntry(
        user_id=user_id,
        job_id=job_id,
        clock_in=now,
        state=TimeEntryState.WORKING,
        work_accum_seconds=0,
        last_state_change_at=now,
        cap_minutes=cap_minutes,
        flag_status=FlagStatus.NONE,
        over_cap_at=None,
        created_at=now,
        updated_at=now,
    )


def net_work_seconds(entry: TimeEntry, now: datetime) -> int:
    """Settled work plus the live delta while WORKING."""
    if entry.state == TimeEntryState.WORKING:
        return entry.work_accum_seconds + elapsed_seconds(entry.last_state_change_at, now)
    return entry.work_accum_seconds


def net_work_hours(entry: TimeEntry, now: datetime) -> float:
    """Net work time in hours."""
    return net_work_seconds(entry, now) / SECONDS_PER_HOUR


def _settle(entry: TimeEntry, now: datetime) -> None:
    if entry.state == TimeEntryState.WORKING:
        entry.work_accum_seconds += elapsed_seconds(entry.last_state_change_at, now)


def _close_open_break(entry: TimeEntry, now: datetime) -> None:
    entry.break_end = now
    if entry.breaks and entry.breaks[-1].end is None:
        entry.breaks[-1].end = now


def begin_break(entry: TimeEntry, now: datetime) -> TimeEntry:
    """
    WORKING -> ON_BREAK, settling the work done so far.

    Raises:
        IllegalTransitionError: If the entry is not WORKING
    """
    if entry.state != TimeEntryState.WORKING:
        raise IllegalTransitionError(
            f"Cannot start a break while {entry.state.value}"
        )

    _settle(entry, now)
    entry.state = TimeEntryState.ON_BREAK
    entry.last_state_change_at = now
    entry.break_start = now
    entry.break_end = None
    entry.breaks.append(BreakInterval(start=now))
    entry.updated_at = now
    return entry


def end_break(entry: TimeEntry, now: datetime) -> TimeEntry:
    """
    ON_BREAK -> WORKING. Nothing is settled: the break does not count.

    Raises:
        IllegalTransitionError: If the entry is not ON_BREAK
    """
    if entry.state != TimeEntryState.ON_BREAK:
        raise IllegalTransitionError(
            f"Cannot end a break while {entry.state.value}"
        )

    entry.state = TimeEntryState.WORKING
    entry.last_state_change_at = now
    _close_open_break(entry, now)
    entry.updated_at = now
    return entry


def close_entry(entry: TimeEntry, now: datetime) -> TimeEntry:
    """
    WORKING or ON_BREAK -> CLOCKED_OUT.

    A WORKING entry settles its live delta. An open break is closed at
    ``now`` and contributes nothing.

    Raises:
        IllegalTransitionError: If the entry is already CLOCKED_OUT
    """
    if entry.state == TimeEntryState.CLOCKED_OUT:
        raise IllegalTransitionError("Time entry is already clocked out")

    if entry.state == TimeEntryState.WORKING:
        _settle(entry, now)
    else:
        _close_open_break(entry, now)

    entry.state = TimeEntryState.CLOCKED_OUT
    entry.clock_out = now
    entry.last_state_change_at = now
    entry.duration_hours = entry.work_accum_seconds / SECONDS_PER_HOUR
    entry.updated_at = now
    return entry


def append_note(entry: TimeEntry, note: str) -> TimeEntry:
    """Append ``note`` on its own line; blank notes are ignored."""
    note = note.strip()
    if note:
        entry.notes = f"{entry.notes}\n{note}" if entry.notes else note
    return entry
