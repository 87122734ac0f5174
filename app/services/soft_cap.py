"""Soft cap checks on net work time (breaks excluded).

The cap flags an entry for review; it never closes it.
"""
from datetime import datetime

from app.errors import IllegalTransitionError
from app.models.time_entry import FlagStatus, TimeEntry
from app.services.time_entry_state import append_note, net_work_seconds

DEFAULT_WARNING_BAND_MINUTES = 30


def cap_seconds(entry: TimeEntry) -> int:
    """The entry's cap in seconds."""
    return entry.cap_minutes * 60


def is_over_cap(entry: TimeEntry, now: datetime) -> bool:
    """True when net work has reached the cap."""
    return net_work_seconds(entry, now) >= cap_seconds(entry)


def near_cap(
    entry: TimeEntry,
    now: datetime,
    warning_band_minutes: int = DEFAULT_WARNING_BAND_MINUTES,
) -> bool:
    """True once net work is within the warning band of the cap. Read-only."""
    return net_work_seconds(entry, now) >= cap_seconds(entry) - warning_band_minutes * 60


def evaluate_cap(entry: TimeEntry, now: datetime) -> bool:
    """
    Flag the entry OVER_CAP if its net work has reached the cap.

    Already flagged or resolved entries are left alone, so repeated
    evaluation never re-flags. ``over_cap_at`` records when the crossing
    was detected, not the exact crossing instant.

    Returns:
        True if this call moved the entry to OVER_CAP
    """
    if entry.flag_status in (FlagStatus.OVER_CAP, FlagStatus.RESOLVED):
        return False
    if entry.flag_status == FlagStatus.FORGOT_CLOCK_OUT:
        # corrected hours are authoritative
        return False
    if not is_over_cap(entry, now):
        return False

    entry.flag_status = FlagStatus.OVER_CAP
    entry.over_cap_at = now
    entry.updated_at = now
    return True


def effective_net_work_seconds(entry: TimeEntry, now: datetime) -> int:
    """
    Net work for costing: capped at the cap while the entry awaits review.

    The raw figure stays available through ``net_work_seconds`` so the
    reviewer sees what was actually recorded.
    """
    net = net_work_seconds(entry, now)
    if entry.flag_status == FlagStatus.OVER_CAP:
        return min(net, cap_seconds(entry))
    return net


def resolve_flag(entry: TimeEntry, note: str) -> TimeEntry:
    """
    OVER_CAP -> RESOLVED, appending the reviewer's note.

    No numeric or timing field of the entry is touched.

    Raises:
        IllegalTransitionError: If the entry is not OVER_CAP
    """
    if entry.flag_status != FlagStatus.OVER_CAP:
        raise IllegalTransitionError(
            f"Only OVER_CAP entries can be resolved (status is {entry.flag_status.value})"
        )

    entry.flag_status = FlagStatus.RESOLVED
    return append_note(entry, note)
