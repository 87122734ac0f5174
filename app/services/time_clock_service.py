"""Time clock service - business logic for shifts, breaks and soft cap review."""
import logging
from datetime import datetime
from typing import Optional

from app.config import settings
from app.errors import ConflictError, NotFoundError
from app.models.notification import NotificationSeverity
from app.models.time_entry import (
    CorrectionResult,
    FlagStatus,
    SweepReport,
    TimeClockStatus,
    TimeEntry,
)
from app.services.correction import apply_forgot_clock_out
from app.services.notification_service import NotificationService
from app.services.soft_cap import (
    effective_net_work_seconds,
    evaluate_cap,
    is_over_cap,
    near_cap,
    resolve_flag,
)
from app.services.time_entry_state import (
    SECONDS_PER_HOUR,
    append_note,
    begin_break,
    close_entry,
    end_break,
    initialize,
    net_work_seconds,
)
from app.services.time_entry_store import TimeEntryStore
from app.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class TimeClockService:
    """Service for handling clock-in/out, breaks, cap review and corrections."""

    def __init__(
        self,
        db,
        clock: Optional[Clock] = None,
        store: Optional[TimeEntryStore] = None,
        notifier: Optional[NotificationService] = None,
        cap_minutes: Optional[int] = None,
        warning_band_minutes: Optional[int] = None,
    ):
        """Initialize service with database connection and collaborators."""
        self.db = db
        self.clock = clock or SystemClock()
        self.store = store or TimeEntryStore(db)
        self.notifier = notifier or NotificationService(db)
        self.cap_minutes = cap_minutes or settings.default_cap_minutes
        self.warning_band_minutes = (
            warning_band_minutes
            if warning_band_minutes is not None
            else settings.cap_warning_band_minutes
        )

    async def _require_open_entry(self, user_id: str) -> TimeEntry:
        entry = await self.store.load_open_entry_for_user(user_id)
        if not entry:
            raise NotFoundError("Not clocked in")
        return entry

    async def _emit_safely(self, recipient_id: str, **kwargs) -> Optional[str]:
        """Emit one notification; return an error string instead of raising."""
        try:
            await self.notifier.emit(recipient_id, **kwargs)
        except Exception as e:
            logger.exception(
                "Notification delivery failed",
                extra={"recipient_id": recipient_id, "title": kwargs.get("title")},
            )
            return f"notify {recipient_id}: {e}"
        return None

    async def _emit_to_managers(self, **kwargs) -> list[str]:
        try:
            recipients = await self.notifier.manager_ids()
        except Exception as e:
            logger.exception("Could not load notification recipients")
            return [f"load managers: {e}"]

        errors = []
        for recipient_id in recipients:
            error = await self._emit_safely(recipient_id, **kwargs)
            if error:
                errors.append(error)
        return errors

    async def _notify_over_cap(self, entry: TimeEntry, now: datetime) -> list[str]:
        """Tell the owner and every reviewer that an entry crossed its cap."""
        hours = net_work_seconds(entry, now) / SECONDS_PER_HOUR
        cap_hours = entry.cap_minutes / 60
        if entry.is_open:
            shift = "an open shift"
            advice = "Please clock out or contact your manager."
        else:
            shift = "a closed shift"
            advice = "Your manager will review it."
        errors = []

        error = await self._emit_safely(
            entry.user_id,
            title="Shift over time cap",
            body=(
                f"Your shift has reached {hours:.1f}h of net work time "
                f"(cap {cap_hours:g}h). {advice}"
            ),
            severity=NotificationSeverity.WARNING,
            link="/time-clock",
        )
        if error:
            errors.append(error)

        errors.extend(await self._emit_to_managers(
            title="Time entry flagged for review",
            body=(
                f"User {entry.user_id} has {hours:.1f}h of net work on {shift}, "
                f"over the {cap_hours:g}h cap."
            ),
            severity=NotificationSeverity.WARNING,
            link=f"/time-records?entry={entry.id}",
        ))
        return [f"{entry.id}: {error}" for error in errors]

    async def clock_in(self, user_id: str, job_id: Optional[str] = None) -> TimeEntry:
        """
        Start a new shift.

        An existing open entry is clocked out first, unless it is waiting
        for over-cap review. Closing it runs the same cap check as an
        explicit clock-out.

        Args:
            user_id: User ID
            job_id: Optional job the shift is booked against

        Returns:
            Created time entry

        Raises:
            ConflictError: If the open entry is flagged OVER_CAP
        """
        now = self.clock.now()
        open_entry = await self.store.load_open_entry_for_user(user_id)

        if open_entry:
            if open_entry.flag_status == FlagStatus.OVER_CAP:
                raise ConflictError(
                    "Previous time entry is over the cap and awaiting review",
                    entry_id=open_entry.id,
                )
            close_entry(open_entry, now)
            flagged = evaluate_cap(open_entry, now)
            await self.store.save(open_entry)
            logger.info(
                "Auto-closed open entry on clock-in",
                extra={"user_id": user_id, "entry_id": open_entry.id, "flagged": flagged},
            )
            if flagged:
                await self._notify_over_cap(open_entry, now)

        entry = initialize(user_id, now, cap_minutes=self.cap_minutes, job_id=job_id)
        entry = await self.store.insert(entry)
        logger.info("Clocked in", extra={"user_id": user_id, "entry_id": entry.id})
        return entry

    async def _transition(self, user_id: str, transition) -> TimeEntry:
        now = self.clock.now()
        entry = await self._require_open_entry(user_id)

        transition(entry, now)
        flagged = evaluate_cap(entry, now)
        await self.store.save(entry)

        if flagged:
            await self._notify_over_cap(entry, now)
        return entry

    async def start_break(self, user_id: str) -> TimeEntry:
        """
        Start a break on the user's open entry.

        Raises:
            NotFoundError: If the user is not clocked in
            IllegalTransitionError: If already on break
        """
        return await self._transition(user_id, begin_break)

    async def end_break(self, user_id: str) -> TimeEntry:
        """
        End the running break on the user's open entry.

        Raises:
            NotFoundError: If the user is not clocked in
            IllegalTransitionError: If not on break
        """
        return await self._transition(user_id, end_break)

    async def clock_out(self, user_id: str, notes: str = "") -> TimeEntry:
        """
        Close the user's open entry.

        Args:
            user_id: User ID
            notes: Optional shift notes appended to the entry

        Raises:
            NotFoundError: If the user is not clocked in
        """

        def close_with_notes(entry: TimeEntry, now: datetime) -> TimeEntry:
            close_entry(entry, now)
            return append_note(entry, notes)

        entry = await self._transition(user_id, close_with_notes)
        logger.info(
            "Clocked out",
            extra={"user_id": user_id, "entry_id": entry.id, "hours": entry.duration_hours},
        )
        return entry

    async def get_status(self, user_id: str) -> TimeClockStatus:
        """Current open entry with live net work figures."""
        now = self.clock.now()
        entry = await self.store.load_open_entry_for_user(user_id)
        if not entry:
            return TimeClockStatus()

        seconds = net_work_seconds(entry, now)
        return TimeClockStatus(
            entry=entry,
            net_work_seconds=seconds,
            net_work_hours=seconds / SECONDS_PER_HOUR,
            effective_net_work_hours=effective_net_work_seconds(entry, now) / SECONDS_PER_HOUR,
            near_cap=near_cap(entry, now, self.warning_band_minutes),
            over_cap=is_over_cap(entry, now),
        )

    async def list_entries(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[TimeEntry]:
        """List a user's time entries, most recent first."""
        return await self.store.list_for_user(user_id, start_date, end_date)

    async def get_entry(self, user_id: str, entry_id: str) -> TimeEntry:
        """
        Get one of the user's entries.

        Raises:
            NotFoundError: If the entry is unknown or belongs to someone else
        """
        entry = await self.store.load_entry_by_id(entry_id)
        if entry.user_id != user_id:
            raise NotFoundError("Time entry not found")
        return entry

    async def list_flagged_entries(self) -> list[TimeEntry]:
        """Entries awaiting over-cap review."""
        return await self.store.list_by_flag(FlagStatus.OVER_CAP)

    async def resolve_flagged_entry(self, entry_id: str, note: str) -> TimeEntry:
        """
        Mark an over-cap entry as reviewed.

        Raises:
            NotFoundError: If the entry is unknown
            IllegalTransitionError: If the entry is not OVER_CAP
        """
        entry = await self.store.load_entry_by_id(entry_id)
        resolve_flag(entry, note)
        await self.store.save(entry)
        logger.info("Resolved over-cap entry", extra={"entry_id": entry_id})
        return entry

    async def forgot_clock_out(
        self,
        user_id: str,
        actual_end_time: datetime,
        note: str = "",
    ) -> CorrectionResult:
        """
        Close the user's open entry at the time they actually stopped.

        The hours the system would have recorded are frozen on the entry
        before the corrected hours replace them.

        Raises:
            NotFoundError: If the user is not clocked in
            ValidationError: If actual_end_time is outside [clock_in, now]
        """
        now = self.clock.now()
        entry = await self._require_open_entry(user_id)

        result = apply_forgot_clock_out(entry, actual_end_time, now, note)
        await self.store.save(entry)
        logger.info(
            "Applied forgot-clock-out correction",
            extra={
                "user_id": user_id,
                "entry_id": entry.id,
                "wrong_hours": result.wrong_recorded_hours,
                "corrected_hours": result.corrected_hours,
            },
        )

        await self._emit_to_managers(
            title="Clock-out corrected",
            body=(
                f"User {user_id} corrected a forgotten clock-out: recorded "
                f"{result.wrong_recorded_hours:.2f}h, corrected "
                f"{result.corrected_hours:.2f}h (difference "
                f"{result.difference_hours:.2f}h)."
                + (f" Note: {note}" if note else "")
            ),
            severity=NotificationSeverity.INFO,
            link=f"/time-records?entry={entry.id}",
        )
        return result

    async def sweep_open_entries(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Flag every open entry that has crossed its cap.

        A failure on one entry is recorded in the report and the sweep
        moves on to the next one.
        """
        now = now or self.clock.now()
        entries = await self.store.load_all_open_entries(excluding_flag=FlagStatus.OVER_CAP)
        report = SweepReport()

        for entry in entries:
            report.processed += 1
            try:
                if not evaluate_cap(entry, now):
                    continue
                await self.store.save(entry)
            except Exception as e:
                logger.exception("Soft cap evaluation failed", extra={"entry_id": entry.id})
                report.errors.append(f"{entry.id}: {e}")
                continue

            report.flagged += 1
            report.errors.extend(await self._notify_over_cap(entry, now))

        logger.info(
            "Soft cap sweep finished",
            extra={
                "processed": report.processed,
                "flagged": report.flagged,
                "errors": len(report.errors),
            },
        )
        return report
