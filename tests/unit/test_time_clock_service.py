"""Tests for TimeClockService."""
import pytest
from datetime import timedelta

from app.errors import ConflictError, IllegalTransitionError, NotFoundError, ValidationError
from app.models.time_entry import FlagStatus, TimeEntryState


@pytest.mark.asyncio
class TestClockIn:
    """Tests for the clock-in policy."""

    async def test_clock_in_creates_working_entry(self, service, store, clock):
        """Test clocking in creates an open WORKING entry."""
        entry = await service.clock_in("worker1", job_id="job1")

        assert entry.id is not None
        assert entry.state == TimeEntryState.WORKING
        assert entry.clock_in == clock.now()
        assert entry.job_id == "job1"
        assert entry.cap_minutes == 960
        assert len(store.open_entries_for("worker1")) == 1

    async def test_clock_in_auto_closes_open_entry(self, service, store, clock):
        """Test a second clock-in closes the first entry before opening another."""
        first = await service.clock_in("worker1")
        clock.advance(hours=3)

        second = await service.clock_in("worker1")

        closed = store.entries[first.id]
        assert closed.state == TimeEntryState.CLOCKED_OUT
        assert closed.clock_out == clock.now()
        assert closed.duration_hours == 3.0
        assert store.open_entries_for("worker1")[0].id == second.id
        assert len(store.open_entries_for("worker1")) == 1

    async def test_clock_in_auto_close_flags_shift_past_cap(
        self, service, store, notifier, clock
    ):
        """Test auto-closing a shift past the cap flags it like a clock-out."""
        first = await service.clock_in("worker1")
        clock.advance(hours=20)

        second = await service.clock_in("worker1")

        closed = store.entries[first.id]
        assert closed.state == TimeEntryState.CLOCKED_OUT
        assert closed.duration_hours == 20.0
        assert closed.flag_status == FlagStatus.OVER_CAP
        assert closed.over_cap_at == clock.now()
        assert store.open_entries_for("worker1")[0].id == second.id
        assert len(notifier.sent_to("worker1")) == 1
        assert "a closed shift" in notifier.sent_to("manager1")[0]["body"]

    async def test_clock_in_auto_close_under_cap_is_not_flagged(
        self, service, store, notifier, clock
    ):
        """Test auto-closing a normal shift sends no notification."""
        first = await service.clock_in("worker1")
        clock.advance(hours=8)

        await service.clock_in("worker1")

        assert store.entries[first.id].flag_status == FlagStatus.NONE
        assert notifier.sent == []

    async def test_clock_in_blocked_by_over_cap_entry(self, service, store, clock):
        """Test an unreviewed over-cap entry blocks a new clock-in."""
        first = await service.clock_in("worker1")
        clock.advance(hours=16, minutes=5)
        await service.sweep_open_entries()
        flagged_before = store.entries[first.id].model_dump()

        with pytest.raises(ConflictError) as exc:
            await service.clock_in("worker1")

        assert exc.value.entry_id == first.id
        assert store.entries[first.id].model_dump() == flagged_before
        assert len(store.entries) == 1

    async def test_clock_in_allowed_after_resolution(self, service, store, clock):
        """Test a resolved entry no longer blocks clock-in."""
        first = await service.clock_in("worker1")
        clock.advance(hours=17)
        await service.sweep_open_entries()
        await service.resolve_flagged_entry(first.id, "ok")

        second = await service.clock_in("worker1")

        assert store.entries[first.id].state == TimeEntryState.CLOCKED_OUT
        assert store.entries[first.id].flag_status == FlagStatus.RESOLVED
        assert second.id != first.id

    async def test_users_are_independent(self, service, store):
        """Test clock-ins of different users do not interact."""
        await service.clock_in("worker1")
        await service.clock_in("worker2")

        assert len(store.open_entries_for("worker1")) == 1
        assert len(store.open_entries_for("worker2")) == 1


@pytest.mark.asyncio
class TestBreaksAndClockOut:
    """Tests for break and clock-out operations."""

    async def test_full_shift_with_break(self, service, clock):
        """Test work 2h, break 1h, work 3h gives 5h net."""
        await service.clock_in("worker1")
        clock.advance(hours=2)
        await service.start_break("worker1")
        clock.advance(hours=1)
        await service.end_break("worker1")
        clock.advance(hours=3)

        entry = await service.clock_out("worker1")

        assert entry.state == TimeEntryState.CLOCKED_OUT
        assert entry.work_accum_seconds == 18000
        assert entry.duration_hours == 5.0

    async def test_clock_out_appends_notes(self, service, store, clock):
        """Test clock-out notes are kept on the entry."""
        entry = await service.clock_in("worker1")
        store.entries[entry.id].notes = "Opened site"
        clock.advance(hours=4)

        closed = await service.clock_out("worker1", notes="Left keys with security")

        assert closed.notes == "Opened site\nLeft keys with security"
        assert store.entries[entry.id].notes == "Opened site\nLeft keys with security"

    async def test_clock_out_blank_notes_ignored(self, service, clock):
        """Test whitespace-only notes leave the entry's notes empty."""
        await service.clock_in("worker1")
        clock.advance(hours=1)

        closed = await service.clock_out("worker1", notes="   ")

        assert closed.notes == ""

    async def test_operations_require_open_entry(self, service):
        """Test transitions without an open entry fail with NotFoundError."""
        for operation in (service.start_break, service.end_break, service.clock_out):
            with pytest.raises(NotFoundError, match="Not clocked in"):
                await operation("worker1")

    async def test_illegal_transition_saves_nothing(self, service, store, clock):
        """Test ending a break that never started leaves storage untouched."""
        entry = await service.clock_in("worker1")
        clock.advance(hours=1)
        saves_before = store.save_calls

        with pytest.raises(IllegalTransitionError):
            await service.end_break("worker1")

        assert store.save_calls == saves_before
        assert store.entries[entry.id].version == 0

    async def test_clock_out_over_cap_flags_and_notifies(self, service, notifier, clock):
        """Test clocking out past the cap flags the entry inline."""
        await service.clock_in("worker1")
        clock.advance(hours=16, minutes=30)

        entry = await service.clock_out("worker1")

        assert entry.flag_status == FlagStatus.OVER_CAP
        assert entry.over_cap_at == clock.now()
        assert len(notifier.sent_to("worker1")) == 1
        assert len(notifier.sent_to("manager1")) == 1
        assert "a closed shift" in notifier.sent_to("manager1")[0]["body"]
        assert "clock out" not in notifier.sent_to("worker1")[0]["body"]

    async def test_stale_double_submit_settles_once(self, service, store, clock):
        """Test a save from a stale copy is rejected instead of settling twice."""
        entry = await service.clock_in("worker1")
        stale = await store.load_entry_by_id(entry.id)
        clock.advance(hours=2)
        await service.clock_out("worker1")

        from app.services.time_entry_state import begin_break

        begin_break(stale, clock.now())
        with pytest.raises(ConflictError):
            await store.save(stale)

        assert store.entries[entry.id].work_accum_seconds == 7200


@pytest.mark.asyncio
class TestStatus:
    """Tests for the status read model."""

    async def test_status_without_entry(self, service):
        """Test the status of a user who is not clocked in."""
        status = await service.get_status("worker1")

        assert status.entry is None
        assert status.net_work_seconds == 0

    async def test_status_near_cap(self, service, clock):
        """Test the status reports live hours and the cap warning."""
        await service.clock_in("worker1")
        clock.advance(hours=15, minutes=45)

        status = await service.get_status("worker1")

        assert status.net_work_hours == 15.75
        assert status.effective_net_work_hours == 15.75
        assert status.near_cap is True
        assert status.over_cap is False

    async def test_status_effective_hours_capped_while_flagged(self, service, clock):
        """Test a flagged entry reports raw hours and hours capped at 16h."""
        await service.clock_in("worker1")
        clock.advance(hours=17)
        await service.sweep_open_entries()

        status = await service.get_status("worker1")

        assert status.net_work_hours == 17.0
        assert status.effective_net_work_hours == 16.0
        assert status.over_cap is True


@pytest.mark.asyncio
class TestSweep:
    """Tests for the population sweep."""

    async def test_sweep_flags_only_entries_over_cap(self, service, store, clock):
        """Test only entries past their cap are flagged."""
        long_shift = await service.clock_in("worker1")
        clock.advance(hours=10)
        short_shift = await service.clock_in("worker2")
        clock.advance(hours=6, minutes=1)

        report = await service.sweep_open_entries()

        assert report.processed == 2
        assert report.flagged == 1
        assert report.errors == []
        assert store.entries[long_shift.id].flag_status == FlagStatus.OVER_CAP
        assert store.entries[long_shift.id].over_cap_at == clock.now()
        assert store.entries[short_shift.id].flag_status == FlagStatus.NONE

    async def test_sweep_is_idempotent(self, service, store, notifier, clock):
        """Test a second sweep neither re-flags nor re-notifies."""
        entry = await service.clock_in("worker1")
        clock.advance(hours=16, minutes=1)
        await service.sweep_open_entries()
        flagged_at = store.entries[entry.id].over_cap_at
        sent = len(notifier.sent)

        clock.advance(hours=1)
        report = await service.sweep_open_entries()

        assert report.processed == 0
        assert report.flagged == 0
        assert store.entries[entry.id].over_cap_at == flagged_at
        assert len(notifier.sent) == sent

    async def test_sweep_notifies_owner_and_managers(self, service, notifier, clock):
        """Test a flag sends one notification to the owner and one per manager."""
        await service.clock_in("worker1")
        clock.advance(hours=16)

        await service.sweep_open_entries()

        assert len(notifier.sent_to("worker1")) == 1
        assert len(notifier.sent_to("manager1")) == 1
        assert len(notifier.sent_to("admin1")) == 1
        assert "16.0h" in notifier.sent_to("worker1")[0]["body"]
        assert "Please clock out" in notifier.sent_to("worker1")[0]["body"]
        assert "an open shift" in notifier.sent_to("manager1")[0]["body"]

    async def test_sweep_isolates_save_failures(self, service, store, clock):
        """Test one failing entry does not stop the others being flagged."""
        broken = await service.clock_in("worker1")
        healthy = await service.clock_in("worker2")
        store.fail_save_for.add(broken.id)
        clock.advance(hours=17)

        report = await service.sweep_open_entries()

        assert report.processed == 2
        assert report.flagged == 1
        assert len(report.errors) == 1
        assert broken.id in report.errors[0]
        assert store.entries[healthy.id].flag_status == FlagStatus.OVER_CAP
        assert store.entries[broken.id].flag_status == FlagStatus.NONE

    async def test_sweep_collects_notification_failures(self, service, store, notifier, clock):
        """Test notification failures are reported but the flag is kept."""
        entry = await service.clock_in("worker1")
        notifier.fail_for.add("manager1")
        clock.advance(hours=17)

        report = await service.sweep_open_entries()

        assert report.flagged == 1
        assert len(report.errors) == 1
        assert "manager1" in report.errors[0]
        assert store.entries[entry.id].flag_status == FlagStatus.OVER_CAP
        assert len(notifier.sent_to("admin1")) == 1

    async def test_sweep_skips_resolved_entries(self, service, store, clock):
        """Test a resolved open entry is evaluated but never re-flagged."""
        entry = await service.clock_in("worker1")
        clock.advance(hours=17)
        await service.sweep_open_entries()
        await service.resolve_flagged_entry(entry.id, "approved")
        clock.advance(hours=1)

        report = await service.sweep_open_entries()

        assert report.processed == 1
        assert report.flagged == 0
        assert store.entries[entry.id].flag_status == FlagStatus.RESOLVED

    async def test_sweep_uses_given_now(self, service, store, clock):
        """Test an explicit now overrides the clock."""
        entry = await service.clock_in("worker1")

        report = await service.sweep_open_entries(now=clock.now() + timedelta(hours=20))

        assert report.flagged == 1
        assert store.entries[entry.id].over_cap_at == clock.now() + timedelta(hours=20)


@pytest.mark.asyncio
class TestResolve:
    """Tests for manager resolution."""

    async def test_resolve_over_cap_entry(self, service, store, clock):
        """Test resolving keeps all timing fields."""
        entry = await service.clock_in("worker1")
        clock.advance(hours=17)
        await service.sweep_open_entries()
        before = store.entries[entry.id]

        resolved = await service.resolve_flagged_entry(entry.id, "Confirmed overtime")

        assert resolved.flag_status == FlagStatus.RESOLVED
        assert resolved.notes == "Confirmed overtime"
        assert resolved.work_accum_seconds == before.work_accum_seconds
        assert resolved.over_cap_at == before.over_cap_at
        assert resolved.clock_out is None

    async def test_resolve_requires_over_cap(self, service, store):
        """Test resolving an unflagged entry fails and mutates nothing."""
        entry = await service.clock_in("worker1")
        before = store.entries[entry.id].model_dump()

        with pytest.raises(IllegalTransitionError):
            await service.resolve_flagged_entry(entry.id, "note")

        assert store.entries[entry.id].model_dump() == before

    async def test_resolve_unknown_entry(self, service):
        """Test resolving an unknown entry fails with NotFoundError."""
        with pytest.raises(NotFoundError):
            await service.resolve_flagged_entry("missing", "note")

    async def test_list_flagged_entries(self, service, clock):
        """Test flagged entries are listed for review."""
        entry = await service.clock_in("worker1")
        await service.clock_in("worker2")
        clock.advance(hours=17)
        store_entry = await service.clock_in("worker3")
        await service.sweep_open_entries()

        flagged = await service.list_flagged_entries()

        assert {e.user_id for e in flagged} == {"worker1", "worker2"}
        assert entry.id in {e.id for e in flagged}
        assert store_entry.id not in {e.id for e in flagged}


@pytest.mark.asyncio
class TestForgotClockOut:
    """Tests for the forgot-to-clock-out flow."""

    async def test_forgot_clock_out_freezes_snapshot(self, service, store, notifier, clock):
        """Test the 09:00-23:00 shift corrected to 17:00."""
        entry = await service.clock_in("worker1")
        clock_in = clock.now()
        clock.advance(hours=14)

        result = await service.forgot_clock_out(
            "worker1", clock_in + timedelta(hours=8), note="Forgot at 5pm"
        )

        stored = store.entries[entry.id]
        assert result.wrong_recorded_hours == 14.0
        assert result.corrected_hours == 8.0
        assert result.difference_hours == 6.0
        assert stored.wrong_recorded_net_seconds == 50400
        assert stored.duration_hours == 8.0
        assert stored.clock_out == clock_in + timedelta(hours=8)
        assert stored.flag_status == FlagStatus.FORGOT_CLOCK_OUT

        manager_notes = notifier.sent_to("manager1")
        assert len(manager_notes) == 1
        assert "14.00h" in manager_notes[0]["body"]
        assert "8.00h" in manager_notes[0]["body"]

    async def test_snapshot_unchanged_by_later_activity(self, service, store, clock):
        """Test later sweeps and reads leave the frozen figure alone."""
        entry = await service.clock_in("worker1")
        clock.advance(hours=14)
        await service.forgot_clock_out("worker1", clock.now() - timedelta(hours=6))

        clock.advance(hours=48)
        await service.sweep_open_entries()
        reread = await service.get_entry("worker1", entry.id)

        assert reread.wrong_recorded_net_seconds == 50400
        assert reread.duration_hours == 8.0

    async def test_forgot_clock_out_supersedes_over_cap(self, service, store, clock):
        """Test a flagged entry can still be corrected."""
        entry = await service.clock_in("worker1")
        start = clock.now()
        clock.advance(hours=18)
        await service.sweep_open_entries()

        await service.forgot_clock_out("worker1", start + timedelta(hours=9))

        assert store.entries[entry.id].flag_status == FlagStatus.FORGOT_CLOCK_OUT
        assert store.open_entries_for("worker1") == []

    async def test_forgot_clock_out_without_open_entry(self, service, clock):
        """Test the correction needs an open entry."""
        with pytest.raises(NotFoundError):
            await service.forgot_clock_out("worker1", clock.now())

    async def test_forgot_clock_out_future_end(self, service, store, clock):
        """Test an end time after now is rejected and nothing is saved."""
        entry = await service.clock_in("worker1")
        clock.advance(hours=2)

        with pytest.raises(ValidationError):
            await service.forgot_clock_out("worker1", clock.now() + timedelta(minutes=1))

        assert store.entries[entry.id].state == TimeEntryState.WORKING
        assert store.entries[entry.id].wrong_recorded_net_seconds is None

    async def test_notification_failure_does_not_undo_correction(
        self, service, store, notifier, clock
    ):
        """Test the correction stays committed when notifying fails."""
        entry = await service.clock_in("worker1")
        notifier.fail_for.update({"manager1", "admin1"})
        clock.advance(hours=10)

        result = await service.forgot_clock_out("worker1", clock.now() - timedelta(hours=2))

        assert result.corrected_hours == 8.0
        assert store.entries[entry.id].flag_status == FlagStatus.FORGOT_CLOCK_OUT


@pytest.mark.asyncio
class TestEntries:
    """Tests for reading entries."""

    async def test_get_entry_of_other_user(self, service):
        """Test users cannot read each other's entries."""
        entry = await service.clock_in("worker1")

        with pytest.raises(NotFoundError):
            await service.get_entry("worker2", entry.id)

    async def test_list_entries_newest_first(self, service, clock):
        """Test entries are listed most recent first."""
        first = await service.clock_in("worker1")
        clock.advance(hours=1)
        second = await service.clock_in("worker1")

        entries = await service.list_entries("worker1")

        assert [e.id for e in entries] == [second.id, first.id]

