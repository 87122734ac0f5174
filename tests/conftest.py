"""Pytest configuration and fixtures."""
import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_JSON", "false")

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.errors import ConflictError, NotFoundError
from app.models.notification import NotificationSeverity
from app.models.time_entry import FlagStatus, TimeEntry
from app.utils.clock import FakeClock

SHIFT_START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


class InMemoryTimeEntryStore:
    """Dict-backed stand-in for TimeEntryStore with the same version checks."""

    def __init__(self):
        self.entries: dict[str, TimeEntry] = {}
        self.fail_save_for: set[str] = set()
        self.save_calls = 0
        self._next_id = 0

    def open_entries_for(self, user_id: str) -> list[TimeEntry]:
        return [
            e for e in self.entries.values()
            if e.user_id == user_id and e.clock_out is None
        ]

    async def load_open_entry_for_user(self, user_id):
        open_entries = self.open_entries_for(user_id)
        return open_entries[0].model_copy(deep=True) if open_entries else None

    async def load_entry_by_id(self, entry_id):
        if entry_id not in self.entries:
            raise NotFoundError("Time entry not found")
        return self.entries[entry_id].model_copy(deep=True)

    async def load_all_open_entries(self, excluding_flag=FlagStatus.OVER_CAP):
        return [
            e.model_copy(deep=True) for e in self.entries.values()
            if e.clock_out is None and e.flag_status != excluding_flag
        ]

    async def list_by_flag(self, flag_status):
        return [
            e.model_copy(deep=True) for e in self.entries.values()
            if e.flag_status == flag_status
        ]

    async def list_for_user(self, user_id, start_date=None, end_date=None):
        entries = [e for e in self.entries.values() if e.user_id == user_id]
        if start_date:
            entries = [e for e in entries if e.clock_in >= start_date]
        if end_date:
            entries = [e for e in entries if e.clock_in <= end_date]
        entries.sort(key=lambda e: e.clock_in, reverse=True)
        return [e.model_copy(deep=True) for e in entries]

    async def insert(self, entry):
        if entry.clock_out is None and self.open_entries_for(entry.user_id):
            raise ConflictError("User already has an open time entry")
        self._next_id += 1
        entry.id = f"entry{self._next_id}"
        self.entries[entry.id] = entry.model_copy(deep=True)
        return entry

    async def save(self, entry):
        self.save_calls += 1
        if entry.id in self.fail_save_for:
            raise RuntimeError("storage unavailable")
        if self.entries[entry.id].version != entry.version:
            raise ConflictError("Time entry was modified concurrently", entry_id=entry.id)
        entry.version += 1
        self.entries[entry.id] = entry.model_copy(deep=True)
        return entry


class RecordingNotifier:
    """Notification sink that records emissions and can be told to fail."""

    def __init__(self, managers=("manager1", "admin1")):
        self.managers = list(managers)
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()

    async def emit(
        self,
        recipient_id,
        title,
        body,
        severity=NotificationSeverity.INFO,
        link=None,
    ):
        if recipient_id in self.fail_for:
            raise RuntimeError("notification gateway down")
        self.sent.append({
            "recipient_id": recipient_id,
            "title": title,
            "body": body,
            "severity": severity,
            "link": link,
        })
        return str(len(self.sent))

    async def manager_ids(self):
        return list(self.managers)

    def sent_to(self, recipient_id):
        return [n for n in self.sent if n["recipient_id"] == recipient_id]


@pytest.fixture
def clock():
    """Fake clock starting Monday 09:00 UTC."""
    return FakeClock(SHIFT_START)


@pytest.fixture
def store():
    return InMemoryTimeEntryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(clock, store, notifier):
    """TimeClockService wired to in-memory collaborators."""
    from app.services.time_clock_service import TimeClockService

    return TimeClockService(
        db=None,
        clock=clock,
        store=store,
        notifier=notifier,
        cap_minutes=960,
        warning_band_minutes=30,
    )


@pytest_asyncio.fixture
async def app_client(service):
    """
    Create a test client backed by the in-memory service.

    This fixture:
    - Overrides the time clock service dependency
    - Yields an async HTTP client for testing
    - Clears the overrides afterwards
    """
    from app.main import app
    from app.routers.time_clock import get_time_clock_service

    app.dependency_overrides[get_time_clock_service] = lambda: service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


def auth_headers(user_id: str = "worker1", role: str = "employee") -> dict:
    """Bearer header for a user with the given role."""
    from app.models.user import UserRole
    from app.utils.auth import create_access_token

    token = create_access_token(user_id=user_id, role=UserRole(role))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def worker_headers():
    return auth_headers("worker1", "employee")


@pytest.fixture
def manager_headers():
    return auth_headers("manager1", "manager")
