"""Time entry storage on MongoDB.

Writes are guarded by a ``version`` counter: a save only lands if nobody
else saved the same entry since it was loaded. Two racing transitions on
one entry therefore settle work time exactly once; the loser gets a
ConflictError.
"""
import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from app.errors import ConflictError, NotFoundError
from app.models.time_entry import FlagStatus, TimeEntry

logger = logging.getLogger(__name__)


class TimeEntryStore:
    """Persistence for time entries."""

    def __init__(self, db):
        """Initialize store with database connection."""
        self.db = db
        self.time_entries = db["time_entries"]

    def _doc_to_entry(self, doc: dict) -> TimeEntry:
        """Convert database document to TimeEntry model."""
        data = dict(doc)
        data["_id"] = str(data["_id"])
        data.pop("is_open", None)
        return TimeEntry.model_validate(data)

    def _entry_to_doc(self, entry: TimeEntry) -> dict:
        """Convert TimeEntry model to a database document (without _id)."""
        doc = entry.model_dump(exclude={"id"})
        doc["state"] = entry.state.value
        doc["flag_status"] = entry.flag_status.value
        # Indexable mirror of clock_out == None
        doc["is_open"] = entry.clock_out is None
        return doc

    @staticmethod
    def _object_id(entry_id: Optional[str]) -> ObjectId:
        if not entry_id:
            raise NotFoundError("Time entry not found")
        try:
            return ObjectId(entry_id)
        except (InvalidId, TypeError):
            raise NotFoundError("Time entry not found")

    async def ensure_indexes(self) -> None:
        """Create the indexes the time clock relies on."""
        await self.time_entries.create_index(
            [("user_id", ASCENDING)],
            unique=True,
            partialFilterExpression={"is_open": True},
            name="one_open_entry_per_user",
        )
        await self.time_entries.create_index(
            [("is_open", ASCENDING), ("flag_status", ASCENDING)],
            name="open_entries_by_flag",
        )
        await self.time_entries.create_index(
            [("user_id", ASCENDING), ("clock_in", DESCENDING)],
            name="entries_by_user",
        )

    async def load_open_entry_for_user(self, user_id: str) -> Optional[TimeEntry]:
        """Get the user's open entry, if any."""
        doc = await self.time_entries.find_one({
            "user_id": user_id,
            "clock_out": None,
        })
        if not doc:
            return None
        return self._doc_to_entry(doc)

    async def load_entry_by_id(self, entry_id: str) -> TimeEntry:
        """
        Get an entry by ID.

        Raises:
            NotFoundError: If the ID is malformed or unknown
        """
        doc = await self.time_entries.find_one({"_id": self._object_id(entry_id)})
        if not doc:
            raise NotFoundError("Time entry not found")
        return self._doc_to_entry(doc)

    async def load_all_open_entries(
        self,
        excluding_flag: Optional[FlagStatus] = FlagStatus.OVER_CAP,
    ) -> list[TimeEntry]:
        """Get every open entry, skipping those carrying ``excluding_flag``."""
        query: dict = {"clock_out": None}
        if excluding_flag is not None:
            query["flag_status"] = {"$ne": excluding_flag.value}

        cursor = self.time_entries.find(query)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_entry(doc) for doc in docs]

    async def list_by_flag(self, flag_status: FlagStatus) -> list[TimeEntry]:
        """Get entries carrying a flag, oldest clock-in first."""
        cursor = self.time_entries.find(
            {"flag_status": flag_status.value}
        ).sort("clock_in", ASCENDING)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_entry(doc) for doc in docs]

    async def list_for_user(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[TimeEntry]:
        """List a user's entries, most recent clock-in first."""
        query: dict = {"user_id": user_id}

        if start_date or end_date:
            query["clock_in"] = {}
            if start_date:
                query["clock_in"]["$gte"] = start_date
            if end_date:
                query["clock_in"]["$lte"] = end_date

        cursor = self.time_entries.find(query).sort("clock_in", DESCENDING)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_entry(doc) for doc in docs]

    async def insert(self, entry: TimeEntry) -> TimeEntry:
        """
        Insert a new entry and assign its ID.

        Raises:
            ConflictError: If the user already has an open entry
        """
        try:
            result = await self.time_entries.insert_one(self._entry_to_doc(entry))
        except DuplicateKeyError:
            raise ConflictError("User already has an open time entry")

        entry.id = str(result.inserted_id)
        return entry

    async def save(self, entry: TimeEntry) -> TimeEntry:
        """
        Write back an entry loaded from this store.

        Raises:
            ConflictError: If the entry changed since it was loaded
        """
        doc = self._entry_to_doc(entry)
        doc["version"] = entry.version + 1

        result = await self.time_entries.update_one(
            {"_id": self._object_id(entry.id), "version": entry.version},
            {"$set": doc},
        )
        if result.matched_count == 0:
            logger.warning(
                "Lost update on time entry",
                extra={"entry_id": entry.id, "version": entry.version},
            )
            raise ConflictError("Time entry was modified concurrently", entry_id=entry.id)

        entry.version += 1
        return entry
