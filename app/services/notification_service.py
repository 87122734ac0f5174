"""Notification service - in-app notifications for workers and reviewers."""
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId

from app.errors import NotFoundError
from app.models.notification import Notification, NotificationSeverity
from app.models.user import REVIEWER_ROLES


class NotificationService:
    """Stores notifications. Delivery beyond the inbox is someone else's job."""

    def __init__(self, db):
        """Initialize service with database connection."""
        self.db = db
        self.notifications = db["notifications"]
        self.users = db["users"]

    def _doc_to_notification(self, doc: dict) -> Notification:
        return Notification(
            _id=str(doc["_id"]),
            recipient_id=doc["recipient_id"],
            title=doc["title"],
            body=doc["body"],
            severity=doc.get("severity", NotificationSeverity.INFO.value),
            link=doc.get("link"),
            read=doc.get("read", False),
            created_at=doc["created_at"],
        )

    async def emit(
        self,
        recipient_id: str,
        title: str,
        body: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
        link: Optional[str] = None,
    ) -> str:
        """
        Store a notification for one recipient.

        Returns:
            ID of the stored notification
        """
        result = await self.notifications.insert_one({
            "recipient_id": recipient_id,
            "title": title,
            "body": body,
            "severity": severity.value,
            "link": link,
            "read": False,
            "created_at": datetime.now(timezone.utc),
        })
        return str(result.inserted_id)

    async def manager_ids(self) -> list[str]:
        """IDs of every manager and admin."""
        cursor = self.users.find(
            {"role": {"$in": [role.value for role in REVIEWER_ROLES]}},
            {"_id": 1},
        )
        docs = await cursor.to_list(length=None)
        return [str(doc["_id"]) for doc in docs]

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        """A user's notifications, newest first."""
        query: dict = {"recipient_id": user_id}
        if unread_only:
            query["read"] = False

        cursor = self.notifications.find(query).sort("created_at", -1).limit(limit)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_notification(doc) for doc in docs]

    async def mark_read(self, user_id: str, notification_id: str) -> None:
        """
        Mark one of the user's notifications as read.

        Raises:
            NotFoundError: If the notification does not exist or is not the user's
        """
        try:
            object_id = ObjectId(notification_id)
        except InvalidId:
            raise NotFoundError("Notification not found")

        result = await self.notifications.update_one(
            {"_id": object_id, "recipient_id": user_id},
            {"$set": {"read": True}},
        )
        if result.matched_count == 0:
            raise NotFoundError("Notification not found")
