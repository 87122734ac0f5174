"""Notification model definitions."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class NotificationSeverity(str, Enum):
    """How loudly a notification should be presented."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Notification(BaseModel):
    """Stored in-app notification."""

    id: str = Field(alias="_id", serialization_alias="id")
    recipient_id: str
    title: str
    body: str
    severity: NotificationSeverity = NotificationSeverity.INFO
    link: Optional[str] = None
    read: bool = False
    created_at: datetime

    model_config = {"populate_by_name": True}
