"""User model definitions."""
from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    """Role carried in the access token and stored on the user record."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


REVIEWER_ROLES = (UserRole.MANAGER, UserRole.ADMIN)


class CurrentUser(BaseModel):
    """Identity resolved from a verified access token."""

    id: str
    role: UserRole = UserRole.EMPLOYEE

    @property
    def is_reviewer(self) -> bool:
        """Managers and admins review flagged entries."""
        return self.role in REVIEWER_ROLES

