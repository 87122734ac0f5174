"""Set the role stored on a user record.

Managers and admins receive over-cap and correction notifications.

Usage:
    python scripts/set_user_role.py <mongodb_url> <user_id> <employee|manager|admin>
"""
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient

from app.config import settings
from app.models.user import UserRole


async def set_user_role(mongodb_url: str, user_id: str, role: UserRole):
    """Upsert the role on one user document."""
    client = AsyncIOMotorClient(mongodb_url, tz_aware=True)
    db = client[settings.mongodb_db_name]

    try:
        key = ObjectId(user_id)
    except InvalidId:
        key = user_id

    now = datetime.now(timezone.utc)
    result = await db.users.update_one(
        {"_id": key},
        {"$set": {"role": role.value, "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )

    client.close()
    action = "Created" if result.upserted_id else "Updated"
    print(f"{action} user {user_id} with role {role.value}")


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print("Usage: python set_user_role.py <mongodb_url> <user_id> <employee|manager|admin>")
        sys.exit(1)

    try:
        role = UserRole(sys.argv[3])
    except ValueError:
        print(f"Unknown role: {sys.argv[3]}")
        sys.exit(1)

    asyncio.run(set_user_role(sys.argv[1], sys.argv[2], role))
