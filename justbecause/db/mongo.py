from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from justbecause.core.config import MONGO_URL, DB_NAME

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]


async def ensure_indexes():
    """Create the indexes the API relies on for uniqueness and lookups."""
    await db.users.create_index("id", unique=True)
    await db.users.create_index("email", unique=True)
    await db.users.create_index("role")

    await db.projects.create_index("id", unique=True)
    await db.projects.create_index("ngo_id")
    await db.projects.create_index([("status", ASCENDING), ("created_at", DESCENDING)])

    # One application per volunteer per project
    await db.applications.create_index(
        [("project_id", ASCENDING), ("volunteer_id", ASCENDING)], unique=True
    )
    await db.applications.create_index("volunteer_id")

    await db.profile_unlocks.create_index(
        [("ngo_id", ASCENDING), ("volunteer_id", ASCENDING)], unique=True
    )
    await db.follows.create_index(
        [("follower_id", ASCENDING), ("following_id", ASCENDING)], unique=True
    )
    await db.coupons.create_index("code", unique=True)
    # A payment activates at most one subscription
    await db.transactions.create_index("payment_id", unique=True)
    await db.notifications.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    await db.messages.create_index([("conversation_id", ASCENDING), ("created_at", ASCENDING)])
    await db.conversations.create_index("participants")
    await db.referrals.create_index("code")
    await db.support_tickets.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    await db.hour_logs.create_index("project_id")
    await db.saved_projects.create_index(
        [("user_id", ASCENDING), ("project_id", ASCENDING)], unique=True
    )
    await db.reviews.create_index(
        [("reviewer_id", ASCENDING), ("reviewee_id", ASCENDING), ("project_id", ASCENDING)], unique=True
    )
    await db.endorsements.create_index(
        [("endorser_id", ASCENDING), ("user_id", ASCENDING), ("category_id", ASCENDING), ("subskill_id", ASCENDING)],
        unique=True
    )
