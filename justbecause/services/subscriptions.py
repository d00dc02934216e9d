from datetime import datetime, timezone, timedelta

import structlog

from justbecause.db.mongo import db
from justbecause.services.utils import parse_datetime, get_admin_settings

logger = structlog.get_logger()

# Monthly counter per role
COUNTER_FIELDS = {
    "volunteer": "monthly_applications_used",
    "ngo": "monthly_projects_posted",
}

def effective_plan(user: dict, now: datetime = None) -> str:
    """'pro' while the subscription is current, otherwise 'free'."""
    if user.get("subscription_plan") != "pro":
        return "free"
    expiry = parse_datetime(user.get("subscription_expiry"))
    if expiry is None:
        # Granted by an admin without an end date
        return "pro"
    return "pro" if expiry > (now or datetime.now(timezone.utc)) else "free"

def is_pro(user: dict, now: datetime = None) -> bool:
    return effective_plan(user, now) == "pro"

def next_reset_date(now: datetime = None) -> datetime:
    """First instant of next calendar month (UTC)."""
    now = now or datetime.now(timezone.utc)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)

async def roll_monthly_window(user: dict, counter_field: str, now: datetime = None) -> int:
    """Reset the user's monthly counter once its window has passed and return the current value."""
    now = now or datetime.now(timezone.utc)
    reset_at = parse_datetime(user.get("subscription_reset_date"))
    if reset_at is None or now >= reset_at:
        new_reset = next_reset_date(now).isoformat()
        await db.users.update_one(
            {"id": user["id"]},
            {"$set": {counter_field: 0, "subscription_reset_date": new_reset}}
        )
        user[counter_field] = 0
        user["subscription_reset_date"] = new_reset
        logger.info("Monthly usage window reset", user_id=user["id"], counter=counter_field)
        return 0
    return user.get(counter_field, 0)

async def monthly_limit(role: str) -> int:
    settings = await get_admin_settings()
    if role == "volunteer":
        return int(settings["volunteer_free_applications_per_month"])
    return int(settings["ngo_free_projects_per_month"])

async def usage_status(user: dict) -> dict:
    """Plan, usage and limit for the user's role (limit is None on Pro)."""
    role = user.get("role")
    field = COUNTER_FIELDS.get(role)
    plan = effective_plan(user)
    used = await roll_monthly_window(user, field) if field else 0
    limit = None if plan == "pro" or not field else await monthly_limit(role)
    return {
        "plan": plan,
        "used": used,
        "limit": limit,
        "remaining": None if limit is None else max(0, limit - used),
        "expiry": user.get("subscription_expiry"),
        "reset_date": user.get("subscription_reset_date"),
    }

def subscription_expiry_from(now: datetime, days: int) -> str:
    return (now + timedelta(days=days)).isoformat()
