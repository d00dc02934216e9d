from datetime import datetime, timezone
import random
import string
import uuid

import structlog

from justbecause.db.mongo import db
from justbecause.core.config import DEFAULT_ADMIN_SETTINGS

logger = structlog.get_logger()

DEFAULT_VOLUNTEER_NAME = "Impact Agent"

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def new_id() -> str:
    return str(uuid.uuid4())

def parse_datetime(value):
    """Parse a stored ISO timestamp into an aware datetime (None if missing or invalid)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

def generate_code(length: int = 8) -> str:
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))

async def log_error(error_type: str, error_message: str, endpoint: str, user_id: str = None, stack_trace: str = None):
    """Log error to database"""
    error_doc = {
        "id": new_id(),
        "error_type": error_type,
        "error_message": error_message,
        "endpoint": endpoint,
        "user_id": user_id,
        "stack_trace": stack_trace,
        "created_at": now_iso()
    }
    await db.error_logs.insert_one(error_doc)

async def get_admin_settings() -> dict:
    """Platform settings stored by admins, merged over the defaults."""
    stored = await db.admin_settings.find_one({"id": "platform"}, {"_id": 0})
    settings = dict(DEFAULT_ADMIN_SETTINGS)
    if stored:
        settings.update({k: v for k, v in stored.items() if v is not None})
    return settings

def display_name(user: dict) -> str:
    if user.get("role") == "ngo":
        return user.get("org_name") or user.get("name") or "Organization"
    return user.get("name") or DEFAULT_VOLUNTEER_NAME

def format_user_response(user: dict):
    """Format user dict for API response"""
    from justbecause.models.user import UserResponse

    created_at = user.get('created_at', now_iso())
    if isinstance(created_at, datetime):
        created_at = created_at.isoformat()

    return UserResponse(
        id=user['id'],
        email=user['email'],
        name=user.get('name', ''),
        role=user.get('role', 'user'),
        is_onboarded=user.get('is_onboarded', False),
        email_verified=user.get('email_verified', False),
        avatar=user.get('avatar'),
        subscription_plan=user.get('subscription_plan', 'free'),
        subscription_expiry=user.get('subscription_expiry'),
        created_at=created_at
    )

def public_user_card(user: dict) -> dict:
    """Minimal identity shown next to messages, follows and reviews."""
    return {
        "id": user["id"],
        "name": display_name(user),
        "avatar": user.get("logo") if user.get("role") == "ngo" else user.get("avatar"),
        "role": user.get("role"),
    }
