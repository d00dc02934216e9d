from typing import Optional

import structlog

from justbecause.db.mongo import db
from justbecause.services.email import send_email
from justbecause.services.utils import new_id, now_iso, get_admin_settings

logger = structlog.get_logger()

NOTIFICATION_TYPES = [
    "new_application",
    "application_status",
    "new_message",
    "new_opportunity",
    "profile_unlocked",
    "subscription",
    "limit_warning",
    "limit_reached",
    "new_follower",
    "new_review",
    "referral",
    "project_update",
    "support",
    "system",
]

DEFAULT_PRIVACY = {
    "show_profile": True,
    "show_in_search": True,
    "email_notifications": True,
    "application_notifications": True,
    "message_notifications": True,
    "opportunity_digest": True,
}

def privacy_settings(user: dict) -> dict:
    return {**DEFAULT_PRIVACY, **(user.get("privacy") or {})}

def wants_email(user: dict, kind: str = None) -> bool:
    """Whether the user accepts email for a notification kind (e.g. 'message_notifications')."""
    prefs = privacy_settings(user)
    if not prefs["email_notifications"]:
        return False
    return bool(prefs.get(kind, True)) if kind else True

async def create_notification(user_id: str, type: str, title: str, message: str,
                              reference_id: str = None, reference_type: str = None,
                              link: str = None) -> Optional[dict]:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    settings = await get_admin_settings()
    if not settings.get("enable_notifications", True):
        return None

    notification = {
        "id": new_id(),
        "user_id": user_id,
        "type": type,
        "title": title,
        "message": message,
        "reference_id": reference_id,
        "reference_type": reference_type,
        "link": link,
        "is_read": False,
        "created_at": now_iso(),
    }
    await db.notifications.insert_one(notification)
    notification.pop("_id", None)
    return notification

async def notify_quietly(user_id: str, type: str, title: str, message: str, **kwargs):
    """Create a notification as a side effect; failures are logged, never raised."""
    try:
        await create_notification(user_id, type, title, message, **kwargs)
    except Exception as e:
        logger.warning("Notification failed", user_id=user_id, type=type, error=str(e))

async def email_quietly(user: dict, kind: str, template):
    """Send a templated (subject, html, text) email if the user's preferences allow it."""
    if not user or not user.get("email") or not wants_email(user, kind):
        return
    subject, html, text = template
    try:
        await send_email(user["email"], subject, html, text)
    except Exception as e:
        logger.warning("Email failed", user_id=user.get("id"), subject=subject, error=str(e))
