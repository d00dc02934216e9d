from typing import Optional, List

from justbecause.db.mongo import db
from justbecause.services.subscriptions import is_pro
from justbecause.services.utils import DEFAULT_VOLUNTEER_NAME

# Fields that are always safe to show on a volunteer card
VOLUNTEER_PUBLIC_FIELDS = [
    "headline", "skills", "causes", "work_mode", "hours_per_week", "availability",
    "volunteer_type", "completed_projects", "hours_contributed", "rating",
    "total_ratings", "is_verified", "languages",
]

# Only these may be changed by the volunteer
VOLUNTEER_EDITABLE_FIELDS = [
    "name", "avatar", "headline", "bio", "phone", "location", "linkedin_url",
    "portfolio_url", "resume_url", "skills", "causes", "work_mode", "hours_per_week",
    "availability", "volunteer_type", "hourly_rate", "discounted_rate", "currency",
    "free_hours_per_month", "languages", "is_active",
]

NGO_EDITABLE_FIELDS = [
    "org_name", "registration_number", "website", "logo", "description", "mission",
    "year_founded", "team_size", "contact_person_name", "contact_email", "contact_phone",
    "address", "location", "causes", "typical_skills_needed", "social_links",
]

NGO_PUBLIC_FIELDS = [
    "id", "org_name", "logo", "website", "description", "mission", "year_founded",
    "team_size", "city", "country", "location", "causes", "typical_skills_needed",
    "social_links", "is_verified", "projects_posted", "projects_completed",
    "volunteers_engaged", "ngo_rating", "created_at",
]

def split_location(location: Optional[str]):
    """'Pune, Maharashtra, India' -> ('Pune', 'India')."""
    if not location:
        return None, None
    parts = [p.strip() for p in location.split(",") if p.strip()]
    if not parts:
        return None, None
    return parts[0], parts[-1] if len(parts) > 1 else None

def sanitize_volunteer_rates(data: dict) -> dict:
    """Drop pricing fields that don't apply to the volunteer type."""
    volunteer_type = data.get("volunteer_type")
    if volunteer_type == "free":
        for key in ("hourly_rate", "discounted_rate", "currency", "free_hours_per_month"):
            data[key] = None
    elif volunteer_type == "paid":
        data["free_hours_per_month"] = None
    if volunteer_type in ("paid", "both") and not data.get("currency"):
        data["currency"] = "USD"
    return data

async def is_profile_unlocked(volunteer: dict, viewer: Optional[dict]) -> bool:
    if volunteer.get("volunteer_type") == "paid":
        return True
    if not viewer:
        return False
    if viewer["id"] == volunteer["id"] or viewer.get("role") == "admin":
        return True
    if viewer.get("role") == "ngo":
        if is_pro(viewer):
            return True
        unlock = await db.profile_unlocks.find_one(
            {"ngo_id": viewer["id"], "volunteer_id": volunteer["id"]}, {"_id": 0, "id": 1}
        )
        return unlock is not None
    return False

def build_volunteer_view(volunteer: dict, unlocked: bool) -> dict:
    """Apply the visibility rules to a volunteer document."""
    show_rates = unlocked and volunteer.get("volunteer_type") != "free"
    view = {"id": volunteer["id"]}
    for field in VOLUNTEER_PUBLIC_FIELDS:
        view[field] = volunteer.get(field)
    view["location"] = volunteer.get("city") or volunteer.get("location")
    view["free_hours_per_month"] = volunteer.get("free_hours_per_month") if volunteer.get("volunteer_type") == "both" else None
    view["is_unlocked"] = unlocked
    view["can_message"] = unlocked

    view["name"] = (volunteer.get("name") or DEFAULT_VOLUNTEER_NAME) if unlocked else None
    for field in ("avatar", "bio", "phone", "linkedin_url", "portfolio_url", "resume_url"):
        view[field] = volunteer.get(field) if unlocked else None
    for field in ("hourly_rate", "discounted_rate", "currency"):
        view[field] = volunteer.get(field) if show_rates else None
    return view

async def volunteer_view_for(volunteer: dict, viewer: Optional[dict]) -> dict:
    return build_volunteer_view(volunteer, await is_profile_unlocked(volunteer, viewer))

async def volunteer_views_for(volunteers: List[dict], viewer: Optional[dict]) -> List[dict]:
    """Batch variant that loads the viewer's unlocks once."""
    unlocked_ids = set()
    if viewer and viewer.get("role") == "ngo" and not is_pro(viewer):
        unlocks = await db.profile_unlocks.find(
            {"ngo_id": viewer["id"], "volunteer_id": {"$in": [v["id"] for v in volunteers]}},
            {"_id": 0, "volunteer_id": 1}
        ).to_list(len(volunteers) or 1)
        unlocked_ids = {u["volunteer_id"] for u in unlocks}

    views = []
    for volunteer in volunteers:
        if volunteer["id"] in unlocked_ids:
            unlocked = True
        elif viewer and viewer.get("role") == "ngo" and not is_pro(viewer):
            unlocked = volunteer.get("volunteer_type") == "paid"
        else:
            unlocked = await is_profile_unlocked(volunteer, viewer)
        views.append(build_volunteer_view(volunteer, unlocked))
    return views

def build_ngo_view(ngo: dict) -> dict:
    view = {field: ngo.get(field) for field in NGO_PUBLIC_FIELDS}
    view["name"] = ngo.get("org_name") or ngo.get("name")
    return view

def private_profile(user: dict) -> dict:
    return {k: v for k, v in user.items() if k not in ("password_hash", "session_version")}

async def delete_user_data(user: dict) -> int:
    """Remove a user and everything they own. Returns the number of projects removed."""
    user_id = user["id"]
    project_ids = [p["id"] for p in await db.projects.find({"ngo_id": user_id}, {"_id": 0, "id": 1}).to_list(10000)]
    if project_ids:
        await db.applications.delete_many({"project_id": {"$in": project_ids}})
        await db.saved_projects.delete_many({"project_id": {"$in": project_ids}})
        await db.projects.delete_many({"ngo_id": user_id})
    await db.applications.delete_many({"volunteer_id": user_id})
    await db.notifications.delete_many({"user_id": user_id})
    await db.follows.delete_many({"$or": [{"follower_id": user_id}, {"following_id": user_id}]})
    await db.profile_unlocks.delete_many({"$or": [{"ngo_id": user_id}, {"volunteer_id": user_id}]})
    await db.saved_projects.delete_many({"user_id": user_id})
    await db.endorsements.delete_many({"$or": [{"endorser_id": user_id}, {"user_id": user_id}]})
    await db.support_tickets.delete_many({"user_id": user_id})
    await db.otp_codes.delete_many({"email": user["email"].lower()})
    await db.users.delete_one({"id": user_id})
    return len(project_ids)
