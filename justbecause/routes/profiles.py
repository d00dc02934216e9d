from fastapi import APIRouter, HTTPException, Depends, Query
from typing import List, Optional
import re

import structlog

from justbecause.core.rate_limit import rate_limit
from justbecause.core.security import require_auth, require_role, get_current_user
from justbecause.db.mongo import db
from justbecause.models.profile import (
    VolunteerOnboarding, VolunteerProfileUpdate, NGOOnboarding, NGOProfileUpdate, VolunteerProfileView,
)
from justbecause.models.user import PrivacySettings
from justbecause.services.notifications import privacy_settings
from justbecause.services.profiles import (
    VOLUNTEER_EDITABLE_FIELDS, NGO_EDITABLE_FIELDS, split_location, sanitize_volunteer_rates,
    volunteer_view_for, volunteer_views_for, build_ngo_view, private_profile,
)
from justbecause.services.subscriptions import usage_status, is_pro
from justbecause.services.utils import now_iso
from justbecause.services.validation import (
    validate_volunteer_profile_data, validate_ngo_profile_data, validate_skills, sanitize_string,
)

logger = structlog.get_logger()

router = APIRouter(tags=["profiles"])

def _raise_on_errors(errors: List[str]):
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

def _prepare_volunteer_fields(data: dict) -> dict:
    _raise_on_errors(validate_volunteer_profile_data(data) + (
        validate_skills(data["skills"]) if data.get("skills") is not None else []
    ))
    for field in ("bio", "headline"):
        if data.get(field):
            data[field] = sanitize_string(data[field], 2000)
    if "location" in data:
        data["city"], data["country"] = split_location(data.get("location"))
    if "volunteer_type" in data:
        data = sanitize_volunteer_rates(data)
    return data

def _prepare_ngo_fields(data: dict) -> dict:
    _raise_on_errors(validate_ngo_profile_data(data) + (
        validate_skills(data["typical_skills_needed"]) if data.get("typical_skills_needed") is not None else []
    ))
    for field, limit in (("description", 5000), ("mission", 2000)):
        if data.get(field):
            data[field] = sanitize_string(data[field], limit)
    if "location" in data:
        data["city"], data["country"] = split_location(data.get("location"))
    return data

# ========== VOLUNTEER PROFILE ==========
@router.post("/volunteer/onboarding")
async def volunteer_onboarding(profile: VolunteerOnboarding, user: dict = Depends(require_auth)):
    if user.get("role") not in ("user", "volunteer"):
        raise HTTPException(status_code=400, detail="Only Impact Agent accounts can create a volunteer profile")

    data = _prepare_volunteer_fields(profile.model_dump())
    if not data.get("name"):
        data["name"] = user.get("name")

    data.update({
        "role": "volunteer",
        "has_volunteer_profile": True,
        "is_active": True,
        "completed_projects": user.get("completed_projects", 0),
        "hours_contributed": user.get("hours_contributed", 0),
        "rating": user.get("rating", 0),
        "total_ratings": user.get("total_ratings", 0),
        "updated_at": now_iso(),
        "last_active_at": now_iso(),
    })
    await db.users.update_one({"id": user["id"]}, {"$set": data})
    logger.info("Volunteer onboarded", user_id=user["id"], skills=len(data.get("skills") or []))

    updated = await db.users.find_one({"id": user["id"]}, {"_id": 0})
    return private_profile(updated)

@router.get("/volunteer/profile")
async def get_volunteer_profile(user: dict = Depends(require_role("volunteer"))):
    if not user.get("has_volunteer_profile"):
        raise HTTPException(status_code=404, detail="Volunteer profile not found")
    return private_profile(user)

@router.put("/volunteer/profile")
async def update_volunteer_profile(update: VolunteerProfileUpdate, user: dict = Depends(require_role("volunteer"))):
    if not user.get("has_volunteer_profile"):
        raise HTTPException(status_code=404, detail="Volunteer profile not found")

    data = {k: v for k, v in update.model_dump(exclude_unset=True).items() if k in VOLUNTEER_EDITABLE_FIELDS}
    if "volunteer_type" not in data and any(k in data for k in ("hourly_rate", "discounted_rate", "currency", "free_hours_per_month")):
        data["volunteer_type"] = user.get("volunteer_type")
    data = _prepare_volunteer_fields(data)
    data["updated_at"] = now_iso()

    await db.users.update_one({"id": user["id"]}, {"$set": data})
    updated = await db.users.find_one({"id": user["id"]}, {"_id": 0})
    return private_profile(updated)

@router.get("/volunteers/{user_id}", response_model=VolunteerProfileView)
async def get_volunteer_profile_view(user_id: str, viewer: Optional[dict] = Depends(get_current_user)):
    volunteer = await db.users.find_one(
        {"id": user_id, "role": "volunteer", "has_volunteer_profile": True}, {"_id": 0}
    )
    if not volunteer or volunteer.get("is_banned"):
        raise HTTPException(status_code=404, detail="Volunteer not found")
    if not privacy_settings(volunteer)["show_profile"] and (not viewer or viewer["id"] != user_id) \
            and (not viewer or viewer.get("role") != "admin"):
        raise HTTPException(status_code=404, detail="Volunteer not found")
    return await volunteer_view_for(volunteer, viewer)

@router.get("/volunteers", dependencies=[Depends(rate_limit("search"))])
async def browse_volunteers(
    viewer: Optional[dict] = Depends(get_current_user),
    skill_category: str = None,
    cause: str = None,
    work_mode: str = None,
    volunteer_type: str = None,
    q: str = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100)
):
    query = {
        "role": "volunteer",
        "has_volunteer_profile": True,
        "is_banned": {"$ne": True},
        "is_active": {"$ne": False},
        "privacy.show_in_search": {"$ne": False},
    }
    if skill_category:
        query["skills.category_id"] = skill_category
    if cause:
        query["causes"] = cause
    if work_mode:
        query["work_mode"] = work_mode
    if volunteer_type:
        query["volunteer_type"] = volunteer_type
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        query["$or"] = [{"headline": pattern}, {"location": pattern}, {"city": pattern}]

    volunteers = await db.users.find(query, {"_id": 0, "password_hash": 0}).sort(
        [("rating", -1), ("completed_projects", -1)]
    ).skip(skip).limit(limit).to_list(limit)
    return {
        "volunteers": await volunteer_views_for(volunteers, viewer),
        "total": await db.users.count_documents(query)
    }

# ========== NGO PROFILE ==========
@router.post("/ngo/onboarding")
async def ngo_onboarding(profile: NGOOnboarding, user: dict = Depends(require_auth)):
    if user.get("role") not in ("user", "ngo"):
        raise HTTPException(status_code=400, detail="Only NGO accounts can create an organization profile")

    data = _prepare_ngo_fields(profile.model_dump())
    data.update({
        "role": "ngo",
        "has_ngo_profile": True,
        "projects_posted": user.get("projects_posted", 0),
        "projects_completed": user.get("projects_completed", 0),
        "volunteers_engaged": user.get("volunteers_engaged", 0),
        "updated_at": now_iso(),
    })
    if not user.get("name"):
        data["name"] = data["org_name"]
    await db.users.update_one({"id": user["id"]}, {"$set": data})
    logger.info("NGO onboarded", user_id=user["id"], org_name=data["org_name"])

    updated = await db.users.find_one({"id": user["id"]}, {"_id": 0})
    return private_profile(updated)

@router.get("/ngo/profile")
async def get_ngo_profile(user: dict = Depends(require_role("ngo"))):
    if not user.get("has_ngo_profile"):
        raise HTTPException(status_code=404, detail="NGO profile not found")
    return private_profile(user)

@router.put("/ngo/profile")
async def update_ngo_profile(update: NGOProfileUpdate, user: dict = Depends(require_role("ngo"))):
    if not user.get("has_ngo_profile"):
        raise HTTPException(status_code=404, detail="NGO profile not found")

    data = {k: v for k, v in update.model_dump(exclude_unset=True).items() if k in NGO_EDITABLE_FIELDS}
    data = _prepare_ngo_fields(data)
    data["updated_at"] = now_iso()

    await db.users.update_one({"id": user["id"]}, {"$set": data})
    updated = await db.users.find_one({"id": user["id"]}, {"_id": 0})
    return private_profile(updated)

@router.get("/ngos/{user_id}")
async def get_ngo_public(user_id: str):
    ngo = await db.users.find_one({"id": user_id, "role": "ngo", "has_ngo_profile": True}, {"_id": 0})
    if not ngo or ngo.get("is_banned"):
        raise HTTPException(status_code=404, detail="Organization not found")
    view = build_ngo_view(ngo)
    view["active_projects"] = await db.projects.count_documents(
        {"ngo_id": user_id, "status": {"$in": ["active", "open"]}}
    )
    return view

@router.get("/ngos", dependencies=[Depends(rate_limit("search"))])
async def browse_ngos(
    cause: str = None,
    q: str = None,
    verified: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100)
):
    query = {"role": "ngo", "has_ngo_profile": True, "is_banned": {"$ne": True}}
    if cause:
        query["causes"] = cause
    if verified is not None:
        query["is_verified"] = verified
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        query["$or"] = [{"org_name": pattern}, {"location": pattern}, {"mission": pattern}]

    ngos = await db.users.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"ngos": [build_ngo_view(n) for n in ngos], "total": await db.users.count_documents(query)}

# ========== SUBSCRIPTION STATUS ==========
@router.get("/subscription/status")
async def subscription_status(user: dict = Depends(require_auth)):
    role = user.get("role")
    if role not in ("volunteer", "ngo"):
        raise HTTPException(status_code=400, detail="Subscription status is available for volunteer and NGO accounts")

    usage = await usage_status(user)
    if role == "volunteer":
        return {
            "role": role,
            "plan": usage["plan"],
            "applications_used": usage["used"],
            "applications_limit": usage["limit"],
            "can_apply": usage["limit"] is None or usage["used"] < usage["limit"],
            "expiry_date": usage["expiry"],
            "reset_date": usage["reset_date"],
        }
    return {
        "role": role,
        "plan": usage["plan"],
        "projects_used": usage["used"],
        "projects_limit": usage["limit"],
        "can_post": usage["limit"] is None or usage["used"] < usage["limit"],
        "can_view_free_volunteers": is_pro(user),
        "unlocks_used": user.get("monthly_unlocks_used", 0),
        "expiry_date": usage["expiry"],
        "reset_date": usage["reset_date"],
    }

# ========== PRIVACY & DATA ==========
@router.get("/user/privacy")
async def get_privacy(user: dict = Depends(require_auth)):
    return privacy_settings(user)

@router.put("/user/privacy")
async def update_privacy(settings: PrivacySettings, user: dict = Depends(require_auth)):
    changes = {f"privacy.{k}": v for k, v in settings.model_dump(exclude_none=True).items()}
    if changes:
        changes["updated_at"] = now_iso()
        await db.users.update_one({"id": user["id"]}, {"$set": changes})
    updated = await db.users.find_one({"id": user["id"]}, {"_id": 0})
    return privacy_settings(updated)

@router.get("/user/export-data")
async def export_user_data(user: dict = Depends(require_auth)):
    user_id = user["id"]
    return {
        "exported_at": now_iso(),
        "profile": private_profile(user),
        "applications": await db.applications.find({"volunteer_id": user_id}, {"_id": 0}).to_list(1000),
        "projects": await db.projects.find({"ngo_id": user_id}, {"_id": 0}).to_list(1000),
        "messages_sent": await db.messages.find({"sender_id": user_id}, {"_id": 0}).to_list(5000),
        "transactions": await db.transactions.find({"user_id": user_id}, {"_id": 0}).to_list(1000),
        "notifications": await db.notifications.find({"user_id": user_id}, {"_id": 0}).to_list(1000),
        "reviews_written": await db.reviews.find({"reviewer_id": user_id}, {"_id": 0}).to_list(1000),
    }
