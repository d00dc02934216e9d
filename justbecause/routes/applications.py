from fastapi import APIRouter, HTTPException, Depends
from typing import List
from pymongo.errors import DuplicateKeyError

import structlog

from justbecause.core.security import require_auth, require_role
from justbecause.db.mongo import db
from justbecause.models.application import Application, ApplicationCreate, ApplicationStatusUpdate
from justbecause.routes.projects import get_project_or_404, can_manage, OPEN_STATUSES
from justbecause.services.email import new_application_email, application_status_email
from justbecause.services.notifications import notify_quietly, email_quietly
from justbecause.services.profiles import volunteer_views_for
from justbecause.services.subscriptions import is_pro, roll_monthly_window, monthly_limit
from justbecause.services.utils import new_id, now_iso, display_name, DEFAULT_VOLUNTEER_NAME
from justbecause.services.validation import sanitize_string

logger = structlog.get_logger()

router = APIRouter(tags=["applications"])

WITHDRAWABLE_STATUSES = ("pending", "shortlisted")

async def get_application_or_404(application_id: str) -> dict:
    application = await db.applications.find_one({"id": application_id}, {"_id": 0})
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    return application

async def _warn_about_limit(user_id: str, used: int, limit: int):
    if used == limit - 1:
        await notify_quietly(
            user_id, "limit_warning", "1 application left this month",
            f"You have used {used} of {limit} free applications this month. Upgrade to Pro for unlimited applications.",
            link="/pricing"
        )
    elif used >= limit:
        await notify_quietly(
            user_id, "limit_reached", "Monthly application limit reached",
            f"You have used all {limit} free applications this month. Upgrade to Pro to keep applying.",
            link="/pricing"
        )

# ========== APPLY ==========
@router.post("/projects/{project_id}/apply", response_model=Application)
async def apply_to_project(project_id: str, request: ApplicationCreate,
                           user: dict = Depends(require_role("volunteer"))):
    if not user.get("has_volunteer_profile"):
        raise HTTPException(status_code=400, detail="Complete your volunteer profile before applying")

    pro = is_pro(user)
    used = limit = None
    if not pro:
        used = await roll_monthly_window(user, "monthly_applications_used")
        limit = await monthly_limit("volunteer")
        if used >= limit:
            raise HTTPException(
                status_code=403,
                detail=f"LIMIT_REACHED: You have used all {limit} free applications this month. Upgrade to Pro for unlimited applications."
            )

    project = await get_project_or_404(project_id)
    if project["status"] not in OPEN_STATUSES:
        raise HTTPException(status_code=400, detail="This project is not accepting applications")
    if project["ngo_id"] == user["id"]:
        raise HTTPException(status_code=400, detail="You cannot apply to your own project")

    application_doc = {
        "id": new_id(),
        "project_id": project_id,
        "volunteer_id": user["id"],
        "ngo_id": project["ngo_id"],
        "cover_message": sanitize_string(request.cover_message, 5000) if request.cover_message else None,
        "status": "pending",
        "is_profile_unlocked": user.get("volunteer_type") == "paid",
        "notes": None,
        "applied_at": now_iso(),
        "reviewed_at": None
    }
    try:
        await db.applications.insert_one(application_doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="You have already applied to this project")
    application_doc.pop("_id", None)

    await db.projects.update_one({"id": project_id}, {"$inc": {"applicants_count": 1}})
    await db.users.update_one({"id": user["id"]}, {"$inc": {"monthly_applications_used": 1}})
    logger.info("Application submitted", application_id=application_doc["id"], project_id=project_id)

    if not pro:
        await _warn_about_limit(user["id"], used + 1, limit)

    ngo = await db.users.find_one({"id": project["ngo_id"]}, {"_id": 0})
    if ngo:
        volunteer_name = user.get("name") or DEFAULT_VOLUNTEER_NAME
        await notify_quietly(
            ngo["id"], "new_application", "New application received",
            f"{volunteer_name} applied to \"{project['title']}\"",
            reference_id=application_doc["id"], reference_type="application",
            link=f"/ngo/projects/{project_id}/applications"
        )
        await email_quietly(ngo, "application_notifications", new_application_email(
            display_name(ngo), volunteer_name, project["title"]
        ))

    return Application(**application_doc)

# ========== LISTS ==========
@router.get("/volunteer/applications")
async def get_my_applications(user: dict = Depends(require_auth)):
    applications = await db.applications.find(
        {"volunteer_id": user["id"]}, {"_id": 0}
    ).sort("applied_at", -1).to_list(500)

    project_ids = list({a["project_id"] for a in applications})
    projects = await db.projects.find(
        {"id": {"$in": project_ids}},
        {"_id": 0, "id": 1, "title": 1, "ngo_name": 1, "status": 1, "work_mode": 1, "deadline": 1}
    ).to_list(len(project_ids) or 1)
    by_id = {p["id"]: p for p in projects}

    for application in applications:
        application["project"] = by_id.get(application["project_id"])
    return applications

@router.get("/projects/{project_id}/applications")
async def get_project_applications(project_id: str, user: dict = Depends(require_auth)):
    project = await get_project_or_404(project_id)
    if not can_manage(project, user):
        raise HTTPException(status_code=403, detail="Not authorized to view these applications")

    applications = await db.applications.find(
        {"project_id": project_id}, {"_id": 0}
    ).sort("applied_at", -1).to_list(1000)
    return await _with_volunteer_views(applications, user)

@router.get("/ngo/applications")
async def get_ngo_applications(user: dict = Depends(require_role("ngo"))):
    applications = await db.applications.find(
        {"ngo_id": user["id"]}, {"_id": 0}
    ).sort("applied_at", -1).to_list(1000)

    project_ids = list({a["project_id"] for a in applications})
    projects = await db.projects.find(
        {"id": {"$in": project_ids}}, {"_id": 0, "id": 1, "title": 1}
    ).to_list(len(project_ids) or 1)
    titles = {p["id"]: p["title"] for p in projects}

    for application in applications:
        application["project_title"] = titles.get(application["project_id"])
    return await _with_volunteer_views(applications, user)

async def _with_volunteer_views(applications: List[dict], viewer: dict) -> List[dict]:
    volunteer_ids = list({a["volunteer_id"] for a in applications})
    volunteers = await db.users.find(
        {"id": {"$in": volunteer_ids}}, {"_id": 0, "password_hash": 0}
    ).to_list(len(volunteer_ids) or 1)
    views = {v["id"]: v for v in await volunteer_views_for(volunteers, viewer)}

    for application in applications:
        application["volunteer"] = views.get(application["volunteer_id"])
    return applications

# ========== REVIEW ==========
@router.put("/applications/{application_id}/status", response_model=Application)
async def update_application_status(application_id: str, update: ApplicationStatusUpdate,
                                    user: dict = Depends(require_auth)):
    application = await get_application_or_404(application_id)
    if user.get("role") != "admin" and application["ngo_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Not authorized to update this application")
    if application["status"] == "withdrawn":
        raise HTTPException(status_code=400, detail="This application was withdrawn")

    previous_status = application["status"]
    update_dict = {"status": update.status, "reviewed_at": now_iso()}
    if update.notes is not None:
        update_dict["notes"] = sanitize_string(update.notes, 2000)

    await db.applications.update_one({"id": application_id}, {"$set": update_dict})
    application.update(update_dict)

    if update.status == "accepted" and previous_status != "accepted":
        await db.users.update_one({"id": application["ngo_id"]}, {"$inc": {"volunteers_engaged": 1}})

    if update.status != previous_status:
        project = await db.projects.find_one({"id": application["project_id"]}, {"_id": 0, "title": 1}) or {}
        title = project.get("title", "a project")
        await notify_quietly(
            application["volunteer_id"], "application_status", "Application update",
            f"Your application for \"{title}\" is now {update.status}",
            reference_id=application_id, reference_type="application", link="/volunteer/applications"
        )
        if update.status in ("accepted", "shortlisted", "rejected"):
            volunteer = await db.users.find_one({"id": application["volunteer_id"]}, {"_id": 0})
            if volunteer:
                await email_quietly(volunteer, "application_notifications", application_status_email(
                    volunteer.get("name") or DEFAULT_VOLUNTEER_NAME, title, update.status, update.notes
                ))

    logger.info("Application status changed", application_id=application_id,
                old_status=previous_status, new_status=update.status)
    return Application(**application)

@router.post("/applications/{application_id}/withdraw", response_model=Application)
async def withdraw_application(application_id: str, user: dict = Depends(require_auth)):
    application = await get_application_or_404(application_id)
    if application["volunteer_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Not authorized to withdraw this application")
    if application["status"] not in WITHDRAWABLE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot withdraw an application that is {application['status']}")

    await db.applications.update_one({"id": application_id}, {"$set": {"status": "withdrawn"}})
    await db.projects.update_one({"id": application["project_id"]}, {"$inc": {"applicants_count": -1}})
    application["status"] = "withdrawn"
    return Application(**application)
