from fastapi import APIRouter, HTTPException, Depends, Query
from typing import List, Optional
import re

import structlog

from justbecause.core.rate_limit import rate_limit
from justbecause.core.security import require_auth, require_role, get_current_user
from justbecause.db.mongo import db
from justbecause.models.project import Project, ProjectCreate, ProjectUpdate, HoursLog
from justbecause.services.email import new_opportunity_email
from justbecause.services.notifications import notify_quietly, email_quietly
from justbecause.services.subscriptions import is_pro, roll_monthly_window, monthly_limit
from justbecause.services.utils import new_id, now_iso, display_name
from justbecause.services.validation import validate_project_data, validate_skills, sanitize_string

logger = structlog.get_logger()

router = APIRouter(tags=["projects"])

MAX_MATCH_NOTIFICATIONS = 20
OPEN_STATUSES = ["active", "open"]

def can_manage(project: dict, user: dict) -> bool:
    return user.get("role") == "admin" or project["ngo_id"] == user["id"]

async def get_project_or_404(project_id: str) -> dict:
    project = await db.projects.find_one({"id": project_id}, {"_id": 0})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project

async def notify_new_opportunity(project: dict, ngo: dict):
    """Tell matching volunteers and the NGO's followers about a new project."""
    ngo_name = display_name(ngo)
    notified = set()

    exact_matches = [
        {"skills": {"$elemMatch": {"category_id": s["category_id"], "subskill_id": s["subskill_id"]}}}
        for s in project.get("skills_required") or []
    ]
    if exact_matches:
        volunteers = await db.users.find(
            {"role": "volunteer", "has_volunteer_profile": True, "is_banned": {"$ne": True},
             "is_active": {"$ne": False}, "$or": exact_matches},
            {"_id": 0, "id": 1, "name": 1, "email": 1, "privacy": 1}
        ).limit(MAX_MATCH_NOTIFICATIONS).to_list(MAX_MATCH_NOTIFICATIONS)

        for volunteer in volunteers:
            notified.add(volunteer["id"])
            await notify_quietly(
                volunteer["id"], "new_opportunity", "New opportunity matches your skills",
                f"{ngo_name} posted \"{project['title']}\"",
                reference_id=project["id"], reference_type="project", link=f"/projects/{project['id']}"
            )
            await email_quietly(volunteer, "opportunity_digest", new_opportunity_email(
                volunteer.get("name") or "there", project["title"], ngo_name, project["id"]
            ))

    followers = await db.follows.find({"following_id": ngo["id"]}, {"_id": 0, "follower_id": 1}).to_list(1000)
    for follow in followers:
        if follow["follower_id"] in notified:
            continue
        await notify_quietly(
            follow["follower_id"], "new_opportunity", f"{ngo_name} posted a new project",
            project["title"], reference_id=project["id"], reference_type="project",
            link=f"/projects/{project['id']}"
        )

    logger.info("Opportunity notifications sent", project_id=project["id"],
                matched=len(notified), followers=len(followers))

async def accepted_volunteer_ids(project_id: str) -> list:
    accepted = await db.applications.find(
        {"project_id": project_id, "status": "accepted"}, {"_id": 0, "volunteer_id": 1}
    ).to_list(1000)
    return [a["volunteer_id"] for a in accepted]

async def credit_completed_project(project: dict):
    await db.users.update_one({"id": project["ngo_id"]}, {"$inc": {"projects_completed": 1}})
    volunteer_ids = await accepted_volunteer_ids(project["id"])
    if volunteer_ids:
        await db.users.update_many({"id": {"$in": volunteer_ids}}, {"$inc": {"completed_projects": 1}})
    logger.info("Project completed", project_id=project["id"], volunteers_credited=len(volunteer_ids))

async def notify_status_change(project: dict, status: str):
    applicants = await db.applications.find(
        {"project_id": project["id"], "status": {"$ne": "withdrawn"}}, {"_id": 0, "volunteer_id": 1}
    ).to_list(1000)
    for application in applicants:
        await notify_quietly(
            application["volunteer_id"], "project_update", "Project update",
            f"\"{project['title']}\" is now {status}",
            reference_id=project["id"], reference_type="project", link=f"/projects/{project['id']}"
        )

# ========== PROJECTS ==========
@router.post("/projects", response_model=Project)
async def create_project(project_data: ProjectCreate, user: dict = Depends(require_role("ngo"))):
    if user.get("role") == "ngo" and not user.get("has_ngo_profile"):
        raise HTTPException(status_code=400, detail="Complete your organization profile before posting projects")

    # Check monthly project limit
    if user.get("role") == "ngo" and not is_pro(user):
        used = await roll_monthly_window(user, "monthly_projects_posted")
        limit = await monthly_limit("ngo")
        if used >= limit:
            raise HTTPException(
                status_code=403,
                detail=f"Monthly project limit reached ({limit}). Upgrade to Pro to post unlimited projects."
            )

    data = project_data.model_dump()
    errors = validate_project_data(data) + validate_skills(data["skills_required"])
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

    now = now_iso()
    project_doc = {
        **data,
        "id": new_id(),
        "ngo_id": user["id"],
        "ngo_name": display_name(user),
        "title": sanitize_string(data["title"], 200),
        "description": sanitize_string(data["description"], 10000),
        "status": "active",
        "applicants_count": 0,
        "views_count": 0,
        "created_at": now,
        "updated_at": now
    }

    await db.projects.insert_one(project_doc)
    project_doc.pop("_id", None)
    await db.users.update_one(
        {"id": user["id"]},
        {"$inc": {"projects_posted": 1, "monthly_projects_posted": 1}}
    )
    logger.info("Project created", project_id=project_doc["id"], ngo_id=user["id"])

    await notify_new_opportunity(project_doc, user)
    return Project(**project_doc)

@router.get("/projects/skill-categories")
async def project_skill_categories():
    projects = await db.projects.find(
        {"status": {"$in": OPEN_STATUSES}}, {"_id": 0, "skills_required": 1}
    ).to_list(10000)
    counts = {}
    for project in projects:
        for category in {s["category_id"] for s in project.get("skills_required") or []}:
            counts[category] = counts.get(category, 0) + 1
    return [{"category_id": c, "count": n} for c, n in sorted(counts.items(), key=lambda x: x[1], reverse=True)]

@router.get("/projects", dependencies=[Depends(rate_limit("search"))])
async def browse_projects(
    skill_category: str = None,
    cause: str = None,
    work_mode: str = None,
    project_type: str = None,
    experience_level: str = None,
    q: str = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100)
):
    query = {"status": {"$in": OPEN_STATUSES}}
    if skill_category:
        query["skills_required.category_id"] = skill_category
    if cause:
        query["causes"] = cause
    if work_mode:
        query["work_mode"] = work_mode
    if project_type:
        query["project_type"] = project_type
    if experience_level:
        query["experience_level"] = experience_level
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"description": pattern}]

    projects = await db.projects.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"projects": projects, "total": await db.projects.count_documents(query)}

@router.get("/ngo/projects", response_model=List[Project])
async def get_my_projects(user: dict = Depends(require_role("ngo"))):
    projects = await db.projects.find(
        {"ngo_id": user['id']},
        {"_id": 0}
    ).sort("created_at", -1).to_list(500)
    return [Project(**p) for p in projects]

@router.get("/projects/{project_id}", response_model=Project)
async def get_project(project_id: str, viewer: Optional[dict] = Depends(get_current_user)):
    project = await get_project_or_404(project_id)
    if project["status"] == "draft" and not (viewer and can_manage(project, viewer)):
        raise HTTPException(status_code=404, detail="Project not found")

    await db.projects.update_one({"id": project_id}, {"$inc": {"views_count": 1}})
    project["views_count"] = project.get("views_count", 0) + 1
    return Project(**project)

@router.put("/projects/{project_id}", response_model=Project)
async def update_project(project_id: str, update_data: ProjectUpdate, user: dict = Depends(require_auth)):
    project = await get_project_or_404(project_id)
    if not can_manage(project, user):
        raise HTTPException(status_code=403, detail="Not authorized to edit this project")

    update_dict = update_data.model_dump(exclude_unset=True)
    merged = {**project, **update_dict}
    errors = validate_project_data(merged) + validate_skills(merged.get("skills_required") or [])
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

    if "title" in update_dict:
        update_dict["title"] = sanitize_string(update_dict["title"], 200)
    if "description" in update_dict:
        update_dict["description"] = sanitize_string(update_dict["description"], 10000)
    update_dict["updated_at"] = now_iso()

    await db.projects.update_one({"id": project_id}, {"$set": update_dict})

    if update_dict.get("status") == "completed" and project["status"] != "completed":
        await credit_completed_project(project)
    if "status" in update_dict and update_dict["status"] != project["status"]:
        await notify_status_change(project, update_dict["status"])

    updated_project = await db.projects.find_one({"id": project_id}, {"_id": 0})
    return Project(**updated_project)

@router.delete("/projects/{project_id}")
async def delete_project(project_id: str, user: dict = Depends(require_auth)):
    project = await get_project_or_404(project_id)
    if not can_manage(project, user):
        raise HTTPException(status_code=403, detail="Not authorized to delete this project")

    await db.projects.delete_one({"id": project_id})
    removed = await db.applications.delete_many({"project_id": project_id})
    await db.saved_projects.delete_many({"project_id": project_id})
    logger.info("Project deleted", project_id=project_id, applications_removed=removed.deleted_count)
    return {"message": "Project deleted"}

# ========== HOURS ==========
@router.post("/projects/{project_id}/hours")
async def log_project_hours(project_id: str, entry: HoursLog, user: dict = Depends(require_auth)):
    project = await get_project_or_404(project_id)
    if can_manage(project, user):
        if not entry.volunteer_id:
            raise HTTPException(status_code=400, detail="volunteer_id is required")
        volunteer_id = entry.volunteer_id
    else:
        volunteer_id = user["id"]

    if volunteer_id not in await accepted_volunteer_ids(project_id):
        raise HTTPException(status_code=403, detail="Only accepted volunteers can log hours on this project")

    log = {
        "id": new_id(),
        "project_id": project_id,
        "volunteer_id": volunteer_id,
        "logged_by": user["id"],
        "hours": entry.hours,
        "description": sanitize_string(entry.description, 500) if entry.description else None,
        "created_at": now_iso(),
    }
    await db.hour_logs.insert_one(log)
    await db.projects.update_one({"id": project_id}, {"$inc": {"total_hours_logged": entry.hours}})
    await db.users.update_one({"id": volunteer_id}, {"$inc": {"hours_contributed": entry.hours}})
    log.pop("_id", None)
    return log

# ========== SAVED PROJECTS ==========
@router.post("/projects/{project_id}/save")
async def toggle_save_project(project_id: str, user: dict = Depends(require_auth)):
    await get_project_or_404(project_id)
    existing = await db.saved_projects.find_one({"user_id": user["id"], "project_id": project_id})
    if existing:
        await db.saved_projects.delete_one({"user_id": user["id"], "project_id": project_id})
        return {"saved": False}

    await db.saved_projects.insert_one({
        "id": new_id(),
        "user_id": user["id"],
        "project_id": project_id,
        "created_at": now_iso()
    })
    return {"saved": True}

@router.get("/volunteer/saved-projects")
async def get_saved_projects(user: dict = Depends(require_auth)):
    saved = await db.saved_projects.find({"user_id": user["id"]}, {"_id": 0}).sort("created_at", -1).to_list(500)
    ids = [s["project_id"] for s in saved]
    projects = await db.projects.find({"id": {"$in": ids}}, {"_id": 0}).to_list(len(ids) or 1)
    by_id = {p["id"]: p for p in projects}
    return [by_id[i] for i in ids if i in by_id]
