from fastapi import APIRouter, HTTPException, Depends, Query

from justbecause.core.security import require_auth, require_role
from justbecause.db.mongo import db
from justbecause.routes.projects import get_project_or_404, can_manage
from justbecause.services.matching import (
    match_volunteers_to_project, match_opportunities_to_volunteer, recommended_volunteers, match_label,
    meets_minimum_requirements,
)
from justbecause.services.profiles import volunteer_views_for
from justbecause.services.subscriptions import is_pro

router = APIRouter(tags=["matching"])

MATCHED_VOLUNTEERS_LIMIT = 20

def volunteer_pool_query(viewer: dict) -> dict:
    query = {"role": "volunteer", "has_volunteer_profile": True, "is_banned": {"$ne": True}}
    # Free-plan NGOs only get paid volunteers, whose profiles are always open
    if viewer.get("role") == "ngo" and not is_pro(viewer):
        query["volunteer_type"] = "paid"
    return query

async def _present_volunteer_matches(matches: list, viewer: dict) -> list:
    views = await volunteer_views_for([m["volunteer"] for m in matches], viewer)
    return [
        {
            "volunteer_id": match["volunteer_id"],
            "volunteer": view,
            "score": match["score"],
            "label": match_label(match["score"]),
            "breakdown": match["breakdown"],
        }
        for match, view in zip(matches, views)
    ]

@router.get("/projects/{project_id}/matched-volunteers")
async def get_matched_volunteers(project_id: str, user: dict = Depends(require_auth)):
    project = await get_project_or_404(project_id)
    if not can_manage(project, user):
        raise HTTPException(status_code=403, detail="Not authorized to view matches for this project")

    volunteers = await db.users.find(volunteer_pool_query(user), {"_id": 0, "password_hash": 0}).to_list(5000)
    matches = match_volunteers_to_project(project, volunteers)[:MATCHED_VOLUNTEERS_LIMIT]
    return await _present_volunteer_matches(matches, user)

@router.get("/volunteer/matched-opportunities")
async def get_matched_opportunities(
    limit: int = Query(20, ge=1, le=100),
    qualified_only: bool = False,
    user: dict = Depends(require_role("volunteer"))
):
    projects = await db.projects.find({"status": "active"}, {"_id": 0}).to_list(2000)
    if qualified_only:
        projects = [p for p in projects if meets_minimum_requirements(user, p)]

    ngo_ids = list({p["ngo_id"] for p in projects})
    ngos = await db.users.find(
        {"id": {"$in": ngo_ids}}, {"_id": 0, "id": 1, "is_verified": 1, "ngo_rating": 1}
    ).to_list(len(ngo_ids) or 1)
    ngo_by_id = {n["id"]: n for n in ngos}
    for project in projects:
        ngo = ngo_by_id.get(project["ngo_id"], {})
        project["ngo"] = {"is_verified": ngo.get("is_verified", False), "rating": ngo.get("ngo_rating") or 0}

    matches = match_opportunities_to_volunteer(user, projects)[:limit]
    return [
        {
            "project_id": match["project_id"],
            "project": match["project"],
            "score": match["score"],
            "label": match_label(match["score"]),
            "breakdown": match["breakdown"],
        }
        for match in matches
    ]

@router.get("/ngo/recommended-volunteers")
async def get_recommended_volunteers(
    limit: int = Query(10, ge=1, le=50),
    user: dict = Depends(require_role("ngo"))
):
    volunteers = await db.users.find(volunteer_pool_query(user), {"_id": 0, "password_hash": 0}).to_list(5000)
    matches = recommended_volunteers(
        user.get("typical_skills_needed") or [], user.get("causes") or [], volunteers, limit
    )
    return await _present_volunteer_matches(matches, user)
