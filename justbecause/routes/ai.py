from fastapi import APIRouter, HTTPException, Depends

from justbecause.core.rate_limit import rate_limit
from justbecause.core.security import require_auth, require_role
from justbecause.db.mongo import db
from justbecause.models.ai import (
    BioRequest, CoverLetterRequest, SkillSuggestionRequest, ProjectDescriptionRequest, MatchExplanationRequest,
)
from justbecause.services.ai import (
    call_openai, bio_prompt, cover_letter_prompt, skill_suggestions_prompt,
    project_description_prompt, match_explanation_prompt,
)
from justbecause.services.matching import match_volunteers_to_project
from justbecause.services.utils import display_name

router = APIRouter(prefix="/ai", tags=["ai"], dependencies=[Depends(rate_limit("ai", "ai"))])

def skill_names(skills: list) -> list:
    return [s["subskill_id"] for s in skills or [] if s.get("subskill_id")]

async def _project_or_404(project_id: str) -> dict:
    project = await db.projects.find_one({"id": project_id}, {"_id": 0})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project

@router.post("/bio-generator")
async def generate_bio(request: BioRequest, user: dict = Depends(require_auth)):
    prompt = bio_prompt(
        request.name or user.get("name"),
        request.skills or skill_names(user.get("skills")),
        request.causes or user.get("causes") or [],
        request.completed_projects or user.get("completed_projects", 0),
        request.hours_contributed or user.get("hours_contributed", 0),
        request.location or user.get("location"),
        request.current_bio or user.get("bio"),
    )
    return await call_openai(prompt)

@router.post("/cover-letter")
async def generate_cover_letter(request: CoverLetterRequest, user: dict = Depends(require_role("volunteer"))):
    project = await _project_or_404(request.project_id)
    prompt = cover_letter_prompt(
        user.get("name"), skill_names(user.get("skills")), user.get("bio"),
        project["title"], project["description"], project.get("ngo_name"),
        skill_names(project.get("skills_required")),
    )
    return await call_openai(prompt)

@router.post("/skill-suggestions")
async def suggest_skills(request: SkillSuggestionRequest, user: dict = Depends(require_auth)):
    prompt = skill_suggestions_prompt(
        request.skills or skill_names(user.get("skills")),
        request.causes or user.get("causes") or [],
        request.bio or user.get("bio"),
        request.interests,
    )
    return await call_openai(prompt)

@router.post("/project-description")
async def generate_project_description(request: ProjectDescriptionRequest, user: dict = Depends(require_role("ngo"))):
    prompt = project_description_prompt(
        request.title, display_name(user), request.causes, request.skills,
        request.rough_description, request.work_mode, request.duration,
    )
    return await call_openai(prompt)

@router.post("/match-explanation")
async def explain_match(request: MatchExplanationRequest, user: dict = Depends(require_auth)):
    project = await _project_or_404(request.project_id)
    volunteer_id = request.volunteer_id or user["id"]
    if volunteer_id != user["id"] and user.get("role") != "admin" and project["ngo_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Not authorized to explain this match")

    volunteer = await db.users.find_one({"id": volunteer_id, "role": "volunteer"}, {"_id": 0, "password_hash": 0})
    if not volunteer:
        raise HTTPException(status_code=404, detail="Impact Agent not found")

    matches = match_volunteers_to_project(project, [{**volunteer, "is_active": True}])
    score = matches[0]["score"]
    prompt = match_explanation_prompt(
        score, skill_names(volunteer.get("skills")), volunteer.get("bio"), volunteer.get("location"),
        project["title"], project["description"], skill_names(project.get("skills_required")),
    )
    result = await call_openai(prompt)
    return {**result, "score": score, "breakdown": matches[0]["breakdown"]}
