import json
from typing import Any, Dict, List, Optional

import httpx
import structlog
from fastapi import HTTPException

from justbecause.core.config import OPENAI_API_KEY, OPENAI_MODEL

logger = structlog.get_logger()

OPENAI_URL = "https://api.openai.com/v1/chat/completions"

SYSTEM_PROMPT = (
    "You are an assistant for JustBeCause Network, a platform connecting skilled "
    "volunteers (Impact Agents) with NGOs. Always answer with a single JSON object "
    "matching the requested fields. Be honest and never invent experience."
)


async def call_openai(prompt: str, system_prompt: str = SYSTEM_PROMPT, api_key: str = None,
                      model: str = None) -> Dict[str, Any]:
    """Call OpenAI chat completions and parse the JSON object it returns."""
    api_key = api_key or OPENAI_API_KEY
    if not api_key:
        raise HTTPException(status_code=503, detail="AI features are not configured")

    payload = {
        "model": model or OPENAI_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ],
        "response_format": {"type": "json_object"},
        "temperature": 0.7,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }

    try:
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(OPENAI_URL, headers=headers, json=payload)
            response.raise_for_status()
            data = response.json()
        content = data["choices"][0]["message"]["content"]
        result = json.loads(content)
    except (httpx.HTTPError, KeyError, IndexError, json.JSONDecodeError) as e:
        logger.error("AI request failed", error=str(e), model=payload["model"])
        raise HTTPException(status_code=502, detail="AI provider request failed")

    logger.info(
        "AI request completed",
        model=payload["model"],
        tokens_in=data.get("usage", {}).get("prompt_tokens", 0),
        tokens_out=data.get("usage", {}).get("completion_tokens", 0),
    )
    return result


def _join(values: Optional[List[str]]) -> str:
    return ", ".join(values) if values else "Not specified"


# ========== PROMPTS ==========

def bio_prompt(name: str, skills: List[str], causes: List[str], completed_projects: int,
               hours_contributed: float, location: str, current_bio: str) -> str:
    experience = ""
    if not completed_projects and not hours_contributed:
        experience = (
            "\nThis volunteer has 0 completed projects and 0 hours. Do not mention a track record "
            "or extensive experience. Focus on skills and what they can offer."
        )
    elif completed_projects <= 2:
        experience = (
            f"\nThis volunteer has only {completed_projects} project(s) and {hours_contributed} hours. "
            "Keep the experience proportionate."
        )
    return f"""Generate an honest professional bio for a volunteer on a social impact platform.

VOLUNTEER:
- Name: {name or "Not specified"}
- Skills: {_join(skills)}
- Causes: {_join(causes)}
- Completed projects: {completed_projects}
- Hours contributed: {hours_contributed}
- Location: {location or "Not specified"}
- Current bio: {current_bio or "None"}
{experience}

Return JSON with: "bio" (80-150 words), "headline" (one line), "highlights" (2-4 items based on actual data), "keywords" (5-7 items)."""


def cover_letter_prompt(volunteer_name: str, skills: List[str], bio: str, project_title: str,
                        project_description: str, ngo_name: str, required_skills: List[str]) -> str:
    return f"""Generate a professional cover letter for a volunteer applying to an NGO project.

VOLUNTEER:
- Name: {volunteer_name or "Not specified"}
- Skills: {_join(skills)}
- Bio: {bio or "Not provided"}

PROJECT:
- Title: {project_title}
- Organization: {ngo_name or "Not specified"}
- Description: {project_description}
- Required skills: {_join(required_skills)}

Keep it under 200 words and only reference skills the volunteer actually has.
Return JSON with: "cover_letter", "key_points" (2-4 items)."""


def skill_suggestions_prompt(skills: List[str], causes: List[str], bio: str, interests: str) -> str:
    return f"""Analyze a volunteer's profile and suggest skills they should add to become more valuable for NGO projects.

CURRENT SKILLS: {_join(skills)}
CAUSES: {_join(causes)}
BIO: {bio or "Not provided"}
INTERESTS: {interests or "Not specified"}

Return JSON with: "suggested_skills" (3-6 items, each {{"name", "reason", "demand"}} where demand is high/medium/low), "learning_resources" (2-4 items)."""


def project_description_prompt(title: str, ngo_name: str, causes: List[str], skills: List[str],
                               rough_description: str, work_mode: str, duration: str) -> str:
    return f"""Help an NGO create a compelling project posting that will attract skilled volunteers.

- Title: {title or "Not specified"}
- Organization: {ngo_name or "Not specified"}
- Causes: {_join(causes)}
- Skills needed: {_join(skills)}
- Work mode: {work_mode or "Not specified"}
- Duration: {duration or "Not specified"}
- Draft description: {rough_description or "None"}

Return JSON with: "title", "description" (150-300 words), "deliverables" (3-5 items), "ideal_candidate" (one paragraph)."""


def match_explanation_prompt(score: float, volunteer_skills: List[str], volunteer_bio: str,
                             volunteer_location: str, project_title: str, project_description: str,
                             project_skills: List[str]) -> str:
    if score >= 70:
        tier, tone = "HIGH (70-100%)", "This is a strong match. Highlight the specific skill overlaps."
    elif score >= 45:
        tier, tone = "MODERATE (45-69%)", "This is a partial match. Name the overlaps and clearly state what is missing."
    elif score >= 20:
        tier, tone = "LOW (20-44%)", "This is a weak match. Be straightforward about the significant skill gaps."
    else:
        tier, tone = "VERY LOW (below 20%)", "This is a poor match. Explain plainly why it is not a good fit."

    return f"""Analyze the match between a volunteer and an NGO project. The algorithm scored it {score}% ({tier}).
Your explanation must be consistent with that score. {tone}

VOLUNTEER:
- Skills: {_join(volunteer_skills)}
- Bio: {volunteer_bio or "Not provided"}
- Location: {volunteer_location or "Not specified"}

PROJECT:
- Title: {project_title}
- Description: {project_description}
- Required skills: {_join(project_skills)}

Below 25%, "compatibility" must be "Weak" or "Poor" and "strengths" should be minimal.
Return JSON with: "explanation" (2-4 sentences), "strengths" (0-3 items), "gaps" (0-4 items), "compatibility" (one of Excellent, Strong, Good, Fair, Weak, Poor)."""
