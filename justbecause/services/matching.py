"""
Volunteer / opportunity matching.

Scoring is two-phase. Skills decide the tier a candidate lands in; context
signals (location, hours, causes, experience) and tiebreakers (track record,
availability, urgency, NGO quality) order candidates within a tier. Missing
must-have skills compound a 25% penalty each and weak skill scores cap the
final score, so a candidate without relevant skills never ranks high.

All functions are pure and operate on plain Mongo documents.
"""
import math
import re
from functools import cmp_to_key
from datetime import datetime, timezone
from typing import Dict, List, Optional

from justbecause.services.utils import parse_datetime

# categoryId -> related categoryIds with similarity weight
CATEGORY_SIMILARITY: Dict[str, Dict[str, float]] = {
    "website": {
        "digital-marketing": 0.25,
        "content-creation": 0.15,
    },
    "digital-marketing": {
        "website": 0.20,
        "content-creation": 0.30,
        "communication": 0.25,
    },
    "content-creation": {
        "digital-marketing": 0.25,
        "communication": 0.30,
        "website": 0.10,
    },
    "communication": {
        "content-creation": 0.25,
        "digital-marketing": 0.20,
        "fundraising": 0.15,
    },
    "fundraising": {
        "communication": 0.20,
        "finance": 0.15,
    },
    "finance": {
        "fundraising": 0.10,
        "planning-support": 0.10,
    },
    "planning-support": {
        "communication": 0.15,
        "finance": 0.10,
    },
}

LEVEL_VALUE = {"beginner": 1, "intermediate": 2, "expert": 3}
LEVEL_ORDER = ["beginner", "intermediate", "expert"]

EXACT_LEVEL_MULTIPLIER = {"beginner": 0.60, "intermediate": 0.80, "expert": 1.0}
SAME_CATEGORY_LEVEL_SCORE = {"beginner": 20, "intermediate": 30, "expert": 40}
MUST_HAVE_LEVEL_BONUS = {"beginner": 0.7, "intermediate": 0.85, "expert": 1.0}

HOURS_PER_WEEK = {
    "1-5": 3,
    "5-10": 7.5,
    "10-15": 12.5,
    "15-20": 17.5,
    "20-30": 25,
    "30+": 35,
    "full-time": 40,
}

_PROJECT_HOURS_RE = re.compile(r"(\d+)[-–]?(\d+)?")


def _is_must_have(required: dict) -> bool:
    return required.get("priority") == "must-have"


def _exact(skills: List[dict], required: dict) -> Optional[dict]:
    for s in skills:
        if s.get("category_id") == required.get("category_id") and s.get("subskill_id") == required.get("subskill_id"):
            return s
    return None


def _same_category(skills: List[dict], category_id: str) -> List[dict]:
    return [s for s in skills if s.get("category_id") == category_id]


def _round2(value: float) -> float:
    return round(value * 100) / 100


def _days_between(later: datetime, earlier: datetime) -> int:
    return math.floor((later - earlier).total_seconds() / 86400)


# ========== SKILL SCORING ==========

def deep_skill_match(required_skills: List[dict], volunteer_skills: List[dict]) -> dict:
    """
    Score a volunteer's skills against a project's requirements (0-100).

    Per required skill: exact subskill (by level 60/80/100), same category
    (by best level 20/30/40), related category (similarity * 30) or nothing.
    Must-haves weigh 3x.
    """
    if not required_skills:
        return {"score": 100, "must_haves_missing": 0, "matched_count": 0, "total_required": 0}

    total_weighted = 0.0
    total_weight = 0
    must_haves_missing = 0
    matched_count = 0

    for required in required_skills:
        must_have = _is_must_have(required)
        weight = 3 if must_have else 1
        total_weight += weight

        exact = _exact(volunteer_skills, required)
        if exact:
            total_weighted += weight * EXACT_LEVEL_MULTIPLIER.get(exact.get("level"), 0.70) * 100
            matched_count += 1
            continue

        same_category = sorted(
            _same_category(volunteer_skills, required.get("category_id")),
            key=lambda s: LEVEL_VALUE.get(s.get("level"), 0),
            reverse=True,
        )
        if same_category:
            total_weighted += weight * SAME_CATEGORY_LEVEL_SCORE.get(same_category[0].get("level"), 25)
            continue

        best_related = 0.0
        for related_id, similarity in CATEGORY_SIMILARITY.get(required.get("category_id"), {}).items():
            if _same_category(volunteer_skills, related_id):
                best_related = max(best_related, similarity * 30)
        if best_related > 0:
            total_weighted += weight * best_related
            continue

        if must_have:
            must_haves_missing += 1

    raw = total_weighted / total_weight if total_weight > 0 else 0
    return {
        "score": min(100, raw),
        "must_haves_missing": must_haves_missing,
        "matched_count": matched_count,
        "total_required": len(required_skills),
    }


def volunteer_skill_fit(volunteer_skills: List[dict], required_skills: List[dict]) -> dict:
    """How well a volunteer's skills fit a project, from the volunteer's side."""
    if not required_skills:
        # Unspecific projects get a neutral score
        return {"score": 40, "must_haves_met": 0, "total_must_haves": 0}

    must_haves = [s for s in required_skills if _is_must_have(s)]
    nice_to_haves = [s for s in required_skills if not _is_must_have(s)]

    must_have_score = 0.0
    must_haves_met = 0
    for req in must_haves:
        exact = _exact(volunteer_skills, req)
        if exact:
            must_have_score += MUST_HAVE_LEVEL_BONUS.get(exact.get("level"), 0.75)
            must_haves_met += 1
        elif _same_category(volunteer_skills, req.get("category_id")):
            must_have_score += 0.3

    nice_score = 0.0
    for req in nice_to_haves:
        if _exact(volunteer_skills, req):
            nice_score += 1
        elif _same_category(volunteer_skills, req.get("category_id")):
            nice_score += 0.25

    must_pct = (must_have_score / len(must_haves)) * 100 if must_haves else 100
    nice_pct = (nice_score / len(nice_to_haves)) * 100 if nice_to_haves else 100

    if must_haves and nice_to_haves:
        combined = must_pct * 0.7 + nice_pct * 0.3
    elif must_haves:
        combined = must_pct
    else:
        combined = nice_pct

    return {
        "score": min(100, combined),
        "must_haves_met": must_haves_met,
        "total_must_haves": len(must_haves),
    }


# ========== CONTEXT SIGNALS ==========

def location_score(volunteer_mode: str, project_mode: str,
                   volunteer_location: str = None, project_location: str = None) -> float:
    if project_mode == "remote":
        return 100
    if volunteer_mode == "remote":
        return 95

    if volunteer_mode == "hybrid" and project_mode == "hybrid":
        return 100
    if volunteer_mode == "hybrid" or project_mode == "hybrid":
        return 80

    if project_mode == "onsite" and volunteer_mode == "onsite":
        if not project_location or not volunteer_location:
            return 40

        v_loc = volunteer_location.lower().strip()
        p_loc = project_location.lower().strip()
        if v_loc == p_loc:
            return 100

        v_city = v_loc.split(",")[0].strip()
        p_city = p_loc.split(",")[0].strip()
        if v_city == p_city:
            return 100
        if v_city in p_city or p_city in v_city:
            return 90

        v_country = v_loc.split(",")[-1].strip()
        p_country = p_loc.split(",")[-1].strip()
        if v_country and p_country and v_country == p_country:
            return 55
        return 15

    return 40


def hours_score(volunteer_hours: str, project_hours: str) -> float:
    """Can the volunteer commit the weekly hours the project asks for?"""
    project_avg = 10.0
    match = _PROJECT_HOURS_RE.search(project_hours or "")
    if match:
        low = int(match.group(1))
        high = int(match.group(2)) if match.group(2) else low
        project_avg = (low + high) / 2

    volunteer_avg = HOURS_PER_WEEK.get(volunteer_hours) or 10

    if volunteer_avg >= project_avg:
        return 100
    if volunteer_avg >= project_avg * 0.8:
        return 85
    if volunteer_avg >= project_avg * 0.5:
        return 60
    return max(10, (volunteer_avg / project_avg) * 100)


def cause_score(volunteer_causes: List[str], project_causes: List[str]) -> float:
    if not project_causes or not volunteer_causes:
        return 40

    matched = [c for c in project_causes if c in volunteer_causes]
    ratio = len(matched) / len(project_causes)

    if ratio >= 1.0:
        return 100
    if ratio >= 0.5:
        return 75 + (ratio - 0.5) * 50
    if ratio > 0:
        return 40 + ratio * 70
    return 5


def experience_fit_score(volunteer_skills: List[dict], required_skills: List[dict], required_level: str) -> float:
    """Compare the best relevant skill level against the project's required level."""
    if not required_level or required_level == "any":
        return 80
    if required_level not in LEVEL_ORDER:
        return 80
    required_index = LEVEL_ORDER.index(required_level)

    required_categories = {rs.get("category_id") for rs in required_skills}
    relevant = [vs for vs in volunteer_skills if vs.get("category_id") in required_categories]
    if not relevant:
        return 30

    best_index = max(LEVEL_VALUE.get(s.get("level"), 1) for s in relevant) - 1
    if best_index >= required_index:
        return 100
    if best_index == required_index - 1:
        return 65
    return 30


# ========== TIEBREAKERS ==========

def track_record_score(volunteer: dict) -> float:
    score = 0.0

    rating = volunteer.get("rating") or 0
    rating_count = volunteer.get("total_ratings") or 0
    if rating_count > 0:
        # Bayesian average with a prior of 3.0 over 3 reviews
        bayesian = (rating * rating_count + 3.0 * 3) / (rating_count + 3)
        score += (bayesian / 5) * 35
    else:
        score += 15

    score += min(30, (volunteer.get("completed_projects") or 0) * 6)
    score += min(20, math.sqrt(volunteer.get("hours_contributed") or 0) * 2)

    completeness = 0
    if volunteer.get("bio") and len(volunteer["bio"]) > 30:
        completeness += 3
    if volunteer.get("linkedin_url"):
        completeness += 3
    if volunteer.get("portfolio_url"):
        completeness += 3
    if len(volunteer.get("skills") or []) >= 3:
        completeness += 3
    if len(volunteer.get("causes") or []) >= 2:
        completeness += 3
    score += completeness

    return min(100, score)


def availability_score(volunteer: dict, now: datetime = None) -> float:
    now = now or datetime.now(timezone.utc)

    availability = volunteer.get("availability") or "flexible"
    if availability in ("flexible", "weekdays"):
        score = 90
    elif availability in ("weekends", "evenings"):
        score = 75
    else:
        score = 60

    last_active = parse_datetime(volunteer.get("last_active_at") or volunteer.get("updated_at"))
    if last_active:
        days = _days_between(now, last_active)
        if days <= 3:
            score = min(100, score + 10)
        elif days <= 14:
            score = min(100, score + 5)
        elif days > 90:
            score = max(0, score - 15)

    if volunteer.get("is_verified"):
        score = min(100, score + 5)

    return score


def urgency_score(deadline, now: datetime = None) -> float:
    deadline_at = parse_datetime(deadline)
    if not deadline_at:
        return 50
    days = _days_between(deadline_at, now or datetime.now(timezone.utc))
    if days < 0:
        return 20
    if days <= 7:
        return 100
    if days <= 14:
        return 80
    if days <= 30:
        return 60
    return 40


def ngo_quality_score(project: dict) -> float:
    ngo = project.get("ngo") or {}
    score = 50
    if ngo.get("is_verified"):
        score += 30
    if (ngo.get("rating") or 0) >= 4:
        score += 20
    return min(100, score)


# ========== COMPOSITION ==========

def compose_final_score(skill: float, context: Dict[str, float], tiebreaker: float, must_haves_missing: int) -> float:
    """
    final = skill * 0.55 + context * 0.25 + tiebreaker * 0.20

    Each missing must-have multiplies by 0.75. Skill scores below 5, 15 and 30
    cap the result at 12, 25 and 45.
    """
    context_score = (
        context["location"] * 0.25
        + context["hours"] * 0.25
        + context["cause"] * 0.30
        + context["experience"] * 0.20
    )

    final = skill * 0.55 + context_score * 0.25 + tiebreaker * 0.20

    if must_haves_missing > 0:
        final *= 0.75 ** must_haves_missing

    if skill < 5:
        final = min(final, 12)
    elif skill < 15:
        final = min(final, 25)
    elif skill < 30:
        final = min(final, 45)

    return _round2(max(0, min(100, final)))


def _sort_matches(matches: List[dict]) -> List[dict]:
    """Score descending; scores within 0.01 of each other fall back to skill match."""
    def compare(a, b):
        if abs(b["score"] - a["score"]) < 0.01:
            diff = b["breakdown"]["skill_match"] - a["breakdown"]["skill_match"]
        else:
            diff = b["score"] - a["score"]
        return (diff > 0) - (diff < 0)

    return sorted(matches, key=cmp_to_key(compare))


def _context(volunteer: dict, project: dict) -> Dict[str, float]:
    required = project.get("skills_required") or []
    return {
        "location": location_score(
            volunteer.get("work_mode"), project.get("work_mode"),
            volunteer.get("location"), project.get("location"),
        ),
        "hours": hours_score(volunteer.get("hours_per_week"), project.get("time_commitment")),
        "cause": cause_score(volunteer.get("causes") or [], project.get("causes") or []),
        "experience": experience_fit_score(volunteer.get("skills") or [], required, project.get("experience_level")),
    }


def match_volunteers_to_project(project: dict, volunteers: List[dict], now: datetime = None) -> List[dict]:
    """Rank volunteers for a project (NGO view). Inactive volunteers are skipped."""
    results = []
    for volunteer in volunteers:
        if volunteer.get("is_active") is False:
            continue

        skill = deep_skill_match(project.get("skills_required") or [], volunteer.get("skills") or [])
        context = _context(volunteer, project)
        tiebreaker = track_record_score(volunteer) * 0.6 + availability_score(volunteer, now) * 0.4

        score = compose_final_score(skill["score"], context, tiebreaker, skill["must_haves_missing"])
        results.append({
            "volunteer_id": volunteer["id"],
            "volunteer": volunteer,
            "score": score,
            "breakdown": {
                "skill_match": _round2(skill["score"]),
                "location_match": _round2(context["location"]),
                "hours_match": _round2(context["hours"]),
                "cause_match": _round2(context["cause"]),
                "experience_match": _round2(context["experience"]),
            },
        })
    return _sort_matches(results)


def match_opportunities_to_volunteer(volunteer: dict, projects: List[dict], now: datetime = None) -> List[dict]:
    """Rank active projects for a volunteer."""
    results = []
    for project in projects:
        if project.get("status") != "active":
            continue

        skill = volunteer_skill_fit(volunteer.get("skills") or [], project.get("skills_required") or [])
        context = _context(volunteer, project)
        tiebreaker = urgency_score(project.get("deadline"), now) * 0.5 + ngo_quality_score(project) * 0.5

        missed = skill["total_must_haves"] - skill["must_haves_met"]
        score = compose_final_score(skill["score"], context, tiebreaker, missed)
        results.append({
            "project_id": project.get("id", ""),
            "project": project,
            "score": score,
            "breakdown": {
                "skill_match": _round2(skill["score"]),
                "work_mode_match": _round2(context["location"]),
                "hours_match": _round2(context["hours"]),
                "cause_match": _round2(context["cause"]),
            },
        })
    return _sort_matches(results)


def recommended_volunteers(typical_skills: List[dict], causes: List[str], volunteers: List[dict], limit: int = 10) -> List[dict]:
    """General recommendations for an NGO from its typical skill needs and causes."""
    results = []
    for volunteer in volunteers:
        if volunteer.get("is_active") is False:
            continue

        skill = deep_skill_match(typical_skills, volunteer.get("skills") or [])
        cause = cause_score(volunteer.get("causes") or [], causes)
        score = skill["score"] * 0.50 + cause * 0.25 + track_record_score(volunteer) * 0.25

        if skill["score"] < 5:
            score = min(score, 12)
        elif skill["score"] < 15:
            score = min(score, 25)

        if skill["must_haves_missing"] > 0:
            score *= 0.75 ** skill["must_haves_missing"]

        results.append({
            "volunteer_id": volunteer["id"],
            "volunteer": volunteer,
            "score": _round2(max(0, min(100, score))),
            "breakdown": {
                "skill_match": _round2(skill["score"]),
                "location_match": 100,
                "hours_match": 100,
                "cause_match": _round2(cause),
                "experience_match": 100,
            },
        })
    return _sort_matches(results)[:limit]


def meets_minimum_requirements(volunteer: dict, project: dict, min_skill_match: float = 25) -> bool:
    skill = volunteer_skill_fit(volunteer.get("skills") or [], project.get("skills_required") or [])
    return skill["score"] >= min_skill_match


def match_label(score: float) -> str:
    if score >= 85:
        return "Excellent Match"
    if score >= 65:
        return "Strong Match"
    if score >= 45:
        return "Good Match"
    if score >= 25:
        return "Partial Match"
    return "Low Match"
