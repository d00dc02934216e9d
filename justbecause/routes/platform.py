from fastapi import APIRouter, HTTPException, Header
from typing import Optional
from pymongo.errors import PyMongoError

import structlog

from justbecause.core.config import APP_NAME, APP_VERSION
from justbecause.db.mongo import db
from justbecause.services.i18n import LOCALES, get_dictionary, negotiate_locale, text_direction

logger = structlog.get_logger()

router = APIRouter(tags=["platform"])

# ========== HEALTH ==========
@router.get("/health")
async def health():
    try:
        await db.command("ping")
    except PyMongoError as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"status": "ok", "service": APP_NAME, "version": APP_VERSION}

# ========== IMPACT ==========
@router.get("/impact")
async def platform_impact():
    volunteers = await db.users.find(
        {"role": "volunteer", "has_volunteer_profile": True}, {"_id": 0, "hours_contributed": 1}
    ).to_list(100000)
    return {
        "volunteers": len(volunteers),
        "ngos": await db.users.count_documents({"role": "ngo", "has_ngo_profile": True}),
        "projects": await db.projects.count_documents({}),
        "active_projects": await db.projects.count_documents({"status": {"$in": ["active", "open"]}}),
        "completed_projects": await db.projects.count_documents({"status": "completed"}),
        "hours_contributed": sum(v.get("hours_contributed") or 0 for v in volunteers),
        "applications": await db.applications.count_documents({}),
    }

# ========== I18N ==========
@router.get("/i18n/negotiate")
async def negotiate(accept_language: Optional[str] = Header(default=None)):
    locale = negotiate_locale(accept_language)
    return {"locale": locale, "dir": text_direction(locale)}

@router.get("/i18n/{locale}")
async def get_messages(locale: str):
    locale = locale.lower()
    if locale not in LOCALES:
        raise HTTPException(status_code=404, detail="Locale not supported")
    return {"locale": locale, "dir": text_direction(locale), "messages": get_dictionary(locale)}
