from fastapi import APIRouter, HTTPException, Depends
from typing import Optional
from pymongo.errors import DuplicateKeyError

import structlog

from justbecause.core.security import require_auth, get_current_user
from justbecause.db.mongo import db
from justbecause.models.social import ReviewCreate, EndorsementRequest, ReferralApply
from justbecause.services.email import new_follower_email
from justbecause.services.notifications import notify_quietly, email_quietly
from justbecause.services.referrals import get_or_create_code, apply_referral_code, referral_stats
from justbecause.services.utils import new_id, now_iso, display_name, public_user_card
from justbecause.services.validation import sanitize_string

logger = structlog.get_logger()

router = APIRouter(tags=["social"])

CARD_PROJECTION = {"_id": 0, "id": 1, "name": 1, "org_name": 1, "avatar": 1, "logo": 1, "role": 1}

async def get_user_or_404(user_id: str) -> dict:
    user = await db.users.find_one({"id": user_id}, {"_id": 0, "password_hash": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

async def user_cards(user_ids: list) -> list:
    users = await db.users.find({"id": {"$in": user_ids}}, CARD_PROJECTION).to_list(len(user_ids) or 1)
    by_id = {u["id"]: public_user_card(u) for u in users}
    return [by_id[i] for i in user_ids if i in by_id]

# ========== FOLLOWS ==========
@router.post("/follow/{target_id}")
async def follow_user(target_id: str, user: dict = Depends(require_auth)):
    if target_id == user["id"]:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    target = await get_user_or_404(target_id)

    try:
        await db.follows.insert_one({
            "id": new_id(),
            "follower_id": user["id"],
            "following_id": target_id,
            "created_at": now_iso()
        })
    except DuplicateKeyError:
        return {"following": True}

    follower_name = display_name(user)
    await notify_quietly(
        target_id, "new_follower", "New follower", f"{follower_name} started following you",
        reference_id=user["id"], reference_type="user"
    )
    await email_quietly(target, None, new_follower_email(display_name(target), follower_name))
    return {"following": True}

@router.delete("/follow/{target_id}")
async def unfollow_user(target_id: str, user: dict = Depends(require_auth)):
    await db.follows.delete_one({"follower_id": user["id"], "following_id": target_id})
    return {"following": False}

@router.get("/follow/{user_id}/stats")
async def follow_stats(user_id: str, viewer: Optional[dict] = Depends(get_current_user)):
    is_following = False
    if viewer:
        is_following = await db.follows.find_one({"follower_id": viewer["id"], "following_id": user_id}) is not None
    return {
        "followers_count": await db.follows.count_documents({"following_id": user_id}),
        "following_count": await db.follows.count_documents({"follower_id": user_id}),
        "is_following": is_following
    }

@router.get("/follow/{user_id}/followers")
async def list_followers(user_id: str):
    follows = await db.follows.find({"following_id": user_id}, {"_id": 0}).sort("created_at", -1).to_list(500)
    return await user_cards([f["follower_id"] for f in follows])

@router.get("/follow/{user_id}/following")
async def list_following(user_id: str):
    follows = await db.follows.find({"follower_id": user_id}, {"_id": 0}).sort("created_at", -1).to_list(500)
    return await user_cards([f["following_id"] for f in follows])

# ========== REVIEWS ==========
async def recompute_rating(reviewee: dict):
    reviews = await db.reviews.find({"reviewee_id": reviewee["id"]}, {"_id": 0, "rating": 1}).to_list(10000)
    average = round(sum(r["rating"] for r in reviews) / len(reviews), 2) if reviews else 0
    if reviewee.get("role") == "ngo":
        update = {"ngo_rating": average, "total_ratings": len(reviews)}
    else:
        update = {"rating": average, "total_ratings": len(reviews)}
    await db.users.update_one({"id": reviewee["id"]}, {"$set": update})

@router.post("/reviews")
async def create_review(review: ReviewCreate, user: dict = Depends(require_auth)):
    if review.reviewee_id == user["id"]:
        raise HTTPException(status_code=400, detail="You cannot review yourself")
    reviewee = await get_user_or_404(review.reviewee_id)
    project = await db.projects.find_one({"id": review.project_id}, {"_id": 0, "id": 1, "title": 1})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    review_doc = {
        "id": new_id(),
        "reviewer_id": user["id"],
        "reviewer_role": user.get("role"),
        "reviewee_id": reviewee["id"],
        "project_id": project["id"],
        "rating": review.rating,
        "comment": sanitize_string(review.comment, 2000) if review.comment else None,
        "created_at": now_iso()
    }
    try:
        await db.reviews.insert_one(review_doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="You have already reviewed this user for this project")
    review_doc.pop("_id", None)

    await recompute_rating(reviewee)
    await notify_quietly(
        reviewee["id"], "new_review", "You received a review",
        f"{display_name(user)} rated you {review.rating}/5 for \"{project['title']}\"",
        reference_id=review_doc["id"], reference_type="review"
    )
    return review_doc

async def _with_reviewers(reviews: list) -> list:
    cards = {c["id"]: c for c in await user_cards(list({r["reviewer_id"] for r in reviews}))}
    for review in reviews:
        review["reviewer"] = cards.get(review["reviewer_id"])
    return reviews

@router.get("/reviews/user/{user_id}")
async def get_user_reviews(user_id: str):
    reviews = await db.reviews.find({"reviewee_id": user_id}, {"_id": 0}).sort("created_at", -1).to_list(200)
    return await _with_reviewers(reviews)

@router.get("/reviews/project/{project_id}")
async def get_project_reviews(project_id: str):
    reviews = await db.reviews.find({"project_id": project_id}, {"_id": 0}).sort("created_at", -1).to_list(200)
    return await _with_reviewers(reviews)

# ========== ENDORSEMENTS ==========
@router.post("/endorsements")
async def endorse_skill(request: EndorsementRequest, user: dict = Depends(require_auth)):
    if request.user_id == user["id"]:
        raise HTTPException(status_code=400, detail="You cannot endorse your own skills")
    await get_user_or_404(request.user_id)

    try:
        await db.endorsements.insert_one({
            "id": new_id(),
            "endorser_id": user["id"],
            "user_id": request.user_id,
            "category_id": request.category_id,
            "subskill_id": request.subskill_id,
            "created_at": now_iso()
        })
    except DuplicateKeyError:
        return {"endorsed": True, "already_endorsed": True}
    return {"endorsed": True, "already_endorsed": False}

@router.delete("/endorsements")
async def remove_endorsement(request: EndorsementRequest, user: dict = Depends(require_auth)):
    await db.endorsements.delete_one({
        "endorser_id": user["id"],
        "user_id": request.user_id,
        "category_id": request.category_id,
        "subskill_id": request.subskill_id
    })
    return {"endorsed": False}

@router.get("/endorsements/{user_id}")
async def get_endorsements(user_id: str, viewer: Optional[dict] = Depends(get_current_user)):
    endorsements = await db.endorsements.find({"user_id": user_id}, {"_id": 0}).to_list(10000)
    counts = {}
    mine = []
    for e in endorsements:
        key = f"{e['category_id']}:{e['subskill_id']}"
        counts[key] = counts.get(key, 0) + 1
        if viewer and e["endorser_id"] == viewer["id"]:
            mine.append(key)
    return {"counts": counts, "endorsed_by_me": mine, "total": len(endorsements)}

# ========== REFERRALS ==========
@router.post("/referrals/code")
async def get_referral_code(user: dict = Depends(require_auth)):
    return {"code": await get_or_create_code(user["id"])}

@router.get("/referrals/stats")
async def get_referral_stats(user: dict = Depends(require_auth)):
    return await referral_stats(user["id"])

@router.post("/referrals/apply")
async def apply_referral(request: ReferralApply, user: dict = Depends(require_auth)):
    await apply_referral_code(user, request.code)
    return {"message": "Referral code applied"}
