import structlog
from fastapi import HTTPException

from justbecause.db.mongo import db
from justbecause.services.notifications import notify_quietly
from justbecause.services.utils import new_id, now_iso, generate_code

logger = structlog.get_logger()

# Referral lifecycle: pending (code issued) -> signed_up (code used) -> completed (referee onboarded)

async def get_or_create_code(user_id: str) -> str:
    existing = await db.referrals.find_one(
        {"referrer_id": user_id, "status": "pending", "referred_user_id": None}, {"_id": 0}
    )
    if existing:
        return existing["code"]

    code = generate_code()
    while await db.referrals.find_one({"code": code}):
        code = generate_code()

    await db.referrals.insert_one({
        "id": new_id(),
        "referrer_id": user_id,
        "code": code,
        "status": "pending",
        "referred_user_id": None,
        "reward_granted": False,
        "created_at": now_iso()
    })
    return code

async def apply_referral_code(user: dict, code: str):
    code = (code or "").strip().upper()
    referral = await db.referrals.find_one({"code": code}, {"_id": 0})
    if not referral:
        raise HTTPException(status_code=404, detail="Invalid referral code")
    if referral["referrer_id"] == user["id"]:
        raise HTTPException(status_code=400, detail="Cannot use your own referral code")
    if await db.referrals.find_one({"referred_user_id": user["id"]}):
        raise HTTPException(status_code=400, detail="You have already used a referral code")
    if referral.get("referred_user_id"):
        raise HTTPException(status_code=400, detail="This referral code has already been used")

    await db.referrals.update_one(
        {"id": referral["id"]},
        {"$set": {"status": "signed_up", "referred_user_id": user["id"], "signed_up_at": now_iso()}}
    )
    logger.info("Referral code applied", code=code, referrer_id=referral["referrer_id"], user_id=user["id"])
    await notify_quietly(
        referral["referrer_id"], "referral", "Referral Signed Up!",
        f"Someone signed up using your referral code {code}",
        reference_id=code, reference_type="referral", link="/volunteer/referrals"
    )

async def complete_referral(user_id: str):
    referral = await db.referrals.find_one({"referred_user_id": user_id, "status": "signed_up"}, {"_id": 0})
    if not referral:
        return
    await db.referrals.update_one(
        {"id": referral["id"]},
        {"$set": {"status": "completed", "completed_at": now_iso()}}
    )
    await notify_quietly(
        referral["referrer_id"], "referral", "Referral Completed!",
        "Someone you referred has completed their onboarding! Keep sharing to earn more rewards.",
        reference_id=referral["code"], reference_type="referral", link="/volunteer/referrals"
    )

async def referral_stats(user_id: str) -> dict:
    referrals = await db.referrals.find({"referrer_id": user_id}, {"_id": 0}).sort("created_at", -1).to_list(500)
    return {
        "total_referrals": len(referrals),
        "signed_up": len([r for r in referrals if r["status"] in ("signed_up", "completed")]),
        "completed": len([r for r in referrals if r["status"] == "completed"]),
        "codes": [r["code"] for r in referrals if r["status"] == "pending"],
        "referrals": referrals,
    }
