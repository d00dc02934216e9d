from fastapi import APIRouter, HTTPException, Depends
from datetime import datetime, timezone, timedelta
import hashlib
import secrets

import structlog

from justbecause.core.config import OTP_EXPIRATION_MINUTES, OTP_MAX_ATTEMPTS
from justbecause.core.rate_limit import rate_limit
from justbecause.core.security import hash_password, verify_password, create_access_token, require_auth
from justbecause.db.mongo import db
from justbecause.models.user import (
    UserCreate, UserLogin, TokenResponse, UserResponse, SelectRoleRequest,
    ChangePasswordRequest, SendOtpRequest, VerifyOtpRequest, ResetPasswordRequest,
)
from justbecause.services.email import send_email, otp_email, welcome_email
from justbecause.services.notifications import email_quietly
from justbecause.services.profiles import delete_user_data
from justbecause.services.referrals import apply_referral_code, complete_referral
from justbecause.services.subscriptions import next_reset_date
from justbecause.services.utils import format_user_response, new_id, now_iso, parse_datetime

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])

def _hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()

def new_user_doc(email: str, name: str, password: str, role: str = "user") -> dict:
    now = datetime.now(timezone.utc)
    return {
        "id": new_id(),
        "email": email.lower(),
        "name": name.strip(),
        "password_hash": hash_password(password),
        "role": role,
        "is_onboarded": False,
        "email_verified": False,
        "is_verified": False,
        "is_banned": False,
        "is_active": True,
        "session_version": 0,
        "subscription_plan": "free",
        "subscription_expiry": None,
        "subscription_reset_date": next_reset_date(now).isoformat(),
        "monthly_applications_used": 0,
        "monthly_projects_posted": 0,
        "monthly_unlocks_used": 0,
        "privacy": {},
        "created_at": now.isoformat(),
        "updated_at": now.isoformat(),
        "last_active_at": now.isoformat(),
    }

@router.post("/register", response_model=TokenResponse)
async def register(user_data: UserCreate):
    # Check if email exists
    existing_user = await db.users.find_one({"email": user_data.email.lower()})
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    user_doc = new_user_doc(user_data.email, user_data.name, user_data.password, user_data.role or "user")
    await db.users.insert_one(user_doc)
    user_doc.pop("_id", None)
    logger.info("User registered", user_id=user_doc["id"], role=user_doc["role"])

    if user_data.referral_code:
        try:
            await apply_referral_code(user_doc, user_data.referral_code)
        except HTTPException as e:
            # An invalid code must not block sign-up
            logger.info("Referral code ignored at sign-up", user_id=user_doc["id"], reason=e.detail)

    await email_quietly(user_doc, None, welcome_email(user_doc["name"], user_doc["role"]))

    token = create_access_token(user_doc["id"], 0)
    return TokenResponse(
        access_token=token,
        user=format_user_response(user_doc)
    )

@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin):
    user = await db.users.find_one({"email": credentials.email.lower()}, {"_id": 0})
    if not user or not verify_password(credentials.password, user.get('password_hash')):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if user.get("is_banned"):
        raise HTTPException(status_code=403, detail="Account suspended")

    await db.users.update_one({"id": user["id"]}, {"$set": {"last_active_at": now_iso()}})

    token = create_access_token(user['id'], user.get("session_version", 0))
    return TokenResponse(
        access_token=token,
        user=format_user_response(user)
    )

@router.get("/me", response_model=UserResponse)
async def get_me(user: dict = Depends(require_auth)):
    return format_user_response(user)

@router.post("/select-role", response_model=UserResponse)
async def select_role(request: SelectRoleRequest, user: dict = Depends(require_auth)):
    if user.get("role") == "admin":
        raise HTTPException(status_code=400, detail="Admins cannot change role")
    if user.get("is_onboarded") and user.get("role") in ("volunteer", "ngo") and user["role"] != request.role:
        raise HTTPException(status_code=400, detail="Role cannot be changed after onboarding")

    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {"role": request.role, "updated_at": now_iso()}}
    )
    user["role"] = request.role
    return format_user_response(user)

@router.post("/complete-onboarding", response_model=UserResponse)
async def complete_onboarding(user: dict = Depends(require_auth)):
    if user.get("role") not in ("volunteer", "ngo", "admin"):
        raise HTTPException(status_code=400, detail="Select a role before completing onboarding")

    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {"is_onboarded": True, "updated_at": now_iso()}}
    )
    user["is_onboarded"] = True
    await complete_referral(user["id"])
    return format_user_response(user)

@router.post("/change-password")
async def change_password(request: ChangePasswordRequest, user: dict = Depends(require_auth)):
    if not verify_password(request.current_password, user.get("password_hash")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    session_version = user.get("session_version", 0) + 1
    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {"password_hash": hash_password(request.new_password),
                  "session_version": session_version, "updated_at": now_iso()}}
    )
    return {"message": "Password updated", "access_token": create_access_token(user["id"], session_version)}

# ========== OTP ==========
@router.post("/send-otp", dependencies=[Depends(rate_limit("strict", "otp"))])
async def send_otp(request: SendOtpRequest):
    email = request.email.lower()
    user = await db.users.find_one({"email": email}, {"_id": 0, "id": 1})
    # Same answer whether or not the account exists
    if user:
        code = f"{secrets.randbelow(1000000):06d}"
        now = datetime.now(timezone.utc)
        await db.otp_codes.delete_many({"email": email, "purpose": request.purpose})
        await db.otp_codes.insert_one({
            "id": new_id(),
            "email": email,
            "user_id": user["id"],
            "purpose": request.purpose,
            "code_hash": _hash_code(code),
            "attempts": 0,
            "expires_at": (now + timedelta(minutes=OTP_EXPIRATION_MINUTES)).isoformat(),
            "created_at": now.isoformat()
        })
        subject, html, text = otp_email(code, request.purpose, OTP_EXPIRATION_MINUTES)
        await send_email(email, subject, html, text)
    return {"message": "If an account exists for this email, a code has been sent"}

async def _consume_otp(email: str, code: str, purpose: str) -> dict:
    record = await db.otp_codes.find_one({"email": email.lower(), "purpose": purpose}, {"_id": 0})
    if not record:
        raise HTTPException(status_code=400, detail="Invalid or expired code")

    expires_at = parse_datetime(record["expires_at"])
    if expires_at is None or datetime.now(timezone.utc) > expires_at:
        await db.otp_codes.delete_one({"id": record["id"]})
        raise HTTPException(status_code=400, detail="Invalid or expired code")

    if record.get("attempts", 0) >= OTP_MAX_ATTEMPTS:
        await db.otp_codes.delete_one({"id": record["id"]})
        raise HTTPException(status_code=429, detail="Too many attempts. Request a new code.")

    if not secrets.compare_digest(record["code_hash"], _hash_code(code)):
        await db.otp_codes.update_one({"id": record["id"]}, {"$inc": {"attempts": 1}})
        raise HTTPException(status_code=400, detail="Invalid or expired code")

    await db.otp_codes.delete_one({"id": record["id"]})
    return record

@router.post("/verify-otp")
async def verify_otp(request: VerifyOtpRequest):
    record = await _consume_otp(request.email, request.code, "verify_email")
    await db.users.update_one(
        {"id": record["user_id"]},
        {"$set": {"email_verified": True, "updated_at": now_iso()}}
    )
    return {"message": "Email verified"}

@router.post("/reset-password")
async def reset_password(request: ResetPasswordRequest):
    record = await _consume_otp(request.email, request.code, "reset_password")
    await db.users.update_one(
        {"id": record["user_id"]},
        {"$set": {"password_hash": hash_password(request.new_password), "updated_at": now_iso()},
         "$inc": {"session_version": 1}}
    )
    logger.info("Password reset", user_id=record["user_id"])
    return {"message": "Password has been reset. Please sign in again."}

@router.delete("/account")
async def delete_account(user: dict = Depends(require_auth)):
    if user.get("role") == "admin":
        raise HTTPException(status_code=400, detail="Admin accounts cannot be self-deleted")

    projects_removed = await delete_user_data(user)
    logger.info("Account deleted", user_id=user["id"], projects_removed=projects_removed)
    return {"message": "Account deleted"}
