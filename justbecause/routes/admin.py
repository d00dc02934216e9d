from fastapi import APIRouter, HTTPException, Depends, Request
from datetime import datetime, timezone, timedelta
import re

import structlog

from justbecause.core.config import DEFAULT_ADMIN_SETTINGS, PUBLIC_SETTING_KEYS
from justbecause.core.security import require_admin
from justbecause.db.mongo import db
from justbecause.models.admin import AdminSettingsUpdate, RoleUpdate, BanRequest, SubscriptionGrant, BroadcastNotification, BanRecord
from justbecause.models.coupon import Coupon, CouponCreate, CouponUpdate
from justbecause.models.payment import PaymentGatewayConfigUpdate
from justbecause.services.notifications import create_notification, notify_quietly
from justbecause.services.payments import get_payment_credentials
from justbecause.services.profiles import delete_user_data
from justbecause.services.subscriptions import subscription_expiry_from
from justbecause.services.utils import new_id, now_iso, get_admin_settings

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["admin"])
public_router = APIRouter(tags=["settings"])

SECRET_FIELDS = ("stripe_secret_key", "razorpay_key_secret")

def client_ip(request: Request):
    return request.client.host if request and request.client else None

def mask_secret(value: str):
    if not value:
        return None
    return f"{value[:7]}****{value[-4:]}" if len(value) > 11 else "****"

# ==================== AUDIT LOGGING ====================
async def create_audit_log(admin: dict, action: str, target_type: str, target_id: str,
                           old_value: dict = None, new_value: dict = None, reason: str = None,
                           ip_address: str = None):
    """Create audit log entry"""
    audit = {
        "id": new_id(),
        "admin_id": admin["id"],
        "admin_email": admin["email"],
        "action": action,
        "target_type": target_type,
        "target_id": target_id,
        "old_value": old_value,
        "new_value": new_value,
        "reason": reason,
        "ip_address": ip_address,
        "created_at": now_iso()
    }
    await db.audit_logs.insert_one(audit)
    logger.info("Admin action", action=action, admin_id=admin["id"], target_type=target_type, target_id=target_id)

async def get_user_or_404(user_id: str) -> dict:
    user = await db.users.find_one({"id": user_id}, {"_id": 0, "password_hash": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

# ==================== DASHBOARD STATS ====================
@router.get("/stats")
async def get_admin_stats(admin: dict = Depends(require_admin)):
    now = datetime.now(timezone.utc)

    users_by_role = {}
    for role in ("user", "volunteer", "ngo", "admin"):
        users_by_role[role] = await db.users.count_documents({"role": role})

    projects_by_status = {}
    for status in ("active", "open", "paused", "completed", "closed", "draft", "cancelled"):
        projects_by_status[status] = await db.projects.count_documents({"status": status})

    transactions = await db.transactions.find({"status": "completed"}, {"_id": 0, "amount": 1}).to_list(100000)
    pro_subscribers = await db.users.count_documents({
        "subscription_plan": "pro",
        "$or": [{"subscription_expiry": None}, {"subscription_expiry": {"$gte": now.isoformat()}}]
    })

    return {
        "total_users": sum(users_by_role.values()),
        "users_by_role": users_by_role,
        "total_projects": sum(projects_by_status.values()),
        "projects_by_status": projects_by_status,
        "total_applications": await db.applications.count_documents({}),
        "pending_applications": await db.applications.count_documents({"status": "pending"}),
        "total_revenue": round(sum(t.get("amount", 0) for t in transactions), 2),
        "pro_subscribers": pro_subscribers,
        "banned_users": await db.users.count_documents({"is_banned": True}),
        "unverified_ngos": await db.users.count_documents({"role": "ngo", "is_verified": {"$ne": True}})
    }

@router.get("/analytics")
async def get_admin_analytics(admin: dict = Depends(require_admin)):
    now = datetime.now(timezone.utc)
    since = (now - timedelta(days=30)).replace(hour=0, minute=0, second=0, microsecond=0)

    signups = await db.users.find(
        {"created_at": {"$gte": since.isoformat()}}, {"_id": 0, "created_at": 1}
    ).to_list(100000)
    signups_per_day = {(since + timedelta(days=i)).date().isoformat(): 0 for i in range(31)}
    for user in signups:
        day = user["created_at"][:10]
        if day in signups_per_day:
            signups_per_day[day] += 1

    applications = await db.applications.find({}, {"_id": 0, "status": 1}).to_list(100000)
    status_distribution = {}
    for application in applications:
        status_distribution[application["status"]] = status_distribution.get(application["status"], 0) + 1

    projects = await db.projects.find({}, {"_id": 0, "skills_required": 1}).to_list(100000)
    category_counts = {}
    for project in projects:
        for skill in project.get("skills_required") or []:
            category_counts[skill["category_id"]] = category_counts.get(skill["category_id"], 0) + 1
    top_categories = sorted(category_counts.items(), key=lambda x: x[1], reverse=True)[:10]

    recent_users = await db.users.find(
        {}, {"_id": 0, "id": 1, "name": 1, "role": 1, "created_at": 1}
    ).sort("created_at", -1).limit(10).to_list(10)
    recent_projects = await db.projects.find(
        {}, {"_id": 0, "id": 1, "title": 1, "ngo_name": 1, "created_at": 1}
    ).sort("created_at", -1).limit(10).to_list(10)

    return {
        "signups_per_day": [{"date": d, "count": c} for d, c in signups_per_day.items()],
        "application_status": status_distribution,
        "top_skill_categories": [{"category_id": c, "count": n} for c, n in top_categories],
        "recent_activity": {"users": recent_users, "projects": recent_projects}
    }

# ==================== USER MANAGEMENT ====================
@router.get("/users")
async def get_admin_users(
    admin: dict = Depends(require_admin),
    search: str = None,
    role: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [
            {"email": pattern},
            {"name": pattern},
            {"org_name": pattern},
            {"id": search}
        ]
    if role:
        query["role"] = role

    users = await db.users.find(
        query,
        {"_id": 0, "password_hash": 0}
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"users": users, "total": await db.users.count_documents(query)}

@router.get("/users/{user_id}")
async def get_admin_user_detail(user_id: str, admin: dict = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    user["projects"] = await db.projects.find({"ngo_id": user_id}, {"_id": 0}).to_list(100)
    user["applications"] = await db.applications.find({"volunteer_id": user_id}, {"_id": 0}).to_list(100)
    user["transactions"] = await db.transactions.find({"user_id": user_id}, {"_id": 0}).sort("created_at", -1).to_list(100)
    return user

@router.put("/users/{user_id}/role")
async def update_user_role(user_id: str, update: RoleUpdate, request: Request, admin: dict = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    if user_id == admin["id"]:
        raise HTTPException(status_code=400, detail="Cannot change your own role")

    await db.users.update_one(
        {"id": user_id},
        {"$set": {"role": update.role, "updated_at": now_iso()}, "$inc": {"session_version": 1}}
    )
    await create_audit_log(admin, "user_role_change", "user", user_id,
                           {"role": user.get("role")}, {"role": update.role}, ip_address=client_ip(request))
    return {"message": "Role updated"}

@router.post("/users/{user_id}/verify")
async def verify_user(user_id: str, request: Request, admin: dict = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    await db.users.update_one({"id": user_id}, {"$set": {"is_verified": True, "updated_at": now_iso()}})
    await create_audit_log(admin, "user_verify", "user", user_id,
                           {"is_verified": user.get("is_verified", False)}, {"is_verified": True},
                           ip_address=client_ip(request))
    await notify_quietly(user_id, "system", "Your account is verified",
                         "An administrator verified your account. A verified badge now shows on your profile.")
    return {"message": "User verified"}

@router.put("/users/{user_id}/subscription")
async def grant_subscription(user_id: str, grant: SubscriptionGrant, request: Request,
                             admin: dict = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    update = {"subscription_plan": grant.plan, "updated_at": now_iso()}
    if grant.plan == "pro":
        update["subscription_expiry"] = (
            subscription_expiry_from(datetime.now(timezone.utc), grant.days) if grant.days else None
        )
    else:
        update["subscription_expiry"] = None

    await db.users.update_one({"id": user_id}, {"$set": update})
    await create_audit_log(admin, "subscription_grant", "user", user_id,
                           {"subscription_plan": user.get("subscription_plan"),
                            "subscription_expiry": user.get("subscription_expiry")},
                           update, ip_address=client_ip(request))
    return {"message": "Subscription updated", "subscription_expiry": update["subscription_expiry"]}

@router.post("/users/{user_id}/ban", response_model=BanRecord)
async def ban_user(user_id: str, ban: BanRequest, request: Request, admin: dict = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    if user.get("role") == "admin":
        raise HTTPException(status_code=400, detail="Cannot ban an admin")
    if user.get("is_banned"):
        raise HTTPException(status_code=400, detail="User is already banned")

    record = {
        "id": new_id(),
        "user_id": user_id,
        "user_email": user["email"],
        "reason": ban.reason,
        "banned_by": admin["id"],
        "is_active": True,
        "created_at": now_iso(),
        "lifted_at": None,
        "lifted_by": None
    }
    await db.bans.insert_one(record)
    record.pop("_id", None)

    # Bumping the session version revokes every issued token
    await db.users.update_one(
        {"id": user_id},
        {"$set": {"is_banned": True, "banned_reason": ban.reason}, "$inc": {"session_version": 1}}
    )
    await create_audit_log(admin, "user_ban", "user", user_id, {"is_banned": False}, {"is_banned": True},
                           ban.reason, client_ip(request))
    await notify_quietly(user_id, "system", "Account suspended", f"Your account has been suspended: {ban.reason}")
    return BanRecord(**record)

@router.post("/users/{user_id}/unban")
async def unban_user(user_id: str, request: Request, admin: dict = Depends(require_admin)):
    await get_user_or_404(user_id)
    now = now_iso()
    await db.users.update_one({"id": user_id}, {"$set": {"is_banned": False, "banned_reason": None}})
    await db.bans.update_many(
        {"user_id": user_id, "is_active": True},
        {"$set": {"is_active": False, "lifted_at": now, "lifted_by": admin["id"]}}
    )
    await create_audit_log(admin, "user_unban", "user", user_id, {"is_banned": True}, {"is_banned": False},
                           ip_address=client_ip(request))
    await notify_quietly(user_id, "system", "Account restored", "Your account suspension has been lifted.")
    return {"message": "User unbanned successfully"}

@router.get("/bans")
async def get_bans(active_only: bool = True, admin: dict = Depends(require_admin)):
    query = {"is_active": True} if active_only else {}
    bans = await db.bans.find(query, {"_id": 0}).sort("created_at", -1).to_list(500)
    return {"bans": bans, "total": len(bans)}

@router.get("/users/{user_id}/bans")
async def get_user_bans(user_id: str, admin: dict = Depends(require_admin)):
    return await db.bans.find({"user_id": user_id}, {"_id": 0}).sort("created_at", -1).to_list(100)

@router.delete("/users/{user_id}")
async def delete_user(user_id: str, request: Request, admin: dict = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    if user_id == admin["id"]:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    if user.get("role") == "admin":
        raise HTTPException(status_code=400, detail="Cannot delete an admin")

    await delete_user_data(user)

    await create_audit_log(admin, "user_delete", "user", user_id,
                           old_value={"email": user["email"], "role": user.get("role")},
                           ip_address=client_ip(request))
    return {"message": "User deleted"}

# ==================== SETTINGS ====================
@router.get("/settings")
async def get_platform_settings(admin: dict = Depends(require_admin)):
    return await get_admin_settings()

@router.put("/settings")
async def update_platform_settings(
    settings_update: AdminSettingsUpdate,
    request: Request,
    admin: dict = Depends(require_admin)
):
    current = await get_admin_settings()
    update_dict = settings_update.model_dump(exclude_unset=True)
    update_dict["updated_at"] = now_iso()
    update_dict["updated_by"] = admin["id"]

    await db.admin_settings.update_one(
        {"id": "platform"},
        {"$set": update_dict},
        upsert=True
    )

    await create_audit_log(
        admin, "settings_update", "settings", "platform",
        old_value={k: current.get(k) for k in update_dict if k in DEFAULT_ADMIN_SETTINGS},
        new_value=update_dict,
        ip_address=client_ip(request)
    )
    return await get_admin_settings()

@public_router.get("/settings/public")
async def get_public_settings():
    settings = await get_admin_settings()
    return {key: settings.get(key) for key in PUBLIC_SETTING_KEYS}

# ==================== PAYMENTS ====================
@router.get("/payment-config")
async def get_payment_config(admin: dict = Depends(require_admin)):
    credentials = await get_payment_credentials()
    stored = await db.payment_gateway_config.find_one({"type": "primary"}, {"_id": 0})
    masked = {k: mask_secret(v) if k in SECRET_FIELDS else v for k, v in credentials.items()}
    masked["source"] = "database" if stored and stored.get("gateway") not in (None, "none") else "environment"
    return masked

@router.put("/payment-config")
async def update_payment_config(config: PaymentGatewayConfigUpdate, request: Request,
                                admin: dict = Depends(require_admin)):
    update_dict = config.model_dump(exclude_unset=True)
    if config.gateway == "stripe" and not (config.stripe_secret_key and config.stripe_publishable_key):
        raise HTTPException(status_code=400, detail="Stripe requires both publishable and secret keys")
    if config.gateway == "razorpay" and not (config.razorpay_key_id and config.razorpay_key_secret):
        raise HTTPException(status_code=400, detail="Razorpay requires both key id and key secret")

    update_dict["updated_at"] = now_iso()
    update_dict["updated_by"] = admin["id"]
    await db.payment_gateway_config.update_one({"type": "primary"}, {"$set": update_dict}, upsert=True)

    # Secrets never go into the audit trail
    await create_audit_log(admin, "payment_config_update", "payment_config", "primary",
                           new_value={"gateway": config.gateway, "is_live": config.is_live},
                           ip_address=client_ip(request))
    return {"message": "Payment configuration updated"}

@router.get("/transactions")
async def get_admin_transactions(
    admin: dict = Depends(require_admin),
    status: str = None,
    user_id: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if status:
        query["status"] = status
    if user_id:
        query["user_id"] = user_id

    transactions = await db.transactions.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"transactions": transactions, "total": await db.transactions.count_documents(query)}

@router.get("/payment-stats")
async def get_payment_stats(admin: dict = Depends(require_admin)):
    transactions = await db.transactions.find({"status": "completed"}, {"_id": 0}).to_list(100000)
    month_start = datetime.now(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0).isoformat()

    by_gateway = {}
    for t in transactions:
        by_gateway[t["payment_gateway"]] = round(by_gateway.get(t["payment_gateway"], 0) + t["amount"], 2)

    return {
        "total_revenue": round(sum(t["amount"] for t in transactions), 2),
        "month_revenue": round(sum(t["amount"] for t in transactions if t["created_at"] >= month_start), 2),
        "total_transactions": len(transactions),
        "total_discounts": round(sum(t.get("discount", 0) for t in transactions), 2),
        "revenue_by_gateway": by_gateway,
        "coupon_redemptions": await db.coupon_usages.count_documents({})
    }

# ==================== COUPONS ====================
@router.get("/coupons")
async def get_admin_coupons(admin: dict = Depends(require_admin)):
    coupons = await db.coupons.find({}, {"_id": 0}).sort("created_at", -1).to_list(500)
    return {"coupons": coupons}

@router.post("/coupons", response_model=Coupon)
async def create_admin_coupon(coupon_data: CouponCreate, request: Request, admin: dict = Depends(require_admin)):
    code = coupon_data.code.strip().upper()
    existing = await db.coupons.find_one({"code": code})
    if existing:
        raise HTTPException(status_code=409, detail="Coupon code already exists")
    if coupon_data.discount_type == "percentage" and coupon_data.discount_value > 100:
        raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100")

    coupon_doc = {
        **coupon_data.model_dump(),
        "id": new_id(),
        "code": code,
        "used_count": 0,
        "created_by": admin["id"],
        "created_at": now_iso()
    }
    await db.coupons.insert_one(coupon_doc)
    coupon_doc.pop("_id", None)
    await create_audit_log(admin, "coupon_create", "coupon", coupon_doc["id"], new_value={"code": code},
                           ip_address=client_ip(request))
    return Coupon(**coupon_doc)

@router.put("/coupons/{coupon_id}")
async def update_admin_coupon(coupon_id: str, update_data: CouponUpdate, request: Request,
                              admin: dict = Depends(require_admin)):
    update_dict = update_data.model_dump(exclude_unset=True)
    result = await db.coupons.update_one({"id": coupon_id}, {"$set": update_dict})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Coupon not found")

    await create_audit_log(admin, "coupon_update", "coupon", coupon_id, new_value=update_dict,
                           ip_address=client_ip(request))
    return {"message": "Coupon updated"}

@router.delete("/coupons/{coupon_id}")
async def delete_admin_coupon(coupon_id: str, request: Request, admin: dict = Depends(require_admin)):
    result = await db.coupons.delete_one({"id": coupon_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Coupon not found")
    await create_audit_log(admin, "coupon_delete", "coupon", coupon_id, ip_address=client_ip(request))
    return {"message": "Coupon deleted"}

# ==================== AUDIT LOGS ====================
@router.get("/audit-logs")
async def get_audit_logs(
    admin: dict = Depends(require_admin),
    action: str = None,
    admin_id: str = None,
    skip: int = 0,
    limit: int = 100
):
    query = {}
    if action:
        query["action"] = action
    if admin_id:
        query["admin_id"] = admin_id

    logs = await db.audit_logs.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"logs": logs, "total": await db.audit_logs.count_documents(query)}

@router.get("/errors")
async def get_admin_errors(
    admin: dict = Depends(require_admin),
    error_type: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if error_type:
        query["error_type"] = error_type

    errors = await db.error_logs.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"errors": errors, "total": await db.error_logs.count_documents(query)}

# ==================== BROADCAST ====================
@router.post("/notifications")
async def broadcast_notification(broadcast: BroadcastNotification, request: Request,
                                 admin: dict = Depends(require_admin)):
    query = {"is_banned": {"$ne": True}}
    if broadcast.role:
        query["role"] = broadcast.role
    recipients = await db.users.find(query, {"_id": 0, "id": 1}).to_list(100000)

    sent = 0
    for recipient in recipients:
        if await create_notification(recipient["id"], "system", broadcast.title, broadcast.message,
                                     link=broadcast.link):
            sent += 1

    await create_audit_log(admin, "notification_broadcast", "notification", broadcast.role or "all",
                           new_value={"title": broadcast.title, "recipients": sent},
                           ip_address=client_ip(request))
    return {"message": "Notification sent", "recipients": sent}
