from datetime import datetime, timezone

import structlog

from justbecause.db.mongo import db
from justbecause.services.utils import parse_datetime, new_id, now_iso

logger = structlog.get_logger()

async def validate_coupon(code: str, user_id: str, plan_id: str, amount: float, now: datetime = None):
    """Validate coupon code"""
    now = now or datetime.now(timezone.utc)
    coupon = await db.coupons.find_one({"code": (code or "").strip().upper(), "is_active": True}, {"_id": 0})

    if not coupon:
        return {"valid": False, "error": "Invalid coupon code"}

    # Check validity window
    valid_from = parse_datetime(coupon.get('valid_from'))
    if valid_from and now < valid_from:
        return {"valid": False, "error": "Coupon is not active yet"}
    valid_until = parse_datetime(coupon.get('valid_until'))
    if valid_until and now > valid_until:
        return {"valid": False, "error": "Coupon has expired"}

    # Check usage limits (0 = unlimited)
    if coupon.get('max_uses', 0) > 0 and coupon.get('used_count', 0) >= coupon['max_uses']:
        return {"valid": False, "error": "Coupon usage limit reached"}

    if coupon.get('max_uses_per_user', 0) > 0:
        user_uses = await db.coupon_usages.count_documents({"coupon_id": coupon['id'], "user_id": user_id})
        if user_uses >= coupon['max_uses_per_user']:
            return {"valid": False, "error": "You have already used this coupon"}

    # Check minimum purchase
    if amount < (coupon.get('min_amount') or 0):
        return {"valid": False, "error": f"Minimum purchase amount is {coupon['min_amount']}"}

    # Check applicable plans
    if coupon.get('applicable_plans') and plan_id not in coupon['applicable_plans']:
        return {"valid": False, "error": "Coupon not applicable for this plan"}

    # Calculate discount
    if coupon['discount_type'] == 'percentage':
        discount = amount * (coupon['discount_value'] / 100)
        if coupon.get('max_discount'):
            discount = min(discount, coupon['max_discount'])
    else:
        discount = coupon['discount_value']
    discount = round(min(discount, amount), 2)

    return {
        "valid": True,
        "discount": discount,
        "final_amount": round(amount - discount, 2),
        "coupon": coupon
    }

async def record_coupon_usage(coupon: dict, user_id: str, plan_id: str, discount: float, transaction_id: str = None):
    await db.coupons.update_one({"id": coupon["id"]}, {"$inc": {"used_count": 1}})
    await db.coupon_usages.insert_one({
        "id": new_id(),
        "coupon_id": coupon["id"],
        "code": coupon["code"],
        "user_id": user_id,
        "plan_id": plan_id,
        "discount": discount,
        "transaction_id": transaction_id,
        "created_at": now_iso()
    })
    logger.info("Coupon redeemed", code=coupon["code"], user_id=user_id, plan_id=plan_id)
