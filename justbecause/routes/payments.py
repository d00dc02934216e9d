from fastapi import APIRouter, HTTPException, Depends, Request
from typing import List
from pymongo.errors import DuplicateKeyError

import stripe
import structlog

from justbecause.core.config import PLANS, PAYMENTS_DEMO_MODE, STRIPE_WEBHOOK_SECRET
from justbecause.core.rate_limit import rate_limit
from justbecause.core.security import require_auth, require_role
from justbecause.db.mongo import db
from justbecause.models.coupon import CouponValidateRequest
from justbecause.models.payment import Transaction, CreateOrderRequest, ConfirmPaymentRequest, UnlockProfileRequest
from justbecause.services.coupons import validate_coupon
from justbecause.services.notifications import notify_quietly
from justbecause.services.payments import (
    get_payment_credentials, plan_price, create_stripe_payment_intent, retrieve_stripe_payment_intent,
    construct_stripe_event, create_razorpay_order, verify_razorpay_signature, activate_subscription,
)
from justbecause.services.profiles import build_volunteer_view
from justbecause.services.subscriptions import is_pro
from justbecause.services.utils import new_id, now_iso, display_name, get_admin_settings

logger = structlog.get_logger()

router = APIRouter(tags=["payments"])

def get_plan_or_400(plan_id: str) -> dict:
    plan = PLANS.get(plan_id)
    if not plan:
        raise HTTPException(status_code=400, detail="Invalid plan")
    return plan

async def _coupon_from_order(order: dict):
    if not order or not order.get("coupon_id"):
        return None
    return await db.coupons.find_one({"id": order["coupon_id"]}, {"_id": 0})

# ========== PLANS ==========
@router.get("/plans")
async def get_plans():
    settings = await get_admin_settings()
    plans = []
    for plan in PLANS.values():
        price = float(settings.get(plan["price_setting"]) or 0) if plan["price_setting"] else 0
        plans.append({**plan, "price": price, "currency": settings["currency"]})
    return plans

@router.get("/payments/config")
async def get_public_payment_config():
    credentials = await get_payment_credentials()
    return {
        "gateway": credentials["gateway"],
        "is_live": credentials["is_live"],
        "stripe_publishable_key": credentials.get("stripe_publishable_key"),
        "razorpay_key_id": credentials.get("razorpay_key_id"),
        "demo_mode": credentials["gateway"] == "none" and PAYMENTS_DEMO_MODE,
    }

# ========== ORDERS ==========
@router.post("/payments/create-order", dependencies=[Depends(rate_limit("payment", "payments"))])
async def create_order(request: CreateOrderRequest, user: dict = Depends(require_auth)):
    plan = get_plan_or_400(request.plan_id)
    if plan["tier"] == "free":
        return {"status": "free", "message": "The free plan does not require payment"}
    if plan["role"] != user.get("role"):
        raise HTTPException(status_code=403, detail="This plan is not available for your account type")

    settings = await get_admin_settings()
    if not settings.get("enable_payments", True):
        raise HTTPException(status_code=400, detail="Payments are currently disabled")

    amount = await plan_price(request.plan_id)
    currency = settings["currency"]
    final_amount, discount, coupon = amount, 0, None

    if request.coupon_code:
        result = await validate_coupon(request.coupon_code, user["id"], request.plan_id, amount)
        if not result["valid"]:
            raise HTTPException(status_code=400, detail=result["error"])
        final_amount, discount, coupon = result["final_amount"], result["discount"], result["coupon"]

    # Fully discounted: nothing to charge
    if final_amount <= 0:
        transaction = await activate_subscription(
            user, request.plan_id, 0, currency, "coupon", f"coupon_{new_id()}",
            coupon=coupon, discount=discount, original_amount=amount
        )
        return {"status": "activated", "transaction": Transaction(**transaction)}

    credentials = await get_payment_credentials()
    gateway = credentials["gateway"]
    order_doc = {
        "id": new_id(),
        "user_id": user["id"],
        "plan_id": request.plan_id,
        "gateway": gateway,
        "amount": final_amount,
        "original_amount": amount,
        "discount": discount,
        "coupon_id": coupon["id"] if coupon else None,
        "currency": currency,
        "status": "pending",
        "created_at": now_iso()
    }

    if gateway == "stripe":
        intent = await create_stripe_payment_intent(
            credentials["stripe_secret_key"], final_amount, currency,
            metadata={"user_id": user["id"], "plan_id": request.plan_id,
                      "coupon_code": coupon["code"] if coupon else ""},
            description=f"{plan['name']} subscription ({request.plan_id})"
        )
        order_doc["order_id"] = intent["id"]
        await db.pending_orders.insert_one(order_doc)
        return {
            "status": "pending",
            "gateway": "stripe",
            "client_secret": intent["client_secret"],
            "payment_intent_id": intent["id"],
            "publishable_key": credentials.get("stripe_publishable_key"),
            "amount": final_amount,
            "original_amount": amount,
            "discount": discount,
            "currency": currency
        }

    if gateway == "razorpay":
        order = await create_razorpay_order(
            credentials["razorpay_key_id"], credentials["razorpay_key_secret"], final_amount, currency,
            receipt=order_doc["id"][:40], notes={"user_id": user["id"], "plan_id": request.plan_id}
        )
        order_doc["order_id"] = order["id"]
        await db.pending_orders.insert_one(order_doc)
        return {
            "status": "pending",
            "gateway": "razorpay",
            "order_id": order["id"],
            "key_id": credentials["razorpay_key_id"],
            "amount": final_amount,
            "original_amount": amount,
            "discount": discount,
            "currency": currency
        }

    if not PAYMENTS_DEMO_MODE:
        raise HTTPException(status_code=503, detail="Payment gateway is not configured")

    logger.warning("Activating subscription without a payment gateway", user_id=user["id"], plan_id=request.plan_id)
    transaction = await activate_subscription(
        user, request.plan_id, final_amount, currency, "demo", f"demo_{new_id()}",
        coupon=coupon, discount=discount, original_amount=amount
    )
    return {"status": "activated", "demo": True, "transaction": Transaction(**transaction)}

@router.post("/payments/confirm", dependencies=[Depends(rate_limit("payment", "payments"))])
async def confirm_payment(request: ConfirmPaymentRequest, user: dict = Depends(require_auth)):
    plan = get_plan_or_400(request.plan_id)
    if plan["role"] != user.get("role"):
        raise HTTPException(status_code=403, detail="This plan is not available for your account type")
    credentials = await get_payment_credentials()

    if request.gateway == "stripe":
        if not request.payment_intent_id:
            raise HTTPException(status_code=400, detail="payment_intent_id is required")
        if not credentials.get("stripe_secret_key"):
            raise HTTPException(status_code=503, detail="Stripe is not configured")

        intent = await retrieve_stripe_payment_intent(credentials["stripe_secret_key"], request.payment_intent_id)
        if intent["status"] != "succeeded":
            raise HTTPException(status_code=400, detail=f"Payment not completed (status: {intent['status']})")
        metadata = intent["metadata"] or {}
        if metadata.get("user_id") != user["id"] or metadata.get("plan_id") != request.plan_id:
            raise HTTPException(status_code=403, detail="Payment does not belong to this account")

        order = await db.pending_orders.find_one({"order_id": request.payment_intent_id}, {"_id": 0})
        payment_id = request.payment_intent_id
        amount = intent["amount"] / 100
    else:
        if not (request.razorpay_order_id and request.razorpay_payment_id and request.razorpay_signature):
            raise HTTPException(status_code=400, detail="Razorpay order, payment id and signature are required")
        if not credentials.get("razorpay_key_secret"):
            raise HTTPException(status_code=503, detail="Razorpay is not configured")

        if not verify_razorpay_signature(request.razorpay_order_id, request.razorpay_payment_id,
                                         request.razorpay_signature, credentials["razorpay_key_secret"]):
            logger.warning("Invalid Razorpay signature", user_id=user["id"], order_id=request.razorpay_order_id)
            raise HTTPException(status_code=400, detail="Invalid payment signature")

        order = await db.pending_orders.find_one(
            {"order_id": request.razorpay_order_id, "user_id": user["id"]}, {"_id": 0}
        )
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        if order["plan_id"] != request.plan_id:
            raise HTTPException(status_code=400, detail="Order was created for a different plan")
        payment_id = request.razorpay_payment_id
        amount = order["amount"]

    settings = await get_admin_settings()
    transaction = await activate_subscription(
        user, request.plan_id, amount, (order or {}).get("currency") or settings["currency"],
        request.gateway, payment_id, coupon=await _coupon_from_order(order),
        discount=(order or {}).get("discount", 0), original_amount=(order or {}).get("original_amount")
    )
    if order:
        await db.pending_orders.update_one({"id": order["id"]}, {"$set": {"status": "completed"}})
    return {"status": "activated", "transaction": Transaction(**transaction)}

@router.post("/payments/webhook/stripe")
async def stripe_webhook(request: Request):
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    if not STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=503, detail="Stripe webhook is not configured")

    try:
        event = construct_stripe_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.warning("Stripe webhook signature rejected")
        raise HTTPException(status_code=400, detail="Invalid signature")

    if event["type"] == "payment_intent.succeeded":
        intent = event["data"]["object"]
        metadata = intent.get("metadata") or {}
        user = await db.users.find_one({"id": metadata.get("user_id")}, {"_id": 0})
        if user and metadata.get("plan_id") in PLANS:
            order = await db.pending_orders.find_one({"order_id": intent["id"]}, {"_id": 0})
            await activate_subscription(
                user, metadata["plan_id"], intent["amount"] / 100, intent["currency"].upper(), "stripe", intent["id"],
                coupon=await _coupon_from_order(order), discount=(order or {}).get("discount", 0),
                original_amount=(order or {}).get("original_amount")
            )
            if order:
                await db.pending_orders.update_one({"id": order["id"]}, {"$set": {"status": "completed"}})
        else:
            logger.warning("Stripe payment without a matching user or plan", payment_intent=intent["id"])

    return {"received": True}

# ========== PROFILE UNLOCKS ==========
@router.post("/payments/unlock-profile")
async def unlock_profile(request: UnlockProfileRequest, user: dict = Depends(require_role("ngo"))):
    volunteer = await db.users.find_one(
        {"id": request.volunteer_id, "role": "volunteer"}, {"_id": 0, "password_hash": 0}
    )
    if not volunteer:
        raise HTTPException(status_code=404, detail="Impact Agent not found")

    if volunteer.get("volunteer_type") == "paid":
        return {"unlocked": True, "already_unlocked": True, "profile": build_volunteer_view(volunteer, True)}

    if user.get("role") != "admin" and not is_pro(user):
        raise HTTPException(
            status_code=403,
            detail="NOT_PRO: Upgrade to Pro to unlock free Impact Agent profiles"
        )

    try:
        await db.profile_unlocks.insert_one({
            "id": new_id(),
            "ngo_id": user["id"],
            "volunteer_id": volunteer["id"],
            "created_at": now_iso()
        })
    except DuplicateKeyError:
        return {"unlocked": True, "already_unlocked": True, "profile": build_volunteer_view(volunteer, True)}

    await db.users.update_one({"id": user["id"]}, {"$inc": {"monthly_unlocks_used": 1}})
    logger.info("Profile unlocked", ngo_id=user["id"], volunteer_id=volunteer["id"])

    await notify_quietly(
        volunteer["id"], "profile_unlocked", "Your profile was unlocked",
        f"{display_name(user)} unlocked your profile and can now contact you",
        reference_id=user["id"], reference_type="ngo", link=f"/ngos/{user['id']}"
    )
    return {"unlocked": True, "already_unlocked": False, "profile": build_volunteer_view(volunteer, True)}

@router.get("/payments/transactions", response_model=List[Transaction])
async def get_my_transactions(user: dict = Depends(require_auth)):
    transactions = await db.transactions.find(
        {"user_id": user["id"]}, {"_id": 0}
    ).sort("created_at", -1).to_list(200)
    return [Transaction(**t) for t in transactions]

# ========== COUPONS ==========
@router.post("/coupons/validate")
async def validate_coupon_endpoint(request: CouponValidateRequest, user: dict = Depends(require_auth)):
    get_plan_or_400(request.plan_id)
    amount = await plan_price(request.plan_id)
    result = await validate_coupon(request.code, user["id"], request.plan_id, amount)
    if not result["valid"]:
        raise HTTPException(status_code=400, detail=result["error"])

    settings = await get_admin_settings()
    return {
        "valid": True,
        "code": result["coupon"]["code"],
        "discount": result["discount"],
        "final_amount": result["final_amount"],
        "original_amount": amount,
        "currency": settings["currency"]
    }
