import base64
import hashlib
import hmac
from datetime import datetime, timezone

import httpx
import stripe
import structlog
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError
from starlette.concurrency import run_in_threadpool

from justbecause.core.config import (
    STRIPE_SECRET_KEY, STRIPE_PUBLISHABLE_KEY, RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET,
    RAZORPAY_API_URL, SUBSCRIPTION_PERIOD_DAYS, PLANS,
)
from justbecause.db.mongo import db
from justbecause.services.coupons import record_coupon_usage
from justbecause.services.currency import to_minor_units, format_price
from justbecause.services.email import subscription_confirmation_email
from justbecause.services.notifications import notify_quietly, email_quietly
from justbecause.services.subscriptions import COUNTER_FIELDS, next_reset_date, subscription_expiry_from
from justbecause.services.utils import new_id, get_admin_settings

logger = structlog.get_logger()

# ========== CREDENTIALS ==========

async def get_payment_credentials() -> dict:
    """Gateway credentials from the admin-managed config, falling back to the environment."""
    config = await db.payment_gateway_config.find_one({"type": "primary"}, {"_id": 0})
    if config and config.get("gateway") and config["gateway"] != "none":
        return {
            "gateway": config["gateway"],
            "is_live": config.get("is_live", False),
            "stripe_publishable_key": config.get("stripe_publishable_key"),
            "stripe_secret_key": config.get("stripe_secret_key"),
            "razorpay_key_id": config.get("razorpay_key_id"),
            "razorpay_key_secret": config.get("razorpay_key_secret"),
        }

    if STRIPE_SECRET_KEY and STRIPE_PUBLISHABLE_KEY:
        return {
            "gateway": "stripe",
            "is_live": STRIPE_SECRET_KEY.startswith("sk_live"),
            "stripe_publishable_key": STRIPE_PUBLISHABLE_KEY,
            "stripe_secret_key": STRIPE_SECRET_KEY,
        }

    if RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET:
        return {
            "gateway": "razorpay",
            "is_live": RAZORPAY_KEY_ID.startswith("rzp_live"),
            "razorpay_key_id": RAZORPAY_KEY_ID,
            "razorpay_key_secret": RAZORPAY_KEY_SECRET,
        }

    return {"gateway": "none", "is_live": False}

async def plan_price(plan_id: str) -> float:
    """Current price of a plan in whole units (0 for free plans)."""
    plan = PLANS.get(plan_id)
    if not plan or not plan["price_setting"]:
        return 0
    settings = await get_admin_settings()
    return float(settings.get(plan["price_setting"]) or 0)

# ========== STRIPE ==========

async def create_stripe_payment_intent(secret_key: str, amount: float, currency: str, metadata: dict, description: str):
    return await run_in_threadpool(
        stripe.PaymentIntent.create,
        amount=to_minor_units(amount),
        currency=currency.lower(),
        metadata=metadata,
        description=description,
        automatic_payment_methods={"enabled": True},
        api_key=secret_key,
    )

async def retrieve_stripe_payment_intent(secret_key: str, payment_intent_id: str):
    return await run_in_threadpool(stripe.PaymentIntent.retrieve, payment_intent_id, api_key=secret_key)

def construct_stripe_event(payload: bytes, signature: str, webhook_secret: str):
    return stripe.Webhook.construct_event(payload, signature, webhook_secret)

# ========== RAZORPAY ==========

async def create_razorpay_order(key_id: str, key_secret: str, amount: float, currency: str, receipt: str, notes: dict) -> dict:
    auth_header = base64.b64encode(f"{key_id}:{key_secret}".encode()).decode()
    async with httpx.AsyncClient(timeout=20.0) as client:
        response = await client.post(
            f"{RAZORPAY_API_URL}/orders",
            json={
                "amount": to_minor_units(amount),
                "currency": currency.upper(),
                "receipt": receipt,
                "notes": notes
            },
            headers={
                "Authorization": f"Basic {auth_header}",
                "Content-Type": "application/json"
            }
        )
    if response.status_code != 200:
        logger.error("Razorpay order creation failed", status_code=response.status_code, body=response.text[:500])
        raise HTTPException(status_code=502, detail="Failed to create Razorpay order")
    return response.json()

def verify_razorpay_signature(order_id: str, payment_id: str, signature: str, key_secret: str) -> bool:
    message = f"{order_id}|{payment_id}"
    expected = hmac.new(key_secret.encode(), message.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature or "")

# ========== ACTIVATION ==========

async def activate_subscription(user: dict, plan_id: str, amount: float, currency: str,
                                gateway: str, payment_id: str, coupon: dict = None,
                                discount: float = 0, original_amount: float = None) -> dict:
    """
    Switch the user to Pro, record the transaction and coupon usage, then notify.

    The transaction insert claims the payment id first, so a webhook racing the
    client confirmation activates the subscription once.
    """
    plan = PLANS[plan_id]
    now = datetime.now(timezone.utc)
    expiry = subscription_expiry_from(now, SUBSCRIPTION_PERIOD_DAYS)

    transaction = {
        "id": new_id(),
        "user_id": user["id"],
        "type": "subscription",
        "reference_id": plan_id,
        "reference_type": "subscription",
        "amount": amount,
        "original_amount": original_amount if original_amount is not None else amount,
        "discount": discount,
        "coupon_code": coupon["code"] if coupon else None,
        "currency": currency,
        "payment_gateway": gateway,
        "payment_id": payment_id,
        "status": "completed",
        "description": f"{plan['name']} Plan Subscription ({plan_id})",
        "created_at": now.isoformat(),
    }
    try:
        await db.transactions.insert_one(transaction)
    except DuplicateKeyError:
        logger.info("Payment already processed", payment_id=payment_id, user_id=user["id"])
        return await db.transactions.find_one({"payment_id": payment_id}, {"_id": 0})
    transaction.pop("_id", None)

    update = {
        "subscription_plan": "pro",
        "subscription_expiry": expiry,
        "subscription_reset_date": next_reset_date(now).isoformat(),
        "monthly_unlocks_used": 0,
        "updated_at": now.isoformat(),
    }
    counter = COUNTER_FIELDS.get(plan["role"])
    if counter:
        update[counter] = 0
    await db.users.update_one({"id": user["id"]}, {"$set": update})

    if coupon:
        await record_coupon_usage(coupon, user["id"], plan_id, discount, transaction["id"])

    logger.info("Subscription activated", user_id=user["id"], plan_id=plan_id, gateway=gateway, amount=amount)

    dashboard = "/ngo/dashboard" if plan["role"] == "ngo" else "/volunteer/dashboard"
    await notify_quietly(
        user["id"], "subscription", "Pro Plan Activated!",
        "Your Pro subscription is now active. Enjoy unlimited access!",
        reference_id=plan_id, reference_type="subscription", link=dashboard
    )
    plan_label = "NGO Pro" if plan["role"] == "ngo" else "Impact Agent Pro"
    await email_quietly(user, None, subscription_confirmation_email(
        user.get("name") or "there", plan_label, amount, format_price(amount, currency), expiry
    ))
    return transaction
