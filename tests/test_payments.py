import hashlib
import hmac
from unittest.mock import AsyncMock, patch

from conftest import make_pro
from justbecause.services.payments import verify_razorpay_signature, activate_subscription


async def add_coupon(db, code, discount_value, discount_type="percentage", **extra):
    await db.coupons.insert_one({
        "id": f"coupon-{code}", "code": code, "discount_type": discount_type, "discount_value": discount_value,
        "min_amount": 0, "max_uses": 0, "max_uses_per_user": 1, "used_count": 0,
        "applicable_plans": [], "is_active": True, "created_at": "2026-01-01T00:00:00+00:00", **extra
    })


async def use_stripe(db):
    await db.payment_gateway_config.insert_one({
        "type": "primary", "gateway": "stripe", "is_live": False,
        "stripe_publishable_key": "pk_test_123", "stripe_secret_key": "sk_test_123",
    })


def test_razorpay_signature():
    signature = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert verify_razorpay_signature("order_1", "pay_1", signature, "secret")
    assert not verify_razorpay_signature("order_1", "pay_2", signature, "secret")
    assert not verify_razorpay_signature("order_1", "pay_1", None, "secret")


async def test_plans_use_admin_prices(client, db):
    await db.admin_settings.insert_one({"id": "platform", "ngo_pro_price": 1999})
    plans = {p["id"]: p for p in (await client.get("/api/plans")).json()}
    assert plans["ngo-pro"]["price"] == 1999
    assert plans["volunteer-pro"]["price"] == 999
    assert plans["volunteer-free"]["price"] == 0


class TestCreateOrder:
    async def test_free_plan_needs_no_payment(self, client, volunteer):
        response = await client.post("/api/payments/create-order", json={"plan_id": "volunteer-free"}, headers=volunteer["headers"])
        assert response.json()["status"] == "free"

    async def test_unknown_plan(self, client, volunteer):
        response = await client.post("/api/payments/create-order", json={"plan_id": "gold"}, headers=volunteer["headers"])
        assert response.status_code == 400

    async def test_plan_must_match_role(self, client, volunteer):
        response = await client.post("/api/payments/create-order", json={"plan_id": "ngo-pro"}, headers=volunteer["headers"])
        assert response.status_code == 403

    async def test_no_gateway_configured(self, client, volunteer):
        response = await client.post("/api/payments/create-order", json={"plan_id": "volunteer-pro"}, headers=volunteer["headers"])
        assert response.status_code == 503

    async def test_demo_mode_activates(self, client, db, volunteer):
        with patch("justbecause.routes.payments.PAYMENTS_DEMO_MODE", True):
            response = await client.post(
                "/api/payments/create-order", json={"plan_id": "volunteer-pro"}, headers=volunteer["headers"]
            )
        assert response.json()["status"] == "activated"
        assert response.json()["demo"] is True
        stored = await db.users.find_one({"id": volunteer["id"]})
        assert stored["subscription_plan"] == "pro"
        assert stored["subscription_expiry"] is not None

    async def test_full_discount_coupon_activates_without_gateway(self, client, db, ngo):
        await add_coupon(db, "FREEPRO", 100)
        response = await client.post(
            "/api/payments/create-order", json={"plan_id": "ngo-pro", "coupon_code": "freepro"}, headers=ngo["headers"]
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "activated"
        assert body["transaction"]["payment_gateway"] == "coupon"
        assert body["transaction"]["amount"] == 0
        assert body["transaction"]["discount"] == 2999

        coupon = await db.coupons.find_one({"code": "FREEPRO"})
        assert coupon["used_count"] == 1
        assert await db.coupon_usages.count_documents({"user_id": ngo["id"]}) == 1

    async def test_invalid_coupon(self, client, volunteer):
        response = await client.post(
            "/api/payments/create-order", json={"plan_id": "volunteer-pro", "coupon_code": "NOPE"},
            headers=volunteer["headers"],
        )
        assert response.status_code == 400

    async def test_payments_disabled(self, client, db, volunteer):
        await db.admin_settings.insert_one({"id": "platform", "enable_payments": False})
        response = await client.post("/api/payments/create-order", json={"plan_id": "volunteer-pro"}, headers=volunteer["headers"])
        assert response.status_code == 400

    async def test_stripe_order(self, client, db, volunteer):
        await use_stripe(db)
        intent = {"id": "pi_123", "client_secret": "pi_123_secret"}
        with patch("justbecause.routes.payments.create_stripe_payment_intent", AsyncMock(return_value=intent)) as create:
            response = await client.post(
                "/api/payments/create-order", json={"plan_id": "volunteer-pro"}, headers=volunteer["headers"]
            )
        body = response.json()
        assert body["status"] == "pending"
        assert body["client_secret"] == "pi_123_secret"
        assert body["publishable_key"] == "pk_test_123"
        assert create.await_args.kwargs["metadata"]["user_id"] == volunteer["id"]
        assert await db.pending_orders.count_documents({"order_id": "pi_123"}) == 1


class TestConfirm:
    async def test_stripe_confirm_activates(self, client, db, volunteer):
        await use_stripe(db)
        intent = {"id": "pi_9", "status": "succeeded", "amount": 99900,
                  "metadata": {"user_id": volunteer["id"], "plan_id": "volunteer-pro"}}
        with patch("justbecause.routes.payments.retrieve_stripe_payment_intent", AsyncMock(return_value=intent)):
            response = await client.post(
                "/api/payments/confirm",
                json={"plan_id": "volunteer-pro", "gateway": "stripe", "payment_intent_id": "pi_9"},
                headers=volunteer["headers"],
            )
        assert response.status_code == 200
        assert response.json()["transaction"]["amount"] == 999

        transactions = (await client.get("/api/payments/transactions", headers=volunteer["headers"])).json()
        assert [t["payment_id"] for t in transactions] == ["pi_9"]

    async def test_stripe_confirm_rejects_other_users_payment(self, client, db, volunteer):
        await use_stripe(db)
        intent = {"id": "pi_x", "status": "succeeded", "amount": 99900,
                  "metadata": {"user_id": "someone-else", "plan_id": "volunteer-pro"}}
        with patch("justbecause.routes.payments.retrieve_stripe_payment_intent", AsyncMock(return_value=intent)):
            response = await client.post(
                "/api/payments/confirm",
                json={"plan_id": "volunteer-pro", "gateway": "stripe", "payment_intent_id": "pi_x"},
                headers=volunteer["headers"],
            )
        assert response.status_code == 403

    async def test_stripe_confirm_requires_success(self, client, db, volunteer):
        await use_stripe(db)
        intent = {"id": "pi_p", "status": "processing", "amount": 99900, "metadata": {}}
        with patch("justbecause.routes.payments.retrieve_stripe_payment_intent", AsyncMock(return_value=intent)):
            response = await client.post(
                "/api/payments/confirm",
                json={"plan_id": "volunteer-pro", "gateway": "stripe", "payment_intent_id": "pi_p"},
                headers=volunteer["headers"],
            )
        assert response.status_code == 400

    async def test_razorpay_bad_signature(self, client, db, volunteer):
        await db.payment_gateway_config.insert_one({
            "type": "primary", "gateway": "razorpay", "razorpay_key_id": "rzp_test", "razorpay_key_secret": "shh",
        })
        response = await client.post(
            "/api/payments/confirm",
            json={"plan_id": "volunteer-pro", "gateway": "razorpay", "razorpay_order_id": "order_1",
                  "razorpay_payment_id": "pay_1", "razorpay_signature": "forged"},
            headers=volunteer["headers"],
        )
        assert response.status_code == 400

    async def test_razorpay_valid_signature(self, client, db, volunteer):
        await db.payment_gateway_config.insert_one({
            "type": "primary", "gateway": "razorpay", "razorpay_key_id": "rzp_test", "razorpay_key_secret": "shh",
        })
        await db.pending_orders.insert_one({
            "id": "po-1", "order_id": "order_1", "user_id": volunteer["id"], "plan_id": "volunteer-pro",
            "amount": 999, "original_amount": 999, "discount": 0, "currency": "INR", "status": "pending",
        })
        signature = hmac.new(b"shh", b"order_1|pay_1", hashlib.sha256).hexdigest()
        response = await client.post(
            "/api/payments/confirm",
            json={"plan_id": "volunteer-pro", "gateway": "razorpay", "razorpay_order_id": "order_1",
                  "razorpay_payment_id": "pay_1", "razorpay_signature": signature},
            headers=volunteer["headers"],
        )
        assert response.status_code == 200
        assert response.json()["transaction"]["currency"] == "INR"
        assert (await db.pending_orders.find_one({"id": "po-1"}))["status"] == "completed"


async def test_activation_is_idempotent(db, volunteer):
    user = await db.users.find_one({"id": volunteer["id"]}, {"_id": 0})
    first = await activate_subscription(user, "volunteer-pro", 999, "USD", "stripe", "pi_same")
    second = await activate_subscription(user, "volunteer-pro", 999, "USD", "stripe", "pi_same")
    assert first["id"] == second["id"]
    assert await db.transactions.count_documents({"payment_id": "pi_same"}) == 1


async def test_webhook_requires_secret(client):
    response = await client.post("/api/payments/webhook/stripe", content=b"{}")
    assert response.status_code == 503


class TestUnlockProfile:
    async def test_free_ngo_must_upgrade(self, client, volunteer, ngo):
        response = await client.post("/api/payments/unlock-profile", json={"volunteer_id": volunteer["id"]}, headers=ngo["headers"])
        assert response.status_code == 403
        assert response.json()["detail"].startswith("NOT_PRO")

    async def test_pro_ngo_unlock_outlives_the_subscription(self, client, db, volunteer, ngo):
        await make_pro(db, ngo["id"])
        response = await client.post("/api/payments/unlock-profile", json={"volunteer_id": volunteer["id"]}, headers=ngo["headers"])
        body = response.json()
        assert body["unlocked"] is True
        assert body["already_unlocked"] is False
        assert body["profile"]["name"] == "Asha Volunteer"

        again = await client.post("/api/payments/unlock-profile", json={"volunteer_id": volunteer["id"]}, headers=ngo["headers"])
        assert again.json()["already_unlocked"] is True
        assert (await db.users.find_one({"id": ngo["id"]}))["monthly_unlocks_used"] == 1

        await db.users.update_one({"id": ngo["id"]}, {"$set": {"subscription_plan": "free"}})
        view = (await client.get(f"/api/volunteers/{volunteer['id']}", headers=ngo["headers"])).json()
        assert view["is_unlocked"] is True

        notification = await db.notifications.find_one({"user_id": volunteer["id"], "type": "profile_unlocked"})
        assert notification is not None

    async def test_paid_volunteers_need_no_unlock(self, client, paid_volunteer, ngo):
        response = await client.post(
            "/api/payments/unlock-profile", json={"volunteer_id": paid_volunteer["id"]}, headers=ngo["headers"]
        )
        assert response.status_code == 200
        assert response.json()["already_unlocked"] is True

    async def test_unknown_volunteer(self, client, ngo):
        response = await client.post("/api/payments/unlock-profile", json={"volunteer_id": "ghost"}, headers=ngo["headers"])
        assert response.status_code == 404


class TestCouponValidation:
    async def test_percentage_with_cap(self, client, db, volunteer):
        await add_coupon(db, "HALF", 50, max_discount=300)
        response = await client.post("/api/coupons/validate", json={"code": "half", "plan_id": "volunteer-pro"}, headers=volunteer["headers"])
        assert response.json() == {
            "valid": True, "code": "HALF", "discount": 300, "final_amount": 699,
            "original_amount": 999, "currency": "USD",
        }

    async def test_plan_restriction(self, client, db, volunteer):
        await add_coupon(db, "NGOONLY", 10, applicable_plans=["ngo-pro"])
        response = await client.post("/api/coupons/validate", json={"code": "NGOONLY", "plan_id": "volunteer-pro"}, headers=volunteer["headers"])
        assert response.status_code == 400
        assert response.json()["detail"] == "Coupon not applicable for this plan"

    async def test_expired(self, client, db, volunteer):
        await add_coupon(db, "OLD", 10, valid_until="2020-01-01T00:00:00+00:00")
        response = await client.post("/api/coupons/validate", json={"code": "OLD", "plan_id": "volunteer-pro"}, headers=volunteer["headers"])
        assert response.json()["detail"] == "Coupon has expired"


async def use_razorpay(db):
    await db.payment_gateway_config.insert_one({
        "type": "primary", "gateway": "razorpay", "razorpay_key_id": "rzp_test", "razorpay_key_secret": "shh",
    })


class TestConfirmPlanChecks:
    async def test_razorpay_order_for_another_plan_is_rejected(self, client, db, volunteer):
        await use_razorpay(db)
        await db.pending_orders.insert_one({
            "id": "po-2", "order_id": "order_2", "user_id": volunteer["id"], "plan_id": "volunteer-pro",
            "amount": 1, "original_amount": 999, "discount": 998, "currency": "USD", "status": "pending",
        })
        signature = hmac.new(b"shh", b"order_2|pay_2", hashlib.sha256).hexdigest()
        await db.users.update_one({"id": volunteer["id"]}, {"$set": {"role": "ngo"}})
        payload = {"plan_id": "ngo-pro", "gateway": "razorpay", "razorpay_order_id": "order_2",
                   "razorpay_payment_id": "pay_2", "razorpay_signature": signature}

        response = await client.post("/api/payments/confirm", json=payload, headers=volunteer["headers"])
        assert response.status_code == 400
        assert await db.transactions.count_documents({}) == 0
        assert (await db.pending_orders.find_one({"id": "po-2"}))["status"] == "pending"

    async def test_plan_must_match_role(self, client, db, volunteer):
        await use_razorpay(db)
        response = await client.post(
            "/api/payments/confirm",
            json={"plan_id": "ngo-pro", "gateway": "razorpay", "razorpay_order_id": "order_3",
                  "razorpay_payment_id": "pay_3", "razorpay_signature": "sig"},
            headers=volunteer["headers"],
        )
        assert response.status_code == 403


async def test_claimed_payment_skips_side_effects(db, volunteer):
    await add_coupon(db, "RACE", 50)
    coupon = await db.coupons.find_one({"code": "RACE"}, {"_id": 0})
    await db.transactions.insert_one({"id": "tx-claimed", "user_id": volunteer["id"], "payment_id": "pi_race",
                                      "status": "completed"})
    user = await db.users.find_one({"id": volunteer["id"]}, {"_id": 0})

    result = await activate_subscription(user, "volunteer-pro", 499.5, "USD", "stripe", "pi_race",
                                         coupon=coupon, discount=499.5, original_amount=999)

    assert result["id"] == "tx-claimed"
    assert (await db.users.find_one({"id": volunteer["id"]})).get("subscription_plan") != "pro"
    assert (await db.coupons.find_one({"code": "RACE"}))["used_count"] == 0
    assert await db.coupon_usages.count_documents({}) == 0


async def test_webhook_activates_subscription(client, db, volunteer):
    await add_coupon(db, "HOOK", 10)
    await db.pending_orders.insert_one({
        "id": "po-hook", "order_id": "pi_hook", "user_id": volunteer["id"], "plan_id": "volunteer-pro",
        "gateway": "stripe", "amount": 899.1, "original_amount": 999, "discount": 99.9,
        "coupon_id": "coupon-HOOK", "currency": "USD", "status": "pending",
    })
    event = {"type": "payment_intent.succeeded", "data": {"object": {
        "id": "pi_hook", "amount": 89910, "currency": "usd",
        "metadata": {"user_id": volunteer["id"], "plan_id": "volunteer-pro", "coupon_code": "HOOK"},
    }}}

    with patch("justbecause.routes.payments.STRIPE_WEBHOOK_SECRET", "whsec_test"), \
            patch("justbecause.routes.payments.construct_stripe_event", return_value=event):
        response = await client.post("/api/payments/webhook/stripe", content=b"{}",
                                     headers={"stripe-signature": "t=1,v1=abc"})

    assert response.json() == {"received": True}
    status = (await client.get("/api/subscription/status", headers=volunteer["headers"])).json()
    assert status["plan"] == "pro"
    transaction = await db.transactions.find_one({"payment_id": "pi_hook"})
    assert transaction["amount"] == 899.1
    assert transaction["coupon_code"] == "HOOK"
    assert (await db.pending_orders.find_one({"id": "po-hook"}))["status"] == "completed"
    assert (await db.coupons.find_one({"code": "HOOK"}))["used_count"] == 1
