"""
Shared fixtures.

The API modules bind ``db`` at import time, so the in-memory database has to be
swapped into ``justbecause.db.mongo`` before anything else from the package is
imported.
"""
import os

os.environ["DB_NAME"] = "justbecause_test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_FORMAT"] = "console"
for key in ("RESEND_API_KEY", "OPENAI_API_KEY", "STRIPE_SECRET_KEY", "STRIPE_PUBLISHABLE_KEY",
            "STRIPE_WEBHOOK_SECRET", "RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "PAYMENTS_DEMO_MODE"):
    os.environ[key] = ""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from justbecause.db import mongo

mongo.client = AsyncMongoMockClient()
mongo.db = mongo.client["justbecause_test"]

from justbecause.core.rate_limit import limiter  # noqa: E402
from justbecause.main import app  # noqa: E402

PASSWORD = "s3cure-pass"


@pytest.fixture
def db():
    return mongo.db


@pytest_asyncio.fixture(autouse=True)
async def clean_db():
    for name in await mongo.db.list_collection_names():
        await mongo.db.drop_collection(name)
    await mongo.ensure_indexes()
    limiter.reset()
    yield


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def register(client, email: str, name: str = "Test User", role: str = None) -> dict:
    payload = {"email": email, "name": name, "password": PASSWORD}
    if role:
        payload["role"] = role
    response = await client.post("/api/auth/register", json=payload)
    assert response.status_code == 200, response.text
    data = response.json()
    return {"token": data["access_token"], "id": data["user"]["id"], "email": email, "headers": auth(data["access_token"])}


VOLUNTEER_PROFILE = {
    "headline": "Designer helping nonprofits tell their story",
    "bio": "Brand and UX designer with five years of agency experience.",
    "phone": "+91 98765 43210",
    "location": "Pune, Maharashtra, India",
    "skills": [
        {"category_id": "design", "subskill_id": "ui-ux", "level": "expert"},
        {"category_id": "design", "subskill_id": "branding", "level": "intermediate"},
    ],
    "causes": ["education"],
    "work_mode": "remote",
    "hours_per_week": "5-10",
    "volunteer_type": "free",
}

NGO_PROFILE = {
    "org_name": "Bright Futures Foundation",
    "website": "https://brightfutures.example.org",
    "description": "We run after-school learning centres.",
    "mission": "Quality education for every child",
    "location": "Mumbai, India",
    "causes": ["education"],
    "typical_skills_needed": [{"category_id": "design", "subskill_id": "ui-ux", "priority": "must-have"}],
}

PROJECT = {
    "title": "Redesign our donation page",
    "description": "We need a cleaner, mobile friendly donation flow for our website.",
    "skills_required": [{"category_id": "design", "subskill_id": "ui-ux", "priority": "must-have"}],
    "experience_level": "intermediate",
    "time_commitment": "5-10 hours",
    "work_mode": "remote",
    "causes": ["education"],
}


@pytest_asyncio.fixture
async def volunteer(client):
    user = await register(client, "agent@example.com", "Asha Volunteer", "volunteer")
    response = await client.post("/api/volunteer/onboarding", json=VOLUNTEER_PROFILE, headers=user["headers"])
    assert response.status_code == 200, response.text
    return user


@pytest_asyncio.fixture
async def paid_volunteer(client):
    user = await register(client, "paid@example.com", "Ravi Paid", "volunteer")
    profile = {**VOLUNTEER_PROFILE, "volunteer_type": "paid", "hourly_rate": 40, "currency": "USD"}
    response = await client.post("/api/volunteer/onboarding", json=profile, headers=user["headers"])
    assert response.status_code == 200, response.text
    return user


@pytest_asyncio.fixture
async def ngo(client):
    user = await register(client, "ngo@example.com", "Meera NGO", "ngo")
    response = await client.post("/api/ngo/onboarding", json=NGO_PROFILE, headers=user["headers"])
    assert response.status_code == 200, response.text
    return user


@pytest_asyncio.fixture
async def admin(client, db):
    user = await register(client, "admin@example.com", "Site Admin")
    await db.users.update_one({"id": user["id"]}, {"$set": {"role": "admin"}})
    return user


@pytest_asyncio.fixture
async def project(client, ngo):
    response = await client.post("/api/projects", json=PROJECT, headers=ngo["headers"])
    assert response.status_code == 200, response.text
    return response.json()


async def make_pro(db, user_id: str):
    await db.users.update_one({"id": user_id}, {"$set": {"subscription_plan": "pro", "subscription_expiry": None}})
