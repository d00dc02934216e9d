import mongomock

from scripts.merge_profiles_into_users import (
    snake_case, normalize_profile, volunteer_fields, ngo_fields, keep_existing_identity, merge,
    VOLUNTEER_ALIASES,
)
from scripts.sync_user_names import sync_names


def legacy_db():
    return mongomock.MongoClient()["legacy"]


def test_snake_case():
    assert snake_case("hoursPerWeek") == "hours_per_week"
    assert snake_case("bio") == "bio"


def test_normalize_profile_applies_aliases_and_skips_ids():
    fields = normalize_profile(
        {"_id": "x", "userId": "u1", "linkedIn": "https://linkedin.com/in/a", "linkedinUrl": "", "workMode": "remote"},
        VOLUNTEER_ALIASES,
    )
    assert fields == {"linkedin_url": "https://linkedin.com/in/a", "work_mode": "remote"}


def test_volunteer_fields_defaults():
    fields = volunteer_fields({"userId": "u1", "interests": ["education"], "isActive": False})
    assert fields["causes"] == ["education"]
    assert fields["is_active"] is False
    assert fields["rating"] == 0
    assert fields["completed_projects"] == 0
    assert fields["has_volunteer_profile"] is True


def test_ngo_fields():
    fields = ngo_fields({"organizationName": "Bright Futures"})
    assert fields["org_name"] == "Bright Futures"
    assert fields["is_verified"] is False
    assert fields["has_ngo_profile"] is True


def test_keep_existing_identity():
    fields = keep_existing_identity({"name": "Asha", "avatar": None}, {"name": "Legacy", "avatar": "a.png"})
    assert fields == {"avatar": "a.png"}


def test_merge_is_repeatable():
    db = legacy_db()
    db.users.insert_many([
        {"id": "v1", "name": "Asha", "role": "volunteer"},
        {"id": "n1", "name": "", "role": "ngo"},
    ])
    db.volunteer_profiles.insert_one({"userId": "v1", "bio": "Designer", "hoursPerWeek": "5-10"})
    db.ngo_profiles.insert_many([
        {"userId": "n1", "orgName": "Bright Futures", "isVerified": True},
        {"userId": "ghost", "orgName": "Nobody"},
    ])

    for _ in range(2):
        summary = merge(db)
        assert summary == {"volunteers_merged": 1, "ngos_merged": 1, "missing_users": 1}

    volunteer = db.users.find_one({"id": "v1"})
    assert volunteer["bio"] == "Designer"
    assert volunteer["hours_per_week"] == "5-10"
    assert volunteer["name"] == "Asha"
    ngo = db.users.find_one({"id": "n1"})
    assert ngo["org_name"] == "Bright Futures"
    assert ngo["is_verified"] is True


def test_sync_names_fills_missing_ngo_names():
    db = legacy_db()
    db.users.insert_many([
        {"id": "n1", "email": "a@example.org", "role": "ngo", "org_name": "Bright Futures"},
        {"id": "n2", "email": "b@example.org", "role": "ngo", "name": "Kept", "org_name": "Other"},
        {"id": "v1", "email": "c@example.org", "role": "volunteer", "org_name": "Ignored"},
    ])
    assert sync_names(db) == 1
    assert db.users.find_one({"id": "n1"})["name"] == "Bright Futures"
    assert db.users.find_one({"id": "n2"})["name"] == "Kept"
    assert sync_names(db) == 0
