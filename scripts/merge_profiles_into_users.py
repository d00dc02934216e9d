"""
Merge legacy volunteer_profiles and ngo_profiles documents into the users collection.

The users collection is the single source of truth for profile data. Running the
script twice is safe: fields are recomputed from the legacy documents and existing
user names and images are never overwritten.

Usage: python scripts/merge_profiles_into_users.py
"""
import re
from datetime import datetime, timezone

from pymongo import MongoClient

from justbecause.core.config import MONGO_URL, DB_NAME

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

# Legacy keys that were renamed rather than just re-cased
VOLUNTEER_ALIASES = {
    "linkedIn": "linkedin_url",
    "linkedinUrl": "linkedin_url",
    "portfolio": "portfolio_url",
    "portfolioUrl": "portfolio_url",
    "interests": "causes",
    "image": "avatar",
}
NGO_ALIASES = {
    "organizationName": "org_name",
    "orgName": "org_name",
}
SKIP_KEYS = {"_id", "userId", "user_id", "id", "createdAt", "created_at", "updatedAt", "updated_at"}


def snake_case(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def normalize_profile(profile: dict, aliases: dict) -> dict:
    """Convert a legacy camelCase profile into flat snake_case user fields."""
    fields = {}
    for key, value in profile.items():
        if key in SKIP_KEYS:
            continue
        target = aliases.get(key) or snake_case(key)
        # An earlier alias must not be overwritten by an empty later one
        if value in (None, "") and fields.get(target) not in (None, ""):
            continue
        fields[target] = value
    return fields


def volunteer_fields(profile: dict) -> dict:
    fields = normalize_profile(profile, VOLUNTEER_ALIASES)
    fields["is_active"] = profile.get("isActive", profile.get("is_active")) is not False
    fields["rating"] = fields.get("rating") or 0
    fields["completed_projects"] = fields.get("completed_projects") or 0
    fields["has_volunteer_profile"] = True
    return fields


def ngo_fields(profile: dict) -> dict:
    fields = normalize_profile(profile, NGO_ALIASES)
    fields["is_verified"] = bool(fields.get("is_verified"))
    fields["has_ngo_profile"] = True
    return fields


def keep_existing_identity(user: dict, fields: dict) -> dict:
    """Never replace a name or avatar the user already has."""
    for key in ("name", "avatar"):
        if user.get(key):
            fields.pop(key, None)
    return fields


def merge(db) -> dict:
    summary = {"volunteers_merged": 0, "ngos_merged": 0, "missing_users": 0}
    now = datetime.now(timezone.utc).isoformat()

    for collection, build, counter in (
        ("volunteer_profiles", volunteer_fields, "volunteers_merged"),
        ("ngo_profiles", ngo_fields, "ngos_merged"),
    ):
        for profile in db[collection].find():
            user_id = str(profile.get("userId") or profile.get("user_id") or "")
            user = db.users.find_one({"id": user_id})
            if not user:
                summary["missing_users"] += 1
                print(f"   ! No user for {collection} profile {profile.get('_id')}")
                continue

            fields = keep_existing_identity(user, build(profile))
            fields["updated_at"] = now
            db.users.update_one({"id": user_id}, {"$set": fields})
            summary[counter] += 1

    return summary


def main():
    client = MongoClient(MONGO_URL)
    try:
        print("Merging legacy profile collections into users...")
        summary = merge(client[DB_NAME])
    finally:
        client.close()

    print("Migration summary:")
    print(f"   - Volunteer profiles merged: {summary['volunteers_merged']}")
    print(f"   - NGO profiles merged: {summary['ngos_merged']}")
    print(f"   - Profiles without a user: {summary['missing_users']}")
    print("Back up and drop volunteer_profiles and ngo_profiles once the application has been verified.")


if __name__ == "__main__":
    main()
