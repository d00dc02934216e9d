"""
Give NGO accounts without a display name their organization name.

Usage: python scripts/sync_user_names.py
"""
from datetime import datetime, timezone

from pymongo import MongoClient

from justbecause.core.config import MONGO_URL, DB_NAME

MISSING_NAME = {"$or": [{"name": {"$exists": False}}, {"name": None}, {"name": ""}]}


def sync_names(db) -> int:
    updated = 0
    now = datetime.now(timezone.utc).isoformat()
    query = {"role": "ngo", "org_name": {"$nin": [None, ""]}, **MISSING_NAME}
    for user in db.users.find(query, {"_id": 0, "id": 1, "email": 1, "org_name": 1}):
        db.users.update_one({"id": user["id"]}, {"$set": {"name": user["org_name"], "updated_at": now}})
        updated += 1
        print(f"   Updated {user['email']}: {user['org_name']}")
    return updated


def main():
    client = MongoClient(MONGO_URL)
    try:
        updated = sync_names(client[DB_NAME])
    finally:
        client.close()
    print(f"NGO names synced: {updated}")


if __name__ == "__main__":
    main()
