from fastapi import APIRouter, HTTPException, Depends, Query

from justbecause.core.security import require_auth
from justbecause.db.mongo import db

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("")
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(require_auth)
):
    query = {"user_id": user["id"]}
    if unread_only:
        query["is_read"] = False
    return await db.notifications.find(query, {"_id": 0}).sort("created_at", -1).limit(limit).to_list(limit)

@router.get("/unread-count")
async def unread_count(user: dict = Depends(require_auth)):
    count = await db.notifications.count_documents({"user_id": user["id"], "is_read": False})
    return {"count": count}

@router.post("/read-all")
async def mark_all_read(user: dict = Depends(require_auth)):
    result = await db.notifications.update_many(
        {"user_id": user["id"], "is_read": False},
        {"$set": {"is_read": True}}
    )
    return {"marked_read": result.modified_count}

@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, user: dict = Depends(require_auth)):
    result = await db.notifications.update_one(
        {"id": notification_id, "user_id": user["id"]},
        {"$set": {"is_read": True}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read"}

@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, user: dict = Depends(require_auth)):
    result = await db.notifications.delete_one({"id": notification_id, "user_id": user["id"]})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification deleted"}
