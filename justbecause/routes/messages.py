from fastapi import APIRouter, HTTPException, Depends
from typing import List

import structlog

from justbecause.core.security import require_auth
from justbecause.db.mongo import db
from justbecause.models.message import Conversation, Message, ConversationCreate, SendMessageRequest
from justbecause.services.email import new_message_email
from justbecause.services.notifications import notify_quietly, email_quietly
from justbecause.services.utils import new_id, now_iso, display_name, public_user_card, get_admin_settings
from justbecause.services.validation import sanitize_string

logger = structlog.get_logger()

router = APIRouter(prefix="/messages", tags=["messages"])

PREVIEW_LENGTH = 50

def preview(content: str) -> str:
    return content[:PREVIEW_LENGTH] + "..." if len(content) > PREVIEW_LENGTH else content

async def require_messaging():
    settings = await get_admin_settings()
    if not settings.get("enable_messaging", True):
        raise HTTPException(status_code=403, detail="Messaging is currently disabled")

async def get_receiver_or_404(receiver_id: str) -> dict:
    receiver = await db.users.find_one({"id": receiver_id}, {"_id": 0, "password_hash": 0})
    if not receiver:
        raise HTTPException(status_code=404, detail="Recipient not found")
    return receiver

async def find_or_create_conversation(user_id: str, other_id: str, project_id: str = None) -> dict:
    participants = sorted([user_id, other_id])
    conversation = await db.conversations.find_one({"participants": participants}, {"_id": 0})
    if conversation:
        return conversation

    now = now_iso()
    conversation = {
        "id": new_id(),
        "participants": participants,
        "project_id": project_id,
        "last_message": None,
        "last_message_at": None,
        "created_at": now,
        "updated_at": now
    }
    await db.conversations.insert_one(conversation)
    conversation.pop("_id", None)
    return conversation

async def get_conversation_for(conversation_id: str, user: dict) -> dict:
    conversation = await db.conversations.find_one({"id": conversation_id}, {"_id": 0})
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if user["id"] not in conversation["participants"]:
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")
    return conversation

async def deliver_message(sender: dict, receiver: dict, content: str, project_id: str = None) -> dict:
    content = sanitize_string(content or "", 5000)
    if not content:
        raise HTTPException(status_code=400, detail="Message cannot be empty")

    conversation = await find_or_create_conversation(sender["id"], receiver["id"], project_id)
    now = now_iso()
    message = {
        "id": new_id(),
        "conversation_id": conversation["id"],
        "sender_id": sender["id"],
        "receiver_id": receiver["id"],
        "project_id": project_id or conversation.get("project_id"),
        "content": content,
        "is_read": False,
        "read_at": None,
        "created_at": now
    }
    await db.messages.insert_one(message)
    message.pop("_id", None)

    await db.conversations.update_one(
        {"id": conversation["id"]},
        {"$set": {"last_message": preview(content), "last_message_at": now, "updated_at": now}}
    )

    sender_name = display_name(sender)
    await notify_quietly(
        receiver["id"], "new_message", f"New message from {sender_name}", preview(content),
        reference_id=conversation["id"], reference_type="conversation", link=f"/messages/{conversation['id']}"
    )
    await email_quietly(receiver, "message_notifications", new_message_email(
        display_name(receiver), sender_name, preview(content)
    ))
    return message

# ========== CONVERSATIONS ==========
@router.post("/conversations", response_model=Conversation, dependencies=[Depends(require_messaging)])
async def start_conversation(request: ConversationCreate, user: dict = Depends(require_auth)):
    if request.receiver_id == user["id"]:
        raise HTTPException(status_code=400, detail="Cannot message yourself")
    receiver = await get_receiver_or_404(request.receiver_id)

    if request.initial_message:
        message = await deliver_message(user, receiver, request.initial_message, request.project_id)
        conversation = await db.conversations.find_one({"id": message["conversation_id"]}, {"_id": 0})
    else:
        conversation = await find_or_create_conversation(user["id"], receiver["id"], request.project_id)
    return Conversation(**conversation)

@router.get("/conversations")
async def list_conversations(user: dict = Depends(require_auth)):
    conversations = await db.conversations.find(
        {"participants": user["id"]}, {"_id": 0}
    ).sort("updated_at", -1).to_list(200)

    other_ids = list({p for c in conversations for p in c["participants"] if p != user["id"]})
    others = await db.users.find(
        {"id": {"$in": other_ids}}, {"_id": 0, "id": 1, "name": 1, "org_name": 1, "avatar": 1, "logo": 1, "role": 1}
    ).to_list(len(other_ids) or 1)
    cards = {o["id"]: public_user_card(o) for o in others}

    for conversation in conversations:
        other_id = next((p for p in conversation["participants"] if p != user["id"]), None)
        conversation["other_participant"] = cards.get(other_id)
        conversation["unread_count"] = await db.messages.count_documents(
            {"conversation_id": conversation["id"], "receiver_id": user["id"], "is_read": False}
        )
    return conversations

# ========== MESSAGES ==========
@router.post("/send", response_model=Message, dependencies=[Depends(require_messaging)])
async def send_message(request: SendMessageRequest, user: dict = Depends(require_auth)):
    if request.receiver_id == user["id"]:
        raise HTTPException(status_code=400, detail="Cannot message yourself")
    receiver = await get_receiver_or_404(request.receiver_id)
    message = await deliver_message(user, receiver, request.content, request.project_id)
    logger.info("Message sent", conversation_id=message["conversation_id"], sender_id=user["id"])
    return Message(**message)

@router.get("/unread")
async def get_unread_count(user: dict = Depends(require_auth)):
    count = await db.messages.count_documents({"receiver_id": user["id"], "is_read": False})
    return {"count": count}

@router.get("/{conversation_id}", response_model=List[Message])
async def get_messages(conversation_id: str, user: dict = Depends(require_auth)):
    await get_conversation_for(conversation_id, user)
    await mark_read(conversation_id, user["id"])
    messages = await db.messages.find(
        {"conversation_id": conversation_id}, {"_id": 0}
    ).sort("created_at", 1).to_list(1000)
    return [Message(**m) for m in messages]

@router.post("/{conversation_id}/read")
async def mark_conversation_read(conversation_id: str, user: dict = Depends(require_auth)):
    await get_conversation_for(conversation_id, user)
    updated = await mark_read(conversation_id, user["id"])
    return {"marked_read": updated}

async def mark_read(conversation_id: str, user_id: str) -> int:
    result = await db.messages.update_many(
        {"conversation_id": conversation_id, "receiver_id": user_id, "is_read": False},
        {"$set": {"is_read": True, "read_at": now_iso()}}
    )
    return result.modified_count
