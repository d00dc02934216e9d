from fastapi import APIRouter, HTTPException, Depends, Query, Request
from typing import List, Optional

import structlog

from justbecause.core.security import require_auth, require_admin
from justbecause.db.mongo import db
from justbecause.models.support import SupportTicket, SupportTicketCreate, TicketReply, TicketStatusUpdate
from justbecause.routes.admin import create_audit_log, client_ip
from justbecause.services.notifications import notify_quietly
from justbecause.services.utils import new_id, now_iso, display_name, parse_datetime
from justbecause.services.validation import sanitize_string

logger = structlog.get_logger()

router = APIRouter(tags=["support"])

PRIORITY_RANK = {"urgent": 0, "high": 1, "medium": 2, "low": 3}
CLOSED_STATUSES = ("resolved", "closed")

def new_response(user: dict, message: str, is_admin: bool) -> dict:
    return {
        "id": new_id(),
        "sender_id": user["id"],
        "message": sanitize_string(message, 5000),
        "is_admin": is_admin,
        "created_at": now_iso(),
    }

async def get_ticket_or_404(ticket_id: str, user_id: str = None) -> dict:
    query = {"id": ticket_id}
    if user_id:
        query["user_id"] = user_id
    ticket = await db.support_tickets.find_one(query, {"_id": 0})
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket

# ==================== USER ENDPOINTS ====================
@router.post("/support/tickets", response_model=SupportTicket)
async def create_ticket(ticket_data: SupportTicketCreate, user: dict = Depends(require_auth)):
    now = now_iso()
    ticket = {
        "id": new_id(),
        "user_id": user["id"],
        "user_name": display_name(user),
        "user_email": user["email"],
        "user_type": user.get("role"),
        "subject": sanitize_string(ticket_data.subject, 200),
        "description": sanitize_string(ticket_data.description, 5000),
        "category": ticket_data.category,
        "priority": ticket_data.priority,
        "status": "open",
        "responses": [],
        "resolved_at": None,
        "created_at": now,
        "updated_at": now,
    }
    await db.support_tickets.insert_one(ticket)
    logger.info("Support ticket created", ticket_id=ticket["id"], user_id=user["id"], category=ticket["category"])
    return SupportTicket(**ticket)

@router.get("/support/tickets", response_model=List[SupportTicket])
async def get_my_tickets(user: dict = Depends(require_auth)):
    tickets = await db.support_tickets.find({"user_id": user["id"]}, {"_id": 0}).sort("created_at", -1).to_list(100)
    return [SupportTicket(**t) for t in tickets]

@router.get("/support/tickets/{ticket_id}", response_model=SupportTicket)
async def get_my_ticket(ticket_id: str, user: dict = Depends(require_auth)):
    return SupportTicket(**await get_ticket_or_404(ticket_id, user["id"]))

@router.post("/support/tickets/{ticket_id}/reply", response_model=SupportTicket)
async def reply_to_ticket(ticket_id: str, reply: TicketReply, user: dict = Depends(require_auth)):
    ticket = await get_ticket_or_404(ticket_id, user["id"])
    if ticket["status"] in CLOSED_STATUSES:
        raise HTTPException(status_code=400, detail="Cannot reply to a closed ticket")

    await db.support_tickets.update_one(
        {"id": ticket_id},
        {"$push": {"responses": new_response(user, reply.message, False)},
         "$set": {"status": "open", "updated_at": now_iso()}}
    )
    return SupportTicket(**await get_ticket_or_404(ticket_id))

# ==================== ADMIN ENDPOINTS ====================
@router.get("/admin/support/tickets")
async def get_admin_tickets(
    status: Optional[str] = None,
    category: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    admin: dict = Depends(require_admin)
):
    query = {}
    if status:
        query["status"] = status
    if category:
        query["category"] = category

    tickets = await db.support_tickets.find(query, {"_id": 0}).sort("created_at", 1).to_list(5000)
    # Most urgent first, oldest first within a priority
    tickets.sort(key=lambda t: PRIORITY_RANK.get(t.get("priority"), len(PRIORITY_RANK)))
    return {"tickets": tickets[skip:skip + limit], "total": len(tickets)}

@router.post("/admin/support/tickets/{ticket_id}/respond", response_model=SupportTicket)
async def respond_to_ticket(ticket_id: str, reply: TicketReply, admin: dict = Depends(require_admin)):
    ticket = await get_ticket_or_404(ticket_id)
    status = reply.status or "in-progress"
    update = {"status": status, "updated_at": now_iso()}
    if status in CLOSED_STATUSES:
        update["resolved_at"] = update["updated_at"]

    await db.support_tickets.update_one(
        {"id": ticket_id},
        {"$push": {"responses": new_response(admin, reply.message, True)}, "$set": update}
    )
    await notify_quietly(
        ticket["user_id"], "support", "Support replied to your ticket", ticket["subject"],
        reference_id=ticket_id, reference_type="support_ticket", link=f"/support/{ticket_id}"
    )
    return SupportTicket(**await get_ticket_or_404(ticket_id))

@router.put("/admin/support/tickets/{ticket_id}/status", response_model=SupportTicket)
async def update_ticket_status(ticket_id: str, update: TicketStatusUpdate, request: Request,
                               admin: dict = Depends(require_admin)):
    ticket = await get_ticket_or_404(ticket_id)
    changes = {"status": update.status, "updated_at": now_iso()}
    changes["resolved_at"] = changes["updated_at"] if update.status in CLOSED_STATUSES else None

    await db.support_tickets.update_one({"id": ticket_id}, {"$set": changes})
    await create_audit_log(admin, "ticket_status", "support_ticket", ticket_id,
                           {"status": ticket["status"]}, {"status": update.status},
                           ip_address=client_ip(request))
    return SupportTicket(**await get_ticket_or_404(ticket_id))

@router.get("/admin/support/stats")
async def get_support_stats(admin: dict = Depends(require_admin)):
    tickets = await db.support_tickets.find(
        {}, {"_id": 0, "status": 1, "category": 1, "created_at": 1, "resolved_at": 1}
    ).to_list(10000)

    by_status, by_category = {}, {}
    resolution_hours = []
    for ticket in tickets:
        by_status[ticket["status"]] = by_status.get(ticket["status"], 0) + 1
        by_category[ticket["category"]] = by_category.get(ticket["category"], 0) + 1
        created, resolved = parse_datetime(ticket.get("created_at")), parse_datetime(ticket.get("resolved_at"))
        if created and resolved:
            resolution_hours.append((resolved - created).total_seconds() / 3600)

    return {
        "total": len(tickets),
        "by_status": by_status,
        "by_category": by_category,
        "avg_resolution_hours": round(sum(resolution_hours) / len(resolution_hours), 2) if resolution_hours else 0,
    }
