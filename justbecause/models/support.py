from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Literal

TicketStatus = Literal["open", "in-progress", "resolved", "closed"]
TicketPriority = Literal["low", "medium", "high", "urgent"]
TicketCategory = Literal["technical", "payment", "account", "general", "report"]

class TicketResponse(BaseModel):
    id: str
    sender_id: str
    message: str
    is_admin: bool = False
    created_at: str

class SupportTicket(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    user_id: str
    user_name: Optional[str] = None
    user_email: str
    user_type: Optional[str] = None
    subject: str
    description: str
    category: str = "general"
    priority: str = "medium"
    status: str = "open"
    responses: List[TicketResponse] = []
    resolved_at: Optional[str] = None
    created_at: str
    updated_at: str

class SupportTicketCreate(BaseModel):
    subject: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10, max_length=5000)
    category: TicketCategory = "general"
    priority: TicketPriority = "medium"

class TicketReply(BaseModel):
    message: str = Field(min_length=1, max_length=5000)
    # Admin replies may move the ticket along in the same call
    status: Optional[TicketStatus] = None

class TicketStatusUpdate(BaseModel):
    status: TicketStatus
