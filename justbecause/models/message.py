from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

class Conversation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    participants: List[str]
    project_id: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: Optional[str] = None
    created_at: str
    updated_at: str

class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    project_id: Optional[str] = None
    content: str
    is_read: bool = False
    read_at: Optional[str] = None
    created_at: str

class ConversationCreate(BaseModel):
    receiver_id: str
    project_id: Optional[str] = None
    initial_message: Optional[str] = Field(default=None, max_length=5000)

class SendMessageRequest(BaseModel):
    receiver_id: str
    content: str = Field(max_length=5000)
    project_id: Optional[str] = None
