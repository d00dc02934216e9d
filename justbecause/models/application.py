from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal

ApplicationStatus = Literal["pending", "shortlisted", "accepted", "rejected", "withdrawn"]

class Application(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    project_id: str
    volunteer_id: str
    ngo_id: str
    cover_message: Optional[str] = None
    status: str = "pending"
    is_profile_unlocked: bool = False
    notes: Optional[str] = None
    applied_at: str
    reviewed_at: Optional[str] = None

class ApplicationCreate(BaseModel):
    cover_message: Optional[str] = Field(default=None, max_length=5000)

class ApplicationStatusUpdate(BaseModel):
    status: Literal["pending", "shortlisted", "accepted", "rejected"]
    notes: Optional[str] = Field(default=None, max_length=2000)
