from pydantic import BaseModel, Field
from typing import Optional

class ReviewCreate(BaseModel):
    reviewee_id: str
    project_id: str
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=2000)

class EndorsementRequest(BaseModel):
    user_id: str
    category_id: str
    subskill_id: str

class ReferralApply(BaseModel):
    code: str
