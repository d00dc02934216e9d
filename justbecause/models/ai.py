from pydantic import BaseModel
from typing import List, Optional

class BioRequest(BaseModel):
    name: Optional[str] = None
    skills: List[str] = []
    causes: List[str] = []
    completed_projects: int = 0
    hours_contributed: float = 0
    location: Optional[str] = None
    current_bio: Optional[str] = None

class CoverLetterRequest(BaseModel):
    project_id: str

class SkillSuggestionRequest(BaseModel):
    skills: List[str] = []
    causes: List[str] = []
    bio: Optional[str] = None
    interests: Optional[str] = None

class ProjectDescriptionRequest(BaseModel):
    title: Optional[str] = None
    causes: List[str] = []
    skills: List[str] = []
    rough_description: Optional[str] = None
    work_mode: Optional[str] = None
    duration: Optional[str] = None

class MatchExplanationRequest(BaseModel):
    project_id: str
    volunteer_id: Optional[str] = None
