from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Literal

from justbecause.models.profile import RequiredSkill, WorkMode

ProjectStatus = Literal["draft", "active", "open", "paused", "completed", "closed", "cancelled"]
ProjectType = Literal["short-term", "long-term", "consultation", "ongoing"]
ExperienceLevel = Literal["beginner", "intermediate", "expert", "any"]

class Project(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    ngo_id: str
    ngo_name: Optional[str] = None
    title: str
    description: str
    skills_required: List[RequiredSkill] = []
    experience_level: str = "any"
    time_commitment: Optional[str] = None
    duration: Optional[str] = None
    project_type: str = "short-term"
    work_mode: str = "remote"
    location: Optional[str] = None
    causes: List[str] = []
    start_date: Optional[str] = None
    deadline: Optional[str] = None
    documents: List[str] = []
    status: str = "active"
    applicants_count: int = 0
    views_count: int = 0
    total_hours_logged: float = 0
    created_at: str
    updated_at: str

class ProjectCreate(BaseModel):
    title: str
    description: str
    skills_required: List[RequiredSkill] = []
    experience_level: ExperienceLevel = "any"
    time_commitment: Optional[str] = None
    duration: Optional[str] = None
    project_type: ProjectType = "short-term"
    work_mode: WorkMode = "remote"
    location: Optional[str] = None
    causes: List[str] = []
    start_date: Optional[str] = None
    deadline: Optional[str] = None
    documents: List[str] = Field(default=[], max_length=20)

class HoursLog(BaseModel):
    hours: float = Field(gt=0, le=24)
    volunteer_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)

class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    skills_required: Optional[List[RequiredSkill]] = None
    experience_level: Optional[ExperienceLevel] = None
    time_commitment: Optional[str] = None
    duration: Optional[str] = None
    project_type: Optional[ProjectType] = None
    work_mode: Optional[WorkMode] = None
    location: Optional[str] = None
    causes: Optional[List[str]] = None
    start_date: Optional[str] = None
    deadline: Optional[str] = None
    documents: Optional[List[str]] = None
    status: Optional[ProjectStatus] = None
