from pydantic import BaseModel, Field
from typing import List, Optional, Literal

SkillLevel = Literal["beginner", "intermediate", "expert"]
WorkMode = Literal["remote", "onsite", "hybrid"]
VolunteerType = Literal["free", "paid", "both"]
Availability = Literal["flexible", "weekdays", "weekends", "evenings", "limited"]

class VolunteerSkill(BaseModel):
    category_id: str
    subskill_id: str
    level: SkillLevel = "intermediate"

class RequiredSkill(BaseModel):
    category_id: str
    subskill_id: str
    priority: Literal["must-have", "nice-to-have"] = "nice-to-have"

class VolunteerOnboarding(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    headline: Optional[str] = Field(default=None, max_length=200)
    bio: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    resume_url: Optional[str] = None
    skills: List[VolunteerSkill] = []
    causes: List[str] = []
    languages: List[str] = []
    work_mode: WorkMode = "remote"
    hours_per_week: str = "5-10"
    availability: Availability = "flexible"
    volunteer_type: VolunteerType = "free"
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    discounted_rate: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    free_hours_per_month: Optional[int] = Field(default=None, ge=0)

class VolunteerProfileUpdate(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    headline: Optional[str] = Field(default=None, max_length=200)
    bio: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    resume_url: Optional[str] = None
    skills: Optional[List[VolunteerSkill]] = None
    causes: Optional[List[str]] = None
    languages: Optional[List[str]] = None
    work_mode: Optional[WorkMode] = None
    hours_per_week: Optional[str] = None
    availability: Optional[Availability] = None
    volunteer_type: Optional[VolunteerType] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    discounted_rate: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    free_hours_per_month: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

class NGOOnboarding(BaseModel):
    org_name: str
    registration_number: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    description: Optional[str] = None
    mission: Optional[str] = None
    year_founded: Optional[int] = None
    team_size: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    location: Optional[str] = None
    causes: List[str] = []
    typical_skills_needed: List[RequiredSkill] = []
    social_links: dict = {}

class NGOProfileUpdate(BaseModel):
    org_name: Optional[str] = None
    registration_number: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    description: Optional[str] = None
    mission: Optional[str] = None
    year_founded: Optional[int] = None
    team_size: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    location: Optional[str] = None
    causes: Optional[List[str]] = None
    typical_skills_needed: Optional[List[RequiredSkill]] = None
    social_links: Optional[dict] = None

class VolunteerProfileView(BaseModel):
    id: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    headline: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    resume_url: Optional[str] = None
    skills: List[VolunteerSkill] = []
    causes: List[str] = []
    languages: Optional[List[str]] = None
    work_mode: Optional[str] = None
    hours_per_week: Optional[str] = None
    availability: Optional[str] = None
    volunteer_type: Optional[str] = None
    hourly_rate: Optional[float] = None
    discounted_rate: Optional[float] = None
    currency: Optional[str] = None
    free_hours_per_month: Optional[int] = None
    completed_projects: Optional[int] = 0
    hours_contributed: Optional[float] = 0
    rating: Optional[float] = 0
    total_ratings: Optional[int] = 0
    is_verified: Optional[bool] = False
    is_unlocked: bool
    can_message: bool
