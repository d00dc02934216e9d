import re
from urllib.parse import urlparse
from typing import List

from justbecause.core.config import SUPPORTED_CURRENCIES
from justbecause.services.utils import parse_datetime

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-+()]{7,20}$")
# Control characters except tab, newline and carriage return
CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

MAX_SKILLS = 50

def is_valid_email(email: str) -> bool:
    return bool(email and EMAIL_RE.match(email))

def is_valid_phone(phone: str) -> bool:
    return bool(phone and PHONE_RE.match(phone))

def is_valid_url(url: str) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)

def sanitize_string(value: str, max_length: int = 10000) -> str:
    if not value:
        return ""
    return CONTROL_CHARS_RE.sub("", value[:max_length]).strip()

def validate_project_data(data: dict) -> List[str]:
    errors = []
    title = data.get("title") or ""
    description = data.get("description") or ""

    if len(title) < 5:
        errors.append("Title must be at least 5 characters")
    if len(title) > 200:
        errors.append("Title must be less than 200 characters")

    if len(description) < 20:
        errors.append("Description must be at least 20 characters")
    if len(description) > 10000:
        errors.append("Description must be less than 10000 characters")

    start = parse_datetime(data.get("start_date"))
    deadline = parse_datetime(data.get("deadline"))
    if start and deadline and deadline < start:
        errors.append("Deadline cannot be before start date")

    return errors

def validate_volunteer_profile_data(data: dict) -> List[str]:
    errors = []
    if data.get("phone") and not is_valid_phone(data["phone"]):
        errors.append("Invalid phone number format")
    if data.get("bio") and len(data["bio"]) > 2000:
        errors.append("Bio must be less than 2000 characters")
    if data.get("linkedin_url") and not is_valid_url(data["linkedin_url"]):
        errors.append("Invalid LinkedIn URL")
    if data.get("portfolio_url") and not is_valid_url(data["portfolio_url"]):
        errors.append("Invalid portfolio URL")
    if data.get("location") and len(data["location"]) > 200:
        errors.append("Location must be less than 200 characters")
    if data.get("currency") and data["currency"].upper() not in SUPPORTED_CURRENCIES:
        errors.append("Unsupported currency")
    return errors

def validate_ngo_profile_data(data: dict) -> List[str]:
    errors = []
    org_name = data.get("org_name")
    if org_name is not None and not 2 <= len(org_name) <= 200:
        errors.append("Organization name must be between 2 and 200 characters")
    if data.get("contact_phone") and not is_valid_phone(data["contact_phone"]):
        errors.append("Invalid phone number format")
    if data.get("website") and not is_valid_url(data["website"]):
        errors.append("Invalid website URL")
    if data.get("description") and len(data["description"]) > 5000:
        errors.append("Description must be less than 5000 characters")
    if data.get("mission") and len(data["mission"]) > 2000:
        errors.append("Mission must be less than 2000 characters")
    return errors

def validate_skills(skills) -> List[str]:
    if not isinstance(skills, list):
        return ["Skills must be a list"]

    errors = []
    if len(skills) > MAX_SKILLS:
        errors.append(f"Maximum {MAX_SKILLS} skills allowed")
    for skill in skills:
        if not skill.get("category_id") or not skill.get("subskill_id"):
            errors.append("Each skill must have category_id and subskill_id")
            break
    return errors
