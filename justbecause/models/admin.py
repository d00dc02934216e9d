from pydantic import BaseModel, ConfigDict
from typing import List, Optional, Literal

class AdminSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    platform_name: Optional[str] = None
    platform_description: Optional[str] = None
    support_email: Optional[str] = None
    platform_logo: Optional[str] = None
    currency: Optional[str] = None
    volunteer_free_applications_per_month: Optional[int] = None
    volunteer_pro_price: Optional[float] = None
    volunteer_features: Optional[List[str]] = None
    ngo_free_projects_per_month: Optional[int] = None
    ngo_pro_price: Optional[float] = None
    ngo_features: Optional[List[str]] = None
    enable_payments: Optional[bool] = None
    enable_messaging: Optional[bool] = None
    enable_notifications: Optional[bool] = None
    require_email_verification: Optional[bool] = None
    require_ngo_verification: Optional[bool] = None
    maintenance_mode: Optional[bool] = None
    maintenance_message: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None

class RoleUpdate(BaseModel):
    role: Literal["user", "volunteer", "ngo", "admin"]

class BanRequest(BaseModel):
    reason: str

class SubscriptionGrant(BaseModel):
    plan: Literal["free", "pro"]
    days: Optional[int] = None

class BroadcastNotification(BaseModel):
    title: str
    message: str
    role: Optional[Literal["volunteer", "ngo"]] = None
    link: Optional[str] = None

class BanRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    user_id: str
    user_email: str
    reason: str
    banned_by: str
    is_active: bool = True
    created_at: str
    lifted_at: Optional[str] = None
    lifted_by: Optional[str] = None
