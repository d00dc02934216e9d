from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Literal

class Coupon(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    code: str
    description: Optional[str] = None
    discount_type: str = "percentage"  # 'percentage' or 'fixed'
    discount_value: float
    min_amount: float = 0
    max_discount: Optional[float] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    max_uses: int = 0  # 0 = unlimited
    max_uses_per_user: int = 1
    used_count: int = 0
    applicable_plans: List[str] = []
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: str

class CouponCreate(BaseModel):
    code: str = Field(min_length=3, max_length=40)
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: float = Field(gt=0)
    min_amount: float = 0
    max_discount: Optional[float] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    max_uses: int = 0
    max_uses_per_user: int = 1
    applicable_plans: List[str] = []
    is_active: bool = True

class CouponUpdate(BaseModel):
    description: Optional[str] = None
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[float] = Field(default=None, gt=0)
    min_amount: Optional[float] = None
    max_discount: Optional[float] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    max_uses: Optional[int] = None
    max_uses_per_user: Optional[int] = None
    applicable_plans: Optional[List[str]] = None
    is_active: Optional[bool] = None

class CouponValidateRequest(BaseModel):
    code: str
    plan_id: str
