from pydantic import BaseModel, ConfigDict
from typing import Optional, Literal

class Transaction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    user_id: str
    type: str  # 'subscription' or 'profile_unlock'
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    amount: float
    original_amount: Optional[float] = None
    discount: float = 0
    coupon_code: Optional[str] = None
    currency: str
    payment_gateway: str
    payment_id: str
    status: str
    description: Optional[str] = None
    created_at: str

class CreateOrderRequest(BaseModel):
    plan_id: str
    coupon_code: Optional[str] = None

class ConfirmPaymentRequest(BaseModel):
    plan_id: str
    gateway: Literal["stripe", "razorpay"]
    # Stripe
    payment_intent_id: Optional[str] = None
    # Razorpay
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None

class UnlockProfileRequest(BaseModel):
    volunteer_id: str

class PaymentGatewayConfigUpdate(BaseModel):
    gateway: Literal["stripe", "razorpay", "none"]
    is_live: bool = False
    stripe_publishable_key: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
