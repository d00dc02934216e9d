import os
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent.parent
load_dotenv(ROOT_DIR / '.env')

# App Version
APP_VERSION = "1.0.0"
APP_NAME = "JustBeCause Network"

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'justbecause')

# JWT
JWT_SECRET = os.environ.get('JWT_SECRET', 'your-super-secret-jwt-key-change-in-production')
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = int(os.environ.get('JWT_EXPIRATION_HOURS', '24'))

# HTTP
CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]
FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.environ.get('LOG_FORMAT', 'json')

# Email (Resend)
RESEND_API_KEY = os.environ.get('RESEND_API_KEY', '')
FROM_EMAIL = os.environ.get('FROM_EMAIL', 'JustBeCause Network <noreply@justbecausenetwork.com>')
RESEND_API_URL = "https://api.resend.com"

# AI
OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')

# Stripe
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', '')
STRIPE_PUBLISHABLE_KEY = os.environ.get('STRIPE_PUBLISHABLE_KEY', '')
STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET', '')

# Razorpay
RAZORPAY_KEY_ID = os.environ.get('RAZORPAY_KEY_ID', '')
RAZORPAY_KEY_SECRET = os.environ.get('RAZORPAY_KEY_SECRET', '')
RAZORPAY_API_URL = "https://api.razorpay.com/v1"

# Activate subscriptions without a gateway (local development only)
PAYMENTS_DEMO_MODE = os.environ.get('PAYMENTS_DEMO_MODE', '').lower() in ('1', 'true', 'yes')

# OTP
OTP_EXPIRATION_MINUTES = int(os.environ.get('OTP_EXPIRATION_MINUTES', '10'))
OTP_MAX_ATTEMPTS = 5

SUBSCRIPTION_PERIOD_DAYS = 30

SUPPORTED_CURRENCIES = ["USD", "INR", "EUR", "GBP", "SGD", "AED", "MYR"]

# Plans Configuration
PLANS = {
    "volunteer-free": {
        "id": "volunteer-free",
        "role": "volunteer",
        "tier": "free",
        "name": "Free",
        "price_setting": None,
        "features": [
            "Limited applications per month",
            "Basic profile",
            "Browse opportunities"
        ]
    },
    "volunteer-pro": {
        "id": "volunteer-pro",
        "role": "volunteer",
        "tier": "pro",
        "name": "Pro",
        "price_setting": "volunteer_pro_price",
        "features": [
            "Unlimited applications",
            "Featured profile badge",
            "Priority in search results",
            "Direct messaging to NGOs",
            "Early access to opportunities",
            "Profile analytics"
        ]
    },
    "ngo-free": {
        "id": "ngo-free",
        "role": "ngo",
        "tier": "free",
        "name": "Free",
        "price_setting": None,
        "features": [
            "Limited projects per month",
            "Browse Impact Agents",
            "Paid Impact Agent profiles"
        ]
    },
    "ngo-pro": {
        "id": "ngo-pro",
        "role": "ngo",
        "tier": "pro",
        "name": "Pro",
        "price_setting": "ngo_pro_price",
        "features": [
            "Unlimited projects",
            "Unlock free Impact Agent profiles",
            "Advanced AI-powered matching",
            "Priority support",
            "Project analytics",
            "Featured organization badge"
        ]
    }
}

DEFAULT_ADMIN_SETTINGS = {
    "platform_name": "JustBeCause Network",
    "platform_description": "Connecting Skills with Purpose",
    "support_email": "support@justbecausenetwork.com",
    "platform_logo": None,
    "currency": "USD",

    "volunteer_free_applications_per_month": 3,
    "volunteer_pro_price": 999,
    "volunteer_features": PLANS["volunteer-pro"]["features"],

    "ngo_free_projects_per_month": 3,
    "ngo_pro_price": 2999,
    "ngo_features": PLANS["ngo-pro"]["features"],

    "enable_payments": True,
    "enable_messaging": True,
    "enable_notifications": True,
    "require_email_verification": False,
    "require_ngo_verification": False,
    "maintenance_mode": False,
    "maintenance_message": None,

    "meta_title": "JustBeCause Network - Connect NGOs with Impact Agents",
    "meta_description": "Connect with NGOs and make a difference through skill-based impact work.",
}

# Settings that are safe to expose without authentication
PUBLIC_SETTING_KEYS = [
    "platform_name", "platform_description", "support_email", "platform_logo", "currency",
    "volunteer_free_applications_per_month", "volunteer_pro_price", "volunteer_features",
    "ngo_free_projects_per_month", "ngo_pro_price", "ngo_features",
    "enable_payments", "enable_messaging", "maintenance_mode", "maintenance_message",
    "meta_title", "meta_description",
]
