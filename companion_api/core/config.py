import os
import logging
from decimal import Decimal

import stripe
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./companion.db")
SQLALCHEMY_DATABASE_URI = DATABASE_URL
AUTO_CREATE_TABLES: bool = os.getenv("AUTO_CREATE_TABLES", "false").lower() in ("1", "true", "yes")
SQL_ECHO: bool = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# JWT Settings
SECRET_KEY: str = os.getenv("SECRET_KEY", "change_me_in_the_env_file_to_a_long_random_value")
ALGORITHM: str = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

# Stripe API Keys
STRIPE_PUBLISHABLE_KEY: str = os.getenv("STRIPE_PUBLISHABLE_KEY", "pk_test_YOUR_STRIPE_PUBLISHABLE_KEY")
STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "sk_test_YOUR_STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "whsec_YOUR_STRIPE_WEBHOOK_SECRET")
STRIPE_SUCCESS_URL: str = os.getenv("STRIPE_SUCCESS_URL", "http://localhost:3000/payment/success?session_id={CHECKOUT_SESSION_ID}")
STRIPE_CANCEL_URL: str = os.getenv("STRIPE_CANCEL_URL", "http://localhost:3000/premium")

# Bearer secret expected by the scheduled jobs endpoints
CRON_SECRET: str = os.getenv("CRON_SECRET", "")
RECONCILIATION_SCAN_LIMIT: int = int(os.getenv("RECONCILIATION_SCAN_LIMIT", 50))

# Referral commission rate per ancestor level
COMMISSION_RATES = {
    1: Decimal("0.50"),
    2: Decimal("0.05"),
    3: Decimal("0.05"),
}
MAX_COMMISSION_LEVELS = len(COMMISSION_RATES)

# package_id -> (tokens, price in USD)
TOKEN_PACKAGES = {
    "tokens_200": (200, Decimal("9.99")),
    "tokens_550": (550, Decimal("24.99")),
    "tokens_1550": (1550, Decimal("49.99")),
    "tokens_5800": (5800, Decimal("99.99")),
}
TOKEN_CURRENCY = "usd"

# plan_id -> (duration in months, price in USD, tokens on purchase and every month after)
SUBSCRIPTION_PLANS = {
    "premium_1m": (1, Decimal("12.99"), 100),
    "premium_3m": (3, Decimal("29.99"), 100),
    "premium_12m": (12, Decimal("99.99"), 100),
}

# Initialize Stripe API key
if STRIPE_SECRET_KEY and "YOUR_STRIPE_SECRET_KEY" not in STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY
else:
    logger.warning("Stripe secret key is not configured or is using a placeholder value.")
