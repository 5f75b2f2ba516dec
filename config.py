# config.py

import os
import logging

from dotenv import load_dotenv

load_dotenv()

# ------------------------------------------------------------
# Environment
# ------------------------------------------------------------

APP_ENV = os.getenv("APP_ENV", "development").strip().lower()
IS_PRODUCTION = APP_ENV == "production"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

# ------------------------------------------------------------
# MongoDB
# ------------------------------------------------------------

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017").strip()
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "oshudh_db").strip()

# ------------------------------------------------------------
# Stripe
# ------------------------------------------------------------

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "").strip()
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd").strip().lower()

# ------------------------------------------------------------
# Firebase
# ------------------------------------------------------------

FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "serviceAccountKey.json").strip()

# ------------------------------------------------------------
# HTTP
# ------------------------------------------------------------

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "https://localhost:5173",
    "https://oshudh-a12.web.app",
    "https://oshudh-a12.vercel.app",
]


def parse_origins(raw: str | None) -> list[str]:
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [o.strip() for o in raw.split(",") if o.strip()]


CORS_ORIGINS = parse_origins(os.getenv("CORS_ORIGINS"))

AUTH_COOKIE_NAME = "authToken"
AUTH_COOKIE_MAX_AGE = int(os.getenv("AUTH_COOKIE_MAX_AGE", str(60 * 60)))

# ------------------------------------------------------------
# Checkout pricing
# ------------------------------------------------------------

TAX_RATE = float(os.getenv("TAX_RATE", "0.05"))
FREE_DELIVERY_THRESHOLD = float(os.getenv("FREE_DELIVERY_THRESHOLD", "500"))
DELIVERY_CHARGE = float(os.getenv("DELIVERY_CHARGE", "50"))
PLATFORM_COMMISSION_RATE = float(os.getenv("PLATFORM_COMMISSION_RATE", "0.10"))

# ------------------------------------------------------------
# Mail (optional; confirmations are skipped when SMTP_HOST is empty)
# ------------------------------------------------------------

SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
MAIL_SENDER = os.getenv("MAIL_SENDER", SMTP_USER).strip()


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
