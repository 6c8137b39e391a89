import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS", "*")
ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",") if origin.strip()
]

# Hour of day (UTC) on the checkout date at which a stay window ends
CHECKOUT_HOUR = int(os.getenv("CHECKOUT_HOUR", "12"))
if not 0 <= CHECKOUT_HOUR <= 23:
    raise ValueError("CHECKOUT_HOUR must be between 0 and 23")

# 0 disables the recurring reconciliation sweep (startup recovery still runs)
EXPIRATION_SWEEP_INTERVAL_SECONDS = int(os.getenv("EXPIRATION_SWEEP_INTERVAL_SECONDS", "900"))

# Only checkouts this close get an in-memory timer; later ones are armed by a
# later sweep pass. 0 (sweep disabled) arms every reservation.
EXPIRATION_ARM_HORIZON_SECONDS = 2 * EXPIRATION_SWEEP_INTERVAL_SECONDS

IDENTITY_SERVICE_URL = os.getenv("IDENTITY_SERVICE_URL", "http://identity:8000/")
CATALOG_SERVICE_URL = os.getenv("CATALOG_SERVICE_URL", "http://catalog:8000/")
NOTIFICATION_SERVICE_URL = os.getenv("NOTIFICATION_SERVICE_URL", "http://notifications:8000/")
PAYMENT_API_URL = os.getenv("PAYMENT_API_URL", "https://api.stripe.com/")
PAYMENT_API_KEY = os.getenv("PAYMENT_API_KEY", "")

UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "5"))

CALLBACK_USERNAME = os.getenv("CALLBACK_USERNAME")
CALLBACK_PASSWORD = os.getenv("CALLBACK_PASSWORD")
