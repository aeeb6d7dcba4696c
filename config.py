import logging
import os
from decimal import Decimal

from dotenv import load_dotenv

# Make sure you have a .env file (or exported variables) for the Stripe keys
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")

STRIPE_API_KEY = os.getenv("STRIPE_API_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL", "https://example.com/success")
CANCEL_URL = os.getenv("STRIPE_CANCEL_URL", "https://example.com/cancel")

BRAND_NAME = os.getenv("BRAND_NAME", "TravelEase")
CURRENCY = os.getenv("CURRENCY", "INR")

# GST added on top of the booking subtotal at checkout
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.18"))
# Platform cut withheld from every payout
PLATFORM_FEE_RATE = Decimal(os.getenv("PLATFORM_FEE_RATE", "0.10"))

DISTANCE_MIN_KM = int(os.getenv("DISTANCE_MIN_KM", "5"))
DISTANCE_MAX_KM = int(os.getenv("DISTANCE_MAX_KM", "50"))

RATING_MAX_ATTEMPTS = int(os.getenv("RATING_MAX_ATTEMPTS", "3"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def configure_logging(level: str = None) -> None:
    """Set up root logging once for scripts and the webhook app."""
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)
