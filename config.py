"""Application configuration.

Values are read from the environment once at import time. Defaults keep
local development and the test suite working without any env set.
"""
import os
from typing import List


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Application constants
APP_NAME = "Experience Marketplace API"
APP_VERSION = "1.0.0"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CURRENCY = os.environ.get("CURRENCY", "EUR")

# Token settings
SECRET_KEY = os.environ.get("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 30)

# Partner program (punti / commission)
MAX_PARTNER_POINT_VALUE = _env_int("MAX_PARTNER_POINT_VALUE", 111)
MIN_PARTNER_COMMISSION = _env_int("MIN_PARTNER_COMMISSION", 15)
MAX_PARTNER_COMMISSION = _env_int("MAX_PARTNER_COMMISSION", 50)
APPROVAL_PUNTI_FLOOR = _env_int("APPROVAL_PUNTI_FLOOR", 2)

# Moderation
MAX_MODERATION_ATTACHMENTS = _env_int("MAX_MODERATION_ATTACHMENTS", 4)

# Slots offered when a listing carries no availability rules at all
DEFAULT_TIME_SLOTS: List[str] = _env_list(
    "DEFAULT_TIME_SLOTS",
    ["08:00", "09:00", "10:00", "11:00", "12:00",
     "13:00", "14:00", "15:00", "16:00", "17:00"],
)
