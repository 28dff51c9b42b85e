"""Client configuration and constants"""
import math
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(override=True)

# Backend
DEFAULT_API_URL = "https://community-forum-backend.netlify.app/api"
DEFAULT_TIMEOUT = 15.0
MIN_TIMEOUT = 1.0
MAX_TIMEOUT = 30.0

# Storage settings
KEYRING_SERVICE = "agora"
TOKEN_KEY = "authToken"
USER_KEY = "currentUser"

# Client-side validation limits
MIN_PASSWORD_LENGTH = 6
THREAD_TITLE_MIN = 5
THREAD_TITLE_MAX = 100
THREAD_CONTENT_MIN = 20
LISTING_TITLE_MIN = 5
LISTING_TITLE_MAX = 100
LISTING_DESCRIPTION_MIN = 20
LISTING_CONDITIONS = ("new", "like-new", "good", "fair", "poor")
LISTING_STATUSES = ("active", "sold", "inactive")
SEARCH_SUGGESTION_MIN = 2


@dataclass
class Settings:
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False


def _parse_timeout(raw: str | None) -> float:
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT
    if not math.isfinite(value):
        return DEFAULT_TIMEOUT
    return min(max(value, MIN_TIMEOUT), MAX_TIMEOUT)


def load_settings() -> Settings:
    """Resolve settings from the environment (after .env has been loaded)."""
    return Settings(
        api_url=(os.environ.get("AGORA_API_URL") or DEFAULT_API_URL).rstrip("/"),
        timeout=_parse_timeout(os.environ.get("AGORA_TIMEOUT")),
        debug=bool(os.environ.get("AGORA_DEBUG")),
    )
