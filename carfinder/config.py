# carfinder/config.py
"""Environment-driven settings.

Values are read once at import time from the process environment (and a
local `.env` file when present).
"""
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL") or "sqlite:///./carfinder.db"
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", 5))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", 10))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# source site
SITE_BASE_URL = os.getenv("SITE_BASE_URL", "https://www.olx.com.br")
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "20"))

# scanning
MAX_PAGES = int(os.getenv("MAX_PAGES", "5"))
PAGE_DELAY_SECONDS = float(os.getenv("PAGE_DELAY_SECONDS", "0.5"))
BUILD_ID_CACHE_TTL = float(os.getenv("BUILD_ID_CACHE_TTL", "3600"))
SEEN_IDS_CAP = int(os.getenv("SEEN_IDS_CAP", "2000"))

# opportunity ranking
DEFAULT_MIN_GROUP_SIZE = int(os.getenv("DEFAULT_MIN_GROUP_SIZE", "5"))
ALL_MIN_GROUP_SIZE = int(os.getenv("ALL_MIN_GROUP_SIZE", "3"))

# scheduler
SCAN_INTERVAL_MINUTES = int(os.getenv("SCAN_INTERVAL_MINUTES", "15"))
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "1") == "1"

# API
API_TOKEN = os.getenv("API_TOKEN")
