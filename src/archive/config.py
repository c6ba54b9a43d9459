"""Environment-driven defaults. Every value can also be passed to the constructors."""
from __future__ import annotations
import os
from dotenv import load_dotenv

load_dotenv()

ARCHIVE_ORIGIN = os.getenv("ARCHIVE_ORIGIN", "https://archivebate.com").rstrip("/")
TIMEOUT = float(os.getenv("ARCHIVE_TIMEOUT", "15"))
JITTER_MAX = float(os.getenv("ARCHIVE_JITTER_MAX", "0.5"))
RETRY_BACKOFF = float(os.getenv("ARCHIVE_RETRY_BACKOFF", "1.0"))
MAX_RETRIES = int(os.getenv("ARCHIVE_MAX_RETRIES", "2"))
PAGE_SIZE = int(os.getenv("ARCHIVE_PAGE_SIZE", "20"))
PROXY = os.getenv("ARCHIVE_PROXY") or None

CACHE_DIR = os.getenv("ARCHIVE_CACHE_DIR", ".cache/camarchive")
CACHE_TTL = int(os.getenv("ARCHIVE_CACHE_TTL", "600"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Livewire listing component on the profile page
LISTING_COMPONENT = "profile.model-videos"
LOAD_METHOD = "load_profile_videos"

# Statuses that mean "token/session expired" or "slow down"
RETRYABLE_STATUSES = frozenset({401, 403, 419, 429})
