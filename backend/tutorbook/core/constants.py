"""Application-wide constants for the Tutorbook booking core."""

from __future__ import annotations

BRAND_NAME = "Tutorbook"

# Platform home timezone for offset-naive requests and slot templates
DEFAULT_PLATFORM_TIMEZONE = "Europe/Copenhagen"

# Session length constraints
MIN_SESSION_DURATION = 15  # minutes
DEFAULT_SLOT_MINUTES = 60

# Text constraints
MAX_NOTES_LENGTH = 500
MAX_REASON_LENGTH = 255

# Query limits
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000

# Maximum slot templates a tutor may publish for one day
MAX_SLOTS_PER_DAY = 24

# ULID path parameter pattern
ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"
