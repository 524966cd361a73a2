"""
Application settings read from the environment.

Values are module-level constants resolved once at import time.
"""

import os

APP_NAME = os.getenv("APP_NAME", "ArchetypeOS")
APP_VERSION = "1.0.0"

# Assessment defaults applied when a test omits them
DEFAULT_MAX_ATTEMPTS = int(os.getenv("DEFAULT_MAX_ATTEMPTS", "3"))
DEFAULT_PASSING_SCORE = int(os.getenv("DEFAULT_PASSING_SCORE", "70"))

# Placeholder until supervisors can submit their own ratings
DEFAULT_SUPERVISOR_RATING = float(os.getenv("DEFAULT_SUPERVISOR_RATING", "3.5"))
MAX_SKILL_LEVEL = 5.0

# Notification delivery; unset means log-only
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5"))

# HTTP server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
