import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./mediq.db")

# Security - tokens are issued by the auth service, we only verify them
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Frontend base URL (CORS + links in emails)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Redis (arq worker + cross-node realtime relay)
REDIS_URL = os.getenv("REDIS_URL")
REALTIME_REDIS_ENABLED = os.getenv("REALTIME_REDIS_ENABLED", "false").lower() == "true"
REALTIME_REDIS_CHANNEL = os.getenv("REALTIME_REDIS_CHANNEL", "mediq:sync")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "MediQ OPD <noreply@mediq.health>")

# Stats cache validity window (default 1 hour)
STATS_CACHE_TTL_SECONDS = int(os.getenv("STATS_CACHE_TTL_SECONDS", "3600"))
DEFAULT_CONSULTATION_FEE = float(os.getenv("DEFAULT_CONSULTATION_FEE", "500"))

# Video consultations
JITSI_BASE_URL = os.getenv("JITSI_BASE_URL", "https://meet.jit.si")
MEETING_ROOM_PREFIX = os.getenv("MEETING_ROOM_PREFIX", "MediQ")

# Timezone used by the arq cron jobs
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "Asia/Kolkata")

# CORS - comma separated list, FRONTEND_URL is always allowed
ALLOWED_ORIGINS = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",") if origin.strip()
]
