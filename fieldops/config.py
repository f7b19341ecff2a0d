import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldops.db")

# Identity provider (GoTrue-compatible auth admin API)
AUTH_URL = os.getenv("AUTH_URL")
AUTH_SERVICE_ROLE_KEY = os.getenv("AUTH_SERVICE_ROLE_KEY")
AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE", "authenticated")
AUTH_HTTP_TIMEOUT = float(os.getenv("AUTH_HTTP_TIMEOUT", "30.0"))

# Public base URL used for invitation / activation links
APP_URL = os.getenv("APP_URL") or os.getenv("SITE_URL")
DEFAULT_APP_URL = "https://hvac-djawara.vercel.app"

# Attendance is computed on the civil clock of this zone, never the host's
ATTENDANCE_TIMEZONE = os.getenv("ATTENDANCE_TIMEZONE", "Asia/Jakarta")
ATTENDANCE_RECENT_DAYS = int(os.getenv("ATTENDANCE_RECENT_DAYS", "14"))
ATTENDANCE_REPORT_MAX_DAYS = int(os.getenv("ATTENDANCE_REPORT_MAX_DAYS", "62"))

# Invitations and fallback activation tokens
INVITE_VALIDITY_DAYS = int(os.getenv("INVITE_VALIDITY_DAYS", "7"))
MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))

# Working hours defaults, applied when a tenant has no config row
DEFAULT_WORK_START = "09:00:00"
DEFAULT_WORK_END = "17:00:00"
DEFAULT_OVERTIME_RATE_PER_HOUR = 5000.0
DEFAULT_MAX_OVERTIME_HOURS_PER_DAY = 4
MAX_OVERTIME_HOURS_PER_DAY_LIMIT = 24

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "https://hvac-djawara.vercel.app,http://localhost:3000,http://localhost:5173",
).split(",")
