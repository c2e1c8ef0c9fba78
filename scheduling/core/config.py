import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./scheduling.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)
SQLITE_BUSY_TIMEOUT_SECONDS = _get_int(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS"), 30)

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:4200").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Doctor availability
DEFAULT_DOCTOR_TIMEZONE = os.getenv("DEFAULT_DOCTOR_TIMEZONE", "UTC")
DEFAULT_SLOT_DURATION_MINUTES = _get_int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES"), 60)
MIN_SLOT_DURATION_MINUTES = _get_int(os.getenv("MIN_SLOT_DURATION_MINUTES"), 15)
MAX_SLOT_DURATION_MINUTES = _get_int(os.getenv("MAX_SLOT_DURATION_MINUTES"), 240)
MAX_APPOINTMENT_NOTES_LENGTH = _get_int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH"), 600)

# Appointment listing
APPOINTMENT_PAGE_SIZE = _get_int(os.getenv("APPOINTMENT_PAGE_SIZE"), 50)
MAX_APPOINTMENT_PAGE_SIZE = _get_int(os.getenv("MAX_APPOINTMENT_PAGE_SIZE"), 200)

# Reminders fire between REMINDER_MIN_LEAD_MINUTES and REMINDER_LOOKAHEAD_HOURS before the start
REMINDER_MIN_LEAD_MINUTES = _get_int(os.getenv("REMINDER_MIN_LEAD_MINUTES"), 60)
REMINDER_LOOKAHEAD_HOURS = _get_int(os.getenv("REMINDER_LOOKAHEAD_HOURS"), 24)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if MIN_SLOT_DURATION_MINUTES <= 0 or MIN_SLOT_DURATION_MINUTES > MAX_SLOT_DURATION_MINUTES:
        raise RuntimeError("MIN_SLOT_DURATION_MINUTES must be positive and not exceed MAX_SLOT_DURATION_MINUTES.")
    if REMINDER_LOOKAHEAD_HOURS * 60 <= REMINDER_MIN_LEAD_MINUTES:
        raise RuntimeError("REMINDER_LOOKAHEAD_HOURS must extend past REMINDER_MIN_LEAD_MINUTES.")
    if APPOINTMENT_PAGE_SIZE <= 0 or APPOINTMENT_PAGE_SIZE > MAX_APPOINTMENT_PAGE_SIZE:
        raise RuntimeError("APPOINTMENT_PAGE_SIZE must be positive and not exceed MAX_APPOINTMENT_PAGE_SIZE.")
