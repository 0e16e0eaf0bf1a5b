import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clearview.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

CONFLICT_SCOPE_PER_CLIENT = "per_client"
CONFLICT_SCOPE_GLOBAL = "global"
CONFLICT_SCOPES = {CONFLICT_SCOPE_PER_CLIENT, CONFLICT_SCOPE_GLOBAL}

CONFLICT_SCOPE = os.getenv("CONFLICT_SCOPE", CONFLICT_SCOPE_PER_CLIENT).strip().lower()
SCHEDULING_LOCK_TIMEOUT_SECONDS = float(os.getenv("SCHEDULING_LOCK_TIMEOUT_SECONDS", "5"))
SCHEDULING_MAX_RETRIES = int(os.getenv("SCHEDULING_MAX_RETRIES", "3"))
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))
NOTIFICATION_POLL_SECONDS = int(os.getenv("NOTIFICATION_POLL_SECONDS", "30"))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if CONFLICT_SCOPE not in CONFLICT_SCOPES:
        raise RuntimeError(
            f"CONFLICT_SCOPE must be one of {sorted(CONFLICT_SCOPES)}, got {CONFLICT_SCOPE!r}."
        )
    if SCHEDULING_MAX_RETRIES < 1:
        raise RuntimeError("SCHEDULING_MAX_RETRIES must be at least 1.")
