import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), default=["*"])

SLOT_RANGE_DAYS = int(os.getenv("SLOT_RANGE_DAYS", "30"))
MAX_SLOT_RANGE_DAYS = int(os.getenv("MAX_SLOT_RANGE_DAYS", "366"))


def validate_runtime_config() -> None:
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL must be set.")
    if SLOT_RANGE_DAYS < 0:
        raise RuntimeError("SLOT_RANGE_DAYS must not be negative.")
    if SLOT_RANGE_DAYS > MAX_SLOT_RANGE_DAYS:
        raise RuntimeError("SLOT_RANGE_DAYS cannot exceed MAX_SLOT_RANGE_DAYS.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("SQLite cannot be used as DATABASE_URL in production.")
