"""
Runtime configuration read from the environment (optionally a .env file).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tournament.db")
SQL_ECHO = _env_bool("SQL_ECHO")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

# Defaults the admin UI submits when the organizer leaves the fields blank
DEFAULT_MATCH_DURATION_MINUTES = _env_int("DEFAULT_MATCH_DURATION_MINUTES", 40)
DEFAULT_BREAK_DURATION_MINUTES = _env_int("DEFAULT_BREAK_DURATION_MINUTES", 10)
