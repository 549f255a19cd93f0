import os
from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    return value if value is not None else default


def _env_flag(name: str, default: str = "0") -> bool:
    return str(_env(name, default)).strip().lower() in ("1", "true", "yes", "on")


MOODLE_DB_HOST = _env("MOODLE_DB_HOST", "127.0.0.1")
MOODLE_DB_PORT = int(_env("MOODLE_DB_PORT", "3306"))
MOODLE_DB_NAME = _env("MOODLE_DB_NAME", "moodle")
MOODLE_DB_USER = _env("MOODLE_DB_USER", "demo")
MOODLE_DB_PASS = _env("MOODLE_DB_PASS", "Demo@123")
MOODLE_DB_PREFIX = _env("MOODLE_DB_PREFIX", "mdl_")
# full SQLAlchemy URL, wins over the host/port/name settings
MOODLE_DB_URL = _env("MOODLE_DB_URL")
MOODLE_WWWROOT = _env("MOODLE_WWWROOT", "http://localhost").rstrip("/")

USAGE_TIMEZONE = _env("USAGE_TIMEZONE", "UTC")
USAGE_DEFAULT_DAYS = int(_env("USAGE_DEFAULT_DAYS", "30"))
USAGE_ALLOW_DEANONYMIZE = _env_flag("USAGE_ALLOW_DEANONYMIZE")

LOG_LEVEL = _env("LOG_LEVEL", "INFO")
