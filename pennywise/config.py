import logging
import os

_logging_configured = False


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pennywise.db")
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
DEFAULT_PAGE_SIZE = _get_int("DEFAULT_PAGE_SIZE", 20)
MAX_PAGE_SIZE = _get_int("MAX_PAGE_SIZE", 100)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()


def configure_logging(level: str | None = None) -> None:
    global _logging_configured
    if _logging_configured:
        return
    resolved = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logging_configured = True
