"""
config/log.py
─────────────
Logging setup for the application entry point. Library modules only
create `logging.getLogger(__name__)` loggers and never configure handlers.
"""
import logging

from config.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger."""
    resolved = (level or ("DEBUG" if settings.DEBUG else settings.LOG_LEVEL)).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)
