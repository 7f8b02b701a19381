"""Logging setup with per-session context for the citation intake engine."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(application_id)s] %(message)s"
NO_APPLICATION = "-"


class SessionContextFilter(logging.Filter):
    """
    Stamp every record with the context of the running session.

    Records logged outside a session carry "-" as application_id, so format
    strings that reference it never fail.
    """

    def __init__(self):
        super().__init__()
        self.context: Dict[str, Any] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        record.application_id = self.context.get("application_id", NO_APPLICATION)
        for key, value in self.context.items():
            setattr(record, key, value)
        return True


# Shared by every handler setup_logging installs
_session_filter = SessionContextFilter()


def _install(root_logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(_session_filter)
    root_logger.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    log_format: str = DEFAULT_FORMAT,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger for the application.

    Replaces any existing root handlers with a console handler and, when
    ``log_file`` is given, a UTF-8 file handler. Both carry the session
    context filter.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format string; may reference %(application_id)s
        log_file: Optional path to a log file (parent directories are created)

    Returns:
        Configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    _install(root_logger, logging.StreamHandler(), numeric_level, formatter)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        _install(root_logger, logging.FileHandler(log_file, encoding="utf-8"), numeric_level, formatter)

    return root_logger


def set_context(**kwargs):
    """
    Attach fields to every subsequent log record.

    Example:
        set_context(application_id="NTC-1700000000000-abc123xyz")
        logger.info("Draft saved")  # rendered with [NTC-1700000000000-abc123xyz]

    Args:
        **kwargs: Context key-value pairs
    """
    _session_filter.context.update(kwargs)


def clear_context():
    """Forget the session context (after submission or at shutdown)."""
    _session_filter.context.clear()


def get_context() -> Dict[str, Any]:
    return dict(_session_filter.context)
