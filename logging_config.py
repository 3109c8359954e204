"""
Centralized logging configuration for the Costify backend.

Every record carries the request id, the acting user and, for project-scoped
routes, the project id, so one expense's history can be followed across
approve / pay / delete calls.
"""

import logging
import logging.handlers
import json
import os
from datetime import datetime, timezone
from contextvars import ContextVar

# --- Context Variables (populated by middleware per-request) ---
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[str] = ContextVar("user_id", default="-")
project_id_var: ContextVar[str] = ContextVar("project_id", default="-")

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "motor": logging.WARNING,
    "pymongo": logging.WARNING,
    "urllib3": logging.WARNING,
    "httpx": logging.WARNING,
}


def _context() -> dict:
    return {
        "request_id": request_id_var.get("-"),
        "user_id": user_id_var.get("-"),
        "project_id": project_id_var.get("-"),
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line; the shape the log shipper expects in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            **_context(),
            "message": record.getMessage(),
        }

        # logger.info("msg", extra={"data": {...}})
        data = getattr(record, "data", None)
        if data:
            log_entry["data"] = data

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    """Colorized, human-readable formatter for local development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ctx = _context()
        scope = f"req={ctx['request_id']} user={ctx['user_id']}"
        if ctx["project_id"] != "-":
            scope += f" project={ctx['project_id']}"

        msg = f"{color}{record.levelname:<7}{self.RESET} {record.name} [{scope}] {record.getMessage()}"

        data = getattr(record, "data", None)
        if data:
            msg += f"  | data={data}"

        if record.exc_info and record.exc_info[0] is not None:
            msg += f"\n{self.formatException(record.exc_info)}"

        return msg


def _file_handler(log_dir: str) -> logging.Handler:
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, "costify.log"),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging():
    """Initialize logging for the application."""
    env = os.getenv("ENV", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if env == "development" else "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers (avoids duplicates on reload)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter() if env == "production" else DevFormatter())
    root_logger.addHandler(console_handler)

    # No log files under test
    log_dir = None
    if env != "testing":
        log_dir = os.getenv("LOG_DIR") or os.path.join(os.path.dirname(__file__), "logs")
        root_logger.addHandler(_file_handler(log_dir))

    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    logging.getLogger("costify").info(f"Logging initialized | env={env} level={log_level} dir={log_dir}")


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the costify namespace."""
    return logging.getLogger(f"costify.{name}")
