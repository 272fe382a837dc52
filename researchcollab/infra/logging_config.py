# researchcollab/infra/logging_config.py
import logging
import sys
import json
from datetime import datetime, timezone

# Structured fields attached via ``extra=`` or LogContext, with console labels
_CONTEXT_LABELS = {
    "request_id": "req",
    "user_id": "user",
    "call_id": "call",
    "application_id": "app",
}

# Fields set by audit_event() on the "audit" logger
_AUDIT_FIELDS = ("audit_action", "actor_id", "detail")


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for production log shipping"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in (*_CONTEXT_LABELS, *_AUDIT_FIELDS):
            value = getattr(record, field, None)
            if value not in (None, ""):
                log_data[field] = value

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable format for development"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]
        timestamp = _record_time(record).strftime("%Y-%m-%d %H:%M:%S")

        context_parts = [
            f"{label}={getattr(record, field)}"
            for field, label in _CONTEXT_LABELS.items()
            if getattr(record, field, None)
        ]
        context = f" [{' '.join(context_parts)}]" if context_parts else ""

        line = f"{color}[{timestamp}] {record.levelname:8}{reset} {record.name}{context} - {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """
    Configure the root logger with a single stdout handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: JSONFormatter when True (prod), ConsoleFormatter otherwise
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())
    root_logger.addHandler(handler)

    # Audit events are kept even when the app runs at WARNING
    logging.getLogger("audit").setLevel(logging.INFO)

    # Third-party noise
    for noisy in ("uvicorn.access", "asyncio", "aiohttp.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.info(f"Logging configured: level={level}, json={use_json}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Logger wrapper that stamps request/user/call/application ids on every record"""

    def __init__(
            self,
            logger: logging.Logger,
            request_id: str | None = None,
            user_id: str | None = None,
            call_id: str | None = None,
            application_id: str | None = None,
    ):
        self.logger = logger
        fields = {
            "request_id": request_id,
            "user_id": user_id,
            "call_id": call_id,
            "application_id": application_id,
        }
        self.context = {k: v for k, v in fields.items() if v is not None}

    def _log(self, level: int, msg: str, *args, **kwargs):
        extra = {**kwargs.pop("extra", {}), **self.context}
        self.logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)


def mask_email(email: str | None) -> str:
    """Mask an email address for logging.

    Example: ``mask_email("alice@example.org")`` -> ``"al***@example.org"``
    """
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"
