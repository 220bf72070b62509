import logging
import sys
import json
import re
from typing import Any, Dict, Optional
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from gatehouse.config.settings import config_settings
from gatehouse.common.constants import request_id_ctx

ENV = config_settings.ENV.lower()

SENSITIVE_PATTERNS = [
    "password", "confirm_password", "secret", "token", "authorization",
    "access_token", "refresh_token", "code", "otp", "password_hash",
]

# personal data, masked outside dev
PII_FIELDS = ("email", "phone", "ip", "ip_address")

_STD_RECORD_FIELDS = (
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
)


def sanitize_message_text(msg: str) -> str:
    """Sanitize sensitive patterns inside a text message (best-effort)."""
    out = msg
    for p in SENSITIVE_PATTERNS:
        # replace occurrences like "password=abc" or '"password": "abc"'
        out = re.sub(rf'("{p}"\s*:\s*")[^"]+(")', r'\1[REDACTED]\2', out, flags=re.IGNORECASE)
        out = re.sub(rf'(\b{p}\s*[=:]\s*)[\w\-\./]+', r'\1[REDACTED]', out, flags=re.IGNORECASE)
    return out


def mask_email(value: Any) -> str:
    """a***@example.com: keeps the first character of the local part and the domain."""
    text = str(value)
    local, sep, domain = text.partition("@")
    if not sep:
        return "[REDACTED]"
    return f"{local[:1]}***@{domain}"


def redact_extra(extra_fields: Dict[str, Any], mask_pii: bool = ENV != "dev") -> Dict[str, Any]:
    out = {}
    for k, v in extra_fields.items():
        key = k.lower()
        if key in SENSITIVE_PATTERNS:
            out[k] = "[REDACTED]"
        elif mask_pii and key in PII_FIELDS and v is not None:
            out[k] = mask_email(v) if key == "email" else "[MASKED]"
        else:
            out[k] = v
    return out


class JSONFormatter(logging.Formatter):
    """Structured JSON formatter for production"""
    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "env": ENV,
            "service": config_settings.SERVICE_NAME,
        }

        rid = request_id_ctx.get()
        if rid:
            log_data["request_id"] = rid

        # record.extra if present (stdlib uses record.__dict__)
        extra_fields = {}
        for k, v in record.__dict__.items():
            if k in _STD_RECORD_FIELDS or k.startswith("_"):
                continue
            extra_fields[k] = v

        log_data.update(redact_extra(extra_fields))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data["message"] = sanitize_message_text(log_data.get("message", ""))

        return json.dumps(log_data, default=str)


class SecurityFilter(logging.Filter):
    """Redact sensitive info in non-dev logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = sanitize_message_text(msg)
        record.args = ()
        return True


# Set up a non-blocking queue-based logger. Use once at app startup.
_queue_listener: Optional[QueueListener] = None


def setup_logging():

    global _queue_listener

    if _queue_listener is not None:
        return logging.getLogger("gatehouse.app")

    if config_settings.LOG_LEVEL:
        log_level = logging.getLevelName(config_settings.LOG_LEVEL.upper())
    elif ENV in ("prod", "staging"):
        log_level = logging.INFO
    else:
        log_level = logging.DEBUG

    root = logging.getLogger()
    # Clear existing handlers to avoid duplication
    for h in list(root.handlers):
        root.removeHandler(h)

    q: Queue = Queue(-1)
    qh = QueueHandler(q)

    console_handler = logging.StreamHandler(sys.stdout)
    if ENV != "dev":
        console_handler.setFormatter(JSONFormatter())
        console_handler.addFilter(SecurityFilter())
    else:
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)8s] %(name)s:%(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root.setLevel(log_level)
    root.addHandler(qh)

    _queue_listener = QueueListener(q, console_handler, respect_handler_level=True)
    _queue_listener.start()

    # silence noisy third-party loggers in prod
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING if ENV != "dev" else logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)

    return logging.getLogger("gatehouse.app")


def shutdown_logging():
    global _queue_listener
    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None


class ContextLogger:
    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _with_ctx(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        extra = dict(extra or {})
        rid = request_id_ctx.get()
        if rid:
            extra.setdefault("request_id", rid)
        return extra

    def _log(self, level: int, msg: str, *args, **kwargs):
        extra = kwargs.pop("extra", {})
        kwargs["extra"] = {**self._with_ctx(), **(extra or {})}
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, *args, **kwargs)


def get_logger(name: str = "gatehouse.app") -> ContextLogger:
    return ContextLogger(name)
