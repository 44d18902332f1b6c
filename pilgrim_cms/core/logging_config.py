"""Logging set-up for the content service.

One stdout handler on the root logger, writing either JSON lines (the
default, for log shipping) or plain text for local runs. Both carry the id
of the HTTP request being served, read from ``request_id_var``, which the
request context middleware sets. Firebase API keys, id and refresh tokens
and download-URL tokens are masked before anything is formatted.
"""

import contextvars
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional


request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"

# Chatty at INFO; kept to warnings and above.
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")

# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "request_id",
}

_MASK = "***REDACTED***"

# A pattern with a group keeps group 1 and masks the rest of the match.
_SECRET_PATTERNS = [
    re.compile(r'\bAIza[0-9A-Za-z_\-]{30,}\b'),
    re.compile(r'\beyJ[a-zA-Z0-9_\-]{10,}\.[a-zA-Z0-9_\-]{10,}\.[a-zA-Z0-9_\-]+'),
    re.compile(r'(?i)((?:firebase|bearer)\s+)[a-zA-Z0-9._\-]{20,}'),
    re.compile(
        r'(?i)((?:refresh_?token|id_?token|token|api_?key|secret|password)"?\s*[=:]\s*"?)'
        r'[^\s,&\'"]{8,}'
    ),
]


def redact(text: str) -> str:
    """Mask credentials in *text*."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + _MASK if m.lastindex else _MASK, text)
    return text


class _SecretFilter(logging.Filter):
    """Mask credentials in the message, its arguments and any traceback."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args)
        if record.exc_info and not record.exc_text:
            # Render now so formatters reuse the masked text.
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text)
        return True


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class _JsonFormatter(logging.Formatter):
    """One JSON object per line.

    ``logger.info("Content committed", extra={"folder_id": 3})`` yields
    ``"folder_id": 3`` next to timestamp, level, logger and message.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = request_id_var.get("")
        if request_id:
            payload["request_id"] = request_id

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = record.exc_text or self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install the stdout handler on the root logger.

    Args:
        log_level: Level name, INFO when not given.
        log_format: ``"json"`` (default) or ``"text"``.
    """
    level = (log_level or "INFO").upper()
    fmt = (log_format or "json").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_SecretFilter())
    if fmt == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.addFilter(_RequestIdFilter())
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured", extra={"level": level, "format": fmt})
