"""
Logging setup for ConvoPilot.

Records are emitted as one JSON object per line in production, or as a short
human readable line when LOG_FORMAT=text. Structured fields travel in
``extra={"context": {...}}``. WhatsApp addresses found under ``user_id`` /
``user`` keys are masked down to their last four digits unless masking is
switched off.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone

MASKED_KEYS = ("user_id", "user", "chat_id")
_DIGITS = re.compile(r"\d+")


def mask_address(value: str) -> str:
    """972501234567@s.whatsapp.net -> ********4567@s.whatsapp.net"""
    local, sep, domain = str(value).partition("@")
    masked = _DIGITS.sub(lambda m: "*" * max(len(m.group()) - 4, 0) + m.group()[-4:], local)
    return f"{masked}{sep}{domain}"


def _record_context(record: logging.LogRecord, mask: bool) -> dict | None:
    context = getattr(record, "context", None)
    if not context:
        return None
    if not mask:
        return dict(context)
    return {key: mask_address(val) if key in MASKED_KEYS and val else val for key, val in context.items()}


class JSONFormatter(logging.Formatter):
    def __init__(self, mask_user_ids: bool = True):
        super().__init__()
        self.mask_user_ids = mask_user_ids

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _record_context(record, self.mask_user_ids)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Single line format for local runs: ``LEVEL logger: message key=value``."""

    def __init__(self, mask_user_ids: bool = True):
        super().__init__("%(levelname)s %(name)s: %(message)s")
        self.mask_user_ids = mask_user_ids

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_context(record, self.mask_user_ids)
        if context:
            line += " " + " ".join(f"{key}={val}" for key, val in context.items())
        return line


def setup_logging(level: str = "INFO", fmt: str = "json", mask_user_ids: bool = True) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter_class = TextFormatter if fmt.lower() == "text" else JSONFormatter
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter_class(mask_user_ids=mask_user_ids))
    root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"convopilot.{name}")
