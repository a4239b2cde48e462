from __future__ import annotations

import errno
import logging
import re
import sys
from typing import Any

import structlog


# Page access tokens issued by Graph API start with "EAA".
PAGE_TOKEN_RE = re.compile(r"\bEAA[A-Za-z0-9]{20,}\b")
ACCESS_TOKEN_PARAM_RE = re.compile(r"(access_token=)[^&\s\"']+")


def redact_text(text: str) -> str:
    redacted = ACCESS_TOKEN_PARAM_RE.sub(r"\1[REDACTED]", text)
    return PAGE_TOKEN_RE.sub("[REDACTED_TOKEN]", redacted)


def redact_token_processor(_, __, event_dict):
    """Processor to redact page access tokens from log messages."""
    message = str(event_dict.get("event", ""))
    redacted = redact_text(message)
    if redacted != message:
        event_dict["event"] = redacted

    for key in ("url", "error"):
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = redact_text(value)

    return event_dict


class SafeStreamHandler(logging.StreamHandler):
    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, BrokenPipeError) or (
            isinstance(exc, OSError) and exc.errno == errno.EPIPE
        ):
            try:
                self.stream.close()
            except Exception:
                pass
            return
        super().handleError(record)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def setup_logging(*, debug: bool = False) -> None:
    """Configure structlog with console output and token redaction."""

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_token_processor,
            structlog.dev.ConsoleRenderer(colors=True)
            if debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    stdlib_level = logging.DEBUG if debug else logging.INFO
    handler = SafeStreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(
        level=stdlib_level,
        handlers=[handler],
        force=True,
    )

    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
