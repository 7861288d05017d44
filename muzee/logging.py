"""structlog setup shared by every module.

Output is JSON by default. ``LOG_DEV_MODE=true`` or ``LOG_JSON=false`` switches
to the coloured console renderer, and ``LOG_LEVEL`` sets the threshold. The
request correlation id rides in structlog's contextvars, so anything logged
while a request is being served carries it without explicit binding.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict, List, Optional

import structlog

# Substrings of event keys whose string values are masked before rendering.
SENSITIVE_KEY_PARTS = frozenset({"password", "secret", "token", "authorization", "email"})
# Keys that merely mention a sensitive word and carry no secret themselves.
_NEVER_MASKED = frozenset({"event", "error_code", "status_code"})


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Start a fresh log context for one request, tagged with ``correlation_id``.

    A new uuid4 is used when the client did not send one.
    """
    cid = correlation_id or str(uuid.uuid4())
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(correlation_id=cid)
    return cid


def get_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("correlation_id")


def redact_value(value: str) -> str:
    """Mask a sensitive string, keeping the first and last two characters."""
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"


def _is_sensitive(key: str) -> bool:
    if key in _NEVER_MASKED:
        return False
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def mask_sensitive_fields(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, str) and _is_sensitive(key):
            event_dict[key] = redact_value(value)
    return event_dict


def _build_processors(console: bool) -> List[Any]:
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
    ]
    if console:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.extend(
            [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        )
    return processors


def configure_logging(level: str = "INFO", *, console: bool = False) -> None:
    threshold = logging.getLevelName(level.upper())
    if not isinstance(threshold, int):
        threshold = logging.INFO
    structlog.configure(
        processors=_build_processors(console),
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


configure_logging(
    os.getenv("LOG_LEVEL", "INFO"),
    console=_env_flag("LOG_DEV_MODE", "false") or not _env_flag("LOG_JSON", "true"),
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
