"""structlog setup for the ``companion`` logger hierarchy.

Events are snake_case names with keyword fields. Per-turn fields such as
``conversation_id`` live in ``structlog.contextvars`` and are merged into
every event; secret-looking strings are masked before rendering.
"""

import json
import logging
import re
import sys
from typing import Any, TextIO

import structlog

_ROOT_LOGGER = "companion"

_SECRET_PATTERNS = (
    re.compile(r"sk-[A-Za-z0-9_-]{10,}"),           # OpenAI / Anthropic / DeepSeek style
    re.compile(r"Bearer\s+[A-Za-z0-9_\-.]{10,}"),    # Authorization headers
    re.compile(r"gsk_[A-Za-z0-9]{10,}"),             # Groq
    re.compile(r"AIza[A-Za-z0-9_-]{10,}"),           # Google / Gemini
)


def mask_secret(value: str) -> str:
    """Mask a secret, leaving the first and last four characters.

    >>> mask_secret("sk-abc123456789xyz")
    'sk-a****9xyz'
    """
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


def _redact_value(value: str) -> str:
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(lambda m: mask_secret(m.group(0)), value)
    return value


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_value(value)
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def _redact_event(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Processor: mask secrets in every field, including nested containers."""
    return {key: _redact(val) for key, val in event_dict.items()}


def _renderer(json_output: bool) -> Any:
    if not json_output:
        return structlog.dev.ConsoleRenderer()
    # Keep CJK chat content readable in JSON lines.
    return structlog.processors.JSONRenderer(
        serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, **kw),
    )


def setup_logging(json_output: bool = True, level: str = "INFO", stream: TextIO | None = None) -> None:
    """Route structlog through stdlib logging under the ``companion`` logger.

    Args:
        json_output: JSON lines when true, coloured console output otherwise.
        level: Level name for the ``companion`` hierarchy.
        stream: Output stream; defaults to ``sys.stderr``.
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact_event,
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_output),
        ],
    ))

    companion_logger = logging.getLogger(_ROOT_LOGGER)
    companion_logger.handlers.clear()
    companion_logger.addHandler(handler)
    companion_logger.setLevel(getattr(logging, level.upper()))


def get_logger(name: str = _ROOT_LOGGER) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_conversation(conversation_id: str, **extra: str) -> None:
    """Start a fresh logging context for one conversation turn."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(conversation_id=conversation_id, **extra)
