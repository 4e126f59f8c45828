"""Structured logging configuration with correlation IDs and secret redaction."""

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

import orjson
import structlog
from structlog.processors import CallsiteParameter

# Context variables for generation tracking
generation_id_var: ContextVar[str] = ContextVar("generation_id", default="")
strategy_var: ContextVar[str] = ContextVar("strategy", default="")


class SecretRedactor:
    """Redact credentials from log values."""

    API_KEY_PATTERN = re.compile(r"\b(sk-|pk-|sk-ant-|pplx-|AIza)[\w-]{16,}\b")
    BEARER_PATTERN = re.compile(r"\bBearer\s+[\w.\-]{16,}\b", re.IGNORECASE)
    KEY_PARAM_PATTERN = re.compile(r"([?&]key=)[\w-]{16,}")
    SECRET_KEYS = frozenset({"api_key", "authorization", "x-api-key", "x-goog-api-key"})

    @classmethod
    def redact(cls, value: Any) -> Any:
        """Redact secrets from a value."""
        if not isinstance(value, str):
            return value

        value = cls.API_KEY_PATTERN.sub("[API_KEY_REDACTED]", value)
        value = cls.BEARER_PATTERN.sub("Bearer [REDACTED]", value)
        value = cls.KEY_PARAM_PATTERN.sub(r"\1[REDACTED]", value)
        return value


def add_context_vars(logger, method_name, event_dict):
    """Add context variables to log events."""
    if generation_id := generation_id_var.get():
        event_dict["generation_id"] = generation_id
    if strategy := strategy_var.get():
        event_dict.setdefault("strategy", strategy)
    return event_dict


def redact_sensitive_data(logger, method_name, event_dict):
    """Redact credentials from logs."""
    for key, value in list(event_dict.items()):
        if key in ("timestamp", "level", "logger"):
            continue
        if key.lower() in SecretRedactor.SECRET_KEYS:
            event_dict[key] = "[REDACTED]"
        elif isinstance(value, str):
            event_dict[key] = SecretRedactor.redact(value)
        elif isinstance(value, dict):
            event_dict[key] = {
                k: "[REDACTED]" if str(k).lower() in SecretRedactor.SECRET_KEYS else SecretRedactor.redact(v)
                for k, v in value.items()
            }

    return event_dict


def setup_logging(
    level: str | None = None,
    format: str | None = None,
    redact_secrets: bool = True,
) -> None:
    """Configure structured logging."""
    if level is None or format is None:
        from polaris_orchestrator.config import get_settings

        settings = get_settings()
        level = level or settings.effective_log_level
        format = format or settings.log_format

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_vars,
    ]

    if redact_secrets:
        processors.append(redact_sensitive_data)

    processors.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    CallsiteParameter.FILENAME,
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.format_exc_info,
        ]
    )

    if format == "json":
        processors.append(
            structlog.processors.JSONRenderer(serializer=lambda obj, **kw: orjson.dumps(obj, default=str).decode())
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class GenerationContext:
    """Context manager binding a generation id to every log line of one top-level call."""

    def __init__(self, generation_id: str | None = None):
        self.generation_id = generation_id or str(uuid4())
        self._token = None

    def __enter__(self):
        self._token = generation_id_var.set(self.generation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        generation_id_var.reset(self._token)
        return False


class StrategyContext:
    """Binds the active cascade strategy name for nested log lines."""

    def __init__(self, strategy: str):
        self.strategy = strategy
        self._token = None

    def __enter__(self):
        self._token = strategy_var.set(self.strategy)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        strategy_var.reset(self._token)
        return False
