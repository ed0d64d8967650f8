"""structlog setup shared by the API, the orchestrator and provider clients."""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from provisioner.config import Settings, settings as default_settings

# Log keys whose values are credentials and must never be written out
SECRET_KEYS = frozenset(
    {
        "token",
        "password",
        "private_key",
        "secret_key",
        "api_key",
        "connection_string",
        "authorization",
    }
)

REDACTED = "***"

# Chatty libraries that would otherwise log every provider request
QUIET_LOGGERS = ("httpx", "httpcore")


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential values before any renderer sees them."""
    for key in event_dict:
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _handlers(config: Settings) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if not config.log_directory:
        return handlers

    log_dir = Path(config.log_directory)
    if not log_dir.is_absolute():
        log_dir = Path(__file__).resolve().parents[2] / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    handlers.append(logging.FileHandler(log_dir / config.log_file_name, encoding="utf-8"))
    return handlers


def configure_logging(config: Settings | None = None) -> None:
    """Route structlog through stdlib logging with a console or JSON renderer."""
    config = config or default_settings
    level = getattr(logging, config.log_level)

    logging.basicConfig(format="%(message)s", level=level, handlers=_handlers(config), force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if config.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    structlog.configure(
        processors=[
            # request_id bound by the middleware follows each deployment task
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
