"""structlog setup for RoleGate.

Every entry, including those from uvicorn, discord.py, stripe and SQLAlchemy
through the stdlib bridge, carries the request's correlation id and, while a
webhook is being reconciled, the Stripe event id and type.
"""

import logging
import sys

import structlog
from asgi_correlation_id.context import correlation_id

# Libraries whose INFO output is per-request or per-heartbeat noise.
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "discord.gateway": logging.WARNING,
    "discord.http": logging.WARNING,
    "stripe": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def stripe_event_context(event_id: str, event_type: str):
    """Context manager binding a Stripe event to all log entries emitted inside it."""
    return structlog.contextvars.bound_contextvars(stripe_event_id=event_id, stripe_event_type=event_type)


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Must run before other rolegate imports, since loggers cache their
    processor chain on first use.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
