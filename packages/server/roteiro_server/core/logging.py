"""
structlog configuration and per-request tenant context.

Event names are dotted (``guard.not_a_member``, ``rate_limit.exceeded``).
Once the guard authorizes a request, the organization and user ids are bound
to the structlog context so every later line of that request carries them.
"""

from __future__ import annotations

import logging
import uuid

import structlog


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )
    # uvicorn and SQLAlchemy log through the stdlib
    logging.basicConfig(level=log_level, format="%(message)s")


def bind_tenant_context(org_id: uuid.UUID, user_id: uuid.UUID) -> None:
    structlog.contextvars.bind_contextvars(org_id=str(org_id), user_id=str(user_id))


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
