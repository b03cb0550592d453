"""
Structured logging setup (structlog).

Participant contact details never reach the log stream in full: the
``redact_contacts`` processor masks the ``to``, ``email`` and ``phone``
event keys down to their last four characters.
"""

import logging
import sys

import structlog

CONTACT_KEYS = ("to", "email", "phone")


def mask_contact(value: str) -> str:
    return f"***{value[-4:]}" if len(value) > 4 else "***"


def redact_contacts(logger, method_name, event_dict):
    for key in CONTACT_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and value:
            event_dict[key] = mask_contact(value)
    return event_dict


def _build_processors(redact: bool = True) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if redact:
        processors.append(redact_contacts)
    processors.append(
        structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer()
    )
    return processors


def configure_logging() -> None:
    from study_pulse.config import settings

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=_build_processors(redact=settings.log_redact_contacts),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Module-level `log` works before the API lifespan, the worker or the CLI
# calls configure_logging().
structlog.configure(
    processors=_build_processors(),
    wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=False,
)

log = structlog.get_logger()
