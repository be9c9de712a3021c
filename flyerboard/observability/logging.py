"""
Structured logging configuration using structlog.
JSON lines in production, coloured console when DEBUG is set.

Every record carries the service version and the pipeline version, so log
lines can be matched to the decision rules that produced them. Provider
credentials are masked before rendering: the Mapbox token travels in the
request URL and shows up in httpx errors.
"""

import logging
import re
import sys

import structlog

from flyerboard.config import Settings

SECRET_PATTERNS = [
    (re.compile(r"(access_token=)[^&\s\"']+"), r"\1***"),
    (re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"), "sk-***"),
]

# Provider SDKs log every request at INFO
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "openai")


def redact_secrets(logger, method_name, event_dict):
    for key, value in event_dict.items():
        if isinstance(value, str):
            for pattern, replacement in SECRET_PATTERNS:
                value = pattern.sub(replacement, value)
            event_dict[key] = value
    return event_dict


def _version_stamp(settings: Settings):
    def add_versions(logger, method_name, event_dict):
        event_dict.setdefault("service_version", settings.APP_VERSION)
        event_dict.setdefault("pipeline_version", settings.PIPELINE_VERSION)
        return event_dict
    return add_versions


def setup_logging(settings: Settings) -> None:
    """Configure structlog and route stdlib logging (uvicorn, SQLAlchemy) through it."""
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _version_stamp(settings),
        redact_secrets,
    ]

    renderer = (
        structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DB_ECHO else logging.WARNING
    )
