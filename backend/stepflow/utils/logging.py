# backend/stepflow/utils/logging.py

import logging
import sys
from contextlib import contextmanager
from typing import Optional

import structlog
from stepflow.config.settings import settings

# structlog and stdlib records go through one ProcessorFormatter. Anything
# bound with turn_log_context (conversation id, stream) is merged into every
# record logged while a turn runs, including the service clients' stdlib logs.

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def _renderer():
    if settings.environment == "development":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(level: Optional[int] = None):
    """Installs the stdout handler. Safe to call again; the previous handler is replaced."""
    if level is None:
        level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=_SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=_renderer(),
        foreign_pre_chain=_SHARED_PROCESSORS,
    ))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def turn_log_context(conversation_id: str, **extra):
    """Binds the conversation id (and any extra keys) to every log record inside the block."""
    with structlog.contextvars.bound_contextvars(conversation_id=conversation_id, **extra):
        yield
