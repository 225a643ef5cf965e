"""
Structured logging.

structlog events are handed to the stdlib root logger with their fields as
record extras, and python-json-logger writes every record (ours, uvicorn's,
SQLAlchemy's) as one JSON line on stdout.

Order and payment provider are carried in contextvars, so a Telegram or
receipt failure logged deep inside a callback still names its order.
"""
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from pythonjsonlogger.json import JsonFormatter

from kiosk_orders.config import Settings

LIBRARY_LOG_LEVELS = {
    "httpx": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "stripe": logging.INFO,
}


def service_context(settings: Settings) -> Any:
    """Processor stamping the service name and environment onto each event."""

    def add_service_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("service", settings.app_name)
        event_dict.setdefault("env", settings.app_env)
        return event_dict

    return add_service_context


@contextmanager
def order_context(order_id: Optional[str] = None, provider: Optional[str] = None) -> Iterator[None]:
    """Bind order_id and provider to every event logged inside the block."""
    values = {"order_id": order_id, "provider": provider}
    with structlog.contextvars.bound_contextvars(
        **{key: value for key, value in values.items() if value is not None}
    ):
        yield


def setup_logging(settings: Settings) -> None:
    """Configure structlog and the root stdlib logger from settings."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            service_context(settings),
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
            json_ensure_ascii=False,
        )
    )

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    for name, level in LIBRARY_LOG_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    structlog.get_logger(__name__).info("logging_configured", log_level=settings.log_level)
