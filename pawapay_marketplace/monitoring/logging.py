"""
Structured logging configuration.

structlog renders JSON events; the stdlib root logger writes them to stdout
through python-json-logger so third-party libraries share the same sink.
Gateway responses end up in log events, so credentials are redacted and
payer phone numbers masked before rendering.
"""
import logging
import sys
from typing import Any, Callable, Mapping, Optional

import structlog
from pythonjsonlogger import jsonlogger

from pawapay_marketplace.config import Settings, get_settings

Processor = Callable[[Any, str, dict[str, Any]], dict[str, Any]]

REDACTED = "[redacted]"
SECRET_KEYS = frozenset(
    {"authorization", "api_token", "webhook_secret", "signature", "x-pawapay-signature"}
)
PHONE_KEYS = frozenset(
    {"msisdn", "phone", "phone_number", "phonenumber", "payer_phone", "recipient_phone"}
)


def mask_phone(value: Any) -> Any:
    """260971234567 -> 26097*****67"""
    if not isinstance(value, str) or len(value) < 8:
        return value
    return value[:5] + "*" * (len(value) - 7) + value[-2:]


def _scrub(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _scrub_item(key, item) for key, item in value.items()}
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def _scrub_item(key: Any, value: Any) -> Any:
    name = str(key).lower()
    if name in SECRET_KEYS:
        return REDACTED
    if name in PHONE_KEYS:
        return mask_phone(value)
    return _scrub(value)


def scrub_sensitive(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Redact credentials and mask phone numbers, including in nested payloads."""
    for key in list(event_dict):
        event_dict[key] = _scrub_item(key, event_dict[key])
    return event_dict


def app_context_processor(app_name: str, app_env: str) -> Processor:
    """Processor stamping every event with the service name and environment."""

    def add_app_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("app_name", app_name)
        event_dict.setdefault("app_env", app_env)
        return event_dict

    return add_app_context


def build_processors(settings: Settings) -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        scrub_sensitive,
        app_context_processor(settings.app_name, settings.app_env),
        structlog.processors.JSONRenderer(),
    ]


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog and the stdout JSON handler.

    Safe to call more than once; the root handlers are replaced each time.
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "level", "name": "logger"},
        )
    )
    root_logger.addHandler(stdout_handler)

    # Client libraries log every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
        pawapay_environment=settings.pawapay_environment,
    )
