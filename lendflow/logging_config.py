"""
Structured logging setup.

Analyses log applicant financial figures, so identifiers that could tie a
log line to a person are redacted before rendering.
"""
import logging
import sys
from typing import Any, Optional

import structlog

from lendflow.config import Settings, get_settings

# Sensitive fields to redact from logs
SENSITIVE_FIELDS = {
    "ssn", "social_security_number", "tax_id", "taxid", "ein",
    "account_number", "accountnumber", "routing_number", "routingnumber",
    "borrower_name", "date_of_birth", "dob",
}


def redact_sensitive_processor(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Structlog processor replacing sensitive values with "[REDACTED]"."""
    for key in list(event_dict.keys()):
        if key.lower() in SENSITIVE_FIELDS:
            event_dict[key] = "[REDACTED]"
    return event_dict


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        settings: Settings to read level and renderer from; defaults to the
            cached application settings.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            redact_sensitive_processor,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
