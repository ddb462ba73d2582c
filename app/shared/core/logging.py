import sys
import structlog
import logging
from app.shared.core.config import get_settings

SENSITIVE_FIELDS = {
    "password", "token", "secret", "api_key", "authorization",
    "jwt", "inventory_api_token"
}


def sensitive_field_redactor(logger, method_name, event_dict):
    """
    Redact credentials and tokens from logs before rendering.
    """
    for field in SENSITIVE_FIELDS:
        if field in event_dict:
            event_dict[field] = "[REDACTED]"

    # Redact nested fields in common containers
    for container in ["metadata", "payload", "details", "extra", "headers"]:
        if container in event_dict and isinstance(event_dict[container], dict):
            for field in SENSITIVE_FIELDS:
                if field in event_dict[container]:
                    event_dict[container][field] = "[REDACTED]"

    return event_dict


def setup_logging():
    settings = get_settings()

    # 1. Choose the renderer based on environment
    if settings.DEBUG:
        renderer = structlog.dev.ConsoleRenderer()
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        min_level = logging.INFO

    # 2. Processor pipeline
    processors = [
        structlog.contextvars.merge_contextvars,  # request_id, organization_id
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        sensitive_field_redactor,
        renderer
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # 3. Route stdlib logging (uvicorn, sqlalchemy) through the same stream.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=min_level,
    )


def audit_log(event: str, organization_id: str, details: dict = None):
    """
    Standardized helper for state-changing events (imports, suggestion status changes).
    """
    logger = structlog.get_logger("audit")
    logger.info(
        "audit_event",
        audit_event=event,
        organization_id=str(organization_id),
        metadata=details or {},
    )
