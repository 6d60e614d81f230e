"""Structured logging configuration for the In-Cluster Provider."""

import json
import logging
import os
import sys
import threading
from typing import Any

from .utils.context import get_context_dict
from .utils.errors import sanitize_dict


def setup_structured_logging(level: int | str | None = None) -> None:
    """Configure one JSON document per line on stdout.

    The level defaults to ``LOG_LEVEL`` from the environment, then INFO.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # kubernetes and urllib3 log every request at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """Log a structured event about one managed record."""
    log_data = {
        "level": logging.getLevelName(level),
        "controller": controller,
        "resource": resource_kind,
        "name": resource_name,
        "namespace": namespace,
        "uid": uid,
        "event": event,
        "reason": reason,
        "message": message,
        "worker": threading.current_thread().name,
    }
    log_data.update(get_context_dict())
    log_data.update(sanitize_secrets(kwargs))
    logger.log(level, json.dumps(log_data, default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    """Redact credential material from extra log fields."""
    return sanitize_dict(log_data, {"connection_details"})
