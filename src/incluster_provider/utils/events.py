"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

import logging
from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_CREATED_EXTERNAL,
    EVENT_REASON_DELETED_EXTERNAL,
    EVENT_REASON_PUBLISH_FAILED,
    EVENT_REASON_RECONCILE_FAILED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Full resource body (apiVersion, kind and metadata are required)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_external_created(body: dict[str, Any]) -> None:
    """Emit external resource created event."""
    emit_event(body, EVENT_REASON_CREATED_EXTERNAL, "Successfully requested creation of external resource")


def emit_external_deleted(body: dict[str, Any]) -> None:
    """Emit external resource deleted event."""
    emit_event(body, EVENT_REASON_DELETED_EXTERNAL, "Successfully deleted external resource")


def emit_publish_failed(body: dict[str, Any], message: str) -> None:
    """Emit connection details publish failed event."""
    emit_event(body, EVENT_REASON_PUBLISH_FAILED, message, type_="Warning")


class EventRecorder:
    """Posts reconcile events for managed records.

    Events are best effort: a failure to post one is logged and never fails
    the reconcile invocation.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def _post(self, fn: Any, body: dict[str, Any], *args: Any) -> None:
        try:
            fn(body, *args)
        except Exception as e:
            self.logger.warning(f"Failed to post event for {body.get('kind')} {body.get('metadata', {}).get('name')}: {e}")

    def reconcile_failed(self, body: dict[str, Any], message: str) -> None:
        self._post(emit_reconcile_failed, body, message)

    def external_created(self, body: dict[str, Any]) -> None:
        self._post(emit_external_created, body)

    def external_deleted(self, body: dict[str, Any]) -> None:
        self._post(emit_external_deleted, body)

    def publish_failed(self, body: dict[str, Any], message: str) -> None:
        self._post(emit_publish_failed, body, message)
