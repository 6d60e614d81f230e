"""External client contract and the base class shared by every resource kind."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol

from .. import metrics
from ..constants import CONTROLLER_NAME
from ..logging import log_resource_event
from ..services.kube.client import KubeClient
from ..services.kube.models import ManagedRecord
from ..tracing import trace_span
from ..utils.deadline import Deadline
from ..utils.errors import InputError, sanitize_exception


@dataclass
class ExternalObservation:
    """Result of observing the external resource.

    ``connection_details`` is only populated once the resource is confirmed
    available.
    """

    resource_exists: bool = False
    resource_up_to_date: bool = False
    resource_late_initialized: bool = False
    connection_details: dict[str, bytes] = field(default_factory=dict)


@dataclass
class ExternalCreation:
    connection_details: dict[str, bytes] = field(default_factory=dict)


@dataclass
class ExternalUpdate:
    connection_details: dict[str, bytes] = field(default_factory=dict)


class ExternalClient(Protocol):
    """Observe/Create/Update/Delete against the target system for one kind.

    An instance is bound to one target connection and lives for a single
    reconcile invocation.
    """

    def observe(self, record: ManagedRecord) -> ExternalObservation:
        ...

    def create(self, record: ManagedRecord) -> ExternalCreation:
        ...

    def update(self, record: ManagedRecord) -> ExternalUpdate:
        ...

    def delete(self, record: ManagedRecord) -> None:
        ...


class Connector(Protocol):
    """Resolves credentials for a record and returns a bound ExternalClient."""

    def connect(self, record: ManagedRecord, deadline: Deadline) -> ExternalClient:
        ...


class BaseExternal:
    """Base class for external clients with logging and metrics helpers."""

    def __init__(self, kind: str, kube: KubeClient):
        """Initialize base external client.

        Args:
            kind: The managed resource kind (e.g., "Postgres", "Operator")
            kube: Client bound to the target cluster
        """
        self.kind = kind
        self.kube = kube
        self.logger = logging.getLogger(__name__)

    def check_kind(self, record: ManagedRecord) -> None:
        """Reject records of another kind.

        Raises:
            InputError: If the record is not of this client's kind
        """
        if record.kind != self.kind:
            raise InputError(f"the managed resource is not a {self.kind} resource")

    def log_info(self, record: ManagedRecord, message: str, reason: str = "Info", **kwargs: Any) -> None:
        self._log(logging.INFO, record, message, "info", reason, **kwargs)

    def log_debug(self, record: ManagedRecord, message: str, reason: str = "Debug", **kwargs: Any) -> None:
        self._log(logging.DEBUG, record, message, "debug", reason, **kwargs)

    def log_warning(
        self,
        record: ManagedRecord,
        message: str,
        error: Exception | None = None,
        reason: str = "Warning",
        **kwargs: Any,
    ) -> None:
        """Log a warning-level structured log message.

        Args:
            record: Managed record the message is about
            message: Log message
            error: Optional exception to include sanitized error details
            reason: Reason for the event (default: "Warning")
            **kwargs: Additional fields to include in the log
        """
        if error is not None:
            kwargs["error"] = sanitize_exception(error)
            kwargs["error_type"] = type(error).__name__
        self._log(logging.WARNING, record, message, "warning", reason, **kwargs)

    def _log(self, level: int, record: ManagedRecord, message: str, event: str, reason: str, **kwargs: Any) -> None:
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=record.name,
            namespace=record.namespace,
            uid=record.uid,
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    @contextmanager
    def operation(self, name: str, record: ManagedRecord) -> Iterator[None]:
        """Trace an external operation and count its outcome."""
        with trace_span(f"external.{name}", kind=self.kind, attributes={
            "resource.name": record.name,
            "resource.namespace": record.namespace,
        }):
            try:
                yield
            except Exception:
                metrics.external_operations_total.labels(kind=self.kind, operation=name, result="error").inc()
                raise
            metrics.external_operations_total.labels(kind=self.kind, operation=name, result="success").inc()
