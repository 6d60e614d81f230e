"""Generic reconciler driving an external client for one managed kind."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from kubernetes import client

from .. import metrics
from ..constants import CONTROLLER_NAME
from ..handlers.base import Connector
from ..logging import log_resource_event
from ..services.kube.models import ManagedRecord, ResourceKey
from ..services.kube.records import RecordStore
from ..tracing import mark_failed, trace_span
from ..utils.conditions import (
    set_creating_condition,
    set_deleting_condition,
    set_reconcile_error_condition,
    set_reconcile_success_condition,
)
from ..utils.context import with_reconcile_id
from ..utils.deadline import Deadline
from ..utils.errors import (
    ConflictError,
    ProviderError,
    TransientError,
    sanitize_exception,
    wrap_error,
)
from ..utils.events import EventRecorder
from ..utils.secrets import apply_connection_secret

logger = logging.getLogger(__name__)

STAGE_CONNECT = "connect failed"
STAGE_OBSERVE = "observe failed"
STAGE_CREATE = "create failed"
STAGE_UPDATE = "update failed"
STAGE_DELETE = "delete failed"
STAGE_PUBLISH = "cannot publish connection details"


@dataclass
class ReconcileResult:
    """What the kopf handler should do after an invocation.

    ``requeue`` asks for a retry with backoff; ``requeue_after`` means the
    next periodic resync is soon enough.
    """

    requeue: bool = False
    requeue_after: float | None = None
    error: ProviderError | None = None


class Reconciler:
    """Connect, Observe, then Create, Update or Delete, then persist status."""

    def __init__(
        self,
        kind: str,
        store: RecordStore,
        connector: Connector,
        core_api: client.CoreV1Api,
        poll_interval: float = 60.0,
        timeout: float | None = 60.0,
        max_conflict_restarts: int = 5,
        recorder: EventRecorder | None = None,
    ) -> None:
        self.kind = kind
        self.store = store
        self.connector = connector
        self.core_api = core_api
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_conflict_restarts = max_conflict_restarts
        self.recorder = recorder or EventRecorder()
        self._locks: dict[ResourceKey, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def reconcile(self, key: ResourceKey) -> ReconcileResult:
        """Run one Observe-driven invocation for ``key``.

        A write conflict restarts the invocation from loading the record; the
        deadline covers all restarts.
        """
        return self._run(key, "reconcile", self._reconcile_once)

    def finalize(self, key: ResourceKey) -> ReconcileResult:
        """Delete the external resource of a record that is being deleted.

        The finalizer itself belongs to kopf, which drops it once this returns
        without an error.
        """
        return self._run(key, "finalize", self._finalize_once)

    def _lock_for(self, key: ResourceKey) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    def _run(
        self,
        key: ResourceKey,
        operation: str,
        once: Callable[[ResourceKey, Deadline], ReconcileResult],
    ) -> ReconcileResult:
        # kopf timers run beside the change handlers of the same object
        with self._lock_for(key), with_reconcile_id(), trace_span(
            operation, kind=self.kind, attributes={"resource.key": str(key)}
        ) as span:
            start_time = time.time()
            deadline = Deadline(self.timeout)
            restarts = 0
            try:
                while True:
                    try:
                        result = once(key, deadline)
                        break
                    except ConflictError as e:
                        restarts += 1
                        metrics.conflict_restarts_total.labels(kind=self.kind).inc()
                        if restarts > self.max_conflict_restarts:
                            error = TransientError(f"giving up after {restarts - 1} conflict restarts: {e}")
                            error.__cause__ = e
                            result = self._result_for(error)
                            self._log_failure(key, error)
                            break
                        logger.debug(f"Write conflict on {self.kind} {key}, restarting: {e}")
                    except ProviderError as e:
                        # Loading the record or persisting failure status failed
                        result = self._result_for(e)
                        self._log_failure(key, e)
                        break
            finally:
                metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(time.time() - start_time)

            if result.error is not None:
                mark_failed(span, result.error)
            outcome = "error" if result.error is not None else "success"
            metrics.reconcile_total.labels(kind=self.kind, result=outcome).inc()
            return result

    def _result_for(self, error: ProviderError, connecting: bool = False) -> ReconcileResult:
        if connecting or error.retryable:
            return ReconcileResult(requeue=True, error=error)
        return ReconcileResult(requeue_after=self.poll_interval, error=error)

    def _reconcile_once(self, key: ResourceKey, deadline: Deadline) -> ReconcileResult:
        record = self.store.get(key, deadline)
        if record is None:
            logger.debug(f"{self.kind} {key} no longer exists")
            return ReconcileResult()

        if record.deleting:
            logger.debug(f"{self.kind} {key} is being deleted, left to finalize")
            return ReconcileResult()

        try:
            external = self.connector.connect(record, deadline)
        except Exception as e:
            return self._fail(record, wrap_error(e, STAGE_CONNECT), deadline, connecting=True)

        try:
            observation = external.observe(record)
        except Exception as e:
            return self._fail(record, wrap_error(e, STAGE_OBSERVE), deadline)

        if observation.resource_late_initialized:
            # Conditions set by Observe stay in memory until the status write
            self.store.update(record, deadline)
            self._log(record, "Persisted late-initialized parameters", reason="LateInitialized")

        if not observation.resource_exists:
            set_creating_condition(record.conditions, record.generation)
            try:
                creation = external.create(record)
            except Exception as e:
                return self._fail(record, wrap_error(e, STAGE_CREATE), deadline)
            self.recorder.external_created(record.to_body())
            self._log(record, "Successfully requested creation of external resource", reason="Created")
            details = creation.connection_details
        elif not observation.resource_up_to_date:
            try:
                update = external.update(record)
            except Exception as e:
                return self._fail(record, wrap_error(e, STAGE_UPDATE), deadline)
            details = update.connection_details
        else:
            details = observation.connection_details

        try:
            self._publish(record, details, deadline)
        except ConflictError:
            raise
        except ProviderError as e:
            self.recorder.publish_failed(record.to_body(), sanitize_exception(e))
            return self._fail(record, e, deadline)

        set_reconcile_success_condition(record.conditions, record.generation)
        self.store.update_status(record, deadline)
        status = "ready" if observation.resource_up_to_date else "not_ready"
        metrics.resource_status_total.labels(kind=self.kind, status=status).inc()
        self._log(record, "Reconciled", reason="ReconcileSuccess")
        return ReconcileResult(requeue_after=self.poll_interval)

    def _finalize_once(self, key: ResourceKey, deadline: Deadline) -> ReconcileResult:
        record = self.store.get(key, deadline)
        if record is None:
            return ReconcileResult()

        set_deleting_condition(record.conditions, record.generation)
        try:
            external = self.connector.connect(record, deadline)
        except Exception as e:
            return self._fail(record, wrap_error(e, STAGE_CONNECT), deadline, connecting=True)
        try:
            external.delete(record)
        except Exception as e:
            return self._fail(record, wrap_error(e, STAGE_DELETE), deadline)

        self.recorder.external_deleted(record.to_body())
        self._log(record, "Successfully deleted external resource", reason="Deleted")
        return ReconcileResult()

    def _publish(self, record: ManagedRecord, details: dict[str, bytes], deadline: Deadline) -> None:
        ref = record.connection_secret_ref
        if ref is None or not details:
            return
        namespace = ref.namespace or record.key.namespace
        owners = [record.owner_reference()] if namespace == record.key.namespace else None
        timeout = deadline.check(STAGE_PUBLISH)
        try:
            apply_connection_secret(self.core_api, namespace, ref.name, details, owners, timeout)
        except ProviderError as e:
            raise wrap_error(e, STAGE_PUBLISH) from e

    def _fail(
        self,
        record: ManagedRecord,
        error: ProviderError,
        deadline: Deadline,
        connecting: bool = False,
    ) -> ReconcileResult:
        """Report a failed stage on the record and decide the retry."""
        if isinstance(error, ConflictError) and not connecting:
            raise error
        message = sanitize_exception(error)
        set_reconcile_error_condition(record.conditions, message, record.generation)
        self._log(
            record,
            f"Reconciliation failed: {message}",
            reason="ReconcileError",
            level=logging.ERROR,
            error_type=type(error).__name__,
        )
        metrics.error_total.labels(kind=self.kind, error_type=type(error).__name__).inc()
        self.recorder.reconcile_failed(record.to_body(), message)
        try:
            self.store.update_status(record, deadline)
        except ConflictError:
            raise
        except ProviderError as e:
            self._log(record, f"Cannot persist failure status: {sanitize_exception(e)}", reason="StatusUpdateFailed", level=logging.WARNING)
        return self._result_for(error, connecting=connecting)

    def _log_failure(self, key: ResourceKey, error: ProviderError) -> None:
        metrics.error_total.labels(kind=self.kind, error_type=type(error).__name__).inc()
        log_resource_event(
            logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=key.name,
            namespace=key.namespace,
            uid="unknown",
            event="error",
            reason="ReconcileError",
            message=f"Reconciliation failed: {sanitize_exception(error)}",
            level=logging.ERROR,
            error_type=type(error).__name__,
        )

    def _log(self, record: ManagedRecord, message: str, reason: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log_resource_event(
            logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=record.name,
            namespace=record.key.namespace,
            uid=record.uid,
            event="reconcile",
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )
