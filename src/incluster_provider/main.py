"""Main entry point for the In-Cluster Provider."""

from __future__ import annotations

import logging
import os
from typing import Any

import kopf
from kubernetes import client, config

from . import health, metrics
from . import logging as structured_logging
from .builders.provider import Connector
from .constants import API_GROUP_VERSION, FINALIZER, KIND_OPERATOR, KIND_POSTGRES
from .reconciler.managed import Reconciler, ReconcileResult
from .registry import ResourceKind, build_registry
from .services.kube.models import ResourceKey
from .services.kube.records import RecordStore
from .settings import ControllerSettings
from .tracing import initialize_tracing
from .utils.errors import sanitize_exception

logger = logging.getLogger(__name__)

# Decorator arguments need the settings at import time
SETTINGS = ControllerSettings.from_env()

# Process wiring only: reconcilers built by the startup handler
_reconcilers: dict[str, Reconciler] = {}
_servers: list[Any] = []


def load_kube_config() -> None:
    """Load credentials for the controlling cluster."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def build_reconcilers(
    registry: dict[str, ResourceKind],
    settings: ControllerSettings,
    api_client: client.ApiClient | None = None,
) -> dict[str, Reconciler]:
    """Build one reconciler per registered kind.

    Args:
        registry: Table of managed kinds
        settings: Controller settings
        api_client: Client for the controlling cluster (default configuration when None)

    Returns:
        Reconcilers keyed by kind
    """
    core_api = client.CoreV1Api(api_client)
    custom_api = client.CustomObjectsApi(api_client)
    reconcilers: dict[str, Reconciler] = {}
    for entry in registry.values():
        store = RecordStore(
            custom_api,
            entry.kind,
            entry.plural,
            entry.parameters_type,
            group=entry.group,
            version=entry.version,
        )
        reconcilers[entry.kind] = Reconciler(
            entry.kind,
            store,
            Connector(core_api, custom_api, entry.external_factory),
            core_api,
            poll_interval=settings.poll_interval,
            timeout=settings.reconcile_timeout or None,
            max_conflict_restarts=settings.max_conflict_restarts,
        )
    return reconcilers


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator and build the reconcilers."""
    # Set up structured JSON logging
    structured_logging.setup_structured_logging()
    initialize_tracing()

    settings.posting.level = logging.INFO
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = SETTINGS.max_workers
    settings.persistence.finalizer = FINALIZER

    load_kube_config()

    # Start metrics HTTP server with health check endpoints
    _servers.append(health.start_health_server(SETTINGS.metrics_port))

    _reconcilers.update(build_reconcilers(build_registry(), SETTINGS))

    health.set_ready(True)
    logger.info(f"Serving {', '.join(sorted(_reconcilers))}")


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    """Stop the health server."""
    health.set_ready(False)
    _reconcilers.clear()
    for server in _servers:
        server.shutdown()
    _servers.clear()


def backoff(retry: int, settings: ControllerSettings = SETTINGS) -> float:
    """Delay before the next attempt after ``retry`` earlier failures."""
    return min(settings.min_retry_delay * 2**retry, settings.max_retry_delay)


def _reconciler_for(kind: str) -> Reconciler:
    reconciler = _reconcilers.get(kind)
    if reconciler is None:
        raise kopf.TemporaryError(f"no reconciler for {kind} yet", delay=SETTINGS.min_retry_delay)
    return reconciler


def _retry(kind: str, key: ResourceKey, result: ReconcileResult, delay: float) -> kopf.TemporaryError:
    metrics.retries_total.labels(kind=kind).inc()
    reason = sanitize_exception(result.error) if result.error is not None else "requeued"
    return kopf.TemporaryError(f"{kind} {key}: {reason}", delay=delay)


def reconcile(kind: str, name: str, namespace: str | None, retry: int = 0) -> None:
    """Run one reconcile invocation and turn a requeue into a kopf retry.

    Non-retryable failures return normally; the timer picks the record up
    again after the poll interval.

    Raises:
        kopf.TemporaryError: If the invocation asked for a retry
    """
    key = ResourceKey(namespace=namespace or "", name=name)
    result = _reconciler_for(kind).reconcile(key)
    if result.requeue:
        raise _retry(kind, key, result, backoff(retry))


def finalize(kind: str, name: str, namespace: str | None, retry: int = 0) -> None:
    """Delete the external resource; kopf keeps the finalizer until this returns.

    Raises:
        kopf.TemporaryError: If deletion failed for any reason
    """
    key = ResourceKey(namespace=namespace or "", name=name)
    result = _reconciler_for(kind).finalize(key)
    if result.error is None:
        return
    delay = backoff(retry) if result.requeue else (result.requeue_after or SETTINGS.poll_interval)
    raise _retry(kind, key, result, delay)


@kopf.on.create(API_GROUP_VERSION, KIND_POSTGRES)
@kopf.on.update(API_GROUP_VERSION, KIND_POSTGRES)
@kopf.on.resume(API_GROUP_VERSION, KIND_POSTGRES)
@kopf.timer(API_GROUP_VERSION, KIND_POSTGRES, interval=SETTINGS.poll_interval)
def handle_postgres(name: str, namespace: str | None, retry: int = 0, **_: Any) -> None:
    """Handle Postgres changes and periodic resync."""
    reconcile(KIND_POSTGRES, name, namespace, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_POSTGRES)
def handle_postgres_delete(name: str, namespace: str | None, retry: int = 0, **_: Any) -> None:
    """Handle Postgres resource deletion."""
    finalize(KIND_POSTGRES, name, namespace, retry)


@kopf.on.create(API_GROUP_VERSION, KIND_OPERATOR)
@kopf.on.update(API_GROUP_VERSION, KIND_OPERATOR)
@kopf.on.resume(API_GROUP_VERSION, KIND_OPERATOR)
@kopf.timer(API_GROUP_VERSION, KIND_OPERATOR, interval=SETTINGS.poll_interval)
def handle_operator(name: str, namespace: str | None, retry: int = 0, **_: Any) -> None:
    """Handle Operator changes and periodic resync."""
    reconcile(KIND_OPERATOR, name, namespace, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_OPERATOR)
def handle_operator_delete(name: str, namespace: str | None, retry: int = 0, **_: Any) -> None:
    """Handle Operator resource deletion."""
    finalize(KIND_OPERATOR, name, namespace, retry)


def run() -> None:
    """Console entry point: run the operator, cluster-wide unless WATCH_NAMESPACE is set."""
    namespace = os.getenv("WATCH_NAMESPACE")
    kopf.run(clusterwide=not namespace, namespaces=[namespace] if namespace else [])
