"""Kubernetes client bound to one target cluster for one invocation."""

from __future__ import annotations

import enum
import logging
import time
from typing import Any, Callable

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from ... import metrics
from ...constants import FIELD_MANAGER
from ...utils.deadline import Deadline
from ...utils.errors import NotFoundError, TransientError, from_api_exception
from ...utils.secrets import get_secret_value

logger = logging.getLogger(__name__)


class OperationResult(str, enum.Enum):
    """Outcome of a create-or-update call."""

    CREATED = "created"
    UPDATED = "updated"


class KubeClient:
    """Typed access to the target cluster.

    Every call checks the invocation deadline first, passes the remaining
    time as the request timeout, and maps failures onto the error taxonomy.
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_client: Configured kubernetes ApiClient (default configuration when None)
            deadline: Deadline of the current invocation
        """
        self.api_client = api_client
        self.deadline = deadline or Deadline(None)
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)

    def _call(self, operation: str, target: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        stage = f"{operation} {target}"
        timeout = self.deadline.check(stage)
        start_time = time.time()
        try:
            result = fn(_request_timeout=timeout, **kwargs)
            metrics.api_call_total.labels(api_type="target", operation=operation, result="success").inc()
            return result
        except ApiException as e:
            result_label = "not_found" if e.status == 404 else "error"
            metrics.api_call_total.labels(api_type="target", operation=operation, result=result_label).inc()
            raise from_api_exception(e, stage) from e
        except (HTTPError, OSError) as e:
            metrics.api_call_total.labels(api_type="target", operation=operation, result="error").inc()
            raise TransientError(f"{stage}: {e}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="target", operation=operation).observe(duration)

    def _apply(
        self,
        resource: str,
        body: Any,
        read_fn: Callable[..., Any],
        create_fn: Callable[..., Any],
        patch_fn: Callable[..., Any],
    ) -> OperationResult:
        namespace = body.metadata.namespace
        name = body.metadata.name
        target = f"{resource} {namespace}/{name}"
        try:
            self._call(f"get_{resource}", target, read_fn, name=name, namespace=namespace)
        except NotFoundError:
            self._call(
                f"create_{resource}", target, create_fn,
                namespace=namespace, body=body, field_manager=FIELD_MANAGER,
            )
            logger.debug(f"Created {target}")
            return OperationResult.CREATED
        self._call(
            f"patch_{resource}", target, patch_fn,
            name=name, namespace=namespace, body=body, field_manager=FIELD_MANAGER,
        )
        logger.debug(f"Updated {target}")
        return OperationResult.UPDATED

    def _delete(self, resource: str, namespace: str, name: str, delete_fn: Callable[..., Any]) -> bool:
        try:
            self._call(f"delete_{resource}", f"{resource} {namespace}/{name}", delete_fn, name=name, namespace=namespace)
        except NotFoundError:
            return False
        return True

    # Workload

    def read_deployment(self, namespace: str, name: str) -> client.V1Deployment:
        return self._call(
            "get_deployment", f"deployment {namespace}/{name}",
            self.apps.read_namespaced_deployment, name=name, namespace=namespace,
        )

    def apply_deployment(self, body: client.V1Deployment) -> OperationResult:
        return self._apply(
            "deployment", body,
            self.apps.read_namespaced_deployment,
            self.apps.create_namespaced_deployment,
            self.apps.patch_namespaced_deployment,
        )

    def delete_deployment(self, namespace: str, name: str) -> bool:
        return self._delete("deployment", namespace, name, self.apps.delete_namespaced_deployment)

    # Network exposure

    def read_service(self, namespace: str, name: str) -> client.V1Service:
        return self._call(
            "get_service", f"service {namespace}/{name}",
            self.core.read_namespaced_service, name=name, namespace=namespace,
        )

    def apply_service(self, body: client.V1Service) -> OperationResult:
        return self._apply(
            "service", body,
            self.core.read_namespaced_service,
            self.core.create_namespaced_service,
            self.core.patch_namespaced_service,
        )

    def delete_service(self, namespace: str, name: str) -> bool:
        return self._delete("service", namespace, name, self.core.delete_namespaced_service)

    # Storage claim

    def apply_persistent_volume_claim(self, body: client.V1PersistentVolumeClaim) -> OperationResult:
        return self._apply(
            "persistentvolumeclaim", body,
            self.core.read_namespaced_persistent_volume_claim,
            self.core.create_namespaced_persistent_volume_claim,
            self.core.patch_namespaced_persistent_volume_claim,
        )

    def delete_persistent_volume_claim(self, namespace: str, name: str) -> bool:
        return self._delete(
            "persistentvolumeclaim", namespace, name, self.core.delete_namespaced_persistent_volume_claim
        )

    # Secrets

    def read_secret_value(self, namespace: str, name: str, key: str) -> bytes:
        """Read one key of a secret; NotFoundError when the secret or key is absent."""
        timeout = self.deadline.check(f"get secret {namespace}/{name}")
        return get_secret_value(self.core, namespace, name, key, request_timeout=timeout)

    # Custom objects

    def get_custom_object(self, group: str, version: str, namespace: str, plural: str, name: str) -> dict[str, Any]:
        return self._call(
            f"get_{plural}", f"{plural} {namespace}/{name}",
            self.custom.get_namespaced_custom_object,
            group=group, version=version, namespace=namespace, plural=plural, name=name,
        )

    def create_custom_object(
        self, group: str, version: str, namespace: str, plural: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        name = body.get("metadata", {}).get("name", "")
        return self._call(
            f"create_{plural}", f"{plural} {namespace}/{name}",
            self.custom.create_namespaced_custom_object,
            group=group, version=version, namespace=namespace, plural=plural, body=body,
            field_manager=FIELD_MANAGER,
        )

    def delete_custom_object(self, group: str, version: str, namespace: str, plural: str, name: str) -> bool:
        try:
            self._call(
                f"delete_{plural}", f"{plural} {namespace}/{name}",
                self.custom.delete_namespaced_custom_object,
                group=group, version=version, namespace=namespace, plural=plural, name=name,
            )
        except NotFoundError:
            return False
        return True
