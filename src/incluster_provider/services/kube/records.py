"""Access to managed records stored in the controlling cluster."""

from __future__ import annotations

import logging
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from ... import metrics
from ...constants import API_GROUP, API_VERSION, PLURAL_PROVIDER_CONFIG
from ...utils.deadline import Deadline
from ...utils.errors import ConflictError, NotFoundError, TransientError, from_api_exception
from .models import ManagedRecord, ProviderConfig, ResourceKey

logger = logging.getLogger(__name__)


class RecordStore:
    """Version-checked reads and writes of one managed kind.

    Writes replace the object with the ``resourceVersion`` read earlier, so a
    concurrent modification surfaces as ConflictError instead of being
    overwritten.
    """

    def __init__(
        self,
        api: client.CustomObjectsApi,
        kind: str,
        plural: str,
        parameters_type: type[Any],
        group: str = API_GROUP,
        version: str = API_VERSION,
    ) -> None:
        self.api = api
        self.kind = kind
        self.plural = plural
        self.parameters_type = parameters_type
        self.group = group
        self.version = version

    def _invoke(self, operation: str, stage: str, deadline: Deadline | None, fn: Any, **kwargs: Any) -> Any:
        timeout = deadline.check(stage) if deadline is not None else None
        try:
            result = fn(_request_timeout=timeout, **kwargs)
            metrics.api_call_total.labels(api_type="controlling", operation=operation, result="success").inc()
            return result
        except ApiException as e:
            metrics.api_call_total.labels(api_type="controlling", operation=operation, result="error").inc()
            if e.status == 409:
                raise ConflictError(f"{stage}: {e.reason}") from e
            raise from_api_exception(e, stage) from e
        except (HTTPError, OSError) as e:
            metrics.api_call_total.labels(api_type="controlling", operation=operation, result="error").inc()
            raise TransientError(f"{stage}: {e}") from e

    def get(self, key: ResourceKey, deadline: Deadline | None = None) -> ManagedRecord | None:
        """Load a record; None when it no longer exists."""
        try:
            body = self._invoke(
                "get", f"cannot get {self.kind} {key}", deadline,
                self.api.get_namespaced_custom_object,
                group=self.group, version=self.version, namespace=key.namespace,
                plural=self.plural, name=key.name,
            )
        except NotFoundError:
            return None
        return ManagedRecord.from_body(body, self.parameters_type)

    def update(self, record: ManagedRecord, deadline: Deadline | None = None) -> ManagedRecord:
        """Write metadata and spec back; refreshes ``resource_version`` on success.

        Raises:
            ConflictError: The record changed since it was read
        """
        body = self._invoke(
            "replace", f"cannot update {self.kind} {record.key}", deadline,
            self.api.replace_namespaced_custom_object,
            group=self.group, version=self.version, namespace=record.key.namespace,
            plural=self.plural, name=record.name, body=record.to_body(),
        )
        record.resource_version = body.get("metadata", {}).get("resourceVersion")
        return record

    def update_status(self, record: ManagedRecord, deadline: Deadline | None = None) -> ManagedRecord:
        """Write the status subresource with the record's conditions.

        Raises:
            ConflictError: The record changed since it was read
        """
        body = self._invoke(
            "replace_status", f"cannot update status of {self.kind} {record.key}", deadline,
            self.api.replace_namespaced_custom_object_status,
            group=self.group, version=self.version, namespace=record.key.namespace,
            plural=self.plural, name=record.name, body=record.to_body(),
        )
        record.resource_version = body.get("metadata", {}).get("resourceVersion")
        return record


def get_provider_config(
    api: client.CustomObjectsApi,
    name: str,
    deadline: Deadline | None = None,
) -> ProviderConfig:
    """Load a cluster-scoped ProviderConfig.

    Raises:
        NotFoundError: If the ProviderConfig does not exist
        InputError: If its credentials source is not supported
    """
    stage = f"cannot get {PLURAL_PROVIDER_CONFIG} {name}"
    timeout = deadline.check(stage) if deadline is not None else None
    try:
        body = api.get_cluster_custom_object(
            group=API_GROUP,
            version=API_VERSION,
            plural=PLURAL_PROVIDER_CONFIG,
            name=name,
            _request_timeout=timeout,
        )
    except ApiException as e:
        raise from_api_exception(e, stage) from e
    except (HTTPError, OSError) as e:
        raise TransientError(f"{stage}: {e}") from e
    return ProviderConfig.from_body(body)
