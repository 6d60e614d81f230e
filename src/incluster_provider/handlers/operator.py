"""External client for operator packages installed through OLM."""

from __future__ import annotations

from typing import Any

from ..constants import (
    CSV_PHASE_SUCCEEDED,
    DEFAULT_NAMESPACE,
    KIND_OPERATOR,
    OLM_GROUP,
    OLM_VERSION,
    PACKAGES_GROUP,
    PACKAGES_VERSION,
    PLURAL_CSV,
    PLURAL_PACKAGE_MANIFEST,
    PLURAL_SUBSCRIPTION,
)
from ..services.kube.client import KubeClient
from ..services.kube.models import ManagedRecord, OperatorParameters
from ..utils.conditions import set_available_condition
from ..utils.errors import AlreadyExistsError, NotFoundError, ProviderError, wrap_error
from .base import BaseExternal, ExternalCreation, ExternalObservation, ExternalUpdate


def initialize_defaults(record: ManagedRecord) -> bool:
    """Default the namespace of a record that has none."""
    if not record.namespace.strip():
        record.namespace = DEFAULT_NAMESPACE
        return True
    return False


def current_csv(manifest: dict[str, Any], channel: str) -> str | None:
    """Return the current release of ``channel`` in a package manifest."""
    for entry in manifest.get("status", {}).get("channels") or []:
        if entry.get("name") == channel:
            return entry.get("currentCSV") or None
    return None


def make_subscription(record: ManagedRecord) -> dict[str, Any]:
    params: OperatorParameters = record.parameters
    return {
        "apiVersion": f"{OLM_GROUP}/{OLM_VERSION}",
        "kind": "Subscription",
        "metadata": {"name": record.name, "namespace": record.namespace},
        "spec": {
            "source": params.catalog_source,
            "sourceNamespace": params.catalog_source_namespace,
            "name": params.operator_name,
            "channel": params.channel,
        },
    }


class OperatorExternal(BaseExternal):
    """Installs an operator package via a Subscription and tracks its CSV."""

    def __init__(self, kube: KubeClient):
        super().__init__(KIND_OPERATOR, kube)

    def get_package_manifest(self, record: ManagedRecord) -> dict[str, Any] | None:
        """Fetch the package manifest; None when the package is not published."""
        params: OperatorParameters = record.parameters
        try:
            return self.kube.get_custom_object(
                PACKAGES_GROUP, PACKAGES_VERSION, params.catalog_source_namespace,
                PLURAL_PACKAGE_MANIFEST, params.operator_name,
            )
        except NotFoundError:
            return None

    def resolve_csv(self, record: ManagedRecord) -> str | None:
        manifest = self.get_package_manifest(record)
        if manifest is None:
            self.log_debug(record, "Unable to find package manifest")
            return None
        csv = current_csv(manifest, record.parameters.channel)
        if csv is None:
            self.log_debug(record, f"Channel {record.parameters.channel!r} not found in package manifest")
        return csv

    def observe(self, record: ManagedRecord) -> ExternalObservation:
        self.check_kind(record)
        with self.operation("observe", record):
            initialize_defaults(record)

            try:
                csv = self.resolve_csv(record)
            except ProviderError as e:
                raise wrap_error(e, "cannot get package manifest") from e
            if csv is None:
                return ExternalObservation()

            self.log_debug(record, f"Package manifest parsed, current CSV {csv}")
            try:
                obj = self.kube.get_custom_object(OLM_GROUP, OLM_VERSION, record.namespace, PLURAL_CSV, csv)
            except NotFoundError:
                return ExternalObservation()
            except ProviderError as e:
                raise wrap_error(e, "cannot get cluster service version") from e

            if obj.get("status", {}).get("phase") != CSV_PHASE_SUCCEEDED:
                return ExternalObservation(resource_exists=True)

            set_available_condition(record.conditions, record.generation)
            return ExternalObservation(resource_exists=True, resource_up_to_date=True)

    def create(self, record: ManagedRecord) -> ExternalCreation:
        self.check_kind(record)
        with self.operation("create", record):
            try:
                self.kube.create_custom_object(
                    OLM_GROUP, OLM_VERSION, record.namespace, PLURAL_SUBSCRIPTION, make_subscription(record)
                )
            except AlreadyExistsError:
                self.log_debug(record, "Subscription already exists")
            except ProviderError as e:
                raise wrap_error(e, "subscription create failed") from e
            else:
                self.log_info(record, "Subscription created", reason="Created")
            return ExternalCreation()

    def update(self, record: ManagedRecord) -> ExternalUpdate:
        # Package and channel changes are not reconciled after creation
        self.check_kind(record)
        return ExternalUpdate()

    def delete(self, record: ManagedRecord) -> None:
        self.check_kind(record)
        with self.operation("delete", record):
            namespace = record.namespace or DEFAULT_NAMESPACE
            try:
                csv = self.resolve_csv(record)
            except ProviderError as e:
                self.log_warning(record, "Cannot resolve current CSV, skipping its removal", error=e)
                csv = None

            if csv is not None:
                try:
                    self.kube.delete_custom_object(OLM_GROUP, OLM_VERSION, namespace, PLURAL_CSV, csv)
                except ProviderError as e:
                    self.log_warning(record, f"Cannot delete CSV {csv}", error=e)

            try:
                self.kube.delete_custom_object(OLM_GROUP, OLM_VERSION, namespace, PLURAL_SUBSCRIPTION, record.name)
            except ProviderError as e:
                raise wrap_error(e, "subscription delete failed") from e
