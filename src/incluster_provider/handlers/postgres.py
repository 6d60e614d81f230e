"""External client for Postgres database instances running in the target cluster."""

from __future__ import annotations

from kubernetes import client

from ..builders.postgres import (
    make_deployment,
    make_persistent_volume_claim,
    make_service,
    password_from_deployment,
)
from ..constants import (
    CONNECTION_KEY_DATABASE,
    CONNECTION_KEY_ENDPOINT,
    CONNECTION_KEY_PASSWORD,
    CONNECTION_KEY_PORT,
    CONNECTION_KEY_USERNAME,
    DEFAULT_MASTER_USERNAME,
    DEFAULT_NAMESPACE,
    DEFAULT_STORAGE_CLASS,
    KIND_POSTGRES,
    POSTGRES_DEFAULT_PORT,
)
from ..services.kube.client import KubeClient
from ..services.kube.models import ManagedRecord, PostgresParameters
from ..utils.conditions import set_available_condition
from ..utils.errors import NotFoundError, ProviderError, wrap_error
from ..utils.passwords import generate_password, is_generated_password
from .base import BaseExternal, ExternalCreation, ExternalObservation, ExternalUpdate

STAGE_STORAGE_CLAIM_CREATE = "storage-claim create failed"
STAGE_WORKLOAD_CREATE = "workload create failed"
STAGE_NETWORK_CREATE = "network-exposure create failed"
STAGE_PASSWORD = "cannot resolve master password"
STAGE_WORKLOAD_OBSERVE = "cannot get workload"
STAGE_NETWORK_OBSERVE = "cannot get network exposure"
STAGE_DELETE = "cannot delete postgres instance"


def initialize_defaults(record: ManagedRecord) -> bool:
    """Fill unset optional parameters with defaults.

    Explicit values are never overwritten. The namespace default is applied
    in memory only and is not reported as a change.

    Returns:
        True if any parameter was filled in
    """
    params: PostgresParameters = record.parameters
    updated = False

    if not record.namespace.strip():
        record.namespace = DEFAULT_NAMESPACE
    if params.storage_class is None:
        params.storage_class = DEFAULT_STORAGE_CLASS
        updated = True
    if params.master_username is None:
        params.master_username = DEFAULT_MASTER_USERNAME
        updated = True
    if params.database is None:
        params.database = params.master_username
        updated = True
    if params.port is None:
        params.port = POSTGRES_DEFAULT_PORT
        updated = True
    return updated


def is_deployment_available(deployment: client.V1Deployment) -> bool:
    conditions = (deployment.status.conditions if deployment.status else None) or []
    return any(c.type == "Available" and c.status == "True" for c in conditions)


class PostgresExternal(BaseExternal):
    """Manages the storage claim, workload and service of one Postgres instance."""

    def __init__(self, kube: KubeClient):
        super().__init__(KIND_POSTGRES, kube)

    def observe(self, record: ManagedRecord) -> ExternalObservation:
        self.check_kind(record)
        with self.operation("observe", record):
            late_initialized = initialize_defaults(record)

            try:
                deployment = self.kube.read_deployment(record.namespace, record.name)
            except NotFoundError:
                self.log_debug(record, "Workload not found, creation pending")
                return ExternalObservation(resource_late_initialized=late_initialized)
            except ProviderError as e:
                raise wrap_error(e, STAGE_WORKLOAD_OBSERVE) from e

            if not is_deployment_available(deployment):
                self.log_debug(record, "Workload currently not available")
                return ExternalObservation(
                    resource_exists=True,
                    resource_late_initialized=late_initialized,
                )

            try:
                service = self.kube.read_service(record.namespace, record.name)
            except ProviderError as e:
                raise wrap_error(e, STAGE_NETWORK_OBSERVE) from e

            address = service.spec.cluster_ip if service.spec else None
            self.log_debug(record, f"Postgres service address {address}")

            set_available_condition(record.conditions, record.generation)
            return ExternalObservation(
                resource_exists=True,
                resource_up_to_date=True,
                resource_late_initialized=late_initialized,
                connection_details={CONNECTION_KEY_ENDPOINT: (address or "").encode("utf-8")},
            )

    def create(self, record: ManagedRecord) -> ExternalCreation:
        self.check_kind(record)
        with self.operation("create", record):
            params: PostgresParameters = record.parameters

            try:
                self.kube.apply_persistent_volume_claim(make_persistent_volume_claim(record))
            except ProviderError as e:
                raise wrap_error(e, STAGE_STORAGE_CLAIM_CREATE) from e

            password = self.resolve_password(record)

            try:
                self.kube.apply_deployment(make_deployment(record, password))
            except ProviderError as e:
                raise wrap_error(e, STAGE_WORKLOAD_CREATE) from e

            try:
                self.kube.apply_service(make_service(record))
            except ProviderError as e:
                raise wrap_error(e, STAGE_NETWORK_CREATE) from e

            self.log_info(record, "Postgres instance artifacts applied", reason="Created")
            return ExternalCreation(connection_details={
                CONNECTION_KEY_USERNAME: (params.master_username or "").encode("utf-8"),
                CONNECTION_KEY_PASSWORD: password.encode("utf-8"),
                CONNECTION_KEY_PORT: str(params.port or 0).encode("utf-8"),
                CONNECTION_KEY_DATABASE: (params.database or "").encode("utf-8"),
            })

    def update(self, record: ManagedRecord) -> ExternalUpdate:
        # Parameters are immutable once the instance exists
        self.check_kind(record)
        return ExternalUpdate()

    def delete(self, record: ManagedRecord) -> None:
        self.check_kind(record)
        with self.operation("delete", record):
            namespace, name = record.namespace or DEFAULT_NAMESPACE, record.name
            steps = (
                ("service", self.kube.delete_service),
                ("deployment", self.kube.delete_deployment),
                ("persistentvolumeclaim", self.kube.delete_persistent_volume_claim),
            )
            for artifact, delete_fn in steps:
                try:
                    deleted = delete_fn(namespace, name)
                except ProviderError as e:
                    raise wrap_error(e, STAGE_DELETE) from e
                if not deleted:
                    self.log_debug(record, f"{artifact} already absent")

    def resolve_password(self, record: ManagedRecord) -> str:
        """Pick the master password.

        Order: the referenced secret value, the password already embedded in
        an existing workload, a freshly generated one. A password found in the
        workload is only kept when it has the generated shape; anything else
        came from a secret that has since been removed and is replaced.

        Raises:
            ProviderError: If the secret or workload cannot be read for a
                reason other than absence
        """
        ref = record.parameters.master_password_secret_ref
        if ref is not None:
            try:
                value = self.kube.read_secret_value(ref.namespace or record.namespace, ref.name, ref.key)
            except NotFoundError:
                value = b""
            except ProviderError as e:
                raise wrap_error(e, STAGE_PASSWORD) from e
            if value:
                return value.decode("utf-8")

        try:
            existing = self.kube.read_deployment(record.namespace, record.name)
        except NotFoundError:
            existing = None
        except ProviderError as e:
            raise wrap_error(e, STAGE_PASSWORD) from e

        password = password_from_deployment(existing)
        if password and is_generated_password(password):
            return password
        return generate_password()
