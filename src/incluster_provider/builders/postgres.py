"""Builders for the artifacts backing a Postgres instance."""

from __future__ import annotations

from kubernetes import client
from kubernetes.utils import parse_quantity

from ..constants import (
    LABEL_DEPLOYMENT,
    NAMESPACE_PREFIX_OPENSHIFT,
    OPENSHIFT_POSTGRES_GROUP_ID,
    POSTGRES_DATA_PATH,
    POSTGRES_DEFAULT_PORT,
    POSTGRES_IMAGE,
)
from ..services.kube.models import ManagedRecord, PostgresParameters
from ..utils.errors import PermanentError

ENV_USER = "POSTGRES_USER"
ENV_PASSWORD = "POSTGRES_PASSWORD"
ENV_DATABASE = "POSTGRES_DB"

READINESS_COMMAND = [
    "/bin/sh",
    "-i",
    "-c",
    "psql -h 127.0.0.1 -U $POSTGRES_USER -q -d $POSTGRES_DB -c 'SELECT 1'",
]


def _selector(record: ManagedRecord) -> dict[str, str]:
    return {LABEL_DEPLOYMENT: record.name}


def _metadata(record: ManagedRecord, labels: dict[str, str] | None = None) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(name=record.name, namespace=record.namespace, labels=labels)


def validate_size(size: str) -> str:
    """Check that a declared size is a positive byte quantity such as ``1Gi``.

    Raises:
        PermanentError: If the size does not parse or is not a finite
            positive amount
    """
    try:
        quantity = parse_quantity(size)
    except (ValueError, TypeError) as e:
        raise PermanentError(f"invalid database size {size!r}: {e}") from e
    # Decimal comparisons raise on NaN
    if not quantity.is_finite() or quantity <= 0:
        raise PermanentError(f"invalid database size {size!r}: must be a finite positive quantity")
    return size


def make_persistent_volume_claim(record: ManagedRecord) -> client.V1PersistentVolumeClaim:
    """Build the storage claim sized per ``databaseSize``.

    Raises:
        PermanentError: If the declared size is malformed
    """
    params: PostgresParameters = record.parameters
    size = validate_size(params.database_size)
    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=_metadata(record),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteOnce"],
            volume_mode="Filesystem",
            storage_class_name=params.storage_class,
            resources=client.V1VolumeResourceRequirements(requests={"storage": size}),
        ),
    )


def make_containers(record: ManagedRecord, password: str) -> list[client.V1Container]:
    """Build the database container with credentials embedded as env values."""
    params: PostgresParameters = record.parameters
    return [
        client.V1Container(
            name=record.name,
            image=POSTGRES_IMAGE,
            image_pull_policy="IfNotPresent",
            ports=[client.V1ContainerPort(container_port=POSTGRES_DEFAULT_PORT, protocol="TCP")],
            env=[
                client.V1EnvVar(name=ENV_USER, value=params.master_username or ""),
                client.V1EnvVar(name=ENV_PASSWORD, value=password),
                client.V1EnvVar(name=ENV_DATABASE, value=params.database or ""),
            ],
            resources=client.V1ResourceRequirements(
                limits={"cpu": "250m", "memory": "2Gi"},
                requests={"cpu": "50m", "memory": "512Mi"},
            ),
            volume_mounts=[client.V1VolumeMount(name=record.name, mount_path=POSTGRES_DATA_PATH)],
            liveness_probe=client.V1Probe(
                tcp_socket=client.V1TCPSocketAction(port=POSTGRES_DEFAULT_PORT),
                initial_delay_seconds=30,
                period_seconds=10,
            ),
            readiness_probe=client.V1Probe(
                _exec=client.V1ExecAction(command=READINESS_COMMAND),
                initial_delay_seconds=10,
                period_seconds=30,
                timeout_seconds=5,
            ),
        )
    ]


def make_deployment(record: ManagedRecord, password: str) -> client.V1Deployment:
    """Build the single-replica workload running the database."""
    pod_spec = client.V1PodSpec(
        containers=make_containers(record, password),
        volumes=[
            client.V1Volume(
                name=record.name,
                persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(claim_name=record.name),
            )
        ],
    )
    # Restricted namespaces run the image under the postgres group
    if record.namespace.startswith(NAMESPACE_PREFIX_OPENSHIFT):
        pod_spec.security_context = client.V1PodSecurityContext(
            fs_group=OPENSHIFT_POSTGRES_GROUP_ID,
            supplemental_groups=[OPENSHIFT_POSTGRES_GROUP_ID],
        )

    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=_metadata(record),
        spec=client.V1DeploymentSpec(
            replicas=1,
            strategy=client.V1DeploymentStrategy(type="Recreate"),
            selector=client.V1LabelSelector(match_labels=_selector(record)),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=_selector(record)),
                spec=pod_spec,
            ),
        ),
    )


def make_service(record: ManagedRecord) -> client.V1Service:
    """Build the network exposure for the workload."""
    params: PostgresParameters = record.parameters
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(record),
        spec=client.V1ServiceSpec(
            ports=[
                client.V1ServicePort(
                    name="postgresql",
                    protocol="TCP",
                    port=params.port or POSTGRES_DEFAULT_PORT,
                    target_port=POSTGRES_DEFAULT_PORT,
                )
            ],
            selector=_selector(record),
        ),
    )


def password_from_deployment(deployment: client.V1Deployment | None) -> str | None:
    """Return the password embedded in an existing workload, if any."""
    if deployment is None or deployment.spec is None or deployment.spec.template.spec is None:
        return None
    for container in deployment.spec.template.spec.containers or []:
        for env in container.env or []:
            if env.name == ENV_PASSWORD and env.value:
                return env.value
    return None
