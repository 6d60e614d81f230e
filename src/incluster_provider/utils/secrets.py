"""Utilities for managing Kubernetes secrets."""

from __future__ import annotations

import base64
from typing import Any

from kubernetes import client
from urllib3.exceptions import HTTPError

from ..constants import FIELD_MANAGER, LABEL_MANAGED_BY
from .errors import NotFoundError, TransientError, from_api_exception


def _decode(value: Any) -> bytes:
    # Secret data is base64 text on the wire; some clients hand back bytes already.
    if isinstance(value, bytes):
        return value
    try:
        return base64.b64decode(value, validate=True)
    except (ValueError, TypeError):
        return str(value).encode("utf-8")


def _owner_reference(ref: dict[str, Any]) -> client.V1OwnerReference:
    return client.V1OwnerReference(
        api_version=ref["apiVersion"],
        kind=ref["kind"],
        name=ref["name"],
        uid=ref["uid"],
        controller=ref.get("controller"),
        block_owner_deletion=ref.get("blockOwnerDeletion"),
    )


def read_secret_data(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    request_timeout: float | None = None,
) -> dict[str, bytes]:
    """Read all data from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        request_timeout: Optional per-request timeout in seconds

    Returns:
        Dictionary of decoded secret data

    Raises:
        NotFoundError: If the secret does not exist
        ProviderError: For any other API failure; transport failures are
            transient
    """
    try:
        secret = api.read_namespaced_secret(
            name=secret_name, namespace=namespace, _request_timeout=request_timeout
        )
    except client.exceptions.ApiException as e:
        raise from_api_exception(e, f"cannot get secret {namespace}/{secret_name}") from e
    except (HTTPError, OSError) as e:
        raise TransientError(f"cannot get secret {namespace}/{secret_name}: {e}") from e
    return {key: _decode(value) for key, value in (secret.data or {}).items()}


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
    request_timeout: float | None = None,
) -> bytes:
    """Get a single value from a Kubernetes secret.

    Raises:
        NotFoundError: If the secret or the key does not exist
    """
    data = read_secret_data(api, namespace, secret_name, request_timeout)
    if key not in data:
        raise NotFoundError(f"key '{key}' not found in secret {namespace}/{secret_name}")
    return data[key]


def apply_connection_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    data: dict[str, bytes],
    owner_references: list[dict[str, Any]] | None = None,
    request_timeout: float | None = None,
) -> bool:
    """Create the connection secret or merge ``data`` into the existing one.

    Args:
        api: Kubernetes API client
        namespace: Namespace for the secret
        secret_name: Name of the secret
        data: Connection details (raw bytes, base64 encoded here)
        owner_references: Owner references for a newly created secret
        request_timeout: Optional per-request timeout in seconds

    Returns:
        True if the secret was created, False if it was patched

    Raises:
        ProviderError: If a request fails; transport failures are transient
    """
    encoded = {k: base64.b64encode(v).decode("utf-8") for k, v in data.items()}
    try:
        api.read_namespaced_secret(name=secret_name, namespace=namespace, _request_timeout=request_timeout)
    except client.exceptions.ApiException as e:
        if e.status != 404:
            raise from_api_exception(e, f"cannot get connection secret {namespace}/{secret_name}") from e
        _create_connection_secret(api, namespace, secret_name, encoded, owner_references, request_timeout)
        return True
    except (HTTPError, OSError) as e:
        raise TransientError(f"cannot get connection secret {namespace}/{secret_name}: {e}") from e

    try:
        api.patch_namespaced_secret(
            name=secret_name,
            namespace=namespace,
            body={"data": encoded},
            field_manager=FIELD_MANAGER,
            _request_timeout=request_timeout,
        )
    except client.exceptions.ApiException as e:
        raise from_api_exception(e, f"cannot update connection secret {namespace}/{secret_name}") from e
    except (HTTPError, OSError) as e:
        raise TransientError(f"cannot update connection secret {namespace}/{secret_name}: {e}") from e
    return False


def _create_connection_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    encoded: dict[str, str],
    owner_references: list[dict[str, Any]] | None,
    request_timeout: float | None,
) -> None:
    secret = client.V1Secret(
        metadata=client.V1ObjectMeta(
            name=secret_name,
            namespace=namespace,
            labels={LABEL_MANAGED_BY: FIELD_MANAGER},
            owner_references=[_owner_reference(ref) for ref in owner_references or []],
        ),
        type="connection.incluster.cloud37.dev/v1alpha1",
        data=encoded,
    )
    try:
        api.create_namespaced_secret(
            namespace=namespace,
            body=secret,
            field_manager=FIELD_MANAGER,
            _request_timeout=request_timeout,
        )
    except client.exceptions.ApiException as e:
        raise from_api_exception(e, f"cannot create connection secret {namespace}/{secret_name}") from e
    except (HTTPError, OSError) as e:
        raise TransientError(f"cannot create connection secret {namespace}/{secret_name}: {e}") from e
