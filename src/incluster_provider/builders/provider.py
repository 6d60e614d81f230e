"""Builder for external clients bound to a ProviderConfig's target cluster."""

from __future__ import annotations

import logging
from typing import Callable

import yaml
from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from ..handlers.base import ExternalClient
from ..services.kube.client import KubeClient
from ..services.kube.models import CredentialsSource, ManagedRecord, ProviderConfig
from ..services.kube.records import get_provider_config
from ..utils.deadline import Deadline
from ..utils.errors import InputError, TransientError
from ..utils.secrets import get_secret_value

logger = logging.getLogger(__name__)

ExternalFactory = Callable[[KubeClient], ExternalClient]


def load_injected_identity() -> client.ApiClient:
    """Build an API client from the controlling process's service account."""
    cfg = client.Configuration()
    try:
        config.load_incluster_config(client_configuration=cfg)
    except ConfigException as e:
        raise TransientError(f"cannot load in-cluster credentials: {e}") from e
    return client.ApiClient(cfg)


def api_client_from_kubeconfig(kubeconfig: bytes) -> client.ApiClient:
    """Build an API client from serialized kubeconfig bytes.

    Raises:
        InputError: If the kubeconfig cannot be parsed
    """
    try:
        config_dict = yaml.safe_load(kubeconfig)
    except yaml.YAMLError as e:
        raise InputError(f"cannot parse kubeconfig: {e}") from e
    if not isinstance(config_dict, dict):
        raise InputError("cannot parse kubeconfig: not a mapping")
    try:
        return config.new_client_from_config_dict(config_dict=config_dict, persist_config=False)
    except ConfigException as e:
        raise InputError(f"cannot load kubeconfig: {e}") from e


class Connector:
    """Resolves a record's ProviderConfig and returns a bound external client.

    A fresh target connection is built for every invocation; nothing is
    cached between calls.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        custom_api: client.CustomObjectsApi,
        factory: ExternalFactory,
        injected_identity_loader: Callable[[], client.ApiClient] = load_injected_identity,
    ) -> None:
        self.core_api = core_api
        self.custom_api = custom_api
        self.factory = factory
        self.injected_identity_loader = injected_identity_loader

    def connect(self, record: ManagedRecord, deadline: Deadline) -> ExternalClient:
        """Build an external client for ``record``.

        Raises:
            InputError: If the record has no providerConfigRef or the
                credentials are unusable
            NotFoundError: If the ProviderConfig or its secret is missing
            TransientError: If the controlling cluster cannot be reached
        """
        name = record.provider_config_name
        if not name:
            raise InputError("providerConfigRef is not set")

        provider_config = get_provider_config(self.custom_api, name, deadline)
        api_client = self.api_client_for(provider_config, deadline)
        logger.debug(f"Connected {record.kind} {record.key} via ProviderConfig {name}")
        return self.factory(KubeClient(api_client, deadline))

    def api_client_for(self, provider_config: ProviderConfig, deadline: Deadline) -> client.ApiClient:
        if provider_config.source is CredentialsSource.INJECTED_IDENTITY:
            return self.injected_identity_loader()

        ref = provider_config.secret_ref
        if ref is None or not ref.name or not ref.key or not ref.namespace:
            raise InputError(f"ProviderConfig {provider_config.name} has an incomplete secretRef")

        timeout = deadline.check(f"cannot get credentials secret {ref.namespace}/{ref.name}")
        kubeconfig = get_secret_value(self.core_api, ref.namespace, ref.name, ref.key, request_timeout=timeout)
        return api_client_from_kubeconfig(kubeconfig)
