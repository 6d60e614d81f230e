"""Tests for the target-cluster KubeClient and the record store."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock, patch

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError

from incluster_provider.services.kube.client import KubeClient, OperationResult
from incluster_provider.services.kube.models import ManagedRecord, PostgresParameters, ResourceKey
from incluster_provider.services.kube.records import RecordStore, get_provider_config
from incluster_provider.utils.deadline import Deadline
from incluster_provider.utils.errors import (
    ConflictError,
    NotFoundError,
    PermanentError,
    TransientError,
)


def _kube(deadline=None) -> KubeClient:
    kube = KubeClient(api_client=MagicMock(), deadline=deadline)
    kube.core = MagicMock()
    kube.apps = MagicMock()
    kube.custom = MagicMock()
    return kube


def _service(name="db", namespace="apps"):
    return client.V1Service(metadata=client.V1ObjectMeta(name=name, namespace=namespace))


class TestKubeClientCalls:
    """Test cases for KubeClient error mapping and timeouts."""

    def test_read_passes_remaining_time(self):
        clock = Mock(return_value=0.0)
        kube = _kube(Deadline(30.0, clock=clock))

        kube.read_deployment("apps", "db")

        kube.apps.read_namespaced_deployment.assert_called_once_with(
            _request_timeout=30.0, name="db", namespace="apps"
        )

    def test_expired_deadline_skips_call(self):
        clock = Mock(side_effect=[0.0, 100.0, 100.0])
        kube = _kube(Deadline(1.0, clock=clock))

        with pytest.raises(TransientError, match="deadline exceeded"):
            kube.read_service("apps", "db")
        kube.core.read_namespaced_service.assert_not_called()

    @pytest.mark.parametrize(
        ("status", "expected"),
        [(404, NotFoundError), (422, PermanentError), (500, TransientError)],
    )
    def test_api_errors_mapped(self, status, expected):
        kube = _kube()
        kube.apps.read_namespaced_deployment.side_effect = ApiException(status=status, reason="x")
        with pytest.raises(expected):
            kube.read_deployment("apps", "db")

    def test_network_error_is_transient(self):
        kube = _kube()
        kube.core.read_namespaced_service.side_effect = MaxRetryError(None, "/api", "refused")
        with pytest.raises(TransientError):
            kube.read_service("apps", "db")


class TestKubeClientApply:
    """Test cases for create-or-update."""

    def test_creates_when_absent(self):
        kube = _kube()
        kube.core.read_namespaced_service.side_effect = ApiException(status=404, reason="Not Found")

        result = kube.apply_service(_service())

        assert result is OperationResult.CREATED
        kube.core.create_namespaced_service.assert_called_once()
        kube.core.patch_namespaced_service.assert_not_called()

    def test_patches_when_present(self):
        kube = _kube()

        result = kube.apply_service(_service())

        assert result is OperationResult.UPDATED
        kube.core.patch_namespaced_service.assert_called_once()
        kube.core.create_namespaced_service.assert_not_called()

    def test_delete_absent_returns_false(self):
        kube = _kube()
        kube.apps.delete_namespaced_deployment.side_effect = ApiException(status=404, reason="Not Found")
        assert kube.delete_deployment("apps", "db") is False

    def test_delete_present_returns_true(self):
        kube = _kube()
        assert kube.delete_persistent_volume_claim("apps", "db") is True

    def test_delete_custom_object_absent(self):
        kube = _kube()
        kube.custom.delete_namespaced_custom_object.side_effect = ApiException(status=404)
        assert kube.delete_custom_object("g", "v", "ns", "subscriptions", "etcd") is False

    @patch("incluster_provider.services.kube.client.get_secret_value", return_value=b"pw")
    def test_read_secret_value(self, mock_get):
        kube = _kube()
        assert kube.read_secret_value("apps", "creds", "password") == b"pw"
        mock_get.assert_called_once_with(kube.core, "apps", "creds", "password", request_timeout=None)


class TestRecordStore:
    """Test cases for version-checked record access."""

    def _store(self):
        api = MagicMock()
        return api, RecordStore(api, "Postgres", "postgreses", PostgresParameters)

    def test_get_returns_record(self, postgres_body):
        api, store = self._store()
        api.get_namespaced_custom_object.return_value = postgres_body()

        record = store.get(ResourceKey("apps", "db"))

        assert record.name == "db"
        assert record.parameters.database_size == "1Gi"

    def test_get_absent_returns_none(self):
        api, store = self._store()
        api.get_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        assert store.get(ResourceKey("apps", "db")) is None

    def test_update_refreshes_resource_version(self, postgres_body):
        api, store = self._store()
        record = ManagedRecord.from_body(postgres_body(), PostgresParameters)
        api.replace_namespaced_custom_object.return_value = {"metadata": {"resourceVersion": "101"}}

        store.update(record)

        body = api.replace_namespaced_custom_object.call_args.kwargs["body"]
        assert body["metadata"]["resourceVersion"] == "100"
        assert record.resource_version == "101"

    def test_update_conflict(self, postgres_body):
        api, store = self._store()
        record = ManagedRecord.from_body(postgres_body(), PostgresParameters)
        api.replace_namespaced_custom_object_status.side_effect = ApiException(status=409, reason="Conflict")

        with pytest.raises(ConflictError):
            store.update_status(record)

    def test_get_provider_config(self):
        api = MagicMock()
        api.get_cluster_custom_object.return_value = {
            "metadata": {"name": "default"},
            "spec": {"credentials": {"source": "InjectedIdentity"}},
        }
        config = get_provider_config(api, "default")
        assert config.name == "default"

    def test_get_provider_config_missing(self):
        api = MagicMock()
        api.get_cluster_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(NotFoundError):
            get_provider_config(api, "missing")
