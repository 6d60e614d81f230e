"""Tests for the Postgres external client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client

from incluster_provider.builders.postgres import make_deployment
from incluster_provider.constants import COND_READY
from incluster_provider.handlers.postgres import PostgresExternal, initialize_defaults
from incluster_provider.services.kube.client import KubeClient, OperationResult
from incluster_provider.services.kube.models import ManagedRecord, OperatorParameters, PostgresParameters
from incluster_provider.utils.conditions import get_condition
from incluster_provider.utils.errors import (
    InputError,
    NotFoundError,
    PermanentError,
    TransientError,
)


def _record(body) -> ManagedRecord:
    return ManagedRecord.from_body(body, PostgresParameters)


GENERATED = "0123456789abcdef0123456789abcdef"


def _deployment(record: ManagedRecord, available: bool, password: str = GENERATED) -> client.V1Deployment:
    deployment = make_deployment(record, password)
    status = "True" if available else "False"
    deployment.status = client.V1DeploymentStatus(
        conditions=[client.V1DeploymentCondition(type="Available", status=status)]
    )
    return deployment


@pytest.fixture
def kube():
    mock = MagicMock(spec=KubeClient)
    mock.read_deployment.side_effect = NotFoundError("deployment apps/db: Not Found")
    mock.apply_persistent_volume_claim.return_value = OperationResult.CREATED
    mock.apply_deployment.return_value = OperationResult.CREATED
    mock.apply_service.return_value = OperationResult.CREATED
    mock.delete_service.return_value = True
    mock.delete_deployment.return_value = True
    mock.delete_persistent_volume_claim.return_value = True
    return mock


class TestInitializeDefaults:
    """Test cases for late initialization."""

    def test_fills_unset_fields(self, postgres_body):
        record = _record(postgres_body())

        assert initialize_defaults(record) is True

        params = record.parameters
        assert params.storage_class == "Standard"
        assert params.master_username == "postgres"
        assert params.database == "postgres"
        assert params.port == 5432

    def test_second_run_reports_no_change(self, postgres_body):
        record = _record(postgres_body())
        initialize_defaults(record)
        assert initialize_defaults(record) is False

    def test_database_mirrors_explicit_username(self, postgres_body):
        record = _record(postgres_body(masterUsername="admin"))
        initialize_defaults(record)
        assert record.parameters.master_username == "admin"
        assert record.parameters.database == "admin"

    def test_never_overwrites_explicit_values(self, postgres_body):
        record = _record(postgres_body(
            masterUsername="admin", database="app", storageClass="fast", port=6543,
        ))
        assert initialize_defaults(record) is False
        assert record.parameters.storage_class == "fast"
        assert record.parameters.database == "app"

    def test_namespace_default_not_reported(self, postgres_body):
        record = _record(postgres_body(
            namespace="", masterUsername="a", database="b", storageClass="c", port=1,
        ))
        assert initialize_defaults(record) is False
        assert record.namespace == "default"


class TestObserve:
    """Test cases for PostgresExternal.observe."""

    def test_missing_workload_reports_absent(self, kube, postgres_body):
        observation = PostgresExternal(kube).observe(_record(postgres_body()))

        assert observation.resource_exists is False
        assert observation.resource_late_initialized is True
        assert observation.connection_details == {}

    def test_workload_not_available(self, kube, postgres_body):
        kube.read_deployment.side_effect = None
        kube.read_deployment.return_value = _deployment(_record(postgres_body()), available=False)
        record = _record(postgres_body())

        observation = PostgresExternal(kube).observe(record)

        assert observation.resource_exists is True
        assert observation.resource_up_to_date is False
        assert get_condition(record.conditions, COND_READY) is None
        kube.read_service.assert_not_called()

    def test_available_returns_endpoint(self, kube, postgres_body):
        kube.read_deployment.side_effect = None
        kube.read_deployment.return_value = _deployment(_record(postgres_body()), available=True)
        kube.read_service.return_value = client.V1Service(spec=client.V1ServiceSpec(cluster_ip="10.96.0.12"))
        record = _record(postgres_body())

        observation = PostgresExternal(kube).observe(record)

        assert observation.resource_exists is True
        assert observation.resource_up_to_date is True
        assert observation.connection_details == {"endpoint": b"10.96.0.12"}
        assert get_condition(record.conditions, COND_READY)["reason"] == "Available"

    def test_service_lookup_failure_is_not_up_to_date(self, kube, postgres_body):
        kube.read_deployment.side_effect = None
        kube.read_deployment.return_value = _deployment(_record(postgres_body()), available=True)
        kube.read_service.side_effect = TransientError("service apps/db: timeout")
        record = _record(postgres_body())

        with pytest.raises(TransientError, match="cannot get network exposure"):
            PostgresExternal(kube).observe(record)
        assert get_condition(record.conditions, COND_READY) is None

    def test_workload_read_failure_propagates(self, kube, postgres_body):
        kube.read_deployment.side_effect = TransientError("deployment apps/db: 503")
        with pytest.raises(TransientError, match="cannot get workload"):
            PostgresExternal(kube).observe(_record(postgres_body()))

    def test_wrong_kind(self, kube, operator_body):
        record = ManagedRecord.from_body(operator_body(), OperatorParameters)
        with pytest.raises(InputError):
            PostgresExternal(kube).observe(record)


class TestCreate:
    """Test cases for PostgresExternal.create."""

    @patch("incluster_provider.handlers.postgres.generate_password", return_value="0123456789abcdef0123456789abcdef")
    def test_generated_password_connection_details(self, mock_generate, kube, postgres_body):
        record = _record(postgres_body(masterUsername="postgres"))
        initialize_defaults(record)

        creation = PostgresExternal(kube).create(record)

        assert creation.connection_details == {
            "username": b"postgres",
            "password": b"0123456789abcdef0123456789abcdef",
            "port": b"5432",
            "database": b"postgres",
        }
        deployment = kube.apply_deployment.call_args[0][0]
        env = {e.name: e.value for e in deployment.spec.template.spec.containers[0].env}
        assert env["POSTGRES_PASSWORD"] == "0123456789abcdef0123456789abcdef"

    def test_real_generated_password_shape(self, kube, postgres_body):
        record = _record(postgres_body())
        initialize_defaults(record)

        password = PostgresExternal(kube).create(record).connection_details["password"]

        assert len(password) == 32
        assert b"-" not in password

    def test_malformed_size_fails_before_any_artifact(self, kube, postgres_body):
        record = _record(postgres_body(databaseSize="1Gb"))
        initialize_defaults(record)

        with pytest.raises(PermanentError, match="storage-claim create failed"):
            PostgresExternal(kube).create(record)

        kube.apply_persistent_volume_claim.assert_not_called()
        kube.apply_deployment.assert_not_called()
        kube.apply_service.assert_not_called()

    def test_uses_secret_password_verbatim(self, kube, postgres_body):
        record = _record(postgres_body(
            masterPasswordSecretRef={"name": "creds", "key": "password"},
        ))
        initialize_defaults(record)
        kube.read_secret_value.return_value = b"From-Secret-1"

        creation = PostgresExternal(kube).create(record)

        assert creation.connection_details["password"] == b"From-Secret-1"
        kube.read_secret_value.assert_called_once_with("apps", "creds", "password")

    def test_empty_secret_value_falls_back_to_generated(self, kube, postgres_body):
        record = _record(postgres_body(
            masterPasswordSecretRef={"name": "creds", "key": "password"},
        ))
        initialize_defaults(record)
        kube.read_secret_value.return_value = b""

        password = PostgresExternal(kube).create(record).connection_details["password"]

        assert len(password) == 32
        assert b"-" not in password

    def test_missing_secret_falls_back_to_generated(self, kube, postgres_body):
        record = _record(postgres_body(
            masterPasswordSecretRef={"name": "creds", "key": "password"},
        ))
        initialize_defaults(record)
        kube.read_secret_value.side_effect = NotFoundError("secret apps/creds: Not Found")

        password = PostgresExternal(kube).create(record).connection_details["password"]

        assert len(password) == 32

    def test_secret_read_failure_aborts(self, kube, postgres_body):
        record = _record(postgres_body(
            masterPasswordSecretRef={"name": "creds", "key": "password"},
        ))
        initialize_defaults(record)
        kube.read_secret_value.side_effect = TransientError("secret apps/creds: 500")

        with pytest.raises(TransientError, match="cannot resolve master password"):
            PostgresExternal(kube).create(record)
        kube.apply_deployment.assert_not_called()

    def test_reuses_password_of_existing_workload(self, kube, postgres_body):
        record = _record(postgres_body())
        initialize_defaults(record)
        kube.read_deployment.side_effect = None
        kube.read_deployment.return_value = make_deployment(record, GENERATED)

        creation = PostgresExternal(kube).create(record)

        assert creation.connection_details["password"] == GENERATED.encode()

    def test_replaces_workload_password_from_removed_secret(self, kube, postgres_body):
        record = _record(postgres_body())
        initialize_defaults(record)
        kube.read_deployment.side_effect = None
        kube.read_deployment.return_value = make_deployment(record, "From-Secret-1")

        password = PostgresExternal(kube).create(record).connection_details["password"]

        assert password != b"From-Secret-1"
        assert len(password) == 32

    def test_idempotent_create(self, kube, postgres_body):
        record = _record(postgres_body(masterPasswordSecretRef={"name": "creds", "key": "password"}))
        initialize_defaults(record)
        kube.read_secret_value.return_value = b"pw"
        external = PostgresExternal(kube)

        first = external.create(record)
        kube.apply_persistent_volume_claim.return_value = OperationResult.UPDATED
        kube.apply_deployment.return_value = OperationResult.UPDATED
        kube.apply_service.return_value = OperationResult.UPDATED
        second = external.create(record)

        assert first == second
        assert kube.apply_persistent_volume_claim.call_count == 2
        assert kube.apply_deployment.call_count == 2
        assert kube.apply_service.call_count == 2

    def test_workload_failure_stops_before_service(self, kube, postgres_body):
        record = _record(postgres_body())
        initialize_defaults(record)
        kube.apply_deployment.side_effect = TransientError("deployment apps/db: 500")

        with pytest.raises(TransientError, match="workload create failed"):
            PostgresExternal(kube).create(record)
        kube.apply_persistent_volume_claim.assert_called_once()
        kube.apply_service.assert_not_called()

    def test_service_failure_is_wrapped(self, kube, postgres_body):
        record = _record(postgres_body())
        initialize_defaults(record)
        kube.apply_service.side_effect = PermanentError("service apps/db: invalid")

        with pytest.raises(PermanentError, match="network-exposure create failed"):
            PostgresExternal(kube).create(record)


class TestUpdate:
    """Test cases for PostgresExternal.update."""

    def test_update_is_noop(self, kube, postgres_body):
        result = PostgresExternal(kube).update(_record(postgres_body()))
        assert result.connection_details == {}
        assert not kube.method_calls


class TestDelete:
    """Test cases for PostgresExternal.delete."""

    def test_ordered_teardown(self, kube, postgres_body):
        order = []
        kube.delete_service.side_effect = lambda ns, n: order.append("service") or True
        kube.delete_deployment.side_effect = lambda ns, n: order.append("deployment") or True
        kube.delete_persistent_volume_claim.side_effect = lambda ns, n: order.append("pvc") or True

        PostgresExternal(kube).delete(_record(postgres_body()))

        assert order == ["service", "deployment", "pvc"]

    def test_already_absent_is_success(self, kube, postgres_body):
        kube.delete_service.return_value = False
        kube.delete_deployment.return_value = False
        kube.delete_persistent_volume_claim.return_value = False

        PostgresExternal(kube).delete(_record(postgres_body()))

        kube.delete_persistent_volume_claim.assert_called_once_with("apps", "db")

    def test_first_error_aborts(self, kube, postgres_body):
        kube.delete_deployment.side_effect = TransientError("deployment apps/db: 500")

        with pytest.raises(TransientError, match="cannot delete postgres instance"):
            PostgresExternal(kube).delete(_record(postgres_body()))

        kube.delete_service.assert_called_once()
        kube.delete_persistent_volume_claim.assert_not_called()
