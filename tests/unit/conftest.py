"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from incluster_provider.constants import API_GROUP_VERSION


def _body(kind: str, for_provider: dict[str, Any], name: str, namespace: str, **spec: Any) -> dict[str, Any]:
    return {
        "apiVersion": API_GROUP_VERSION,
        "kind": kind,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "generation": 1,
            "resourceVersion": "100",
        },
        "spec": {
            "forProvider": for_provider,
            "providerConfigRef": {"name": "default"},
            **spec,
        },
    }


@pytest.fixture
def postgres_body() -> Callable[..., dict[str, Any]]:
    """Factory for Postgres record bodies."""

    def make(name: str = "db", namespace: str = "apps", **for_provider: Any) -> dict[str, Any]:
        params = {"databaseSize": "1Gi", **for_provider}
        return _body("Postgres", params, name, namespace)

    return make


@pytest.fixture
def operator_body() -> Callable[..., dict[str, Any]]:
    """Factory for Operator record bodies."""

    def make(name: str = "etcd", namespace: str = "operators", **for_provider: Any) -> dict[str, Any]:
        params = {
            "operatorName": "etcd",
            "catalogSource": "community-operators",
            "catalogSourceNamespace": "olm",
            "channel": "stable",
            **for_provider,
        }
        return _body("Operator", params, name, namespace)

    return make
