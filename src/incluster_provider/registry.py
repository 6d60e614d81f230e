"""Registration table of the managed kinds served by the provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .constants import (
    API_GROUP,
    API_VERSION,
    KIND_OPERATOR,
    KIND_POSTGRES,
    PLURAL_OPERATOR,
    PLURAL_POSTGRES,
)
from .handlers.base import ExternalClient
from .handlers.operator import OperatorExternal
from .handlers.postgres import PostgresExternal
from .services.kube.client import KubeClient
from .services.kube.models import OperatorParameters, PostgresParameters


@dataclass(frozen=True)
class ResourceKind:
    """Everything a controller needs to serve one managed kind."""

    kind: str
    plural: str
    parameters_type: type[Any]
    external_factory: Callable[[KubeClient], ExternalClient]
    group: str = API_GROUP
    version: str = API_VERSION


def build_registry() -> dict[str, ResourceKind]:
    """Build the table of managed kinds, keyed by kind name."""
    kinds = [
        ResourceKind(
            kind=KIND_POSTGRES,
            plural=PLURAL_POSTGRES,
            parameters_type=PostgresParameters,
            external_factory=PostgresExternal,
        ),
        ResourceKind(
            kind=KIND_OPERATOR,
            plural=PLURAL_OPERATOR,
            parameters_type=OperatorParameters,
            external_factory=OperatorExternal,
        ),
    ]
    return {entry.kind: entry for entry in kinds}
