"""Models for managed records and provider configuration."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from ...utils.errors import InputError

_P = TypeVar("_P", bound="Parameters")


class Parameters(Protocol):
    """Kind-specific ``spec.forProvider`` block."""

    @classmethod
    def from_dict(cls: type[_P], data: dict[str, Any]) -> _P:
        ...

    def to_dict(self) -> dict[str, Any]:
        ...


@dataclass(frozen=True)
class ResourceKey:
    """Identity of a managed record."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass
class SecretKeySelector:
    """Reference to a single key of a secret."""

    name: str
    key: str
    namespace: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SecretKeySelector:
        return cls(name=data.get("name", ""), key=data.get("key", ""), namespace=data.get("namespace"))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "key": self.key}
        if self.namespace is not None:
            out["namespace"] = self.namespace
        return out


@dataclass
class SecretReference:
    """Reference to a whole secret."""

    name: str
    namespace: str | None = None


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class PostgresParameters:
    """Desired state of a Postgres database instance.

    Optional fields are ``None`` while unset; late initialization fills
    them with defaults but never overwrites an explicit value.
    """

    database_size: str
    master_username: str | None = None
    database: str | None = None
    storage_class: str | None = None
    port: int | None = None
    master_password_secret_ref: SecretKeySelector | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PostgresParameters:
        ref = data.get("masterPasswordSecretRef")
        return cls(
            database_size=data.get("databaseSize", ""),
            master_username=data.get("masterUsername"),
            database=data.get("database"),
            storage_class=data.get("storageClass"),
            port=data.get("port"),
            master_password_secret_ref=SecretKeySelector.from_dict(ref) if ref else None,
        )

    def to_dict(self) -> dict[str, Any]:
        ref = self.master_password_secret_ref
        return _drop_none({
            "databaseSize": self.database_size,
            "masterUsername": self.master_username,
            "database": self.database,
            "storageClass": self.storage_class,
            "port": self.port,
            "masterPasswordSecretRef": ref.to_dict() if ref else None,
        })


@dataclass
class OperatorParameters:
    """Desired state of an operator package installed through OLM."""

    operator_name: str
    catalog_source: str
    catalog_source_namespace: str
    channel: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OperatorParameters:
        return cls(
            operator_name=data.get("operatorName", ""),
            catalog_source=data.get("catalogSource", ""),
            catalog_source_namespace=data.get("catalogSourceNamespace", ""),
            channel=data.get("channel", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "operatorName": self.operator_name,
            "catalogSource": self.catalog_source,
            "catalogSourceNamespace": self.catalog_source_namespace,
            "channel": self.channel,
        }


@dataclass
class ManagedRecord:
    """A desired-state record as read from the controlling cluster.

    ``raw`` keeps the full body so fields this provider does not model
    survive a write-back.
    """

    kind: str
    name: str
    namespace: str
    parameters: Any
    raw: dict[str, Any] = field(default_factory=dict)
    conditions: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_body(cls, body: dict[str, Any], parameters_type: type[Any]) -> ManagedRecord:
        meta = body.get("metadata", {})
        spec = body.get("spec", {})
        status = body.get("status") or {}
        return cls(
            kind=body.get("kind", ""),
            name=meta.get("name", ""),
            namespace=meta.get("namespace", "") or "",
            parameters=parameters_type.from_dict(spec.get("forProvider", {})),
            raw=copy.deepcopy(body),
            conditions=list(copy.deepcopy(status.get("conditions", []))),
        )

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(namespace=self.raw.get("metadata", {}).get("namespace", "") or "", name=self.name)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.raw.setdefault("metadata", {})

    @property
    def uid(self) -> str:
        return self.metadata.get("uid", "unknown")

    @property
    def generation(self) -> int:
        return self.metadata.get("generation", 0)

    @property
    def resource_version(self) -> str | None:
        return self.metadata.get("resourceVersion")

    @resource_version.setter
    def resource_version(self, value: str | None) -> None:
        self.metadata["resourceVersion"] = value

    @property
    def deleting(self) -> bool:
        return bool(self.metadata.get("deletionTimestamp"))

    @property
    def provider_config_name(self) -> str | None:
        ref = self.raw.get("spec", {}).get("providerConfigRef") or {}
        return ref.get("name") or None

    @property
    def connection_secret_ref(self) -> SecretReference | None:
        ref = self.raw.get("spec", {}).get("writeConnectionSecretToRef") or {}
        if not ref.get("name"):
            return None
        return SecretReference(name=ref["name"], namespace=ref.get("namespace"))

    def owner_reference(self) -> dict[str, Any]:
        return {
            "apiVersion": self.raw.get("apiVersion", ""),
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
        }

    def to_body(self) -> dict[str, Any]:
        """Serialize the record, including parameter defaults and conditions."""
        body = copy.deepcopy(self.raw)
        body.setdefault("spec", {})["forProvider"] = self.parameters.to_dict()
        status = body.get("status") or {}
        status["conditions"] = copy.deepcopy(self.conditions)
        body["status"] = status
        return body


class CredentialsSource(str, enum.Enum):
    """Where target-system credentials come from."""

    INJECTED_IDENTITY = "InjectedIdentity"
    SECRET = "Secret"

    @classmethod
    def parse(cls, value: str | None) -> CredentialsSource:
        if value in ("Secret", "SecretRef"):
            return cls.SECRET
        if value == "InjectedIdentity":
            return cls.INJECTED_IDENTITY
        raise InputError(f"unsupported credentials source {value!r}")


@dataclass
class ProviderConfig:
    """How to authenticate to the target cluster."""

    name: str
    source: CredentialsSource
    secret_ref: SecretKeySelector | None = None

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> ProviderConfig:
        credentials = body.get("spec", {}).get("credentials", {})
        ref = credentials.get("secretRef")
        return cls(
            name=body.get("metadata", {}).get("name", ""),
            source=CredentialsSource.parse(credentials.get("source")),
            secret_ref=SecretKeySelector.from_dict(ref) if ref else None,
        )
