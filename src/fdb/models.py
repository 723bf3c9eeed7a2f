"""Domain models for database clusters."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_NAME_PATTERN = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")
_K8S_NAME_MAX_LENGTH = 63
_KIND_ALIASES: dict[str, str] = {
    "postgres": "postgresql",
    "pg": "postgresql",
    "rabbit": "rabbitmq",
}


class DatabaseKind(str, Enum):
    POSTGRESQL = "postgresql"
    REDIS = "redis"
    RABBITMQ = "rabbitmq"
    QDRANT = "qdrant"

    @classmethod
    def parse(cls, raw: str) -> DatabaseKind:
        normalized = raw.strip().lower()
        normalized = _KIND_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            supported = ", ".join(kind.value for kind in cls)
            raise ValueError(f"unknown database kind: {raw} (supported: {supported})") from None

    @property
    def profile(self) -> KindProfile:
        return KIND_PROFILES[self]


# Longest suffix added to a cluster name; derived Service names must stay
# within the Kubernetes limit.
_SERVICE_SUFFIX_MAX_LENGTH = max(len(f"-{kind.value}-external") for kind in DatabaseKind)
CLUSTER_NAME_MAX_LENGTH = _K8S_NAME_MAX_LENGTH - _SERVICE_SUFFIX_MAX_LENGTH


@dataclass(frozen=True)
class KindProfile:
    """Per-kind defaults and connection details.

    Storage and memory defaults are in Gi; cpu is in cores.
    """

    replicas: int
    storage: str
    cpu: str
    memory: str
    port: int
    user: str
    secret_suffix: str
    has_password: bool
    template: str
    required_fields: tuple[str, ...] = field(default=("host", "port"))

    def secret_name(self, cluster_name: str) -> str:
        return f"{cluster_name}-{self.secret_suffix}"


KIND_PROFILES: dict[DatabaseKind, KindProfile] = {
    DatabaseKind.POSTGRESQL: KindProfile(
        replicas=1,
        storage="2",
        cpu="0.5",
        memory="0.8",
        port=5432,
        user="postgres",
        secret_suffix="postgresql-account-postgres",
        has_password=True,
        template="postgresql://{user}:{password}@{host}:{port}/postgres",
        required_fields=("host", "port", "user", "password"),
    ),
    DatabaseKind.REDIS: KindProfile(
        replicas=1,
        storage="1",
        cpu="0.5",
        memory="0.5",
        port=6379,
        user="default",
        secret_suffix="redis-account-default",
        has_password=True,
        template="redis://:{password}@{host}:{port}",
        required_fields=("host", "port", "password"),
    ),
    DatabaseKind.RABBITMQ: KindProfile(
        replicas=1,
        storage="2",
        cpu="0.5",
        memory="1",
        port=5672,
        user="root",
        secret_suffix="rabbitmq-account-root",
        has_password=True,
        template="amqp://{user}:{password}@{host}:{port}/",
        required_fields=("host", "port", "user", "password"),
    ),
    DatabaseKind.QDRANT: KindProfile(
        replicas=1,
        storage="5",
        cpu="0.5",
        memory="1",
        port=6333,
        user="root",
        secret_suffix="qdrant-account-root",
        has_password=False,
        template="http://{host}:{port}",
    ),
}


def normalize_quantity(value: Any, *, unit: str = "Gi") -> str:
    """Turn ``"2Gi"``, ``"2"``, ``2`` or ``2.0`` into ``"2"``; ``"0.8Gi"`` into ``"0.8"``."""
    if isinstance(value, bool):
        raise ValueError(f"invalid quantity: {value!r}")
    if isinstance(value, int | float):
        number = float(value)
        raw = str(value)
    elif isinstance(value, str):
        raw = value.strip()
        stripped = raw
        if unit and stripped.lower().endswith(unit.lower()):
            stripped = stripped[: -len(unit)].strip()
        try:
            number = float(stripped)
        except ValueError:
            raise ValueError(f"invalid quantity: {raw} (expected a number or e.g. 2{unit})") from None
    else:
        raise ValueError(f"invalid quantity: {value!r}")

    if not math.isfinite(number) or number <= 0:
        raise ValueError(f"invalid quantity: {raw} (must be a positive number)")
    if number.is_integer():
        return str(int(number))
    return repr(number)


def validate_cluster_name(name: str) -> str:
    if len(name) > CLUSTER_NAME_MAX_LENGTH or not _NAME_PATTERN.match(name):
        raise ValueError(
            f"invalid cluster name: {name!r} (lowercase letters, digits and '-', "
            f"starting with a letter, at most {CLUSTER_NAME_MAX_LENGTH} characters so that "
            f"'<name>-<kind>-external' fits in {_K8S_NAME_MAX_LENGTH})"
        )
    return name


class ClusterSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: DatabaseKind
    replicas: int = Field(ge=1)
    storage: str
    cpu: str
    memory: str
    kubeconfig: Path

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return validate_cluster_name(value)

    @field_validator("storage", "memory", mode="before")
    @classmethod
    def _normalize_gi(cls, value: Any) -> str:
        return normalize_quantity(value, unit="Gi")

    @field_validator("cpu", mode="before")
    @classmethod
    def _normalize_cpu(cls, value: Any) -> str:
        return normalize_quantity(value, unit="")

    @property
    def external_service_name(self) -> str:
        return external_service_name(self.name, self.kind)


def external_service_name(cluster_name: str, kind: DatabaseKind) -> str:
    return f"{cluster_name}-{kind.value}-external"


class ConnectionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: DatabaseKind
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None

    def missing_fields(self) -> list[str]:
        return [name for name in self.kind.profile.required_fields if not getattr(self, name)]


@dataclass(frozen=True)
class ConnectionReport:
    info: ConnectionInfo
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolPaths:
    kubectl: Path
    kbcli: Path


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0
