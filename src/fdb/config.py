"""Configuration from fdb.toml merged with built-in defaults and CLI overrides."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fdb.errors import ConfigError
from fdb.models import ClusterSpec, DatabaseKind, normalize_quantity
from fdb.settings import FdbSettings

LOGGER = logging.getLogger("fdb.config")

CONFIG_FILE_NAME = "fdb.toml"
HOME_CONFIG_FILE = Path("~/.fdb") / CONFIG_FILE_NAME
DEFAULT_KUBECONFIG = Path("~/.kube/config")


class KubernetesSection(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    kubeconfig: str | None = None


class KindSection(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    replicas: int | None = Field(default=None, ge=1)
    storage: str | None = None
    cpu: str | None = None
    memory: str | None = None

    @field_validator("storage", "memory", mode="before")
    @classmethod
    def _normalize_gi(cls, value: Any) -> str | None:
        if value is None:
            return None
        return normalize_quantity(value, unit="Gi")

    @field_validator("cpu", mode="before")
    @classmethod
    def _normalize_cpu(cls, value: Any) -> str | None:
        if value is None:
            return None
        return normalize_quantity(value, unit="")


class FdbFile(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    kubernetes: KubernetesSection | None = None
    postgresql: KindSection | None = None
    redis: KindSection | None = None
    rabbitmq: KindSection | None = None
    qdrant: KindSection | None = None

    def section(self, kind: DatabaseKind) -> KindSection:
        # A missing section behaves exactly like a present section with no keys.
        section = getattr(self, kind.value)
        return section if section is not None else KindSection()

    @property
    def kubeconfig(self) -> str | None:
        if self.kubernetes is None:
            return None
        return self.kubernetes.kubeconfig


@dataclass(frozen=True)
class LoadedConfig:
    path: Path | None
    data: FdbFile

    @classmethod
    def empty(cls) -> LoadedConfig:
        return cls(path=None, data=FdbFile())


def candidate_config_files(cwd: Path | None = None) -> list[Path]:
    base = cwd if cwd is not None else Path.cwd()
    return [base / CONFIG_FILE_NAME, HOME_CONFIG_FILE.expanduser()]


def find_config_file(cwd: Path | None = None) -> Path | None:
    for candidate in candidate_config_files(cwd):
        if candidate.is_file():
            return candidate
    return None


def parse_config_file(path: Path) -> FdbFile:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"could not read config file: {exc}", path=path) from exc
    try:
        document = tomllib.loads(raw_text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML: {exc}", path=path) from exc
    try:
        return FdbFile.model_validate(document)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {_describe_validation_error(exc)}", path=path) from exc


def load_config(cwd: Path | None = None) -> LoadedConfig:
    """Load the first config file found; the second one is ignored entirely."""
    path = find_config_file(cwd)
    if path is None:
        LOGGER.debug("no config file found candidates=%s", candidate_config_files(cwd))
        return LoadedConfig.empty()
    data = parse_config_file(path)
    LOGGER.debug("config file loaded path=%s", path)
    return LoadedConfig(path=path, data=data)


def resolve_kubeconfig(
    override: Path | None,
    *,
    settings: FdbSettings,
    config: LoadedConfig,
) -> Path:
    if override is not None:
        return Path(override).expanduser()
    if config.data.kubeconfig:
        return Path(config.data.kubeconfig).expanduser()
    if settings.kubeconfig is not None:
        return settings.kubeconfig
    return DEFAULT_KUBECONFIG.expanduser()


def resolve_cluster_spec(
    kind: DatabaseKind,
    name: str,
    *,
    settings: FdbSettings,
    config: LoadedConfig,
    kubeconfig: Path | None = None,
    replicas: int | None = None,
    storage: str | None = None,
    cpu: str | None = None,
    memory: str | None = None,
) -> ClusterSpec:
    """Merge CLI flags over the config file over the built-in defaults for ``kind``."""
    defaults = kind.profile
    section = config.data.section(kind)

    values: dict[str, Any] = {
        "name": name,
        "kind": kind,
        "replicas": _first_set(replicas, section.replicas, defaults.replicas),
        "storage": _first_set(storage, section.storage, defaults.storage),
        "cpu": _first_set(cpu, section.cpu, defaults.cpu),
        "memory": _first_set(memory, section.memory, defaults.memory),
        "kubeconfig": resolve_kubeconfig(kubeconfig, settings=settings, config=config),
    }
    try:
        spec = ClusterSpec.model_validate(values)
    except ValidationError as exc:
        raise ConfigError(f"invalid cluster parameters: {_describe_validation_error(exc)}") from exc

    LOGGER.debug(
        "cluster spec resolved name=%s kind=%s replicas=%s storage=%s cpu=%s memory=%s config=%s",
        spec.name,
        spec.kind.value,
        spec.replicas,
        spec.storage,
        spec.cpu,
        spec.memory,
        config.path,
    )
    return spec


def _first_set(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _describe_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = str(error.get("msg", "invalid value"))
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)
