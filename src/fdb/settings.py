from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fdb.errors import ConfigError

DEFAULT_HOME = Path("~/.fdb")


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser()


class FdbSettings(BaseSettings):
    """
    Process-level settings read from the environment.

    Everything here comes from `FDB_*` variables, except the kubeconfig
    fallback which honours the standard `KUBECONFIG` variable.
    """

    model_config = SettingsConfigDict(
        env_prefix="FDB_",
        extra="ignore",
        frozen=True,
    )

    home: Path = Field(
        default=DEFAULT_HOME,
        validate_default=True,
        description="Root for fdb-managed binaries (`bin/`) and logs (`logs/`).",
    )
    kubeconfig: Path | None = Field(
        default=None,
        validation_alias="KUBECONFIG",
        description="Fallback kubeconfig when neither the CLI nor fdb.toml names one.",
    )
    log_level: str = Field(
        default="WARNING",
        description="Console log level (stderr).",
    )
    namespace: str = Field(
        default="default",
        description="Namespace holding clusters, account secrets and external services.",
    )
    wait_timeout_seconds: float = Field(
        default=300.0,
        ge=0,
        description="How long `create` waits for the cluster to report Running.",
    )
    poll_interval_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Delay between cluster status polls.",
    )
    http_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Socket timeout for tool downloads.",
    )
    kubectl_release_url: str = Field(
        default="https://dl.k8s.io/release",
        description="Base URL serving `stable.txt` and kubectl release binaries.",
    )
    kbcli_release_api: str = Field(
        default="https://api.github.com/repos/apecloud/kbcli/releases/latest",
        description="GitHub API endpoint describing the latest kbcli release.",
    )
    kbcli_download_url: str = Field(
        default="https://github.com/apecloud/kbcli/releases/download",
        description="Base URL for kbcli release archives.",
    )

    @field_validator("home", mode="before")
    @classmethod
    def _normalize_home(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator("kubeconfig", mode="before")
    @classmethod
    def _first_kubeconfig(cls, value: Any) -> Path | None:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        # KUBECONFIG may hold a path list; --kubeconfig takes a single file.
        first = next((part for part in text.split(os.pathsep) if part.strip()), "")
        if not first:
            return None
        return _resolve_path(first.strip())

    @field_validator("kubectl_release_url", "kbcli_release_api", "kbcli_download_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"


def load_settings() -> FdbSettings:
    try:
        return FdbSettings()
    except ValidationError as exc:
        raise ConfigError(f"invalid environment settings: {exc}") from exc
