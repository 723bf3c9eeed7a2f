from __future__ import annotations

import os
from pathlib import Path

import pytest

from fdb.config import LoadedConfig, load_config, resolve_cluster_spec, resolve_kubeconfig
from fdb.errors import ConfigError
from fdb.kbcli import build_create_args
from fdb.models import DatabaseKind
from fdb.settings import FdbSettings, load_settings

DEFAULTS: dict[DatabaseKind, tuple[int, str, str, str]] = {
    DatabaseKind.POSTGRESQL: (1, "2", "0.5", "0.8"),
    DatabaseKind.REDIS: (1, "1", "0.5", "0.5"),
    DatabaseKind.RABBITMQ: (1, "2", "0.5", "1"),
    DatabaseKind.QDRANT: (1, "5", "0.5", "1"),
}


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _flag_value(args: list[str], flag: str) -> str:
    return args[args.index(flag) + 1]


@pytest.mark.parametrize("kind", list(DatabaseKind))
def test_create_command_uses_kind_defaults_without_config(kind: DatabaseKind) -> None:
    settings = load_settings()
    spec = resolve_cluster_spec(kind, "mydb", settings=settings, config=load_config())

    args = build_create_args(spec)

    replicas, storage, cpu, memory = DEFAULTS[kind]
    assert args[:4] == ["cluster", "create", kind.value, "mydb"]
    assert _flag_value(args, "--replicas") == str(replicas)
    assert _flag_value(args, "--storage") == storage
    assert _flag_value(args, "--cpu") == cpu
    assert _flag_value(args, "--memory") == memory


@pytest.mark.parametrize(
    ("field", "file_value", "cli_value", "expected_default", "expected_file", "expected_cli"),
    [
        ("replicas", "2", 3, 1, 2, 3),
        ("storage", '"4Gi"', "8Gi", "2", "4", "8"),
        ("cpu", "1", "2", "0.5", "1", "2"),
        ("memory", "2", "4", "0.8", "2", "4"),
    ],
)
def test_precedence_is_flag_then_file_then_default(
    field: str,
    file_value: str,
    cli_value: object,
    expected_default: object,
    expected_file: object,
    expected_cli: object,
) -> None:
    settings = load_settings()

    default_spec = resolve_cluster_spec(
        DatabaseKind.POSTGRESQL, "mydb", settings=settings, config=load_config()
    )
    assert getattr(default_spec, field) == expected_default

    _write(Path.cwd() / "fdb.toml", f"[postgresql]\n{field} = {file_value}\n")
    file_spec = resolve_cluster_spec(
        DatabaseKind.POSTGRESQL, "mydb", settings=settings, config=load_config()
    )
    assert getattr(file_spec, field) == expected_file

    cli_spec = resolve_cluster_spec(
        DatabaseKind.POSTGRESQL,
        "mydb",
        settings=settings,
        config=load_config(),
        **{field: cli_value},  # type: ignore[arg-type]
    )
    assert getattr(cli_spec, field) == expected_cli


def test_config_file_values_are_used_exactly() -> None:
    _write(
        Path.cwd() / "fdb.toml",
        '[rabbitmq]\nreplicas = 3\nstorage = "10Gi"\ncpu = 1.5\nmemory = "3Gi"\n',
    )

    spec = resolve_cluster_spec(
        DatabaseKind.RABBITMQ, "queue", settings=load_settings(), config=load_config()
    )

    assert (spec.replicas, spec.storage, spec.cpu, spec.memory) == (3, "10", "1.5", "3")


def test_numbers_and_gi_strings_normalize_identically() -> None:
    _write(Path.cwd() / "fdb.toml", '[redis]\nstorage = 2\nmemory = "0.5Gi"\n')
    spec = resolve_cluster_spec(
        DatabaseKind.REDIS, "cache", settings=load_settings(), config=load_config()
    )
    assert spec.storage == "2"
    assert spec.memory == "0.5"


def test_missing_section_and_missing_fields_fall_back_to_defaults() -> None:
    _write(Path.cwd() / "fdb.toml", "[postgresql]\nreplicas = 2\n")
    settings = load_settings()
    config = load_config()

    qdrant = resolve_cluster_spec(DatabaseKind.QDRANT, "vec", settings=settings, config=config)
    postgres = resolve_cluster_spec(DatabaseKind.POSTGRESQL, "db", settings=settings, config=config)

    assert (qdrant.replicas, qdrant.storage, qdrant.cpu, qdrant.memory) == (1, "5", "0.5", "1")
    assert (postgres.replicas, postgres.storage, postgres.memory) == (2, "2", "0.8")


def test_no_config_file_is_not_an_error() -> None:
    config = load_config()
    assert config.path is None
    assert config == LoadedConfig.empty()


def test_local_config_shadows_home_config_entirely() -> None:
    home_file = _write(Path.home() / ".fdb" / "fdb.toml", "[redis]\nreplicas = 5\nstorage = 9\n")
    local_file = _write(Path.cwd() / "fdb.toml", "[redis]\nreplicas = 2\n")

    config = load_config()
    spec = resolve_cluster_spec(DatabaseKind.REDIS, "cache", settings=load_settings(), config=config)

    assert config.path == local_file
    assert config.path != home_file
    assert spec.replicas == 2
    assert spec.storage == "1"


def test_home_config_is_used_when_no_local_file() -> None:
    home_file = _write(Path.home() / ".fdb" / "fdb.toml", "[qdrant]\nstorage = 20\n")

    config = load_config()
    spec = resolve_cluster_spec(DatabaseKind.QDRANT, "vec", settings=load_settings(), config=config)

    assert config.path == home_file
    assert spec.storage == "20"


def test_malformed_toml_names_the_file() -> None:
    bad = _write(Path.cwd() / "fdb.toml", "[postgresql\nreplicas = 1\n")

    with pytest.raises(ConfigError) as excinfo:
        load_config()

    assert str(bad) in str(excinfo.value)
    assert excinfo.value.path == bad


def test_wrong_value_type_names_the_file() -> None:
    bad = _write(Path.cwd() / "fdb.toml", '[redis]\nstorage = "lots"\n')

    with pytest.raises(ConfigError, match="invalid configuration") as excinfo:
        load_config()

    assert str(bad) in str(excinfo.value)


def test_invalid_cli_override_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="invalid cluster parameters"):
        resolve_cluster_spec(
            DatabaseKind.POSTGRESQL,
            "mydb",
            settings=load_settings(),
            config=load_config(),
            memory="a lot",
        )


def test_kubeconfig_resolution_chain(monkeypatch: pytest.MonkeyPatch) -> None:
    settings = load_settings()
    empty = LoadedConfig.empty()
    assert resolve_kubeconfig(None, settings=settings, config=empty) == Path.home() / ".kube" / "config"

    monkeypatch.setenv("KUBECONFIG", "/etc/env-kubeconfig")
    env_settings = load_settings()
    assert resolve_kubeconfig(None, settings=env_settings, config=empty) == Path("/etc/env-kubeconfig")

    _write(Path.cwd() / "fdb.toml", '[kubernetes]\nkubeconfig = "~/clusters/dev.yaml"\n')
    config = load_config()
    assert resolve_kubeconfig(None, settings=env_settings, config=config) == (
        Path.home() / "clusters" / "dev.yaml"
    )

    assert resolve_kubeconfig(Path("/flag/kubeconfig"), settings=env_settings, config=config) == Path(
        "/flag/kubeconfig"
    )


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FDB_HOME", "~/custom-fdb")
    monkeypatch.setenv("KUBECONFIG", os.pathsep.join(["/first/config", "/second/config"]))
    monkeypatch.setenv("FDB_NAMESPACE", "databases")
    monkeypatch.setenv("FDB_WAIT_TIMEOUT_SECONDS", "12")

    settings = load_settings()

    assert settings.home == Path.home() / "custom-fdb"
    assert settings.bin_dir == Path.home() / "custom-fdb" / "bin"
    assert settings.kubeconfig == Path("/first/config")
    assert settings.namespace == "databases"
    assert settings.wait_timeout_seconds == 12


def test_settings_default_home_is_expanded(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FDB_HOME")
    settings = FdbSettings()
    assert settings.home == Path.home() / ".fdb"


def test_invalid_environment_is_a_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FDB_POLL_INTERVAL_SECONDS", "soon")
    with pytest.raises(ConfigError, match="invalid environment settings"):
        load_settings()
