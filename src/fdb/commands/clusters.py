"""Cluster commands for the fdb CLI."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape
from structlog.contextvars import bind_contextvars, reset_contextvars

from ..cluster import ClusterService
from ..config import load_config, resolve_cluster_spec, resolve_kubeconfig
from ..errors import FdbError, SubprocessError
from ..models import ClusterSpec, ConnectionReport, DatabaseKind, validate_cluster_name
from ..parsing import MissingConnectionFieldError, render_connection_string
from ..runner import ProcessRunner
from ..settings import FdbSettings
from ..tools import ToolLocator

LOGGER = logging.getLogger("fdb.cli")

console = Console(soft_wrap=True, highlight=False)
err_console = Console(stderr=True, soft_wrap=True, highlight=False)


class DatabaseKindType(click.ParamType):
    name = "kind"

    def get_metavar(self, param, ctx=None):
        return "[" + "|".join(kind.value for kind in DatabaseKind) + "]"

    def convert(self, value, param, ctx):
        if isinstance(value, DatabaseKind):
            return value
        try:
            return DatabaseKind.parse(value)
        except ValueError as exc:
            self.fail(str(exc), param, ctx)


def _validate_name(ctx: click.Context, param: click.Parameter, value: str) -> str:
    try:
        return validate_cluster_name(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


kubeconfig_option = click.option(
    "--kubeconfig",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Kubeconfig file (default: fdb.toml [kubernetes], $KUBECONFIG, ~/.kube/config).",
)


def _fail(exc: FdbError) -> NoReturn:
    LOGGER.error("command failed error=%s", exc)
    err_console.print(f"[red]fdb: {escape(str(exc))}[/red]")
    if isinstance(exc, SubprocessError) and exc.stderr:
        # The tool's own message, untouched.
        click.echo(exc.stderr, err=True, nl=not exc.stderr.endswith("\n"))
    sys.exit(exc.exit_code)


def _build_service(settings: FdbSettings, kubeconfig: Path) -> ClusterService:
    tools = ToolLocator(settings).ensure()
    return ClusterService(
        tools,
        ProcessRunner(kubeconfig),
        namespace=settings.namespace,
        wait_timeout_seconds=settings.wait_timeout_seconds,
        poll_interval_seconds=settings.poll_interval_seconds,
    )


@click.command()
@click.argument("kind", type=DatabaseKindType())
@click.argument("name", callback=_validate_name)
@kubeconfig_option
@click.option("--replicas", type=click.IntRange(min=1), default=None, help="Number of replicas.")
@click.option("--storage", default=None, help="Storage size in Gi, e.g. 2 or 2Gi.")
@click.option("--cpu", default=None, help="CPU cores, e.g. 0.5.")
@click.option("--memory", default=None, help="Memory in Gi, e.g. 0.8 or 0.8Gi.")
@click.pass_obj
def create(
    settings: FdbSettings,
    kind: DatabaseKind,
    name: str,
    kubeconfig: Optional[Path],
    replicas: Optional[int],
    storage: Optional[str],
    cpu: Optional[str],
    memory: Optional[str],
):
    """Create a database cluster and print how to connect to it."""
    context_tokens = bind_contextvars(cluster=name, kind=kind.value)
    try:
        _run_create(settings, kind, name, kubeconfig, replicas, storage, cpu, memory)
    finally:
        reset_contextvars(**context_tokens)


def _run_create(
    settings: FdbSettings,
    kind: DatabaseKind,
    name: str,
    kubeconfig: Optional[Path],
    replicas: Optional[int],
    storage: Optional[str],
    cpu: Optional[str],
    memory: Optional[str],
) -> None:
    try:
        spec = resolve_cluster_spec(
            kind,
            name,
            settings=settings,
            config=load_config(),
            kubeconfig=kubeconfig,
            replicas=replicas,
            storage=storage,
            cpu=cpu,
            memory=memory,
        )
        service = _build_service(settings, spec.kubeconfig)

        _print_plan(spec)
        service.create(spec)
        with console.status("Waiting for cluster to be Running..."):
            running = service.wait_until_running(spec.name)
        report = service.connection_report(spec)
    except FdbError as exc:
        _fail(exc)

    console.print()
    if running:
        console.print(f'[green]Cluster "{spec.name}" is running.[/green]')
    else:
        console.print(
            f'[yellow]Cluster "{spec.name}" was created but is not Running yet '
            f"(waited {settings.wait_timeout_seconds:g}s).[/yellow]"
        )
    _print_connection(report)


@click.command()
@click.argument("name", callback=_validate_name)
@kubeconfig_option
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_obj
def delete(settings: FdbSettings, name: str, kubeconfig: Optional[Path], yes: bool):
    """Delete a database cluster."""
    context_tokens = bind_contextvars(cluster=name)
    try:
        _run_delete(settings, name, kubeconfig, yes)
    finally:
        reset_contextvars(**context_tokens)


def _run_delete(settings: FdbSettings, name: str, kubeconfig: Optional[Path], yes: bool) -> None:
    try:
        resolved = resolve_kubeconfig(kubeconfig, settings=settings, config=load_config())
        service = _build_service(settings, resolved)
    except FdbError as exc:
        _fail(exc)

    if not yes:
        click.confirm(f'Delete cluster "{name}"?', default=False, abort=True)

    try:
        warnings = service.delete(name, auto_approve=yes)
    except FdbError as exc:
        _fail(exc)

    for warning in warnings:
        err_console.print(f"[yellow]warning: {escape(warning)}[/yellow]")
    console.print(f'Cluster "{name}" deleted.')


@click.command(name="list")
@kubeconfig_option
@click.pass_obj
def list_clusters(settings: FdbSettings, kubeconfig: Optional[Path]):
    """List database clusters."""
    try:
        resolved = resolve_kubeconfig(kubeconfig, settings=settings, config=load_config())
        output = _build_service(settings, resolved).list_clusters()
    except FdbError as exc:
        _fail(exc)

    if not output.strip():
        console.print("No clusters found.")
        return
    # kbcli's table is passed through as-is.
    click.echo(output, nl=not output.endswith("\n"))


def _print_plan(spec: ClusterSpec) -> None:
    console.print(
        f'Creating {spec.kind.value} cluster "{spec.name}" '
        f"(replicas={spec.replicas}, storage={spec.storage} Gi, cpu={spec.cpu}, "
        f"memory={spec.memory} Gi)"
    )
    console.print(f"  kubeconfig: {escape(str(spec.kubeconfig))}")
    console.print(f"  started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    console.print()


def _print_connection(report: ConnectionReport) -> None:
    info = report.info
    for warning in report.warnings:
        err_console.print(f"[yellow]warning: {escape(warning)}[/yellow]")

    console.print()
    console.print("[bold]Connection details:[/bold]")
    rows = [
        ("Host", info.host),
        ("Port", str(info.port) if info.port is not None else None),
        ("User", info.user),
        ("Password", info.password),
    ]
    for label, value in rows:
        if value:
            console.print(f"  {label + ':':<19}{escape(value)}")

    try:
        connection_string = render_connection_string(info)
    except MissingConnectionFieldError as exc:
        console.print(f"  [yellow]Connection string unavailable ({escape(str(exc))})[/yellow]")
        return
    console.print(f"  {'Connection string:':<19}{escape(connection_string)}")
