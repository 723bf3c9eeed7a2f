"""Main CLI entry point for fdb."""

import sys

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .commands import clusters
from .errors import FdbError
from .logging_config import configure_logging
from .settings import load_settings

err_console = Console(stderr=True)


@click.group()
@click.version_option(version=__version__, prog_name="fdb")
@click.option("--verbose", "-v", is_flag=True, help="Log debug details to stderr.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """fdb - create, list and delete database clusters on Kubernetes."""
    try:
        settings = load_settings()
    except FdbError as exc:
        err_console.print(f"[red]fdb: {escape(str(exc))}[/red]")
        sys.exit(exc.exit_code)

    configure_logging(settings, verbose=verbose)
    ctx.obj = settings


main.add_command(clusters.create)
main.add_command(clusters.delete)
main.add_command(clusters.list_clusters)


if __name__ == "__main__":
    main()
