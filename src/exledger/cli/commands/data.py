"""Backup and restore commands."""

from pathlib import Path

import click

from exledger.cli.options import fail
from exledger.domain.bundle import BundleService


@click.group()
def data_group():
    """Export and import the whole ledger."""
    pass


@data_group.command("export")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to a file instead of stdout")
@click.pass_context
def export_data(ctx, output: str | None):
    """Export every collection as JSON."""
    service = BundleService(ctx.obj["db"])
    text = service.export_json()

    if output is None:
        click.echo(text)
        return

    Path(output).write_text(text, encoding="utf-8")
    click.echo(f"Exported ledger to {output}")


@data_group.command("import")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def import_data(ctx, file_path: str, yes: bool):
    """Replace the ledger with the contents of an export file."""
    if not yes:
        click.confirm("This replaces all ledger data. Continue?", abort=True)

    service = BundleService(ctx.obj["db"])
    try:
        service.import_json(Path(file_path).read_text(encoding="utf-8"))
        click.echo(f"Imported ledger from {file_path}")
    except ValueError as e:
        fail(ctx, e)


def register_commands(cli: click.Group) -> None:
    """Register data commands with main CLI."""
    cli.add_command(data_group, name="data")
