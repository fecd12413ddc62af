"""
Table commands: create, write, read and history.

All commands operate on a LocalBlobStore rooted at --root (or storage.root).
"""

import asyncio
import json
from datetime import datetime, timezone

import click
from pathlib import Path
from rich.console import Console
from rich.table import Table as RichTable

from tablestore.cli import cli, common_options, load_cli_config
from tablestore.errors import TableStoreError
from tablestore.ingestion.reader import RecordReader
from tablestore.storage.blob_store import LocalBlobStore
from tablestore.table.table import Table


console = Console()


def _open_table(table_path, root, config_path, log_level) -> Table:
    config = load_cli_config(root, config_path, log_level)
    store = LocalBlobStore(Path(config.storage['root']))
    return Table(store, table_path, config)


def _load_schema(schema_arg):
    """Load a schema definition from a JSON file path or an inline JSON string."""
    schema_path = Path(schema_arg)
    text = schema_path.read_text(encoding='utf-8') if schema_path.is_file() else schema_arg
    try:
        definition = json.loads(text)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Schema is neither a JSON file nor valid JSON: {e}", param_hint='SCHEMA')

    # Accept either a bare field list or {"fields": [...]}
    if isinstance(definition, dict):
        definition = definition.get('fields', [])
    return definition


def _format_millis(millis) -> str:
    if millis is None:
        return '-'
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')


@cli.command()
@common_options
@click.argument('table_path')
@click.argument('schema')
@click.option(
    '--partition-by',
    multiple=True,
    help='Partition column (repeatable)',
)
@click.option(
    '--description',
    default=None,
    help='Table description',
)
def create(table_path, schema, partition_by, description, root, config_path, log_level):
    """
    Create a new table.

    SCHEMA is a JSON file or inline JSON holding a list of field definitions.

    Examples:

        # Create from an inline schema
        tablestore create users '[{"name": "id", "type": "long"}, {"name": "name", "type": "string"}]'

        # Create from a schema file
        tablestore create events schemas/events.json --partition-by day
    """
    table = _open_table(table_path, root, config_path, log_level)
    definition = _load_schema(schema)

    try:
        result = asyncio.run(
            table.create(definition, partition_columns=list(partition_by), description=description)
        )
    except TableStoreError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise click.Abort()

    console.print(f"[bold green]✓[/bold green] Created table [cyan]{table_path}[/cyan] at version {result['version']}")


@cli.command()
@common_options
@click.argument('table_path')
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def write(table_path, input_file, root, config_path, log_level):
    """
    Append records from a JSON or JSONL file as one batch.

    Examples:

        tablestore write users data/users.jsonl
    """
    table = _open_table(table_path, root, config_path, log_level)

    try:
        records = RecordReader(input_file).read_records()
        result = asyncio.run(table.write_batch(records))
    except ValueError as e:
        console.print(f"[bold red]Error reading {input_file}:[/bold red] {e}")
        raise click.Abort()
    except TableStoreError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise click.Abort()

    console.print(
        f"[bold green]✓[/bold green] Wrote {result['row_count']} rows to [cyan]{table_path}[/cyan] "
        f"at version {result['version']} ({result['file']})"
    )


@cli.command()
@common_options
@click.argument('table_path')
@click.option(
    '--at-version',
    'at_version',
    type=int,
    default=None,
    help='Read the table as of this version (default: latest)',
)
@click.option(
    '--columns',
    default=None,
    help='Comma-separated list of columns to read',
)
@click.option(
    '--format',
    'output_format',
    type=click.Choice(['table', 'json'], case_sensitive=False),
    default='table',
    help='Output format (default: table)',
)
@click.option(
    '--limit',
    type=int,
    default=None,
    help='Maximum number of rows to display',
)
def read(table_path, at_version, columns, output_format, limit, root, config_path, log_level):
    """
    Read a table by replaying its transaction log.

    Examples:

        tablestore read users
        tablestore read users --at-version 3 --format json
    """
    table = _open_table(table_path, root, config_path, log_level)
    column_list = [c.strip() for c in columns.split(',') if c.strip()] if columns else None

    try:
        records = asyncio.run(table.read(version=at_version, columns=column_list))
    except TableStoreError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise click.Abort()

    shown = records[:limit] if limit is not None else records

    if output_format.lower() == 'json':
        click.echo(json.dumps(shown, indent=2, default=str))
        return

    if not records:
        console.print(f"[yellow]Table {table_path} has no records[/yellow]")
        return

    names = list(column_list or [])
    for record in shown:
        for name in record:
            if name not in names:
                names.append(name)

    output = RichTable(title=f"{table_path} ({len(records)} rows)")
    for name in names:
        output.add_column(name, style="cyan" if name == names[0] else None)
    for record in shown:
        output.add_row(*[_render_cell(record.get(name)) for name in names])
    console.print(output)


def _render_cell(value) -> str:
    if value is None:
        return "[dim]null[/dim]"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


@cli.command()
@common_options
@click.argument('table_path')
@click.option(
    '--limit',
    type=int,
    default=None,
    help='Maximum number of versions to show',
)
def history(table_path, limit, root, config_path, log_level):
    """
    Show the commit history of a table, newest first.

    Examples:

        tablestore history users --limit 10
    """
    table = _open_table(table_path, root, config_path, log_level)

    try:
        entries = asyncio.run(table.history(limit=limit))
    except TableStoreError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise click.Abort()

    if not entries:
        console.print(f"[yellow]Table {table_path} has no commits[/yellow]")
        return

    output = RichTable(title=f"History of {table_path}")
    output.add_column("Version", justify="right", style="cyan")
    output.add_column("Timestamp (UTC)")
    output.add_column("Operation", style="green")
    output.add_column("Parameters")
    for entry in entries:
        output.add_row(
            str(entry['version']),
            _format_millis(entry['timestamp']),
            entry['operation'] or '-',
            json.dumps(entry['operationParameters'], default=str),
        )
    console.print(output)
