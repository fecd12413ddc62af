"""
Command-line interface for the tablestore package.

Provides commands for creating, writing, reading and inspecting tables in a
local directory.
"""

import sys

import click
from pathlib import Path

from tablestore import __version__
from tablestore.config import Config
from tablestore.logger import configure_from_settings


# Common options that can be reused across commands
def common_options(func):
    """Decorator to add common CLI options."""
    func = click.option(
        '--root',
        type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
        default=None,
        help='Directory holding the tables (default: storage.root from config, ./tables)',
    )(func)
    func = click.option(
        '--config',
        'config_path',
        type=click.Path(exists=False, dir_okay=False, path_type=Path),
        default=None,
        help='Path to configuration file (default: ./tablestore.yaml)',
    )(func)
    func = click.option(
        '--log-level',
        type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
        default=None,
        help='Logging level (default: logging.level from config, INFO)',
    )(func)
    return func


def load_cli_config(root, config_path, log_level) -> Config:
    """
    Build the configuration for a command and configure logging from it.

    Command-line options override the configuration file.
    """
    overrides = {}
    if root is not None:
        overrides['storage'] = {'root': str(root)}
    if log_level is not None:
        overrides['logging'] = {'level': log_level.upper()}

    config = Config(config_path=config_path, overrides=overrides)
    # Logs go to stderr so command output on stdout stays parseable
    configure_from_settings(config.logging, stream=sys.stderr)
    return config


@click.group()
@click.version_option(version=__version__, prog_name='tablestore')
@click.pass_context
def cli(ctx):
    """
    Versioned Columnar Table Store CLI.

    Appends batches of JSON records to tables stored as Parquet files with an
    append-only transaction log, and reads them back by replaying the log.
    """
    # Ensure context object exists
    ctx.ensure_object(dict)


@cli.command()
def version():
    """Display version information."""
    click.echo(f"Table Store v{__version__}")


def main():
    """Main entry point for the CLI."""
    # Import commands to register them
    from tablestore.cli.commands import table  # noqa: F401

    cli()


if __name__ == '__main__':
    main()
