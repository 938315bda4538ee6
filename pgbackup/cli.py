"""Command line entry point for pg-backup-rotated (Typer)."""

import logging
from functools import partial
from pathlib import Path
from typing import Annotated, Optional

import typer

from . import configure_logging
from .backup.executor import BackupExecutor
from .config import ConfigError, check_backup_user, load_config
from .scheduler import run_scheduled
from .utils.presentation import emit, rule

DEFAULT_CONFIG_PATH = Path('pg_backup.config')

app = typer.Typer(
    name='pg-backup-rotated',
    help='Rotated daily/weekly/monthly backups of a PostgreSQL cluster.',
    add_completion=False,
)

logger = logging.getLogger('pgbackup')


def run_backup(config_path: Path, level: int = logging.INFO) -> int:
    """
    Load the configuration and perform one backup run.

    Args:
        config_path: Path to the configuration file
        level: Logging level

    Returns:
        Process exit code (0 on success, 1 on any failure)
    """
    logger.info("Loading configurations")
    try:
        config = load_config(config_path)
        check_backup_user(config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    if config.log_file:
        configure_logging(level, str(config.log_file))

    emit(rule('-'))
    emit("Backup configuration:")
    emit(config.summary_lines())
    emit(rule())

    executor = BackupExecutor.from_config(config)
    run = executor.execute()
    return run.exit_code


@app.command()
def main(
    config: Annotated[
        Path, typer.Option('-c', '--config', help='Path to the backup configuration file')
    ] = DEFAULT_CONFIG_PATH,
    schedule: Annotated[
        Optional[str],
        typer.Option('--schedule', help="Stay running and back up on this crontab expression, e.g. '0 3 * * *'")
    ] = None,
    verbose: Annotated[bool, typer.Option('--verbose', '-v', help='Enable debug logging')] = False,
) -> None:
    """Back up globals, schema-only and full databases, then rotate old backups."""
    level = logging.DEBUG if verbose else logging.INFO
    configure_logging(level)

    if schedule:
        try:
            run_scheduled(partial(run_backup, config, level), schedule)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint='--schedule')
        return

    raise typer.Exit(code=run_backup(config, level))


if __name__ == '__main__':
    app()
