"""
pg-backup-rotated: rotated PostgreSQL cluster backups.

Dumps cluster globals, schema-only snapshots and full databases into a
dated directory per run, then rotates old runs by retention tier.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

__version__ = '1.0.0'


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for backup runs.

    Console output is always enabled so the run log can be piped to a file
    or mailed by cron. A rotating log file is added when ``log_file`` is set.
    Calling this again replaces the handlers installed by a previous call.

    Args:
        level: Logging level for all handlers
        log_file: Optional path of a rotating log file

    Returns:
        The package logger
    """
    logger = logging.getLogger('pgbackup')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        ))
        logger.addHandler(file_handler)

    logger.setLevel(level)
    logger.debug(f"Logging configured (level: {logging.getLevelName(level)})")
    return logger
