"""
Unit tests for logging setup (pgbackup/__init__.py).
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from pgbackup import configure_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger('pgbackup')
    saved_handlers, saved_level = list(logger.handlers), logger.level
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        logger.addHandler(handler)
    logger.setLevel(saved_level)


class TestConfigureLogging:
    """Test handler installation."""

    def test_console_only(self, package_logger):
        logger = configure_logging(logging.DEBUG)

        assert logger is package_logger
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], RotatingFileHandler)

    def test_rotating_file(self, package_logger, tmp_path):
        log_file = tmp_path / 'pg_backup.log'

        logger = configure_logging(logging.INFO, str(log_file))
        logger.info("Backup started")
        for handler in logger.handlers:
            handler.flush()

        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 10485760
        assert file_handlers[0].backupCount == 10
        assert 'Backup started' in log_file.read_text()

    def test_reconfigure_replaces_handlers(self, package_logger, tmp_path):
        configure_logging(logging.INFO)
        logger = configure_logging(logging.INFO, str(tmp_path / 'pg_backup.log'))

        assert len(logger.handlers) == 2
