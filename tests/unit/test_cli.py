"""
Unit tests for the command line entry point (pgbackup/cli.py).
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from pgbackup.cli import app, run_backup

runner = CliRunner()


@pytest.fixture(autouse=True)
def mock_configure_logging():
    # CliRunner closes its streams after each invocation
    with patch('pgbackup.cli.configure_logging') as mock_configure:
        yield mock_configure


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'pg_backup.config'
    path.write_text(
        f'BACKUP_DIR="{tmp_path / "backups"}"\n'
        'ENABLE_GLOBALS_BACKUPS=yes\n'
        'ENABLE_PLAIN_BACKUPS=yes\n'
    )
    return path


@pytest.fixture
def mock_executor():
    with patch('pgbackup.cli.BackupExecutor') as mock_class:
        mock_class.from_config.return_value.execute.return_value.exit_code = 0
        yield mock_class


class TestMain:
    """Test option handling and exit codes."""

    def test_successful_run(self, config_file, mock_executor):
        result = runner.invoke(app, ['-c', str(config_file)])

        assert result.exit_code == 0
        mock_executor.from_config.assert_called_once()
        config = mock_executor.from_config.call_args[0][0]
        assert config.enable_globals_backups is True

    def test_failed_run_exit_code(self, config_file, mock_executor):
        mock_executor.from_config.return_value.execute.return_value.exit_code = 1

        result = runner.invoke(app, ['--config', str(config_file)])

        assert result.exit_code == 1

    def test_missing_config_file(self, tmp_path, mock_executor):
        result = runner.invoke(app, ['-c', str(tmp_path / 'missing.config')])

        assert result.exit_code == 1
        mock_executor.from_config.assert_not_called()

    def test_unknown_option(self):
        result = runner.invoke(app, ['--frobnicate'])

        assert result.exit_code == 2

    def test_verbose_sets_debug(self, config_file, mock_executor, mock_configure_logging):
        runner.invoke(app, ['-c', str(config_file), '--verbose'])

        mock_configure_logging.assert_any_call(logging.DEBUG)

    @patch('pgbackup.cli.run_scheduled')
    def test_schedule(self, mock_run_scheduled, config_file):
        result = runner.invoke(app, ['-c', str(config_file), '--schedule', '0 3 * * *'])

        assert result.exit_code == 0
        job, expression = mock_run_scheduled.call_args[0]
        assert expression == '0 3 * * *'
        assert job.func is run_backup
        assert job.args == (config_file, logging.INFO)

    def test_invalid_schedule(self, config_file):
        result = runner.invoke(app, ['-c', str(config_file), '--schedule', 'every night'])

        assert result.exit_code == 2


class TestRunBackup:
    """Test a single run without the CLI layer."""

    def test_wrong_backup_user(self, tmp_path, mock_executor):
        path = tmp_path / 'pg_backup.config'
        path.write_text(f'BACKUP_DIR="{tmp_path}"\nBACKUP_USER=postgres\n')

        with patch('pgbackup.config.current_user', return_value='root'):
            assert run_backup(path) == 1

        mock_executor.from_config.assert_not_called()

    def test_log_file_adds_file_handler(self, tmp_path, mock_executor, mock_configure_logging):
        log_file = tmp_path / 'pg_backup.log'
        path = tmp_path / 'pg_backup.config'
        path.write_text(f'BACKUP_DIR="{tmp_path}"\nLOG_FILE="{log_file}"\n')

        assert run_backup(path, logging.INFO) == 0

        mock_configure_logging.assert_called_once_with(logging.INFO, str(log_file))

    def test_config_summary_logged(self, config_file, mock_executor, caplog):
        caplog.set_level(logging.INFO)

        run_backup(config_file)

        assert 'ENCRYPT_BACKUP_FILES = no' in caplog.text
        assert f'Backup Directory = {config_file.parent / "backups"}' in caplog.text
