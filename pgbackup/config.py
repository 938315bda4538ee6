"""
Backup configuration.

The configuration file is a shell-style ``KEY="value"`` file. It is parsed
once at startup into an immutable :class:`BackupConfig` which is then passed
to every component of the run.
"""

import logging
import os
import pwd
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import dotenv_values

from .errors import BackupError

logger = logging.getLogger(__name__)


TRUE_VALUES = ('yes', 'true', 'on', '1')
FALSE_VALUES = ('no', 'false', 'off', '0')

ARCHIVE_FORMATS = ('tar.gz', 'tar.bz2', 'tar.xz')


class ConfigError(BackupError):
    """Raised when the configuration is missing, unreadable or invalid."""
    pass


@dataclass(frozen=True)
class BackupConfig:
    """Validated settings for one backup run."""

    backup_dir: Path

    # Connection
    hostname: str = 'localhost'
    port: int = 5432
    username: str = 'postgres'
    backup_user: Optional[str] = None

    # Backup types
    enable_globals_backups: bool = False
    enable_plain_backups: bool = False
    enable_custom_backups: bool = False
    schema_only_patterns: Tuple[str, ...] = ()
    exclude_list: Tuple[str, ...] = ()

    # Encryption
    encrypt_backup_files: bool = False
    gpg_key_id: Optional[str] = None
    shred_clear_backup_files: bool = False

    # Rotation
    days_to_keep: int = 7
    weeks_to_keep: int = 5
    day_of_week_to_keep: int = 5

    # Run behaviour
    archive_format: str = 'tar.gz'
    dump_timeout: Optional[int] = None
    stale_in_progress_hours: int = 24
    log_file: Optional[Path] = None

    @property
    def schema_only_enabled(self) -> bool:
        return bool(self.schema_only_patterns)

    @property
    def full_backups_enabled(self) -> bool:
        return self.enable_plain_backups or self.enable_custom_backups

    def summary_lines(self):
        """Lines describing the effective configuration for the run log."""
        return [
            f"HOSTNAME = {self.hostname}",
            f"PORT = {self.port}",
            f"USERNAME = {self.username}",
            f"ENCRYPT_BACKUP_FILES = {_yes_no(self.encrypt_backup_files)}",
            f"Backup Directory = {self.backup_dir}",
        ]


def _yes_no(value: bool) -> str:
    return 'yes' if value else 'no'


def parse_bool(key: str, value: Optional[str], default: bool = False) -> bool:
    """
    Parse a yes/no style flag.

    Args:
        key: Configuration key (for error messages)
        value: Raw value, None or empty when absent
        default: Value used when the key is absent

    Returns:
        Parsed boolean

    Raises:
        ConfigError: If the value is not a recognised boolean
    """
    if value is None or value.strip() == '':
        return default

    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False

    raise ConfigError(f"{key} must be 'yes' or 'no', got {value!r}")


def parse_int(key: str, value: Optional[str], default: Optional[int],
              minimum: int = 0, maximum: Optional[int] = None) -> Optional[int]:
    """
    Parse a bounded integer setting.

    Raises:
        ConfigError: If the value is not an integer or is out of range
    """
    if value is None or value.strip() == '':
        return default

    try:
        number = int(value.strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {value!r}")

    if number < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {number}")
    if maximum is not None and number > maximum:
        raise ConfigError(f"{key} must be <= {maximum}, got {number}")

    return number


def parse_list(value: Optional[str]) -> Tuple[str, ...]:
    """Split a comma and/or whitespace separated list, dropping empty items."""
    if not value:
        return ()
    return tuple(item for item in re.split(r'[,\s]+', value) if item)


def _text(values: Dict[str, Optional[str]], key: str) -> Optional[str]:
    value = values.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def config_from_mapping(values: Dict[str, Optional[str]]) -> BackupConfig:
    """
    Build a validated configuration from raw key/value pairs.

    Args:
        values: Raw settings, as read from the configuration file

    Returns:
        BackupConfig instance

    Raises:
        ConfigError: If a required key is missing or a value is invalid
    """
    backup_dir = _text(values, 'BACKUP_DIR')
    if not backup_dir:
        raise ConfigError("BACKUP_DIR is required")

    defaults = BackupConfig(backup_dir=Path(backup_dir))

    for key, default in (('HOSTNAME', defaults.hostname),
                         ('PORT', defaults.port),
                         ('USERNAME', defaults.username)):
        if not _text(values, key):
            logger.info(f"{key} is missing. Setting to default ({default}).")

    schema_only_patterns = parse_list(values.get('SCHEMA_ONLY_LIST'))
    for pattern in schema_only_patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ConfigError(f"SCHEMA_ONLY_LIST pattern {pattern!r} is not a valid regular expression: {e}")

    archive_format = _text(values, 'ARCHIVE_FORMAT') or defaults.archive_format
    if archive_format not in ARCHIVE_FORMATS:
        raise ConfigError(
            f"ARCHIVE_FORMAT must be one of {list(ARCHIVE_FORMATS)}, got {archive_format!r}"
        )

    log_file = _text(values, 'LOG_FILE')

    config = BackupConfig(
        backup_dir=Path(backup_dir),
        hostname=_text(values, 'HOSTNAME') or defaults.hostname,
        port=parse_int('PORT', values.get('PORT'), defaults.port, minimum=1, maximum=65535),
        username=_text(values, 'USERNAME') or defaults.username,
        backup_user=_text(values, 'BACKUP_USER'),
        enable_globals_backups=parse_bool('ENABLE_GLOBALS_BACKUPS', values.get('ENABLE_GLOBALS_BACKUPS')),
        enable_plain_backups=parse_bool('ENABLE_PLAIN_BACKUPS', values.get('ENABLE_PLAIN_BACKUPS')),
        enable_custom_backups=parse_bool('ENABLE_CUSTOM_BACKUPS', values.get('ENABLE_CUSTOM_BACKUPS')),
        schema_only_patterns=schema_only_patterns,
        exclude_list=parse_list(values.get('EXCLUDE_LIST')),
        encrypt_backup_files=parse_bool('ENCRYPT_BACKUP_FILES', values.get('ENCRYPT_BACKUP_FILES')),
        gpg_key_id=_text(values, 'GPG_KEY_ID'),
        shred_clear_backup_files=parse_bool('SHRED_CLEAR_BACKUP_FILES', values.get('SHRED_CLEAR_BACKUP_FILES')),
        days_to_keep=parse_int('DAYS_TO_KEEP', values.get('DAYS_TO_KEEP'), defaults.days_to_keep),
        weeks_to_keep=parse_int('WEEKS_TO_KEEP', values.get('WEEKS_TO_KEEP'), defaults.weeks_to_keep),
        day_of_week_to_keep=parse_int('DAY_OF_WEEK_TO_KEEP', values.get('DAY_OF_WEEK_TO_KEEP'),
                                      defaults.day_of_week_to_keep, minimum=1, maximum=7),
        archive_format=archive_format,
        dump_timeout=parse_int('DUMP_TIMEOUT', values.get('DUMP_TIMEOUT'), None, minimum=1),
        stale_in_progress_hours=parse_int('STALE_IN_PROGRESS_HOURS', values.get('STALE_IN_PROGRESS_HOURS'),
                                          defaults.stale_in_progress_hours),
        log_file=Path(log_file) if log_file else None,
    )

    if config.encrypt_backup_files and not config.gpg_key_id:
        logger.warning("ENCRYPT_BACKUP_FILES is enabled but GPG_KEY_ID is not set; encryption will fail")

    return config


def load_config(path) -> BackupConfig:
    """
    Load and validate the configuration file.

    Args:
        path: Path to the configuration file

    Returns:
        BackupConfig instance

    Raises:
        ConfigError: If the file cannot be read or contains invalid values
    """
    config_path = Path(path)

    if not config_path.is_file() or not os.access(config_path, os.R_OK):
        raise ConfigError(f"Could not load config file from {config_path}")

    try:
        values = dotenv_values(config_path)
    except OSError as e:
        raise ConfigError(f"Could not load config file from {config_path}: {e}")

    logger.info(f"Configurations file: {config_path}")
    return config_from_mapping(values)


def current_user() -> str:
    """Name of the effective user running the process."""
    return pwd.getpwuid(os.geteuid()).pw_name


def check_backup_user(config: BackupConfig):
    """
    Make sure the process runs as the configured backup user.

    Raises:
        ConfigError: If BACKUP_USER is set and differs from the effective user
    """
    if config.backup_user and current_user() != config.backup_user:
        raise ConfigError(f"This script must be run as {config.backup_user}. Exiting.")
