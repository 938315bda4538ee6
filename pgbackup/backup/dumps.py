"""
Dump operations: cluster globals, schema-only and full database dumps.

PgDumpProvider shells out to ``pg_dumpall`` / ``pg_dump`` and writes the
dump straight to the target file.
"""

import logging
import subprocess
from typing import List, Optional, Protocol

from ..errors import BackupError

logger = logging.getLogger(__name__)

PLAIN = 'plain'
CUSTOM = 'custom'

FORMAT_FLAGS = {
    PLAIN: '-Fp',
    CUSTOM: '-Fc',
}


class DumpError(BackupError):
    """Raised when a dump command fails."""
    pass


class DumpProvider(Protocol):
    def dump_globals(self, target: str) -> None:
        ...

    def dump_schema(self, database: str, target: str) -> None:
        ...

    def dump_full(self, database: str, target: str, dump_format: str = PLAIN) -> None:
        ...


class PgDumpProvider:
    """
    Runs the PostgreSQL client dump tools.

    Authentication is left to libpq (``~/.pgpass`` or ``PGPASSWORD``).
    """

    def __init__(self, hostname: str = 'localhost', port: int = 5432,
                 username: str = 'postgres', timeout: Optional[int] = None):
        """
        Args:
            hostname: Cluster host
            port: Cluster port
            username: Role used for dumps
            timeout: Seconds before a dump is killed; None waits forever
        """
        self.hostname = hostname
        self.port = port
        self.username = username
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> 'PgDumpProvider':
        return cls(config.hostname, config.port, config.username, config.dump_timeout)

    def _connection_args(self) -> List[str]:
        return ['-h', self.hostname, '-p', str(self.port), '-U', self.username]

    def dump_globals(self, target: str):
        """Dump roles and tablespaces (``pg_dumpall -g``) into ``target``."""
        self._run(['pg_dumpall', '-g', *self._connection_args(), '-f', str(target)], 'globals')

    def dump_schema(self, database: str, target: str):
        """Dump the structure of ``database`` without data into ``target``."""
        self._run(
            ['pg_dump', '-Fp', '-s', *self._connection_args(), '-f', str(target), database],
            database
        )

    def dump_full(self, database: str, target: str, dump_format: str = PLAIN):
        """
        Dump schema and data of ``database`` into ``target``.

        Args:
            database: Database name
            target: Output file
            dump_format: 'plain' (SQL script) or 'custom' (pg_restore archive)

        Raises:
            DumpError: If the dump fails
            ValueError: If dump_format is invalid
        """
        if dump_format not in FORMAT_FLAGS:
            raise ValueError(
                f"Invalid dump format: {dump_format}. Valid options: {list(FORMAT_FLAGS.keys())}"
            )

        self._run(
            ['pg_dump', FORMAT_FLAGS[dump_format], *self._connection_args(), '-f', str(target), database],
            database
        )

    def _run(self, command: List[str], label: str):
        logger.debug(f"[{label}] Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise DumpError(f"{command[0]} not found - install postgresql-client")
        except subprocess.TimeoutExpired:
            raise DumpError(f"{command[0]} timed out after {self.timeout}s")
        except OSError as e:
            raise DumpError(f"Failed to run {command[0]}: {e}")

        if result.returncode != 0:
            stderr = result.stderr.decode(errors='replace').strip()[:500]
            raise DumpError(
                f"{command[0]} exited with code {result.returncode}: {stderr or 'no error output'}"
            )
