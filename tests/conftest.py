"""
Shared pytest fixtures for pg-backup-rotated tests.

This module provides fixtures for:
- Configuration objects pointing at a temporary backup root
- In-memory fakes for the dump, catalog, encryption and shred providers
- Executor and pipeline instances wired to those fakes
"""

from dataclasses import replace
from pathlib import Path

import pytest

from pgbackup.backup.databases import CatalogEntry, EnumerationError
from pgbackup.backup.dumps import DumpError
from pgbackup.backup.executor import BackupExecutor
from pgbackup.backup.filesystem import LocalFilesystem
from pgbackup.backup.pipeline import ArtifactPipeline
from pgbackup.config import BackupConfig
from pgbackup.utils.encryption import EncryptionError, SecureDeleteError


class FakeDumpProvider:
    """
    Dump provider writing small deterministic payloads.

    Labels listed in ``fail`` ('globals' or a database name) write a partial
    file and then raise DumpError, like a dump tool dying mid-way.
    """

    def __init__(self, fail=None):
        self.fail = set(fail or ())
        self.calls = []

    def _write(self, label, target, content):
        with open(target, 'wb') as f:
            f.write(content[:5])
            if label in self.fail:
                raise DumpError(f"simulated failure dumping {label}")
            f.write(content[5:])

    def dump_globals(self, target):
        self.calls.append(('globals', None, None))
        self._write('globals', target, b"-- globals: roles and tablespaces\n")

    def dump_schema(self, database, target):
        self.calls.append(('schema', database, None))
        self._write(database, target, f"-- schema of {database}\n".encode())

    def dump_full(self, database, target, dump_format='plain'):
        self.calls.append(('full', database, dump_format))
        self._write(database, target, f"-- {dump_format} dump of {database}\n".encode())


class FakeQueryProvider:
    """Catalog provider returning fixed entries, sorted by name."""

    def __init__(self, entries=None, error=None):
        self.entries = sorted(entries or [], key=lambda entry: entry.name)
        self.error = error
        self.calls = 0

    def fetch_catalog(self):
        self.calls += 1
        if self.error:
            raise EnumerationError(self.error)
        return list(self.entries)


class FakeEncryptor:
    """
    Writes ``<file>.gpg`` containing a marker followed by the plaintext.

    Raises EncryptionError when no recipient is given or ``fail`` is set.
    """

    MARKER = b'FAKEGPG:'

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def encrypt(self, path, recipient):
        path = Path(path)
        self.calls.append((path.name, recipient))
        if not recipient:
            raise EncryptionError("No GPG key configured (GPG_KEY_ID is empty)")
        if self.fail:
            raise EncryptionError("simulated gpg failure")

        target = path.with_name(path.name + '.gpg')
        target.write_bytes(self.MARKER + path.read_bytes())
        return target

    @classmethod
    def decrypt_bytes(cls, data):
        assert data.startswith(cls.MARKER)
        return data[len(cls.MARKER):]


class FakeShredder:
    """
    Unlinks files, recording them.

    Asserts that the encrypted sibling already exists, so a test fails if
    plaintext is ever shredded before its encrypted copy is on disk. With
    ``fail`` set the file is left in place and SecureDeleteError is raised.
    """

    def __init__(self, fail=False):
        self.fail = fail
        self.shredded = []

    def shred(self, path):
        path = Path(path)
        assert path.with_name(path.name + '.gpg').is_file(), "plaintext shredded before encryption"
        if self.fail:
            raise SecureDeleteError(f"Failed to shred {path.name}: device busy")
        self.shredded.append(path.name)
        path.unlink()


def catalog(*names, templates=('template0', 'template1')):
    """Catalog entries for ``names`` plus PostgreSQL's template databases."""
    entries = [CatalogEntry(name=name) for name in names]
    entries.append(CatalogEntry(name='template0', is_template=True, allow_connections=False)
                   if 'template0' in templates else None)
    entries.append(CatalogEntry(name='template1', is_template=True, allow_connections=True)
                   if 'template1' in templates else None)
    return [entry for entry in entries if entry is not None]


@pytest.fixture
def backup_root(tmp_path):
    """Backup root directory (created on demand by the code under test)."""
    return tmp_path / 'backups'


@pytest.fixture
def make_config(backup_root):
    """
    Factory for BackupConfig objects.

    Globals, plain and custom backups are enabled by default; keyword
    arguments override any field.
    """
    def _make(**overrides):
        config = BackupConfig(
            backup_dir=backup_root,
            enable_globals_backups=True,
            enable_plain_backups=True,
            enable_custom_backups=True,
        )
        return replace(config, **overrides)

    return _make


@pytest.fixture
def fake_dumps():
    return FakeDumpProvider()


@pytest.fixture
def fake_query():
    return FakeQueryProvider(catalog('app', 'audit', 'logs'))


@pytest.fixture
def fake_encryptor():
    return FakeEncryptor()


@pytest.fixture
def fake_shredder():
    return FakeShredder()


@pytest.fixture
def make_pipeline(make_config, fake_encryptor, fake_shredder):
    """Factory for an ArtifactPipeline using the fake encryption providers."""
    def _make(**config_overrides):
        return ArtifactPipeline(
            make_config(**config_overrides),
            fake_encryptor,
            fake_shredder,
            LocalFilesystem(),
        )

    return _make


@pytest.fixture
def make_executor(make_config, fake_dumps, fake_query, fake_encryptor, fake_shredder):
    """Factory for a BackupExecutor wired to the fake providers."""
    def _make(config=None, dumps=None, query=None, **config_overrides):
        return BackupExecutor(
            config or make_config(**config_overrides),
            dump_provider=dumps or fake_dumps,
            query_provider=query or fake_query,
            encryptor=fake_encryptor,
            shredder=fake_shredder,
            filesystem=LocalFilesystem(),
        )

    return _make


@pytest.fixture
def make_query():
    """Factory for a FakeQueryProvider: ``make_query('app', 'logs', error=None)``."""
    def _make(*names, error=None):
        return FakeQueryProvider(catalog(*names), error=error)

    return _make


@pytest.fixture
def make_dumps():
    """Factory for a FakeDumpProvider failing for the given labels."""
    def _make(fail=None):
        return FakeDumpProvider(fail=fail)

    return _make
