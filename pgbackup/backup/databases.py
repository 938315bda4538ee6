"""
Database enumeration.

Builds the two target lists of a run from the cluster catalog:

- schema-only: databases matching ANY schema-only pattern
- full: connectable, non-template databases matching NONE of them

The two lists are disjoint by construction. Patterns are regular
expressions searched anywhere in the name, like PostgreSQL's ``~``
operator, so a plain word acts as a substring match.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from ..errors import BackupError

logger = logging.getLogger(__name__)


CATALOG_QUERY = text(
    "SELECT datname, datistemplate, datallowconn FROM pg_database ORDER BY datname"
)


class EnumerationError(BackupError):
    """Raised when the list of databases cannot be read from the cluster."""
    pass


@dataclass(frozen=True)
class CatalogEntry:
    """One row of the cluster's database catalog."""

    name: str
    is_template: bool = False
    allow_connections: bool = True


class QueryProvider(Protocol):
    def fetch_catalog(self) -> List[CatalogEntry]:
        ...


class SQLAlchemyQueryProvider:
    """
    Reads ``pg_database`` through SQLAlchemy.

    The password is not part of the configuration: libpq picks it up from
    ``~/.pgpass`` or ``PGPASSWORD`` like the dump tools do.
    """

    def __init__(self, hostname: str, port: int, username: str,
                 database: str = 'postgres', engine=None):
        self.url = URL.create(
            'postgresql+psycopg2',
            username=username,
            host=hostname,
            port=port,
            database=database,
        )
        self._engine = engine

    @classmethod
    def from_config(cls, config) -> 'SQLAlchemyQueryProvider':
        return cls(config.hostname, config.port, config.username)

    @property
    def engine(self):
        if self._engine is None:
            self._engine = create_engine(self.url, poolclass=NullPool)
        return self._engine

    def fetch_catalog(self) -> List[CatalogEntry]:
        """
        Read every database of the cluster, sorted by name.

        Raises:
            EnumerationError: If the catalog query fails
        """
        try:
            with self.engine.connect() as connection:
                rows = connection.execute(CATALOG_QUERY).all()
        except SQLAlchemyError as e:
            raise EnumerationError(
                f"Failed to list databases on {self.url.host}:{self.url.port}: {e}"
            )

        return [
            CatalogEntry(name=row[0], is_template=bool(row[1]), allow_connections=bool(row[2]))
            for row in rows
        ]


def _matches_any(name: str, patterns: Iterable[str]) -> bool:
    return any(re.search(pattern, name) for pattern in patterns)


class DatabaseEnumerator:
    """Turns the cluster catalog into schema-only and full target lists."""

    def __init__(self, query_provider: QueryProvider):
        self.query_provider = query_provider

    def list_schema_only(self, patterns: Iterable[str]) -> List[str]:
        """
        Databases matching any of ``patterns``.

        An empty pattern list selects nothing.

        Raises:
            EnumerationError: If the catalog cannot be read
        """
        patterns = list(patterns)
        if not patterns:
            return []

        return [
            entry.name for entry in self.query_provider.fetch_catalog()
            if _matches_any(entry.name, patterns)
        ]

    def list_full(self, patterns_to_exclude: Iterable[str]) -> List[str]:
        """
        Connectable, non-template databases matching none of ``patterns_to_exclude``.

        Raises:
            EnumerationError: If the catalog cannot be read
        """
        patterns = list(patterns_to_exclude)
        return [
            entry.name for entry in self.query_provider.fetch_catalog()
            if not entry.is_template
            and entry.allow_connections
            and not _matches_any(entry.name, patterns)
        ]


def is_excluded(name: str, exclude_list: Optional[Iterable[str]]) -> bool:
    """True when ``name`` is one of the explicitly excluded database names."""
    return name in set(exclude_list or ())
