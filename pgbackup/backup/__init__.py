"""
Backup engine for pg-backup-rotated.

This module handles the core backup functionality including:
- Retention tiers and eviction of expired runs
- Database enumeration
- Dumps, hashing, encryption and archiving of each artifact
- Run orchestration
"""

from .executor import BackupExecutor, BackupRun
from .databases import DatabaseEnumerator, SQLAlchemyQueryProvider
from .dumps import PgDumpProvider
from .filesystem import LocalFilesystem
from .pipeline import ArtifactPipeline, ArtifactResult
from .retention import RetentionManager, RetentionTier, classify

__all__ = [
    'BackupExecutor',
    'BackupRun',
    'DatabaseEnumerator',
    'SQLAlchemyQueryProvider',
    'PgDumpProvider',
    'LocalFilesystem',
    'ArtifactPipeline',
    'ArtifactResult',
    'RetentionManager',
    'RetentionTier',
    'classify',
]
