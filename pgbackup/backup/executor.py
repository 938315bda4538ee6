"""
Backup executor - orchestrates one rotated backup run.

Workflow:
1. Determine today's retention tier
2. Delete expired directories of that tier
3. Create today's backup directory
4. Back up cluster globals (a failure here ends the run)
5. Schema-only backup of every database matching SCHEMA_ONLY_LIST
6. Full backup (plain and/or custom format) of every other database
7. Summarize: per-artifact outcome, directory listing, elapsed time
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from functools import partial
from pathlib import Path
from typing import List, Optional

from ..utils.encryption import GpgEncryptor, ShredSecureDelete
from ..utils.presentation import (
    double_border, emit, format_elapsed, format_size, header, rule, single_border
)
from .databases import DatabaseEnumerator, EnumerationError, SQLAlchemyQueryProvider, is_excluded
from .dumps import CUSTOM, PLAIN, PgDumpProvider
from .filesystem import FilesystemError, LocalFilesystem
from .pipeline import IN_PROGRESS_SUFFIX, SCRATCH_SUFFIX, ArtifactPipeline, ArtifactResult
from .retention import EvictionReport, RetentionManager, RetentionTier, backup_dir_for, classify

logger = logging.getLogger(__name__)


@dataclass
class BackupRun:
    """State of a single run, discarded when the process exits."""

    tier: RetentionTier
    run_date: date
    backup_dir: Path
    started_at: datetime
    finished_at: Optional[datetime] = None
    eviction: Optional[EvictionReport] = None
    results: List[ArtifactResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    fatal_error: Optional[str] = None
    elapsed_seconds: float = 0.0
    clock_start: float = field(default_factory=time.monotonic, repr=False)

    @property
    def failed_results(self) -> List[ArtifactResult]:
        return [result for result in self.results if not result.succeeded]

    @property
    def exit_code(self) -> int:
        # Failed targets only show up in the summary
        return 1 if self.fatal_error else 0


class BackupExecutor:
    """
    Orchestrates the complete backup workflow for one run.

    Artifacts are produced one at a time, in order: globals, schema-only
    databases, full databases.
    """

    def __init__(self, config, dump_provider, query_provider, encryptor, shredder,
                 filesystem=None):
        """
        Initialize backup executor.

        Args:
            config: BackupConfig for the run
            dump_provider: Produces globals, schema-only and full dumps
            query_provider: Lists the databases of the cluster
            encryptor: Encrypts payloads for the configured GPG key
            shredder: Securely deletes clear-text payloads
            filesystem: Filesystem provider (defaults to LocalFilesystem)
        """
        self.config = config
        self.dumps = dump_provider
        self.filesystem = filesystem or LocalFilesystem()
        self.enumerator = DatabaseEnumerator(query_provider)
        self.retention = RetentionManager(config.backup_dir, self.filesystem)
        self.pipeline = ArtifactPipeline(config, encryptor, shredder, self.filesystem)

    @classmethod
    def from_config(cls, config) -> 'BackupExecutor':
        """Executor wired to the PostgreSQL client tools, gpg and shred."""
        return cls(
            config,
            dump_provider=PgDumpProvider.from_config(config),
            query_provider=SQLAlchemyQueryProvider.from_config(config),
            encryptor=GpgEncryptor(),
            shredder=ShredSecureDelete(),
            filesystem=LocalFilesystem(),
        )

    def execute(self, now: Optional[datetime] = None) -> BackupRun:
        """
        Run the backups for ``now`` (defaults to the current time).

        Returns:
            BackupRun with every artifact result; ``exit_code`` is non-zero
            only when the run was aborted
        """
        now = now or datetime.now()
        today = now.date()

        emit(header(f"BACKUP LOG FOR {today.isoformat()}"))
        logger.info(f"Start time: {now.strftime('%H:%M:%S')}")

        tier, eviction_rule = classify(today, self.config)
        emit(double_border(f"{tier.value.upper()} BACKUP"))

        run = BackupRun(
            tier=tier,
            run_date=today,
            backup_dir=backup_dir_for(self.config.backup_dir, today, tier),
            started_at=now,
        )

        run.eviction = self.retention.evict(eviction_rule, now)

        try:
            self._prepare_directory(run, now)
        except FilesystemError as e:
            run.fatal_error = f"Cannot create backup directory in {run.backup_dir}: {e}"
            logger.error(f"[!!ERROR!!] {run.fatal_error}. Go and fix it!")
            return self._finish(run)

        if not self._backup_globals(run):
            return self._finish(run)

        self._backup_schema_only(run)
        self._backup_full(run)

        return self._finish(run)

    def _prepare_directory(self, run: BackupRun, now: datetime):
        logger.info(f"Making backup directory in {run.backup_dir}...")
        self.filesystem.make_dir(run.backup_dir, 0o775)
        logger.info("Ok")

        # Leftovers of runs killed mid-dump
        max_age = timedelta(hours=self.config.stale_in_progress_hours)
        try:
            stale = self.filesystem.purge_stale(
                self.config.backup_dir, IN_PROGRESS_SUFFIX, max_age, now, container_suffix=SCRATCH_SUFFIX
            )
        except FilesystemError as e:
            logger.warning(f"Failed to remove stale in-progress files: {e}")
            return
        for path in stale:
            logger.info(f"Removed stale in-progress leftover: {path}")

    def _run_artifact(self, run: BackupRun, artifact_name: str, dump_operation,
                      payload_name: str) -> ArtifactResult:
        result = self.pipeline.run(artifact_name, dump_operation, payload_name, run.backup_dir)
        run.results.append(result)
        return result

    def _backup_globals(self, run: BackupRun) -> bool:
        emit(rule())
        if not self.config.enable_globals_backups:
            logger.info("Global backups disabled.")
            return True

        logger.info("Performing globals backup.")
        result = self._run_artifact(run, 'globals', self.dumps.dump_globals, 'globals.sql')

        if not result.succeeded:
            # Later dumps need the same cluster connection, stop here
            run.fatal_error = f"Failed to produce globals backup ({result.stage}): {result.error}"
            logger.error(f"[!!ERROR!!] {run.fatal_error}")
            return False
        return True

    def _backup_schema_only(self, run: BackupRun):
        emit(rule())
        if not self.config.schema_only_enabled:
            logger.info("Schema-only backups disabled (SCHEMA_ONLY_LIST is empty).")
            return

        logger.info("Performing schema-only backups.")
        try:
            databases = self.enumerator.list_schema_only(self.config.schema_only_patterns)
        except EnumerationError as e:
            self._enumeration_failed(run, 'schema-only', e)
            return

        logger.info(f"The following databases were matched for schema-only backup: {', '.join(databases) or '(none)'}")

        for database in databases:
            logger.info(f"Schema-only backup of {database}.")
            self._run_artifact(
                run,
                f"{database}_schema",
                partial(self.dumps.dump_schema, database),
                f"{database}_schema.sql",
            )

    def _backup_full(self, run: BackupRun):
        emit(rule())
        if not self.config.full_backups_enabled:
            logger.info("Full backups disabled (plain and custom formats are both off).")
            return

        logger.info("Performing full backups.")
        try:
            databases = self.enumerator.list_full(self.config.schema_only_patterns)
        except EnumerationError as e:
            self._enumeration_failed(run, 'full', e)
            return

        for database in databases:
            emit(single_border(database))

            if is_excluded(database, self.config.exclude_list):
                logger.info(f"Skipping {database} database.")
                run.skipped.append(database)
                continue

            emit(rule('-'))
            if self.config.enable_plain_backups:
                logger.info(f"Plain text backup of {database} database.")
                self._run_artifact(
                    run,
                    database,
                    partial(self.dumps.dump_full, database, dump_format=PLAIN),
                    f"{database}.sql",
                )
            else:
                logger.info("Plain text backup is disabled.")

            emit(rule('-'))
            if self.config.enable_custom_backups:
                logger.info(f"Custom backup of {database} database.")
                self._run_artifact(
                    run,
                    f"{database}_custom",
                    partial(self.dumps.dump_full, database, dump_format=CUSTOM),
                    f"{database}.custom",
                )
            else:
                logger.info("Custom backup is disabled.")

    def _enumeration_failed(self, run: BackupRun, phase: str, error: EnumerationError):
        message = f"Could not list databases for {phase} backups: {error}"
        logger.error(f"[!!ERROR!!] {message}")
        run.errors.append(message)

    def _finish(self, run: BackupRun) -> BackupRun:
        run.finished_at = datetime.now()
        run.elapsed_seconds = time.monotonic() - run.clock_start

        emit(rule())
        if run.fatal_error:
            logger.error(f"Backup aborted: {run.fatal_error}")
        else:
            logger.info("All databases backups done.")

        for result in run.results:
            if result.succeeded:
                logger.info(result.describe())
            else:
                logger.error(result.describe())

        if run.skipped:
            logger.info(f"Skipped databases: {', '.join(run.skipped)}")

        if run.backup_dir.is_dir():
            emit(rule())
            logger.info(f"Showing files in {run.backup_dir}")
            try:
                listing = self.filesystem.listing(run.backup_dir)
            except FilesystemError as e:
                logger.warning(f"Failed to list {run.backup_dir}: {e}")
                listing = []
            for item in listing:
                logger.info(f"  {format_size(item['size']):>10}  {item['name']}")

        failures = len(run.failed_results) + len(run.errors) + (1 if run.fatal_error else 0)
        emit(rule())
        logger.info(
            f"Artifacts: {len(run.results) - len(run.failed_results)} succeeded, "
            f"{len(run.failed_results)} failed, {len(run.skipped)} skipped"
        )
        if failures:
            logger.error(f"Backup finished with {failures} error(s)")
        logger.info(f"The backup took {format_elapsed(run.elapsed_seconds)}")

        return run
