"""
Retention policy for rotated backups.

Every run is assigned exactly one retention tier, checked in priority order:

1. monthly - the first day of the calendar month
2. weekly  - the configured day of the week (1 = Monday ... 7 = Sunday)
3. daily   - any other day

The first of the month always wins, even when it also falls on the weekly
day. Before today's directory is created, expired directories of the same
tier are removed. Monthly directories are replaced every month rather than
aged out.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import BackupError
from .filesystem import FilesystemError

logger = logging.getLogger(__name__)


class EvictionError(BackupError):
    """Raised when an expired backup directory cannot be removed."""
    pass


class RetentionTier(Enum):
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'

    @property
    def suffix(self) -> str:
        return f"-{self.value}"


@dataclass(frozen=True)
class EvictionRule:
    """
    Which existing backup directories to remove before a run.

    Attributes:
        tier: Only directories whose name ends with this tier's suffix match
        max_age_days: Directories older than this many days are removed;
            None removes every matching directory regardless of age
    """

    tier: RetentionTier
    max_age_days: Optional[int]

    def matches(self, name: str) -> bool:
        return name.endswith(self.tier.suffix)

    def is_expired(self, modified: datetime, now: datetime) -> bool:
        if self.max_age_days is None:
            return True
        return now - modified > timedelta(days=self.max_age_days)

    def describe(self) -> str:
        if self.max_age_days is None:
            return f"all {self.tier.value} directories"
        return f"{self.tier.value} directories older than {self.max_age_days} day(s)"


def classify(today: date, config) -> Tuple[RetentionTier, EvictionRule]:
    """
    Pick the retention tier for ``today`` and the eviction rule that goes with it.

    Args:
        today: Date of the run
        config: BackupConfig (uses day_of_week_to_keep, weeks_to_keep, days_to_keep)

    Returns:
        Tuple of (tier, eviction rule)
    """
    if today.day == 1:
        return RetentionTier.MONTHLY, EvictionRule(RetentionTier.MONTHLY, None)

    if today.isoweekday() == config.day_of_week_to_keep:
        # One extra day absorbs scheduling jitter between weekly runs
        expired_days = config.weeks_to_keep * 7 + 1
        return RetentionTier.WEEKLY, EvictionRule(RetentionTier.WEEKLY, expired_days)

    return RetentionTier.DAILY, EvictionRule(RetentionTier.DAILY, config.days_to_keep)


def backup_dir_for(backup_root, today: date, tier: RetentionTier) -> Path:
    """Directory for a run: ``{backup_root}/{YYYY-MM-DD}-{tier}``."""
    return Path(backup_root) / f"{today.isoformat()}{tier.suffix}"


@dataclass
class EvictionReport:
    """Outcome of applying an eviction rule."""

    tier: RetentionTier
    removed: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class RetentionManager:
    """
    Applies eviction rules to the directories under the backup root.

    Removal failures are logged and reported but never raised: the
    directory is simply tried again on the next run.
    """

    def __init__(self, backup_root, filesystem):
        """
        Initialize retention manager.

        Args:
            backup_root: Directory holding one sub-directory per run
            filesystem: Filesystem provider used to list and remove directories
        """
        self.backup_root = Path(backup_root)
        self.filesystem = filesystem

    def expired_directories(self, rule: EvictionRule, now: datetime) -> List[Path]:
        """
        Directories under the backup root that ``rule`` selects for removal.

        Raises:
            EvictionError: If the backup root cannot be listed
        """
        try:
            children = self.filesystem.list_children(self.backup_root)
        except FilesystemError as e:
            raise EvictionError(f"Cannot list {self.backup_root}: {e}")

        return [
            child['path'] for child in children
            if child['is_dir']
            and rule.matches(child['path'].name)
            and rule.is_expired(child['modified'], now)
        ]

    def evict(self, rule: EvictionRule, now: Optional[datetime] = None) -> EvictionReport:
        """
        Remove every directory selected by ``rule``.

        Args:
            rule: Eviction rule for the current tier
            now: Reference time for age checks (defaults to now)

        Returns:
            EvictionReport listing removed directories and errors
        """
        now = now or datetime.now()
        report = EvictionReport(tier=rule.tier)

        logger.info(f"Deleting {rule.describe()}")

        try:
            expired = self.expired_directories(rule, now)
        except EvictionError as e:
            logger.error(f"[!!ERROR!!] {e}")
            report.errors.append(str(e))
            return report

        for directory in expired:
            try:
                self._remove(directory)
                report.removed.append(directory)
                logger.info(f"Deleted expired backup directory: {directory.name}")
            except EvictionError as e:
                logger.error(f"[!!ERROR!!] {e} (will retry on next run)")
                report.errors.append(str(e))

        if not expired:
            logger.info("No expired directories found")

        return report

    def _remove(self, directory: Path):
        try:
            self.filesystem.remove_tree(directory)
        except FilesystemError as e:
            raise EvictionError(f"Failed to delete expired directory {directory}: {e}")
