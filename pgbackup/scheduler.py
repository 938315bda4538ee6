"""
In-process scheduling of backup runs.

Cron remains the usual way to trigger runs; ``--schedule`` keeps the process
alive instead and fires a run on the given crontab expression.
"""

import logging
from typing import Callable

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

JOB_ID = 'pg_backup_rotated'


def build_scheduler(job: Callable[[], None], cron_expression: str) -> BlockingScheduler:
    """
    Create a blocking scheduler running ``job`` on a crontab expression.

    Args:
        job: Callable performing one backup run
        cron_expression: Standard 5-field crontab expression (e.g. '0 3 * * *')

    Returns:
        Configured, not yet started, BlockingScheduler

    Raises:
        ValueError: If the crontab expression is invalid
    """
    trigger = CronTrigger.from_crontab(cron_expression)

    job_defaults = {
        'coalesce': True,  # Combine missed runs into one
        'max_instances': 1,  # Never two runs against the cluster at once
        'misfire_grace_time': 300
    }

    scheduler = BlockingScheduler(job_defaults=job_defaults)
    scheduler.add_job(
        func=job,
        trigger=trigger,
        id=JOB_ID,
        name='Rotated PostgreSQL backup',
        replace_existing=True
    )
    return scheduler


def run_scheduled(job: Callable[[], None], cron_expression: str):
    """
    Run ``job`` on schedule until the process is interrupted.

    Raises:
        ValueError: If the crontab expression is invalid
    """
    scheduler = build_scheduler(job, cron_expression)
    logger.info(f"Backups scheduled with '{cron_expression}'")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
