"""
APScheduler configuration for unattended backup runs.

Manages:
- The recurring backup run (cron expression from BACKUP_SCHEDULE)
- Scheduler start/stop
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from pgbackup import create_orchestrator

logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'database_backup'

# Global scheduler instance and config reference
scheduler = None
backup_config = None


def init_scheduler(config):
    """
    Initialize and configure APScheduler.

    Args:
        config: pgbackup Config with BACKUP_SCHEDULE set

    Raises:
        ValueError: If BACKUP_SCHEDULE is missing or not a valid crontab expression
    """
    global scheduler, backup_config

    if scheduler is not None:
        return scheduler

    if not config.BACKUP_SCHEDULE:
        raise ValueError("BACKUP_SCHEDULE is not set")

    trigger = CronTrigger.from_crontab(config.BACKUP_SCHEDULE, timezone='UTC')
    backup_config = config

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one backup run at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(job_defaults=job_defaults, timezone='UTC')

    scheduler.add_job(
        func=run_scheduled_backup,
        trigger=trigger,
        id=BACKUP_JOB_ID,
        name='Database Backup',
        replace_existing=True
    )

    logger.info(f"Scheduled database backup ({config.BACKUP_SCHEDULE} UTC)")
    return scheduler


def run_scheduled_backup():
    """
    Execute one backup run from the scheduler.

    A fresh orchestrator is built per run so the run date and retention
    cutoff are taken at trigger time. Failures are logged and the scheduler
    keeps running.
    """
    try:
        results = create_orchestrator(backup_config).run()
        logger.info(f"Scheduled backup completed for {len(results)} database(s)")
    except Exception as e:
        logger.error(f"Scheduled backup failed: {e}")


def start_scheduler():
    """
    Start the APScheduler. Blocks until the scheduler is shut down.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    logger.info("Starting backup scheduler")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        stop_scheduler()


def stop_scheduler():
    """Stop the APScheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler stopped")
    scheduler = None
