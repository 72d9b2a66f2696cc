"""
APScheduler configuration for recurring backup runs.

Manages:
- The recurring backup run (cron expression from BACKUP_SCHEDULE)
- An optional immediate run at startup
"""

import logging
import signal
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from mysqlbackup.backup.executor import run_backup

logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'database_backup'

# Global scheduler instance and the config it runs with
scheduler = None
backup_config = None


def init_scheduler(config):
    """
    Initialize and configure APScheduler.

    Args:
        config: Config class with SCHEDULE_CRON set

    Raises:
        ValueError: If the cron expression is missing or invalid
    """
    global scheduler, backup_config

    if scheduler is not None:
        return scheduler

    if not config.SCHEDULE_CRON:
        raise ValueError("No backup schedule configured (BACKUP_SCHEDULE)")

    # Parse before creating anything so a bad expression leaves no state behind
    trigger = CronTrigger.from_crontab(config.SCHEDULE_CRON, timezone=config.SCHEDULER_TIMEZONE)

    backup_config = config

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending runs into one
        'max_instances': 1,  # Only one backup run at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=config.SCHEDULER_TIMEZONE
    )

    scheduler.add_job(
        func=_execute_backup_wrapper,
        trigger=trigger,
        id=BACKUP_JOB_ID,
        name='Database Backup',
        replace_existing=True
    )

    logger.info(f"Scheduled database backup ({config.SCHEDULE_CRON}, {config.SCHEDULER_TIMEZONE})")
    return scheduler


def trigger_backup_now():
    """
    Queue a one-time backup run right after the scheduler starts.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    now = datetime.now(timezone.utc)
    scheduler.add_job(
        func=_execute_backup_wrapper,
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=f"manual_{int(now.timestamp())}",
        name='Manual: Database Backup',
        replace_existing=False
    )
    logger.info("Queued immediate backup run")


def start_scheduler():
    """
    Start the APScheduler and block until it is shut down.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    job = scheduler.get_job(BACKUP_JOB_ID)
    if job is not None and getattr(job, 'next_run_time', None):
        logger.info(f"Next backup run: {job.next_run_time.isoformat()}")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        pass
    logger.info("Scheduler stopped")


def stop_scheduler(*_args):
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Stopping scheduler")


def run_scheduler(config, run_now: bool = False) -> int:
    """
    Run backups on the configured schedule until stopped.

    Returns:
        Process exit code
    """
    try:
        init_scheduler(config)
    except ValueError as e:
        logger.error(f"Invalid backup schedule: {e}")
        return 1

    if run_now:
        trigger_backup_now()

    signal.signal(signal.SIGTERM, stop_scheduler)
    start_scheduler()
    return 0


def _execute_backup_wrapper():
    """
    Run one backup in scheduler context.

    Failures are logged; the scheduler keeps running.
    """
    try:
        logger.info("Scheduler starting backup run")
        summary = run_backup(backup_config)
        if summary.exit_code != 0:
            logger.warning(f"Scheduled backup run completed with errors (exit code {summary.exit_code})")
        else:
            logger.info(
                f"Scheduled backup run completed: {len(summary.jobs) - len(summary.failed_jobs)} "
                f"succeeded, {len(summary.failed_jobs)} failed"
            )
    except Exception as e:
        logger.error(f"Scheduled backup run failed: {e}")
