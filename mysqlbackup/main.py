import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from mysqlbackup import configure_logging
from mysqlbackup.config import config as config_classes
from mysqlbackup.backup.executor import run_backup

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Dump MySQL databases to S3-compatible object storage.')
    parser.add_argument(
        '--env',
        choices=sorted(config_classes),
        default=os.environ.get('BACKUP_ENV', 'default'),
        help='Configuration profile (default: BACKUP_ENV or production).',
    )
    parser.add_argument(
        '--identifier',
        help='Deployment identifier; settings are read from <identifier>.yaml (default: IMAGE_TAG).',
    )
    parser.add_argument(
        '--retention-days',
        type=int,
        help='Delete backups older than this many days (default: BACKUP_RETENTION_DAYS or 30).',
    )
    parser.add_argument(
        '--work-dir',
        help='Directory dumps are written to (default: BACKUP_WORK_DIR or current directory).',
    )
    parser.add_argument(
        '--no-sweep',
        action='store_true',
        help="Only delete this run's dump files instead of every .sql file in the work directory.",
    )
    parser.add_argument(
        '--schedule',
        help='Crontab expression; keep running and back up on this schedule (default: BACKUP_SCHEDULE).',
    )
    parser.add_argument(
        '--run-now',
        action='store_true',
        help='With a schedule, also run a backup immediately.',
    )
    parser.add_argument('--log-level', help='Log level (default: LOG_LEVEL or INFO).')
    parser.add_argument('--log-dir', help='Write a rotating log file to this directory.')
    return parser.parse_args(argv)


def _retention_days(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(
            f"BACKUP_RETENTION_DAYS must be a whole number of days, got {value!r}"
        ) from None


def build_config(args: argparse.Namespace):
    """
    Derive a config class from the selected profile and CLI overrides.

    Raises:
        ValueError: If the retention window is not a whole number of days
    """
    base = config_classes[args.env]
    overrides = {
        'CONFIG_IDENTIFIER': args.identifier,
        'WORK_DIR': args.work_dir,
        'SCHEDULE_CRON': args.schedule,
        'LOG_LEVEL': args.log_level,
        'LOG_DIR': args.log_dir,
    }
    overrides = {name: value for name, value in overrides.items() if value is not None}

    # Environment values arrive as strings
    if args.retention_days is not None:
        overrides['RETENTION_DAYS'] = args.retention_days
    elif not isinstance(base.RETENTION_DAYS, int):
        overrides['RETENTION_DAYS'] = _retention_days(base.RETENTION_DAYS)

    if args.no_sweep:
        overrides['CLEANUP_SWEEP'] = False
    if not overrides:
        return base
    return type('CliConfig', (base,), overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    base = config_classes[args.env]
    configure_logging(args.log_level or base.LOG_LEVEL, args.log_dir or base.LOG_DIR)

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if config.SCHEDULE_CRON:
        from mysqlbackup.scheduler import run_scheduler
        return run_scheduler(config, run_now=args.run_now)

    try:
        summary = run_backup(config)
    except Exception as e:
        logger.error(f"Backup run failed: {e}")
        return 1

    for job in summary.failed_jobs:
        logger.error(f"Database {job.database} not backed up: {job.error}")
    return summary.exit_code


if __name__ == '__main__':
    sys.exit(main())
