"""
Backup executor - orchestrates a complete backup run.

Workflow:
1. Fetch and validate settings from the configuration bucket
2. Dump and upload every database concurrently
3. Delete local dump files
4. Prune expired objects from the backup bucket

A settings failure aborts the run with exit code 1. Failures in later
steps are logged and never stop the steps that follow.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .cleanup import cleanup_local_dumps
from .dumps import DumpError, DumpJob, MySQLDumper, build_jobs
from .retention import RetentionManager
from .settings import BackupSettings, ConfigError, load_settings
from .storage import S3Storage, StorageError, UploadError

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    database: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    dump_path: Optional[str] = None
    object_key: Optional[str] = None
    size_bytes: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == 'success'


@dataclass
class RunSummary:
    exit_code: int = 0
    jobs: List[JobResult] = field(default_factory=list)
    cleaned_files: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    prune_errors: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    @property
    def failed_jobs(self) -> List[JobResult]:
        return [job for job in self.jobs if not job.success]


class BackupExecutor:
    """
    Orchestrates one backup run for a deployment.
    """

    def __init__(self, config, storage: Optional[S3Storage] = None, dumper: Optional[MySQLDumper] = None):
        """
        Initialize backup executor.

        Args:
            config: Config class (see mysqlbackup.config)
            storage: Handler bound to the configuration bucket (default: built from config)
            dumper: Dump tool wrapper (default: MySQLDumper from config)
        """
        self.config = config
        self.storage = storage
        self.dumper = dumper or MySQLDumper(config.MYSQLDUMP_BIN, config.MYSQLDUMP_OPTIONS)
        self.settings: Optional[BackupSettings] = None
        self.logs: List[str] = []

    async def run(self) -> RunSummary:
        """
        Execute the backup run.

        Returns:
            RunSummary with per-database results and exit code
        """
        summary = RunSummary()

        try:
            await self._execute_workflow(summary)
        except Exception as e:
            self._log(f"Backup run failed: {e}", logging.ERROR)
            logger.debug("Backup run traceback", exc_info=True)
            summary.exit_code = 1

        summary.logs = self.logs
        return summary

    async def _execute_workflow(self, summary: RunSummary):
        """Execute the main backup workflow steps."""
        # Step 1: Load settings
        try:
            self.settings = await asyncio.to_thread(self._load_settings)
        except (ConfigError, StorageError) as e:
            self._log(f"Couldn't load configuration, exiting: {e}", logging.ERROR)
            summary.exit_code = 1
            return

        backup_storage = self.storage.for_bucket(self.settings.object_store.bucket)
        work_dir = self.config.WORK_DIR
        jobs = build_jobs(self.settings, work_dir)

        # Step 2: Dump and upload all databases
        try:
            os.makedirs(work_dir, exist_ok=True)
            summary.jobs = await self._backup_all(jobs, backup_storage)
        except Exception as e:
            self._log(f"Backup stage failed: {e}", logging.ERROR)

        succeeded = len([job for job in summary.jobs if job.success])
        self._log(f"Backed up {succeeded} of {len(jobs)} database(s)")

        # Step 3: Delete local dumps
        summary.cleaned_files = cleanup_local_dumps(
            [job.target_path for job in jobs],
            work_dir,
            sweep=self.config.CLEANUP_SWEEP
        )
        self._log(f"Deleted {len(summary.cleaned_files)} local dump file(s)")

        # Step 4: Prune expired backups
        retention_days = self.settings.effective_retention(self.config.RETENTION_DAYS)
        result = await RetentionManager(backup_storage, retention_days).prune()
        summary.pruned = result['deleted']
        summary.prune_errors = result['errors']
        self._log(
            f"Pruned {len(summary.pruned)} object(s) from {backup_storage.bucket_name} "
            f"({len(summary.prune_errors)} error(s))"
        )

    def _load_settings(self) -> BackupSettings:
        if self.storage is None:
            self.storage = S3Storage.from_config(self.config, self.config.CONFIG_BUCKET)
            self._log(f"Connected to {self.config.OBJ_HOST or 'default S3 endpoint'}")
        return load_settings(self.storage, self.config.CONFIG_IDENTIFIER)

    async def _backup_all(self, jobs: List[DumpJob], storage: S3Storage) -> List[JobResult]:
        """Run every dump+upload pair and wait for all of them."""
        async with asyncio.TaskGroup() as group:
            tasks = [
                group.create_task(self._backup_database(job, storage))
                for job in jobs
            ]
        return [task.result() for task in tasks]

    async def _backup_database(self, job: DumpJob, storage: S3Storage) -> JobResult:
        """
        Dump one database and upload the file.

        Never raises: failures are recorded on the returned JobResult so
        sibling jobs keep running.
        """
        result = JobResult(
            database=job.database_name,
            status='running',
            started_at=datetime.now(timezone.utc)
        )

        try:
            result.dump_path = await self.dumper.dump(job)
            result.size_bytes = os.path.getsize(result.dump_path)
            self._log(f"Dumped {job.database_name} to {job.filename} ({result.size_bytes / 1024 / 1024:.2f} MB)")

            result.object_key = await asyncio.to_thread(storage.upload, result.dump_path, job.filename)
            self._log(
                f"Successfully sent {result.object_key} to {storage.bucket_name} "
                f"on {self.config.OBJ_HOST or 'default S3 endpoint'}"
            )
            result.status = 'success'

        except (DumpError, UploadError) as e:
            result.status = 'failed'
            result.error = str(e)
            self._log(f"Backup of {job.database_name} failed: {e}", logging.ERROR)

        except Exception as e:
            result.status = 'failed'
            result.error = str(e)
            self._log(f"Backup of {job.database_name} failed unexpectedly: {e}", logging.ERROR)
            logger.debug("Backup job traceback", exc_info=True)

        finally:
            result.completed_at = datetime.now(timezone.utc)

        return result

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def run_backup(config) -> RunSummary:
    """
    Execute one backup run to completion.

    Args:
        config: Config class (see mysqlbackup.config)

    Returns:
        RunSummary from BackupExecutor.run()
    """
    executor = BackupExecutor(config)
    return asyncio.run(executor.run())
