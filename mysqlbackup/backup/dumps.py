"""
Database dumps through the mysqldump command line tool.

Each configured database becomes one DumpJob writing a single
{database}_{ISO8601 timestamp}.sql file into the work directory.
"""

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .settings import BackupSettings

logger = logging.getLogger(__name__)


class DumpError(Exception):
    """Raised when the dump tool fails for a database."""
    pass


@dataclass
class DumpJob:
    database_name: str
    user: str
    password: str = field(repr=False)
    host: str
    port: int
    target_path: str

    @property
    def filename(self) -> str:
        return os.path.basename(self.target_path)


def dump_filename(database_name: str, now: Optional[datetime] = None) -> str:
    """
    Generate a dump filename with local ISO 8601 timestamp.

    Format: {database}_{YYYY-MM-DDTHH:MM:SS.mmm+HH:MM}.sql
    """
    if now is None:
        now = datetime.now()
    if now.tzinfo is None:
        now = now.astimezone()
    return f"{database_name}_{now.isoformat(timespec='milliseconds')}.sql"


def build_jobs(settings: BackupSettings, work_dir: str, now: Optional[datetime] = None) -> List[DumpJob]:
    """
    Create one DumpJob per configured database.

    All files of a run share one timestamp; database names are unique
    (see parse_settings), so every job gets its own target path.
    """
    if now is None:
        now = datetime.now()
    jobs = []
    for database in settings.mysql.databases:
        jobs.append(DumpJob(
            database_name=database.name,
            user=database.user,
            password=database.password,
            host=settings.mysql.host,
            port=settings.mysql.port,
            target_path=os.path.join(work_dir, dump_filename(database.name, now))
        ))
    return jobs


class MySQLDumper:
    """
    Runs mysqldump as an asyncio subprocess.

    The password travels in MYSQL_PWD so it never shows up in the process list.
    """

    def __init__(self, binary: str = 'mysqldump', extra_options: str = ''):
        self.binary = binary
        self.extra_options = shlex.split(extra_options or '')

    def build_command(self, job: DumpJob) -> List[str]:
        return [
            self.binary,
            *self.extra_options,
            f'--host={job.host}',
            f'--port={job.port}',
            f'--user={job.user}',
            f'--result-file={job.target_path}',
            job.database_name
        ]

    def _build_env(self, job: DumpJob) -> dict:
        env = os.environ.copy()
        if job.password:
            env['MYSQL_PWD'] = job.password
        else:
            env.pop('MYSQL_PWD', None)
        return env

    async def dump(self, job: DumpJob) -> str:
        """
        Dump one database to job.target_path.

        Returns:
            Path to the dump file

        Raises:
            DumpError: If mysqldump cannot be started or exits non-zero
        """
        cmd = self.build_command(job)
        logger.debug(f"Running {' '.join(shlex.quote(part) for part in cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                env=self._build_env(job),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise DumpError(f"Failed to start {self.binary} for {job.database_name}: {e}") from e

        _, stderr = await process.communicate()

        if process.returncode != 0:
            message = stderr.decode('utf-8', 'replace').strip() if stderr else 'unknown error'
            raise DumpError(
                f"{self.binary} failed for {job.database_name} "
                f"(exit code {process.returncode}): {message}"
            )

        if not os.path.exists(job.target_path):
            raise DumpError(f"{self.binary} produced no file for {job.database_name}")

        return job.target_path
