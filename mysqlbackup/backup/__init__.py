"""
Backup module for mysqlbackup.

This module handles the core backup functionality including:
- Settings retrieval from object storage
- Database dumps (mysqldump)
- Storage (S3-compatible object store)
- Local dump cleanup
- Execution orchestration
- Retention policy enforcement
"""

from .executor import BackupExecutor, run_backup
from .settings import load_settings, BackupSettings
from .dumps import MySQLDumper, DumpJob
from .storage import S3Storage
from .cleanup import cleanup_local_dumps
from .retention import RetentionManager

__all__ = [
    'BackupExecutor',
    'run_backup',
    'load_settings',
    'BackupSettings',
    'MySQLDumper',
    'DumpJob',
    'S3Storage',
    'cleanup_local_dumps',
    'RetentionManager'
]
