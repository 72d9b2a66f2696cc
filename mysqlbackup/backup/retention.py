"""
Retention policy enforcement for backups.

Deletes objects from the backup bucket once they are older than the
configured retention window.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .storage import S3Storage, RemoteObject, StorageError

logger = logging.getLogger(__name__)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def select_expired(objects: List[RemoteObject], retention_days: int, now: Optional[datetime] = None) -> List[RemoteObject]:
    """
    Filter objects whose last modification is older than the retention window.

    Args:
        objects: Listed bucket objects
        retention_days: Maximum age in days
        now: Reference time (default: current UTC time)

    Returns:
        Objects strictly older than now - retention_days
    """
    if now is None:
        now = datetime.now(timezone.utc)
    cutoff = _as_utc(now) - timedelta(days=retention_days)
    return [obj for obj in objects if _as_utc(obj.last_modified) < cutoff]


class RetentionManager:
    """
    Manages retention policy enforcement for a backup bucket.

    Lists a single page of objects and deletes the expired ones concurrently.
    A failed delete is logged and does not stop the others.
    """

    def __init__(self, storage: S3Storage, retention_days: int):
        """
        Initialize retention manager.

        Args:
            storage: Handler bound to the backup bucket
            retention_days: Maximum age in days; 0 or less disables pruning
        """
        self.storage = storage
        self.retention_days = retention_days

    async def prune(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Delete expired objects from the bucket.

        Returns:
            Dict with summary of cleanup operations:
            {
                'listed': int,
                'deleted': List[str],
                'errors': List[str]
            }
        """
        summary = {
            'listed': 0,
            'deleted': [],
            'errors': []
        }

        if self.retention_days <= 0:
            logger.info("Retention disabled, skipping pruning")
            return summary

        try:
            objects = await asyncio.to_thread(self.storage.list_objects)
        except StorageError as e:
            error_msg = f"Failed to list bucket {self.storage.bucket_name}: {e}"
            logger.error(error_msg)
            summary['errors'].append(error_msg)
            return summary

        summary['listed'] = len(objects)
        expired = select_expired(objects, self.retention_days, now)
        logger.info(
            f"Retention {self.retention_days} days: {len(expired)} of "
            f"{len(objects)} object(s) expired in {self.storage.bucket_name}"
        )

        results = await asyncio.gather(*(self._delete(obj) for obj in expired))

        for obj, error in zip(expired, results):
            if error is None:
                summary['deleted'].append(obj.key)
            else:
                summary['errors'].append(error)

        return summary

    async def _delete(self, obj: RemoteObject) -> Optional[str]:
        try:
            await asyncio.to_thread(self.storage.delete, obj.key)
        except StorageError as e:
            error_msg = f"Failed to prune {obj.key}: {e}"
            logger.error(error_msg)
            return error_msg
        except Exception as e:
            error_msg = f"Unexpected error pruning {obj.key}: {e}"
            logger.exception(error_msg)
            return error_msg

        logger.info(f"Pruned {obj.key} (from bucket {self.storage.bucket_name})")
        return None
