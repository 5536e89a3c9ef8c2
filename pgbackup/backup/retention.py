"""
Retention policy enforcement for backups.

Deletes archives whose last-modified time falls before a cutoff computed once
from the run-start time. Listing follows continuation tokens until exhausted
and deletions are flushed in batches of at most MAX_DELETE_BATCH keys.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List

from .storage import MAX_DELETE_BATCH

logger = logging.getLogger(__name__)


def retention_cutoff(run_started_at: datetime, retention_days: int) -> datetime:
    """
    Compute the retention cutoff.

    Raises:
        ValueError: If retention_days is negative
    """
    if retention_days < 0:
        raise ValueError(f"retention_days must not be negative, got {retention_days}")
    return run_started_at - timedelta(days=retention_days)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RetentionPruner:
    """
    Prunes archives older than the retention window under a key prefix.

    The cutoff is a snapshot of run_started_at, shared by every pipeline of the
    run; objects uploaded earlier in the same run are never older than it.
    """

    def __init__(self, storage, extension: str, run_started_at: datetime):
        """
        Args:
            storage: S3Storage (or compatible) handler
            extension: Archive extension without dot, e.g. '7z'
            run_started_at: Run-start instant (timezone-aware)
        """
        self.storage = storage
        self.suffix = f".{extension}"
        self.run_started_at = _as_utc(run_started_at)

    def prune(self, bucket: str, key_prefix: str, retention_days: int) -> int:
        """
        Delete archives under key_prefix older than retention_days.

        Returns:
            Number of keys submitted for deletion

        Raises:
            StorageError: If listing or deletion fails
        """
        cutoff = retention_cutoff(self.run_started_at, retention_days)
        pending: List[str] = []
        deleted = 0
        token = None

        while True:
            entries, token = self.storage.list_page(bucket, key_prefix, token)

            for entry in entries:
                key = entry.get('Key')
                if not key or not key.endswith(self.suffix):
                    continue
                last_modified = entry.get('LastModified')
                if last_modified is None or _as_utc(last_modified) >= cutoff:
                    continue

                pending.append(key)
                if len(pending) == MAX_DELETE_BATCH:
                    self.storage.delete_batch(bucket, pending)
                    deleted += len(pending)
                    pending = []

            if not token:
                break

        if pending:
            self.storage.delete_batch(bucket, pending)
            deleted += len(pending)

        if deleted:
            logger.info(f"Pruned {deleted} archive(s) under {key_prefix} older than {cutoff.isoformat()}")
        else:
            logger.debug(f"Nothing to prune under {key_prefix}")

        return deleted
