"""
Backup run orchestration.

enumerate databases -> run one pipeline per database through the bounded
pool -> remove the root scratch area -> report the aggregate outcome.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from typing import List, Optional

from .errors import EmptyTargetSet
from .executor import BackupPipeline, BackupResult
from .pool import run_pool
from .retention import RetentionPruner

logger = logging.getLogger(__name__)


class BackupOrchestrator:
    """
    Runs a full backup of every enumerated database.

    run_started_at is captured once and shared by every pipeline, so all
    archives of a run carry the same date and the same retention cutoff.
    """

    def __init__(
        self,
        enumerator,
        storage,
        dumper,
        archiver,
        bucket: str,
        prefix: str = 'db-backups/',
        retention_days: int = 7,
        concurrency: int = 2,
        temp_dir: Optional[str] = None,
        run_started_at: Optional[datetime] = None
    ):
        self.enumerator = enumerator
        self.storage = storage
        self.dumper = dumper
        self.archiver = archiver
        self.bucket = bucket
        self.prefix = prefix
        self.retention_days = retention_days
        self.concurrency = concurrency
        self.temp_dir = temp_dir
        self.run_started_at = run_started_at or datetime.now(timezone.utc)

        self.pruner = RetentionPruner(storage, archiver.extension, self.run_started_at)
        self.root_dir: Optional[str] = None

    def run(self) -> List[BackupResult]:
        """
        Back up every database.

        Returns:
            One BackupResult per database, in enumeration order

        Raises:
            EnumerationError: If the database list cannot be resolved
            EmptyTargetSet: If there is nothing to back up
            PoolError: If one or more pipelines failed
        """
        databases = self.enumerator.list_databases()
        if not databases:
            raise EmptyTargetSet("No databases found to back up.")

        logger.info(f"Backing up {len(databases)} database(s) with concurrency={self.concurrency}")

        if self.temp_dir:
            os.makedirs(self.temp_dir, exist_ok=True)
        self.root_dir = tempfile.mkdtemp(prefix='pgbkp-', dir=self.temp_dir)

        try:
            results = run_pool(databases, self._backup_database, self.concurrency)
        finally:
            self._cleanup()

        logger.info("All databases backed up successfully.")
        return results

    def create_pipeline(self, database: str) -> BackupPipeline:
        return BackupPipeline(
            database=database,
            root_dir=self.root_dir,
            storage=self.storage,
            dumper=self.dumper,
            archiver=self.archiver,
            pruner=self.pruner,
            bucket=self.bucket,
            prefix=self.prefix,
            retention_days=self.retention_days,
            run_started_at=self.run_started_at
        )

    def _backup_database(self, database: str) -> BackupResult:
        return self.create_pipeline(database).run()

    def _cleanup(self):
        """Remove the root scratch area; failures are logged only."""
        if self.root_dir and os.path.exists(self.root_dir):
            try:
                shutil.rmtree(self.root_dir)
            except Exception as e:
                logger.warning(f"Failed to cleanup scratch area {self.root_dir}: {e}")
