"""
Per-database backup pipeline.

Workflow:
1. Create an exclusive scratch directory
2. Dump the database (pg_dump)
3. Create an encrypted archive (7z)
4. Upload to object storage
5. Prune archives past the retention window
6. Cleanup the scratch directory (always, best-effort)

Stages run strictly in order, each exactly once. The first failing stage
aborts the rest and surfaces as a PipelineStageError.
"""

import enum
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .compression import archive_filename, get_archive_size
from .dump import dump_filename
from .errors import PipelineStageError

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    PENDING = 'pending'
    DUMPING = 'dumping'
    ARCHIVING = 'archiving'
    UPLOADING = 'uploading'
    PRUNING = 'pruning'
    DONE = 'done'
    FAILED = 'failed'


# state -> stage name used in errors
STAGE_NAMES = {
    PipelineState.DUMPING: 'dump',
    PipelineState.ARCHIVING: 'archive',
    PipelineState.UPLOADING: 'upload',
    PipelineState.PRUNING: 'prune',
}


@dataclass
class BackupResult:
    """Result of a successful pipeline run."""
    database: str
    object_key: str
    archive_size: int = 0
    pruned: int = 0


def run_date(run_started_at: datetime) -> str:
    """UTC date of the run as YYYY-MM-DD."""
    if run_started_at.tzinfo is not None:
        run_started_at = run_started_at.astimezone(timezone.utc)
    return run_started_at.strftime('%Y-%m-%d')


def object_key(prefix: str, database: str, date_str: str, extension: str) -> str:
    """
    Object key for a database archive.

    Format: {prefix}{database}/{YYYY-MM-DD}.{ext}
    """
    return f"{prefix}{database}/{date_str}.{extension}"


class BackupPipeline:
    """
    Runs dump -> archive -> upload -> prune for one database.
    """

    def __init__(
        self,
        database: str,
        root_dir: str,
        storage,
        dumper,
        archiver,
        pruner,
        bucket: str,
        prefix: str,
        retention_days: int,
        run_started_at: datetime
    ):
        self.database = database
        self.root_dir = root_dir
        self.storage = storage
        self.dumper = dumper
        self.archiver = archiver
        self.pruner = pruner
        self.bucket = bucket
        self.prefix = prefix
        self.retention_days = retention_days
        self.run_started_at = run_started_at

        self.date_str = run_date(run_started_at)
        self.key_prefix = f"{prefix}{database}/"
        self.object_key = object_key(prefix, database, self.date_str, archiver.extension)

        self.state = PipelineState.PENDING
        self.history: List[PipelineState] = [self.state]
        self.work_dir: Optional[str] = None

    def run(self) -> BackupResult:
        """
        Execute the pipeline.

        Returns:
            BackupResult for this database

        Raises:
            PipelineStageError: If any stage fails
        """
        self._log("Starting backup")
        result = BackupResult(database=self.database, object_key=self.object_key)

        try:
            self.work_dir = tempfile.mkdtemp(prefix=f"{self.database}-", dir=self.root_dir)
            dump_path = os.path.join(self.work_dir, dump_filename(self.database, self.date_str))
            archive_path = os.path.join(self.work_dir, archive_filename(self.date_str, self.archiver.archive_format))

            self._enter(PipelineState.DUMPING)
            self._log(f"1/4 Dumping -> {dump_path}")
            self.dumper.dump(self.database, dump_path)

            self._enter(PipelineState.ARCHIVING)
            self._log(f"2/4 Archiving ({self.archiver.extension.upper()}) -> {archive_path}")
            self.archiver.create(dump_path, archive_path)
            result.archive_size = get_archive_size(archive_path)

            self._enter(PipelineState.UPLOADING)
            self._log(f"3/4 Uploading -> s3://{self.bucket}/{self.object_key}")
            self.storage.put_file(
                archive_path,
                self.bucket,
                self.object_key,
                self.archiver.content_type,
                {
                    'database': self.database,
                    'created_at': self.run_started_at.isoformat()
                }
            )

            self._enter(PipelineState.PRUNING)
            self._log(f"4/4 Pruning old backups (> {self.retention_days} days)")
            result.pruned = self.pruner.prune(self.bucket, self.key_prefix, self.retention_days)

        except Exception as e:
            stage = STAGE_NAMES.get(self.state, 'setup')
            self._enter(PipelineState.FAILED)
            raise PipelineStageError(self.database, stage, e) from e

        finally:
            self._cleanup()

        self._enter(PipelineState.DONE)
        self._log(f"Done ({result.archive_size / 1024 / 1024:.2f} MB, pruned {result.pruned})")
        return result

    def _enter(self, state: PipelineState):
        self.state = state
        self.history.append(state)

    def _cleanup(self):
        """Remove the scratch directory; failures are logged only."""
        if self.work_dir and os.path.exists(self.work_dir):
            try:
                shutil.rmtree(self.work_dir)
            except Exception as e:
                self._log(f"Warning: Failed to cleanup scratch directory {self.work_dir}: {e}", logging.WARNING)

    def _log(self, message: str, level: int = logging.INFO):
        logger.log(level, f"[{self.database}] {message}")
