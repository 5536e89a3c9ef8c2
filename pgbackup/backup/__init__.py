"""
Backup module for pgbackup.

This module handles the core backup functionality including:
- Database enumeration (psql catalog query or override list)
- Dumping (pg_dump)
- Encrypted archiving (7z)
- Storage (S3-compatible object storage)
- Bounded-concurrency execution and run orchestration
- Retention policy enforcement
"""

from .databases import DatabaseEnumerator, EnumerationError
from .dump import PgDump, DumpError
from .compression import SevenZipArchiver, ArchiveError
from .storage import S3Storage, StorageError
from .pool import run_pool, TaskResult
from .retention import RetentionPruner
from .executor import BackupPipeline, BackupResult, PipelineState
from .orchestrator import BackupOrchestrator
from .errors import BackupError, EmptyTargetSet, PipelineStageError, PoolError

__all__ = [
    'DatabaseEnumerator',
    'EnumerationError',
    'PgDump',
    'DumpError',
    'SevenZipArchiver',
    'ArchiveError',
    'S3Storage',
    'StorageError',
    'run_pool',
    'TaskResult',
    'RetentionPruner',
    'BackupPipeline',
    'BackupResult',
    'PipelineState',
    'BackupOrchestrator',
    'BackupError',
    'EmptyTargetSet',
    'PipelineStageError',
    'PoolError',
]
