"""
Run-level error taxonomy.

Adapter errors (DumpError, ArchiveError, StorageError, EnumerationError) live
next to the adapter that raises them. The classes here describe how those
failures surface at pipeline and run level.
"""

from typing import List


class BackupError(Exception):
    """Base class for backup run failures."""
    pass


class EmptyTargetSet(BackupError):
    """Raised when enumeration succeeded but returned no databases."""
    pass


class PipelineStageError(BackupError):
    """
    Raised when one stage of a database pipeline fails.

    Attributes:
        database: Database the pipeline was backing up
        stage: Stage that failed ('dump', 'archive', 'upload' or 'prune')
        cause: Original exception raised by the collaborator
    """

    def __init__(self, database: str, stage: str, cause: Exception):
        self.database = database
        self.stage = stage
        self.cause = cause
        super().__init__(f"[{database}] {stage} failed: {cause}")


class PoolError(BackupError):
    """
    Aggregate failure of a pool run.

    The message is the first failure in dispatch order; `failures` holds every
    failed TaskResult in the same order.
    """

    def __init__(self, failures: List):
        self.failures = failures
        self.first = failures[0]
        super().__init__(str(self.first.error))
