"""
Unit tests for run orchestration (pgbackup/backup/orchestrator.py).
"""

import logging
import os
import threading
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time

from conftest import FakeStorage, FakeDumper, FakeArchiver
from pgbackup import create_orchestrator
from pgbackup.backup.databases import EnumerationError
from pgbackup.backup.errors import EmptyTargetSet, PoolError, PipelineStageError
from pgbackup.backup.orchestrator import BackupOrchestrator


def make_orchestrator(tmp_path, run_started_at, databases, storage=None, dumper=None, archiver=None, concurrency=2):
    enumerator = MagicMock()
    enumerator.list_databases.return_value = databases
    return BackupOrchestrator(
        enumerator=enumerator,
        storage=storage if storage is not None else FakeStorage(),
        dumper=dumper or FakeDumper(),
        archiver=archiver or FakeArchiver(),
        bucket='test-bucket',
        prefix='db-backups/',
        retention_days=7,
        concurrency=concurrency,
        temp_dir=str(tmp_path / 'work'),
        run_started_at=run_started_at
    )


class TestBackupOrchestrator:
    """Test full runs."""

    def test_backs_up_every_database(self, tmp_path, run_started_at):
        storage = FakeStorage()
        orchestrator = make_orchestrator(tmp_path, run_started_at, ['alpha', 'beta', 'gamma'], storage=storage)

        results = orchestrator.run()

        assert [r.database for r in results] == ['alpha', 'beta', 'gamma']
        assert sorted(p['key'] for p in storage.puts) == [
            'db-backups/alpha/2024-01-02.7z',
            'db-backups/beta/2024-01-02.7z',
            'db-backups/gamma/2024-01-02.7z',
        ]
        prefixes = sorted(call[1] for call in storage.list_calls)
        assert prefixes == ['db-backups/alpha/', 'db-backups/beta/', 'db-backups/gamma/']

    def test_root_scratch_area_removed(self, tmp_path, run_started_at):
        orchestrator = make_orchestrator(tmp_path, run_started_at, ['alpha'])

        orchestrator.run()

        assert os.path.basename(orchestrator.root_dir).startswith('pgbkp-')
        assert not os.path.exists(orchestrator.root_dir)
        assert os.listdir(tmp_path / 'work') == []

    def test_pipelines_use_exclusive_subdirectories(self, tmp_path, run_started_at):
        dumper = FakeDumper()
        orchestrator = make_orchestrator(tmp_path, run_started_at, ['alpha', 'beta'], dumper=dumper)

        orchestrator.run()

        work_dirs = {os.path.dirname(path) for _, path in dumper.calls}
        assert len(work_dirs) == 2
        assert all(os.path.dirname(d) == orchestrator.root_dir for d in work_dirs)

    def test_respects_concurrency_bound(self, tmp_path, run_started_at):
        active = 0
        peak = 0
        lock = threading.Lock()

        class SlowDumper(FakeDumper):
            def dump(self, database, output_path):
                nonlocal active, peak
                with lock:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.02)
                with lock:
                    active -= 1
                return super().dump(database, output_path)

        orchestrator = make_orchestrator(
            tmp_path, run_started_at, [f'db{i}' for i in range(8)],
            dumper=SlowDumper(), concurrency=3
        )

        orchestrator.run()

        assert 1 <= peak <= 3

    @freeze_time("2024-01-02 03:04:05")
    def test_run_start_defaults_to_now(self, tmp_path):
        orchestrator = make_orchestrator(tmp_path, None, ['alpha'])

        assert orchestrator.run_started_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert orchestrator.create_pipeline('alpha').object_key == 'db-backups/alpha/2024-01-02.7z'


class TestBackupOrchestratorFailures:
    """Test fatal conditions and partial failures."""

    def test_empty_database_list(self, tmp_path, run_started_at):
        storage = FakeStorage()
        orchestrator = make_orchestrator(tmp_path, run_started_at, [], storage=storage)

        with pytest.raises(EmptyTargetSet):
            orchestrator.run()

        assert orchestrator.root_dir is None
        assert storage.puts == []

    def test_enumeration_error_is_fatal(self, tmp_path, run_started_at):
        orchestrator = make_orchestrator(tmp_path, run_started_at, [])
        orchestrator.enumerator.list_databases.side_effect = EnumerationError("psql exited 2")
        dumper = orchestrator.dumper

        with pytest.raises(EnumerationError):
            orchestrator.run()

        assert dumper.calls == []

    def test_one_failure_does_not_affect_others(self, tmp_path, run_started_at):
        storage = FakeStorage()
        orchestrator = make_orchestrator(
            tmp_path, run_started_at, ['alpha', 'broken', 'gamma'],
            storage=storage, dumper=FakeDumper(fail_for=['broken'])
        )

        with pytest.raises(PoolError) as exc_info:
            orchestrator.run()

        assert sorted(p['key'] for p in storage.puts) == [
            'db-backups/alpha/2024-01-02.7z',
            'db-backups/gamma/2024-01-02.7z',
        ]
        assert sorted(call[1] for call in storage.list_calls) == ['db-backups/alpha/', 'db-backups/gamma/']

        error = exc_info.value
        assert isinstance(error.first.error, PipelineStageError)
        assert error.first.error.database == 'broken'
        assert not os.path.exists(orchestrator.root_dir)

    def test_first_failure_in_dispatch_order_is_reported(self, tmp_path, run_started_at, caplog):
        storage = FakeStorage()
        storage.fail_put_for.add('charlie')
        orchestrator = make_orchestrator(
            tmp_path, run_started_at, ['alpha', 'bravo', 'charlie', 'delta'],
            storage=storage, dumper=FakeDumper(fail_for=['bravo']), concurrency=4
        )

        with caplog.at_level(logging.ERROR, logger='pgbackup.backup.pool'):
            with pytest.raises(PoolError) as exc_info:
                orchestrator.run()

        error = exc_info.value
        assert [f.item for f in error.failures] == ['bravo', 'charlie']
        assert str(error).startswith('[bravo] dump failed')
        assert 'Task failed for bravo' in caplog.text
        assert 'Task failed for charlie' in caplog.text

    @patch('pgbackup.backup.orchestrator.shutil.rmtree')
    def test_root_cleanup_failure_is_not_escalated(self, mock_rmtree, tmp_path, run_started_at):
        mock_rmtree.side_effect = OSError("permission denied")
        orchestrator = make_orchestrator(tmp_path, run_started_at, ['alpha'])

        results = orchestrator.run()

        assert len(results) == 1


class TestCreateOrchestrator:
    """Test wiring from Config."""

    def test_factory_wires_config(self, config, run_started_at):
        orchestrator = create_orchestrator(config, run_started_at=run_started_at)

        assert orchestrator.bucket == 'test-bucket'
        assert orchestrator.prefix == 'db-backups/'
        assert orchestrator.retention_days == 7
        assert orchestrator.concurrency == config.CONCURRENCY
        assert orchestrator.archiver.archive_format == '7z'
        assert orchestrator.pruner.storage is orchestrator.storage
        assert orchestrator.enumerator.host == 'db.example.com'
        assert orchestrator.dumper.password == 'pg-secret'
