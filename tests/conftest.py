"""
Shared pytest fixtures for pgbackup tests.

This module provides fixtures for:
- Environment and Config objects
- Mock S3 via moto
- In-memory doubles for the storage, pg_dump and 7z collaborators
"""

import threading
from datetime import datetime, timezone

import pytest
import boto3
from moto import mock_aws

from pgbackup.config import Config
from pgbackup.backup.storage import S3Storage


RUN_STARTED_AT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def base_env(tmp_path):
    """Minimal environment with every required setting."""
    return {
        'PGHOST': 'db.example.com',
        'PGUSER': 'backup',
        'PGPASSWORD': 'pg-secret',
        'R2_ACCOUNT_ID': 'acct123',
        'R2_ACCESS_KEY_ID': 'test_access_key',
        'R2_SECRET_ACCESS_KEY': 'test_secret_key',
        'R2_BUCKET': 'test-bucket',
        'BACKUP_PASSWORD': 'archive-secret',
        'TEMP_DIR': str(tmp_path / 'temp'),
    }


@pytest.fixture
def config(base_env):
    return Config(base_env)


@pytest.fixture
def run_started_at():
    return RUN_STARTED_AT


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def s3_storage(mock_s3):
    """S3Storage pointed at the moto backend."""
    return S3Storage(
        access_key='test_access_key',
        secret_key='test_secret_key',
        region='us-east-1'
    )


class FakeStorage:
    """
    In-memory stand-in for S3Storage.

    Objects are held as {key: last_modified}; listing is served in pages of
    page_size. Like S3, the continuation token marks a position in key order
    (the last key returned), so deleting already-listed keys skips nothing.
    """

    def __init__(self, objects=None, page_size=1000):
        self.objects = dict(objects or {})
        self.page_size = page_size
        self.puts = []
        self.list_calls = []
        self.delete_calls = []
        self.fail_put_for = set()
        self._lock = threading.Lock()

    def put_file(self, local_path, bucket, key, content_type, metadata=None):
        database = (metadata or {}).get('database')
        if database in self.fail_put_for:
            raise RuntimeError(f"upload refused for {database}")
        with open(local_path, 'rb') as f:
            body = f.read()
        with self._lock:
            self.puts.append({
                'bucket': bucket,
                'key': key,
                'body': body,
                'content_type': content_type,
                'metadata': dict(metadata or {}),
            })
            self.objects[key] = datetime.now(timezone.utc)
        return key

    def list_page(self, bucket, prefix, continuation_token=None):
        with self._lock:
            self.list_calls.append((bucket, prefix, continuation_token))
            keys = sorted(
                k for k in self.objects
                if k.startswith(prefix) and (continuation_token is None or k > continuation_token)
            )
            page = keys[:self.page_size]
            entries = [
                {'Key': key, 'LastModified': self.objects[key]}
                for key in page
            ]
        next_token = page[-1] if len(keys) > self.page_size else None
        return entries, next_token

    def delete_batch(self, bucket, keys):
        with self._lock:
            self.delete_calls.append(list(keys))
            for key in keys:
                self.objects.pop(key, None)


class FakeDumper:
    """Writes a small dump file; fails for databases listed in fail_for."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    def dump(self, database, output_path):
        self.calls.append((database, output_path))
        if database in self.fail_for:
            raise RuntimeError(f"pg_dump exited 1: database \"{database}\" does not exist")
        with open(output_path, 'wb') as f:
            f.write(f"dump of {database}".encode())
        return output_path


class FakeArchiver:
    """Copies the dump into the archive path."""

    def __init__(self, archive_format='7z', fail_for=()):
        self.archive_format = archive_format
        self.extension = archive_format
        self.content_type = 'application/zip' if archive_format == 'zip' else 'application/x-7z-compressed'
        self.fail_for = set(fail_for)
        self.calls = []

    def create(self, input_path, archive_path):
        self.calls.append((input_path, archive_path))
        if any(name in input_path for name in self.fail_for):
            raise RuntimeError("7z exited 2: wrong password")
        with open(input_path, 'rb') as src, open(archive_path, 'wb') as dst:
            dst.write(b'7z' + src.read())
        return archive_path


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_dumper():
    return FakeDumper()


@pytest.fixture
def fake_archiver():
    return FakeArchiver()
