"""
Object storage handler for backup archives.

Wraps a single boto3 S3 client pointed at any S3-compatible endpoint
(Cloudflare R2 by default). The client is shared by every pipeline; boto3
clients are safe to use from several threads and this handler keeps no other
state.
"""

import os
from typing import Dict, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, BotoCoreError

# DeleteObjects accepts at most 1000 keys per request
MAX_DELETE_BATCH = 1000


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


class S3Storage:
    """
    Handler for S3-compatible object storage.

    Archives are stored under keys of the form:
    {prefix}{database}/{YYYY-MM-DD}.{ext}
    """

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        endpoint_url: Optional[str] = None,
        region: str = 'auto',
        force_path_style: bool = False
    ):
        """
        Initialize storage handler.

        Args:
            access_key: Access key ID
            secret_key: Secret access key
            endpoint_url: S3 endpoint URL (None for AWS)
            region: Region name ('auto' for R2)
            force_path_style: Use path-style bucket addressing
        """
        boto_config = None
        if force_path_style:
            boto_config = BotoConfig(s3={'addressing_style': 'path'})

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                endpoint_url=endpoint_url,
                region_name=region,
                config=boto_config
            )
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    @classmethod
    def from_config(cls, config) -> 'S3Storage':
        """Build a handler from a pgbackup Config."""
        return cls(
            access_key=config.R2_ACCESS_KEY_ID,
            secret_key=config.R2_SECRET_ACCESS_KEY,
            endpoint_url=config.R2_ENDPOINT,
            region=config.R2_REGION,
            force_path_style=config.R2_FORCE_PATH_STYLE
        )

    def put_file(
        self,
        local_path: str,
        bucket: str,
        key: str,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Upload a local file to the bucket.

        An existing object with the same key is overwritten.

        Args:
            local_path: Path to local archive file
            bucket: Bucket name
            key: Object key
            content_type: Content-Type of the object
            metadata: User metadata attached to the object

        Returns:
            Object key of uploaded file

        Raises:
            StorageError: If upload fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        try:
            with open(local_path, 'rb') as f:
                self.s3_client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                    Metadata=metadata or {}
                )
            return key

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 upload failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 upload failed: {e}")

    def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: Optional[str] = None,
        max_keys: Optional[int] = None
    ) -> Tuple[List[dict], Optional[str]]:
        """
        List one page of objects under a prefix.

        Args:
            bucket: Bucket name
            prefix: Key prefix to filter by
            continuation_token: Token returned by the previous page, if any
            max_keys: Page size (provider default when None)

        Returns:
            Tuple of (entries, next_token). Entries are dicts with 'Key' and
            'LastModified'; next_token is None on the last page.

        Raises:
            StorageError: If listing fails
        """
        params = {'Bucket': bucket, 'Prefix': prefix}
        if continuation_token:
            params['ContinuationToken'] = continuation_token
        if max_keys:
            params['MaxKeys'] = max_keys

        try:
            page = self.s3_client.list_objects_v2(**params)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 list failed: {e}")

        entries = [
            {'Key': obj['Key'], 'LastModified': obj['LastModified']}
            for obj in page.get('Contents', [])
        ]
        next_token = page.get('NextContinuationToken') if page.get('IsTruncated') else None

        return entries, next_token

    def delete_batch(self, bucket: str, keys: List[str]):
        """
        Delete up to MAX_DELETE_BATCH objects in one request.

        Args:
            bucket: Bucket name
            keys: Object keys to delete

        Raises:
            ValueError: If more than MAX_DELETE_BATCH keys are given
            StorageError: If the request fails or any key could not be deleted
        """
        if not keys:
            return
        if len(keys) > MAX_DELETE_BATCH:
            raise ValueError(f"Cannot delete more than {MAX_DELETE_BATCH} objects per request, got {len(keys)}")

        try:
            response = self.s3_client.delete_objects(
                Bucket=bucket,
                Delete={
                    'Objects': [{'Key': key} for key in keys],
                    'Quiet': True
                }
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 delete failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 delete failed: {e}")

        errors = response.get('Errors', [])
        if errors:
            first = errors[0]
            raise StorageError(
                f"S3 delete failed for {len(errors)} object(s), "
                f"first: {first.get('Key')} ({first.get('Code')}: {first.get('Message')})"
            )
