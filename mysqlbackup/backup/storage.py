"""
Object storage handler for database dumps.

S3Storage talks to any S3-compatible endpoint with path-style addressing and
covers the four operations a backup run needs: fetch the configuration
document, upload a dump, list the bucket and delete expired objects.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, BotoCoreError


DEFAULT_REGION = 'eu-west-1'

# list_objects_v2 returns at most one page of this many keys
MAX_LIST_KEYS = 1000


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


class FetchError(StorageError):
    """Raised when an object cannot be read from the bucket."""
    pass


class UploadError(StorageError):
    """Raised when a dump cannot be written to the bucket."""
    pass


class ListError(StorageError):
    """Raised when the bucket cannot be listed."""
    pass


class DeleteError(StorageError):
    """Raised when an object cannot be deleted from the bucket."""
    pass


@dataclass(frozen=True)
class RemoteObject:
    """An object as listed from the bucket."""
    key: str
    last_modified: datetime
    size: int = 0


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', 'Unknown')


class S3Storage:
    """
    Handler for a single bucket on an S3-compatible object store.

    Objects are stored flat, under the same key as the local file name.
    """

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        region: str = DEFAULT_REGION,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        s3_client=None
    ):
        """
        Initialize S3 storage handler.

        Args:
            bucket_name: Bucket name
            endpoint_url: Object store endpoint (default: AWS)
            region: Region name (default: eu-west-1)
            access_key: Access key ID (default: boto3 credential chain)
            secret_key: Secret access key (default: boto3 credential chain)
            s3_client: Existing boto3 client to reuse
        """
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url
        self.region = region

        if s3_client is not None:
            self.s3_client = s3_client
            return

        try:
            self.s3_client = boto3.client(
                's3',
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                config=BotoConfig(s3={'addressing_style': 'path'})
            )
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    @classmethod
    def from_config(cls, config, bucket_name: str) -> 'S3Storage':
        """Build a handler from a Config class for the given bucket."""
        return cls(
            bucket_name=bucket_name,
            endpoint_url=config.OBJ_HOST,
            region=config.OBJ_REGION,
            access_key=config.OBJ_ACCESS_KEY,
            secret_key=config.OBJ_SECRET_KEY
        )

    def for_bucket(self, bucket_name: str) -> 'S3Storage':
        """Return a handler for another bucket sharing this client."""
        return S3Storage(
            bucket_name=bucket_name,
            endpoint_url=self.endpoint_url,
            region=self.region,
            s3_client=self.s3_client
        )

    def get_text(self, key: str, encoding: str = 'utf-8') -> str:
        """
        Read an object and decode it as text.

        Raises:
            FetchError: If the object cannot be retrieved
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            return response['Body'].read().decode(encoding)
        except ClientError as e:
            raise FetchError(f"S3 get failed ({_error_code(e)}): {self.bucket_name}/{key}: {e}")
        except BotoCoreError as e:
            raise FetchError(f"S3 get failed: {self.bucket_name}/{key}: {e}")
        except UnicodeDecodeError as e:
            raise FetchError(f"Object {self.bucket_name}/{key} is not valid {encoding}: {e}")

    def upload(self, local_path: str, key: Optional[str] = None) -> str:
        """
        Upload a local file.

        The file is read fully into memory and sent with a single put_object.

        Args:
            local_path: Path to local dump file
            key: Object key (default: the local file name)

        Returns:
            Key of uploaded object

        Raises:
            UploadError: If upload fails
        """
        if not os.path.exists(local_path):
            raise UploadError(f"Local file not found: {local_path}")

        s3_key = key or os.path.basename(local_path)

        try:
            with open(local_path, 'rb') as f:
                body = f.read()

            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=body
            )
            return s3_key

        except ClientError as e:
            raise UploadError(f"S3 upload failed ({_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise UploadError(f"S3 upload failed: {e}")
        except OSError as e:
            raise UploadError(f"Failed to read {local_path}: {e}")

    def delete(self, s3_key: str):
        """
        Delete an object.

        Raises:
            DeleteError: If deletion fails
        """
        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=s3_key
            )
        except ClientError as e:
            raise DeleteError(f"S3 delete failed ({_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise DeleteError(f"Failed to delete from S3: {e}")

    def list_objects(self, max_keys: int = MAX_LIST_KEYS) -> List[RemoteObject]:
        """
        List objects in the bucket.

        Only the first page is read; buckets holding more than max_keys
        objects are not paginated.

        Returns:
            List of RemoteObject

        Raises:
            ListError: If listing fails
        """
        try:
            page = self.s3_client.list_objects_v2(
                Bucket=self.bucket_name,
                MaxKeys=max_keys
            )
        except ClientError as e:
            raise ListError(f"S3 list failed ({_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise ListError(f"Failed to list S3 objects: {e}")

        return [
            RemoteObject(
                key=obj['Key'],
                last_modified=obj['LastModified'],
                size=obj.get('Size', 0)
            )
            for obj in page.get('Contents', [])
        ]
