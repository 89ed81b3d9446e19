"""S3-compatible object storage for project artifacts.

Every project lives under its own key namespace in a single bucket. This
module is the thin boto3 layer; the key scheme is owned by
``services.context_store``.

Features:
- Upload/download bytes, JSON documents and local files
- List objects under a prefix (paginated)
- Object metadata lookup (content type, user metadata)
- Automatic content type detection
"""

import json
import logging
import mimetypes
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class StorageError(Exception):
    """Raised when an object-store request fails for a reason other than a missing key."""

    retryable = True


def guess_content_type(key: str) -> str:
    """Best-effort MIME type for an object key."""
    content_type, _ = mimetypes.guess_type(key)
    if content_type:
        return content_type
    return {
        ".json": "application/json",
        ".log": "text/plain",
        ".txt": "text/plain",
        ".srt": "application/x-subrip",
        ".mp3": "audio/mpeg",
        ".m4a": "audio/mp4",
        ".mp4": "video/mp4",
        ".webp": "image/webp",
    }.get(Path(key).suffix.lower(), "application/octet-stream")


class S3Storage:
    """Object storage service backed by an S3-compatible API.

    Uses boto3 and works against AWS S3 as well as R2/MinIO style endpoints.
    """

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        timeout: float = 120.0,
        client=None,
    ):
        """Initialize storage.

        Args:
            bucket_name: Bucket holding all projects
            region: AWS region
            endpoint_url: Optional custom endpoint (R2, MinIO)
            access_key_id: Optional explicit credentials (default credential chain otherwise)
            secret_access_key: Optional explicit credentials
            timeout: Connect/read timeout in seconds for every request
            client: Pre-built boto3 S3 client (tests)
        """
        self.bucket_name = bucket_name

        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 3, "mode": "adaptive"},
                ),
            )
        self._client = client

        logger.info(f"Object storage initialized for bucket: {bucket_name}")

    def upload_file(
        self,
        key: str,
        data: Union[bytes, str, BinaryIO],
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload bytes, text or a file-like object.

        Returns:
            ``s3://`` URL of the stored object
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        if isinstance(data, bytes):
            data = BytesIO(data)

        extra_args = {"ContentType": content_type or guess_content_type(key)}
        if metadata:
            extra_args["Metadata"] = metadata

        try:
            self._client.upload_fileobj(data, self.bucket_name, key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {key}: {e}")
            raise StorageError(f"Upload failed for {key}: {e}") from e

        logger.info(f"Uploaded {key}")
        return f"s3://{self.bucket_name}/{key}"

    def upload_path(
        self,
        key: str,
        path: Path,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload a local file by path."""
        with Path(path).open("rb") as f:
            return self.upload_file(key, f, content_type=content_type, metadata=metadata)

    def upload_json(self, key: str, data: Union[Dict, List], indent: int = 2) -> str:
        """Serialize and upload a JSON document."""
        json_bytes = json.dumps(data, indent=indent, default=str).encode("utf-8")
        return self.upload_file(key, json_bytes, content_type="application/json")

    def download_file(self, key: str) -> bytes:
        """Download an object.

        Raises:
            FileNotFoundError: If the key does not exist
            StorageError: For any other failure
        """
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
            data = response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                raise FileNotFoundError(f"File not found: {key}") from e
            logger.error(f"Failed to download {key}: {e}")
            raise StorageError(f"Download failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Download failed for {key}: {e}") from e

        logger.debug(f"Downloaded {key} ({len(data)} bytes)")
        return data

    def download_json(self, key: str) -> Union[Dict, List]:
        """Download and parse a JSON document."""
        return json.loads(self.download_file(key).decode("utf-8"))

    def download_to_path(self, key: str, path: Path) -> Path:
        """Stream an object to a local file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._client.download_file(self.bucket_name, key, str(path))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                raise FileNotFoundError(f"File not found: {key}") from e
            raise StorageError(f"Download failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Download failed for {key}: {e}") from e
        return path

    def list_files(self, prefix: str = "", max_keys: int = 10000) -> List[Dict]:
        """List objects under a prefix.

        Returns:
            List of dicts with key, size, last_modified, etag
        """
        files = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            pages = paginator.paginate(
                Bucket=self.bucket_name,
                Prefix=prefix,
                PaginationConfig={"MaxItems": max_keys},
            )
            for page in pages:
                for obj in page.get("Contents", []):
                    files.append({
                        "key": obj["Key"],
                        "size": obj["Size"],
                        "last_modified": obj["LastModified"],
                        "etag": obj.get("ETag", "").strip('"'),
                    })
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list files under {prefix}: {e}")
            raise StorageError(f"List failed for {prefix}: {e}") from e

        return files

    def file_exists(self, key: str) -> bool:
        """Check whether an object exists."""
        return self.get_file_info(key) is not None

    def get_file_info(self, key: str) -> Optional[Dict]:
        """Object metadata, or None if the key does not exist."""
        try:
            response = self._client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                return None
            raise StorageError(f"Head failed for {key}: {e}") from e
        return {
            "key": key,
            "size": response["ContentLength"],
            "content_type": response.get("ContentType", ""),
            "last_modified": response.get("LastModified"),
            "etag": response.get("ETag", "").strip('"'),
            "metadata": response.get("Metadata", {}),
        }


def create_storage(config: dict) -> S3Storage:
    """Build a storage handle from a config dict (see ``utils.config.load_config``)."""
    return S3Storage(
        bucket_name=config["s3_bucket_name"],
        region=config.get("s3_region", "us-east-1"),
        endpoint_url=config.get("s3_endpoint_url"),
        access_key_id=config.get("aws_access_key_id"),
        secret_access_key=config.get("aws_secret_access_key"),
        timeout=config.get("download_timeout", 120.0),
    )
