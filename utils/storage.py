"""
S3 Storage Utilities

Provides an S3/MinIO client with static credentials and a durable upload with
bounded retries. Each attempt reopens the local file so a failed read never
leaks into the next attempt.
"""

import asyncio
import logging
import posixpath
from pathlib import Path
from typing import Any

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from utils.cancellation import CancellationToken
from utils.config import S3Config
from utils.errors import RetryExhausted, UploadError
from utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "s3.amazonaws.com"

_CONTENT_TYPES = {
    ".gz": "application/gzip",
    ".json": "application/json",
}


def endpoint_url(config: S3Config) -> str:
    """Full endpoint URL; bare host names get a scheme from use_ssl."""
    endpoint = config.endpoint or DEFAULT_ENDPOINT
    if "://" in endpoint:
        return endpoint
    scheme = "https" if config.use_ssl else "http"
    return f"{scheme}://{endpoint}"


def create_client(config: S3Config, timeout: float = 60.0) -> Any:
    """
    Create a boto3 S3 client for AWS or any S3-compatible endpoint.

    botocore's own retries are disabled; upload_artifact owns the retry policy.
    """
    logger.info(
        "Initializing S3 client",
        extra={
            "endpoint": config.endpoint or DEFAULT_ENDPOINT,
            "bucket": config.bucket,
            "region": config.region,
            "use_ssl": config.use_ssl,
        },
    )
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url(config),
        aws_access_key_id=config.access_key_id or None,
        aws_secret_access_key=config.secret_access_key or None,
        region_name=config.region or None,
        use_ssl=config.use_ssl,
        config=BotoConfig(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 1, "mode": "standard"},
            s3={"addressing_style": "path"},
        ),
    )


def content_type_for(path: Path) -> str:
    """Content type derived from the file extension."""
    return _CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


def object_key(prefix: str, filename: str) -> str:
    """Join the configured key prefix and the artifact file name."""
    prefix = prefix.strip("/")
    return posixpath.join(prefix, filename) if prefix else filename


class ObjectStore:
    """A single bucket of an S3-compatible object store."""

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def check_bucket(self) -> bool:
        """
        Check that the bucket exists and is reachable.

        Only logs a warning on failure; never raises.
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchBucket", "403", "AccessDenied"):
                logger.warning("Bucket %s does not exist or no access", self.bucket)
            else:
                logger.warning("Failed to check bucket existence: %s", e)
            return False
        except BotoCoreError as e:
            logger.warning("Failed to check bucket existence: %s", e)
            return False

        logger.info("Successfully connected to bucket: %s", self.bucket)
        return True

    async def put_file(
        self, path: Path, key: str, content_type: str, token: CancellationToken
    ) -> str:
        """
        Upload one file in a single PUT.

        Returns:
            ETag reported by the store
        """
        size = path.stat().st_size

        def _put() -> str:
            with open(path, "rb") as body:
                response = self.client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentLength=size,
                    ContentType=content_type,
                )
            return str(response.get("ETag", "")).strip('"')

        return await token.run(asyncio.to_thread(_put))


async def upload_artifact(
    store: ObjectStore,
    path: Path,
    key: str,
    document_count: int,
    policy: RetryPolicy,
    token: CancellationToken,
) -> str:
    """
    Upload a compressed artifact with bounded retries.

    Args:
        store: Destination bucket
        path: Local file to upload
        key: Object key in the bucket
        document_count: Documents contained in the artifact (logging only)
        policy: Attempts and backoff
        token: Shared cancellation token

    Returns:
        ETag of the stored object

    Raises:
        UploadError: If the file is missing or every attempt failed
        RunCancelled: If shutdown was requested
    """
    if not path.is_file():
        raise UploadError(f"failed to stat file: {path}")

    content_type = content_type_for(path)

    logger.info(
        "Uploading %s (%d documents) to s3://%s/%s",
        path, document_count, store.bucket, key,
    )

    try:
        etag = await policy.call(
            lambda: store.put_file(path, key, content_type, token),
            operation=f"upload of {path.name}",
            token=token,
        )
    except RetryExhausted as e:
        raise UploadError(
            f"failed to upload file after {e.attempts} attempts: {e.last_error}"
        ) from e.last_error

    logger.info(
        "Successfully uploaded %d documents to %s/%s (etag: %s)",
        document_count, store.bucket, key, etag,
    )
    return etag
