"""S3 client wrapper for AWS operations."""

import logging
from typing import Any, Iterator

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404"}


class S3Client:
    """Handles S3 operations."""

    def __init__(self, client: Any):
        """
        Initialize S3 client wrapper.

        Args:
            client: boto3 S3 client instance.
        """
        self._client = client

    def get_object_stream(self, bucket: str, key: str) -> dict | None:
        """
        Open an object for streaming reads.

        Args:
            bucket: S3 bucket name.
            key: S3 object key.

        Returns:
            The GetObject response (with the streaming `Body`), or None if the
            object does not exist.

        Raises:
            ClientError: For any error other than a missing object.
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            logger.info(
                "Opened s3://%s/%s (%d bytes)",
                bucket,
                key,
                response.get("ContentLength", 0),
            )
            return response
        except ClientError as e:
            if e.response["Error"]["Code"] in NOT_FOUND_CODES:
                logger.error("Object not found: s3://%s/%s", bucket, key)
                return None
            raise

    def iter_body(self, body: Any, chunk_size: int) -> Iterator[bytes]:
        """Yield raw chunks from a streaming body. The caller owns closing it."""
        yield from body.iter_chunks(chunk_size=chunk_size)
