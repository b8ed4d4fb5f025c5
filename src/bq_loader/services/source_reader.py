"""Opens source objects as decompressed byte streams."""

import logging
from contextlib import contextmanager
from typing import Iterator

from bq_loader.errors import EmptyObjectError, ObjectNotFoundError
from bq_loader.infrastructure.s3_client import S3Client
from bq_loader.models.schemas import ObjectRef
from bq_loader.services.gzip_reader import gunzip_chunks

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class SourceReader:
    """Reads gzip-compressed NDJSON objects from S3."""

    def __init__(self, s3_client: S3Client, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize source reader.

        Args:
            s3_client: S3Client instance.
            chunk_size: Bytes requested per read from the object body.
        """
        self._s3_client = s3_client
        self._chunk_size = chunk_size

    @contextmanager
    def open_chunks(self, ref: ObjectRef) -> Iterator[Iterator[bytes]]:
        """
        Open an object and yield its decompressed content as chunks.

        The object is opened on entry so a missing object fails before any
        decoding starts; the body itself is read lazily and is closed on exit
        whether or not it was read.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            EmptyObjectError: If the object has no body.
        """
        response = self._s3_client.get_object_stream(ref.bucket, ref.key)
        if response is None:
            raise ObjectNotFoundError(ref.bucket, ref.key)

        body = response.get("Body")
        if body is None:
            raise EmptyObjectError(f"Object body is null: s3://{ref.bucket}/{ref.key}")

        logger.info("File length: %.2f MB", response.get("ContentLength", 0) / 1_000_000)

        try:
            yield gunzip_chunks(self._s3_client.iter_body(body, self._chunk_size))
        finally:
            body.close()
