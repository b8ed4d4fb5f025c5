"""Streaming gzip decompression."""

import zlib
from typing import Iterable, Iterator

from bq_loader.errors import SourceReadError

# zlib window bits for a gzip header and trailer
GZIP_WBITS = 16 + zlib.MAX_WBITS


def gunzip_chunks(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """
    Decompress a gzip stream chunk by chunk.

    Concatenated gzip members are decompressed back to back.

    Args:
        chunks: Compressed bytes in order.

    Yields:
        Decompressed byte chunks.

    Raises:
        SourceReadError: If the stream is corrupt or ends mid-member.
    """
    decompressor = zlib.decompressobj(GZIP_WBITS)
    in_member = False

    for chunk in chunks:
        data = chunk
        while data:
            in_member = True
            try:
                out = decompressor.decompress(data)
            except zlib.error as e:
                raise SourceReadError(f"Corrupt gzip stream: {e}") from e
            if out:
                yield out

            if not decompressor.eof:
                break

            # Member finished; anything left belongs to the next one
            data = decompressor.unused_data
            decompressor = zlib.decompressobj(GZIP_WBITS)
            in_member = False

    if in_member:
        tail = decompressor.flush()
        if tail:
            yield tail
        if not decompressor.eof:
            raise SourceReadError("Truncated gzip stream")
