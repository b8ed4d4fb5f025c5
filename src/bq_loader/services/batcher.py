"""Size-bounded batching of decoded records."""

import logging
from typing import Iterable, Iterator

from bq_loader.models.records import Batch, Record
from bq_loader.models.schemas import DEFAULT_MAX_BATCH_BYTES

logger = logging.getLogger(__name__)


def iter_batches(
    records: Iterable[Record],
    max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES,
) -> Iterator[Batch]:
    """
    Group records into batches of roughly `max_batch_bytes`.

    The limit is a soft target: records are never split, so a record larger
    than the limit is emitted alone in an oversized batch.

    Args:
        records: Records in source order.
        max_batch_bytes: Byte threshold measured on `Record.byte_size`.

    Yields:
        Non-empty batches in source order.
    """
    if max_batch_bytes <= 0:
        raise ValueError(f"max_batch_bytes must be positive, got {max_batch_bytes}")

    batch = Batch()

    for record in records:
        # Would adding this record exceed the limit?
        if batch.total_bytes + record.byte_size > max_batch_bytes and len(batch) > 0:
            yield batch
            batch = Batch()

        if record.byte_size > max_batch_bytes:
            logger.warning(
                "Record at line %d is %d bytes, above the %d byte batch limit",
                record.line_number,
                record.byte_size,
                max_batch_bytes,
            )

        batch.append(record)

    # Flush any remaining records as the final batch
    if len(batch) > 0:
        yield batch
