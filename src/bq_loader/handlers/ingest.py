"""Handler for loading one source object into BigQuery."""

import logging

from bq_loader.models.schemas import ObjectRef, StreamSummary
from bq_loader.services.inserter import Inserter
from bq_loader.services.ndjson_decoder import decode_ndjson
from bq_loader.services.source_reader import SourceReader

logger = logging.getLogger(__name__)


def ingest_object(
    ref: ObjectRef,
    source_reader: SourceReader,
    inserter: Inserter,
    stamp_field: str | None = None,
) -> StreamSummary:
    """
    Run the full pipeline for a single object.

    1. Open the object and decompress it as a stream
    2. Decode NDJSON lines into records and parse failures
    3. Batch and insert the records, reconciling per-row errors

    Args:
        ref: Object to load.
        source_reader: Reader for compressed source objects.
        inserter: Inserter bound to the destination table.
        stamp_field: Optional timestamp field added to objects lacking it.

    Returns:
        StreamSummary for the run.

    Raises:
        ConfigurationError: If the object or the credential is unusable.
        IngestionFailedError: If any record failed to parse or insert.
    """
    logger.info("Processing s3://%s/%s", ref.bucket, ref.key)

    with source_reader.open_chunks(ref) as chunks:
        items = decode_ndjson(chunks, stamp_field=stamp_field)
        summary = inserter.run(items, key=ref.key)

    logger.info("Processed and inserted data for key: %s (%s)", ref.key, summary.render())
    return summary
