"""Sends batches to BigQuery and reconciles per-row results against source lines."""

import logging
from typing import Iterable, Iterator

from bq_loader.errors import IngestionFailedError, TransportError
from bq_loader.infrastructure.bigquery_client import BigQueryClient
from bq_loader.models.records import Batch, DecodedItem, ParseFailure, Record
from bq_loader.models.schemas import (
    FailureDetail,
    InsertAllResponse,
    InsertOutcome,
    LoaderConfig,
    StreamSummary,
)
from bq_loader.services.batcher import iter_batches
from bq_loader.services.credentials import TokenProvider

logger = logging.getLogger(__name__)

# Failure details kept per run for the terminal error message
MAX_REPORTED_FAILURES = 10
# Response body excerpt kept for transport failures
MAX_BODY_EXCERPT = 1000


def _batch_span(batch: Batch) -> str:
    return f"lines {batch.records[0].line_number}-{batch.records[-1].line_number}"


def whole_batch_failure(batch: Batch, message: str, status_code: int | None = None) -> InsertOutcome:
    """Outcome for a batch that was rejected as a whole."""
    first = batch.records[0]
    return InsertOutcome(
        succeeded=0,
        failed=len(batch),
        first_failure=FailureDetail(
            line_number=first.line_number,
            message=f"{message} ({len(batch)} rows, {_batch_span(batch)})",
            payload=first.value,
        ),
        status_code=status_code,
    )


def reconcile(batch: Batch, response: InsertAllResponse) -> InsertOutcome:
    """
    Turn an insertAll response into per-batch success and failure counts.

    A non-2xx status fails the whole batch. Otherwise each `insertErrors`
    entry is a zero-based index into the batch and is mapped back to the
    source line of that record. Totals cover the whole response.

    Args:
        batch: The batch that was sent.
        response: Response for that batch.

    Returns:
        InsertOutcome with counts and the first failure, if any.
    """
    if not response.ok:
        reason = response.parse_error or response.body_text[:MAX_BODY_EXCERPT]
        return whole_batch_failure(
            batch,
            f"BigQuery API error: {response.status_code} {reason}".rstrip(),
            status_code=response.status_code,
        )

    if not response.insert_errors:
        return InsertOutcome(
            succeeded=len(batch),
            failed=0,
            status_code=response.status_code,
        )

    failed_indices = {row_error.index for row_error in response.insert_errors}
    failed = min(len(failed_indices), len(batch))

    first_error = response.insert_errors[0]
    line_number = batch.line_number_at(first_error.index)
    payload = batch.records[first_error.index].value if line_number is not None else None

    return InsertOutcome(
        succeeded=len(batch) - failed,
        failed=failed,
        first_failure=FailureDetail(
            line_number=line_number,
            message=first_error.message,
            payload=payload,
        ),
        status_code=response.status_code,
    )


class Inserter:
    """Drives batches through the insertAll endpoint for one stream at a time."""

    def __init__(
        self,
        bigquery_client: BigQueryClient,
        token_provider: TokenProvider,
        loader_config: LoaderConfig,
    ):
        self._bigquery_client = bigquery_client
        self._token_provider = token_provider
        self._config = loader_config

    def insert_batch(self, batch: Batch, token: str) -> InsertOutcome:
        """Send one batch. Exactly one request, never retried."""
        try:
            response = self._bigquery_client.insert_all(
                url=self._config.insert_all_url,
                token=token,
                rows=batch.rows(),
            )
        except TransportError as e:
            outcome = whole_batch_failure(batch, f"Transport error: {e}")
        else:
            outcome = reconcile(batch, response)

        if outcome.failed:
            failure = outcome.first_failure
            logger.error(
                "Batch of %d rows (%s): %d failed, first failure at line %s: %s",
                len(batch),
                _batch_span(batch),
                outcome.failed,
                failure.line_number,
                failure.message,
            )
            logger.error("Problematic object: %s", failure.describe())
        else:
            logger.debug("Inserted %d rows (%s)", len(batch), _batch_span(batch))

        return outcome

    def run(self, items: Iterable[DecodedItem], key: str | None = None) -> StreamSummary:
        """
        Load a whole decoded stream.

        The bearer token is fetched once, before the first batch. Every batch is
        attempted even after failures; the run raises only after the stream is
        exhausted.

        Args:
            items: Decoder output.
            key: Source key, for logging and the summary.

        Returns:
            StreamSummary when every record was loaded.

        Raises:
            IngestionFailedError: If any record failed to parse or insert.
            ConfigurationError: If the token cannot be obtained.
        """
        summary = StreamSummary(key=key)
        failures: list[FailureDetail] = []

        def note_failure(detail: FailureDetail) -> None:
            if len(failures) < MAX_REPORTED_FAILURES:
                failures.append(detail)

        def records() -> Iterator[Record]:
            for item in items:
                if isinstance(item, ParseFailure):
                    summary.skipped += 1
                    note_failure(
                        FailureDetail(
                            line_number=item.line_number,
                            message=f"Malformed JSON: {item.message}",
                            payload=item.raw_line[:200],
                        )
                    )
                    continue
                summary.total_records += 1
                summary.total_bytes += item.byte_size
                yield item

        token = self._token_provider.get_token()

        for batch in iter_batches(records(), self._config.max_batch_bytes):
            outcome = self.insert_batch(batch, token)
            summary.add_outcome(outcome)
            if outcome.first_failure is not None:
                note_failure(outcome.first_failure)

        logger.info(
            "Processed %d records, %.2f MB in %d batches",
            summary.total_records,
            summary.total_bytes / 1_000_000,
            summary.batches,
        )

        if summary.has_failures:
            error = IngestionFailedError(summary, failures)
            logger.error("%s", error)
            raise error

        logger.info("All batches inserted successfully")
        return summary
