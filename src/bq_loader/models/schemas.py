"""Pydantic models for configuration, insert responses and run results."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MAX_BATCH_BYTES = 1024 * 1024
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
INSERT_ALL_URL = (
    "https://bigquery.googleapis.com/bigquery/v2/projects/{project}"
    "/datasets/{dataset}/tables/{table}/insertAll"
)


class ServiceCredential(BaseModel):
    """Google service account key (the JSON key file, extra fields ignored)."""

    model_config = ConfigDict(extra="ignore")

    client_email: str
    private_key: str
    token_uri: str = DEFAULT_TOKEN_URI
    project_id: str | None = None


class LoaderConfig(BaseModel):
    """Everything a single pipeline run needs to know about its destination."""

    destination_project_id: str
    destination_dataset_id: str
    destination_table_id: str
    max_batch_bytes: int = Field(default=DEFAULT_MAX_BATCH_BYTES, gt=0)
    service_credential: ServiceCredential

    @property
    def insert_all_url(self) -> str:
        """Return the tabledata.insertAll endpoint for the destination table."""
        return INSERT_ALL_URL.format(
            project=self.destination_project_id,
            dataset=self.destination_dataset_id,
            table=self.destination_table_id,
        )


class ErrorProto(BaseModel):
    """A single error reported for a row."""

    model_config = ConfigDict(extra="ignore")

    message: str = ""
    reason: str | None = None
    location: str | None = None


class RowError(BaseModel):
    """Entry of `insertErrors`: a zero-based row index within the request."""

    model_config = ConfigDict(extra="ignore")

    index: int
    errors: list[ErrorProto] = []

    @property
    def message(self) -> str:
        messages = [e.message for e in self.errors if e.message]
        return "; ".join(messages) or "unknown insert error"


class InsertAllResponse(BaseModel):
    """Transport-level result of one insertAll call."""

    status_code: int
    body_text: str = ""
    insert_errors: list[RowError] = []
    # Set when a 2xx body could not be understood
    parse_error: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300 and self.parse_error is None


class FailureDetail(BaseModel):
    """Diagnostics for the first failure of a batch or a malformed line."""

    line_number: int | None = None
    message: str
    payload: Any = None

    def describe(self) -> str:
        prefix = f"line {self.line_number}" if self.line_number is not None else "unknown line"
        text = f"{prefix}: {self.message}"
        if self.payload is not None:
            text += f" payload={json.dumps(self.payload, ensure_ascii=False)[:200]}"
        return text


class InsertOutcome(BaseModel):
    """Reconciled result of sending one batch."""

    succeeded: int
    failed: int
    first_failure: FailureDetail | None = None
    status_code: int | None = None


class StreamSummary(BaseModel):
    """Cumulative totals for one whole-stream run."""

    key: str | None = None
    total_records: int = 0
    total_bytes: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    failed_batches: int = 0

    @property
    def has_failures(self) -> bool:
        return self.failed + self.skipped > 0

    def add_outcome(self, outcome: InsertOutcome) -> None:
        self.batches += 1
        self.succeeded += outcome.succeeded
        self.failed += outcome.failed
        if outcome.failed:
            self.failed_batches += 1

    def render(self) -> str:
        """One-line summary for logs and responses."""
        return (
            f"{self.key or '<stream>'}: records={self.total_records} "
            f"mb={self.total_bytes / 1_000_000:.2f} succeeded={self.succeeded} "
            f"failed={self.failed} skipped={self.skipped} "
            f"batches={self.batches} failed_batches={self.failed_batches}"
        )


class ObjectRef(BaseModel):
    """Location of a source object."""

    bucket: str
    key: str


class EventResult(BaseModel):
    """Outcome of handling one queue message."""

    message_id: str
    keys: list[str] = []
    skipped_keys: list[str] = []
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None
