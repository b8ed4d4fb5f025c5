"""Error types raised by the loader."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bq_loader.models.schemas import FailureDetail, StreamSummary


class LoaderError(Exception):
    """Base class for all loader errors."""


class ConfigurationError(LoaderError):
    """Fatal error: the run cannot start or cannot continue."""


class ObjectNotFoundError(ConfigurationError):
    """The source object does not exist."""

    def __init__(self, bucket: str, key: str):
        super().__init__(f"Object not found: s3://{bucket}/{key}")
        self.bucket = bucket
        self.key = key


class EmptyObjectError(ConfigurationError):
    """The source object exists but has no readable body."""


class CredentialError(ConfigurationError):
    """The service credential could not be exchanged for a bearer token."""


class SourceReadError(ConfigurationError):
    """The compressed source stream is corrupt or truncated."""


class TransportError(LoaderError):
    """A batch could not be delivered to the insert endpoint."""


class IngestionFailedError(LoaderError):
    """Raised once a run completes with failed or malformed records.

    `failures` holds the first few failure details collected during the run;
    the full counts live on `summary`.
    """

    def __init__(self, summary: StreamSummary, failures: list[FailureDetail]):
        self.summary = summary
        self.failures = failures
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        s = self.summary
        lines = [
            f"{s.failed + s.skipped} record(s) not loaded "
            f"(failed={s.failed}, skipped={s.skipped}, succeeded={s.succeeded})"
        ]
        for failure in self.failures:
            lines.append(f"  {failure.describe()}")
        return "\n".join(lines)
