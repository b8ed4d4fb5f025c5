"""Models package."""

from bq_loader.models.records import Batch, DecodedItem, ParseFailure, Record
from bq_loader.models.schemas import (
    EventResult,
    FailureDetail,
    InsertAllResponse,
    InsertOutcome,
    LoaderConfig,
    ObjectRef,
    RowError,
    ServiceCredential,
    StreamSummary,
)

__all__ = [
    "Batch",
    "DecodedItem",
    "ParseFailure",
    "Record",
    "EventResult",
    "FailureDetail",
    "InsertAllResponse",
    "InsertOutcome",
    "LoaderConfig",
    "ObjectRef",
    "RowError",
    "ServiceCredential",
    "StreamSummary",
]
