"""Handlers package."""

from bq_loader.handlers.events import parse_object_refs, process_queue_records
from bq_loader.handlers.ingest import ingest_object

__all__ = ["ingest_object", "parse_object_refs", "process_queue_records"]
