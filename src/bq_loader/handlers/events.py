"""Handler for queue messages carrying object-created notifications."""

import json
import logging
from typing import Any, Callable
from urllib.parse import unquote_plus

from bq_loader.models.schemas import EventResult, ObjectRef, StreamSummary

logger = logging.getLogger(__name__)

# Keys written by in-progress uploads; never loaded
TEMPORARY_PREFIX = "__temporary"


def is_temporary_key(key: str) -> bool:
    return key.startswith(TEMPORARY_PREFIX)


def _ref(bucket: str | None, key: str, default_bucket: str) -> ObjectRef:
    bucket = bucket or default_bucket
    if not bucket:
        raise ValueError(f"No bucket for key {key} and SOURCE_BUCKET is not set")
    return ObjectRef(bucket=bucket, key=key)


def parse_object_refs(body: str | dict[str, Any], default_bucket: str = "") -> list[ObjectRef]:
    """
    Extract the object locations named by a notification message body.

    Understands S3 event notifications (keys are URL-encoded), EventBridge
    "Object Created" events and the bare `{"object": {"key": ...}}` shape.
    S3 test events name no object and yield an empty list.

    Args:
        body: Message body, raw JSON text or already decoded.
        default_bucket: Bucket used when the event does not name one.

    Returns:
        Object references in event order.

    Raises:
        ValueError: If the body is not JSON or names no object.
    """
    event = json.loads(body) if isinstance(body, str) else body
    if not isinstance(event, dict):
        raise ValueError("Event body is not a JSON object")

    if event.get("Event") == "s3:TestEvent":
        return []

    refs: list[ObjectRef] = []

    for record in event.get("Records", []):
        s3 = record.get("s3", {})
        key = s3.get("object", {}).get("key")
        if key:
            refs.append(_ref(s3.get("bucket", {}).get("name"), unquote_plus(key), default_bucket))

    # EventBridge wraps the notification in "detail"
    source = event.get("detail") if isinstance(event.get("detail"), dict) else event
    key = (source.get("object") or {}).get("key")
    if key:
        bucket = source.get("bucket")
        bucket_name = bucket.get("name") if isinstance(bucket, dict) else bucket
        refs.append(_ref(bucket_name, key, default_bucket))

    if not refs:
        raise ValueError("Event names no object key")
    return refs


def process_queue_records(
    records: list[dict[str, Any]],
    run_key: Callable[[ObjectRef], StreamSummary],
    default_bucket: str = "",
) -> list[EventResult]:
    """
    Run every object named by a batch of queue messages.

    Each key is an isolated run: a failure is recorded against its message
    and processing moves on to the next key. Temporary keys are skipped
    without opening them.

    Args:
        records: SQS event records (`messageId`, `body`).
        run_key: Runs the pipeline for one object; raises on failure.
        default_bucket: Bucket used when a notification does not name one.

    Returns:
        One EventResult per message, in input order.
    """
    results: list[EventResult] = []

    for record in records:
        result = EventResult(message_id=record.get("messageId", ""))
        results.append(result)

        try:
            refs = parse_object_refs(record.get("body", ""), default_bucket)
        except ValueError as e:
            logger.error("Unparseable event in message %s: %s", result.message_id, e)
            result.error = f"Unparseable event: {e}"
            continue

        errors: list[str] = []
        for ref in refs:
            if is_temporary_key(ref.key):
                logger.info("Skipping temporary file: %s", ref.key)
                result.skipped_keys.append(ref.key)
                continue

            try:
                run_key(ref)
                result.keys.append(ref.key)
            except Exception as e:
                logger.exception("Error processing key %s: %s", ref.key, e)
                errors.append(f"{ref.key}: {e}")

        if errors:
            result.error = "; ".join(errors)

    return results
