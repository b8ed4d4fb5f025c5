"""AWS Lambda handlers for loading NDJSON objects into BigQuery.

`lambda_handler` serves direct requests (function URL / API Gateway / manual
invoke) for a single object key. `sqs_handler` consumes object-created
notifications from SQS and reports failed messages individually so only
those are redelivered.
"""

import base64
import json
import logging
from typing import Callable

from bq_loader.config import config
from bq_loader.errors import IngestionFailedError, ObjectNotFoundError
from bq_loader.handlers.events import process_queue_records
from bq_loader.handlers.ingest import ingest_object
from bq_loader.infrastructure.dependency_injection import DependenciesContainer
from bq_loader.models.schemas import LoaderConfig, ObjectRef, StreamSummary
from bq_loader.services.credentials import TokenProvider
from bq_loader.services.inserter import Inserter

# Configure root logger for Lambda (all modules will inherit this)
logging.getLogger().setLevel(config.log_level.upper())
logger = logging.getLogger(__name__)


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _build_runner(
    container: DependenciesContainer,
    loader_config: LoaderConfig,
) -> Callable[[ObjectRef], StreamSummary]:
    """Wire one pipeline runner; its token is shared by every key it loads."""
    token_provider = TokenProvider(
        oauth_client=container.oauth_client(),
        credential=loader_config.service_credential,
        scope=config.bq_scope,
    )
    inserter = Inserter(
        bigquery_client=container.bigquery_client(),
        token_provider=token_provider,
        loader_config=loader_config,
    )
    source_reader = container.source_reader()

    def run_key(ref: ObjectRef) -> StreamSummary:
        return ingest_object(
            ref,
            source_reader=source_reader,
            inserter=inserter,
            stamp_field=config.stamp_field or None,
        )

    return run_key


def _resolve_key(event: dict) -> str | None:
    """Object key from the query string, a JSON body, a direct invoke payload or the default."""
    params = event.get("queryStringParameters") or {}
    if params.get("key"):
        return params["key"]

    body = event.get("body")
    if body:
        try:
            if event.get("isBase64Encoded"):
                body = base64.b64decode(body, validate=True).decode("utf-8")
            data = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            data = None
        if isinstance(data, dict) and data.get("key"):
            return data["key"]

    if event.get("key"):
        return event["key"]

    return config.default_object_key or None


def lambda_handler(event: dict, context) -> dict:
    """
    Lambda handler for a direct request naming one object key.

    Args:
        event: Request event with the key in `queryStringParameters.key`,
            a JSON body `{"key": ...}` or a top-level `key`.
        context: Lambda context object.

    Returns:
        Response dict with statusCode and body.
    """
    key = _resolve_key(event)
    if not key:
        logger.error("No object key in request")
        return _response(400, {"error": "No object key in request"})

    container = DependenciesContainer()
    try:
        config.validate()
        if not config.source_bucket:
            raise ValueError("SOURCE_BUCKET environment variable is required")

        run_key = _build_runner(container, config.loader_config())
        summary = run_key(ObjectRef(bucket=config.source_bucket, key=key))

        return _response(
            200,
            {
                "message": "Data processed and inserted successfully",
                "summary": summary.model_dump(),
            },
        )

    except ObjectNotFoundError as e:
        logger.error("%s", e)
        return _response(404, {"error": str(e)})

    except IngestionFailedError as e:
        logger.error("Load of %s finished with failures: %s", key, e.summary.render())
        return _response(500, {"error": str(e), "summary": e.summary.model_dump()})

    except Exception as e:
        logger.exception("Error in fetch handler: %s", e)
        return _response(500, {"error": str(e)})

    finally:
        container.shutdown_resources()


def sqs_handler(event: dict, context) -> dict:
    """
    Lambda handler for SQS batches of object-created notifications.

    Requires `ReportBatchItemFailures` on the event source mapping: only the
    messages listed in `batchItemFailures` are redelivered.

    Args:
        event: SQS event with `Records`.
        context: Lambda context object.

    Returns:
        Partial batch response.
    """
    records = event.get("Records", [])
    logger.info("Received %d SQS message(s)", len(records))

    container = DependenciesContainer()
    try:
        config.validate()
        run_key = _build_runner(container, config.loader_config())
    except Exception as e:
        logger.exception("Failed to initialize loader: %s", e)
        container.shutdown_resources()
        return {
            "batchItemFailures": [{"itemIdentifier": r.get("messageId", "")} for r in records]
        }

    try:
        results = process_queue_records(records, run_key, default_bucket=config.source_bucket)
    finally:
        container.shutdown_resources()

    failures = [{"itemIdentifier": r.message_id} for r in results if not r.success]
    logger.info(
        "Processed %d message(s): %d failed, %d key(s) loaded, %d temporary key(s) skipped",
        len(results),
        len(failures),
        sum(len(r.keys) for r in results),
        sum(len(r.skipped_keys) for r in results),
    )
    return {"batchItemFailures": failures}
