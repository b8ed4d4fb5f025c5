"""Tests for handlers layer."""

import base64
import gzip
import json
from unittest.mock import MagicMock, patch

import pytest

from bq_loader.errors import CredentialError, IngestionFailedError, ObjectNotFoundError
from bq_loader.handler import lambda_handler, sqs_handler
from bq_loader.handlers.events import is_temporary_key, parse_object_refs, process_queue_records
from bq_loader.handlers.ingest import ingest_object
from bq_loader.infrastructure.bigquery_client import BigQueryClient
from bq_loader.infrastructure.s3_client import S3Client
from bq_loader.models.schemas import (
    ErrorProto,
    FailureDetail,
    InsertAllResponse,
    ObjectRef,
    RowError,
    StreamSummary,
)
from bq_loader.services.credentials import TokenProvider
from bq_loader.services.inserter import Inserter
from bq_loader.services.source_reader import SourceReader


def _s3_event(*keys: str, bucket: str = "source-bucket") -> str:
    return json.dumps(
        {
            "Records": [
                {"s3": {"bucket": {"name": bucket}, "object": {"key": key}}} for key in keys
            ]
        }
    )


def _sqs_record(message_id: str, body: str) -> dict:
    return {"messageId": message_id, "body": body}


class TestIngestObject:
    """Tests for ingest_object handler."""

    def _wire(self, loader_config, data: bytes, responses):
        mock_s3_client = MagicMock(spec=S3Client)
        mock_s3_client.get_object_stream.return_value = {"Body": MagicMock(), "ContentLength": 10}
        compressed = gzip.compress(data)
        mock_s3_client.iter_body.return_value = iter(
            [compressed[i:i + 16] for i in range(0, len(compressed), 16)]
        )

        mock_bigquery = MagicMock(spec=BigQueryClient)
        mock_bigquery.insert_all.side_effect = responses
        mock_tokens = MagicMock(spec=TokenProvider)
        mock_tokens.get_token.return_value = "tok"

        source_reader = SourceReader(mock_s3_client)
        inserter = Inserter(mock_bigquery, mock_tokens, loader_config)
        return source_reader, inserter, mock_bigquery

    def test_ingest_object_success(self, loader_config):
        """Test a compressed object flows through to insertAll."""
        data = b'{"id":1}\n{"id":2}\n\n{"id":3}\n'
        source_reader, inserter, mock_bigquery = self._wire(
            loader_config, data, [InsertAllResponse(status_code=200)]
        )

        summary = ingest_object(
            ObjectRef(bucket="b", key="2024/01/events.json.gz"),
            source_reader=source_reader,
            inserter=inserter,
        )

        assert summary.key == "2024/01/events.json.gz"
        assert summary.total_records == 3
        assert summary.succeeded == 3
        mock_bigquery.insert_all.assert_called_once()
        rows = mock_bigquery.insert_all.call_args.kwargs["rows"]
        assert rows == [{"json": {"id": 1}}, {"json": {"id": 2}}, {"json": {"id": 3}}]

    def test_ingest_object_reports_source_line(self, loader_config):
        """Test a rejected row is reported with its line in the object."""
        data = b'{"id":1}\n\n{"id":2}\n'
        source_reader, inserter, _ = self._wire(
            loader_config,
            data,
            [
                InsertAllResponse(
                    status_code=200,
                    insert_errors=[RowError(index=1, errors=[ErrorProto(message="bad")])],
                )
            ],
        )

        with pytest.raises(IngestionFailedError) as exc_info:
            ingest_object(ObjectRef(bucket="b", key="k"), source_reader, inserter)

        assert exc_info.value.failures[0].line_number == 3
        assert exc_info.value.failures[0].payload == {"id": 2}

    def test_ingest_object_stamps_records(self, loader_config):
        """Test the stamp field is applied when configured."""
        source_reader, inserter, mock_bigquery = self._wire(
            loader_config, b'{"id":1}\n', [InsertAllResponse(status_code=200)]
        )

        ingest_object(
            ObjectRef(bucket="b", key="k"),
            source_reader=source_reader,
            inserter=inserter,
            stamp_field="generated_at",
        )

        rows = mock_bigquery.insert_all.call_args.kwargs["rows"]
        assert "generated_at" in rows[0]["json"]

    def test_ingest_object_missing(self, loader_config):
        """Test a missing object raises before anything is sent."""
        source_reader, inserter, mock_bigquery = self._wire(loader_config, b"", [])
        source_reader._s3_client.get_object_stream.return_value = None

        with pytest.raises(ObjectNotFoundError):
            ingest_object(ObjectRef(bucket="b", key="k"), source_reader, inserter)

        mock_bigquery.insert_all.assert_not_called()

    def test_ingest_object_closes_body_on_credential_failure(self, loader_config):
        """Test the opened object is released when the token cannot be obtained."""
        source_reader, _, mock_bigquery = self._wire(loader_config, b'{"id":1}\n', [])
        body = source_reader._s3_client.get_object_stream.return_value["Body"]
        mock_tokens = MagicMock(spec=TokenProvider)
        mock_tokens.get_token.side_effect = CredentialError("Token exchange failed")
        inserter = Inserter(mock_bigquery, mock_tokens, loader_config)

        with pytest.raises(CredentialError):
            ingest_object(ObjectRef(bucket="b", key="k"), source_reader, inserter)

        body.close.assert_called_once()
        mock_bigquery.insert_all.assert_not_called()

    def test_ingest_object_closes_body_on_success(self, loader_config):
        """Test the object body is closed after a completed run."""
        source_reader, inserter, _ = self._wire(
            loader_config, b'{"id":1}\n', [InsertAllResponse(status_code=200)]
        )
        body = source_reader._s3_client.get_object_stream.return_value["Body"]

        ingest_object(ObjectRef(bucket="b", key="k"), source_reader, inserter)

        body.close.assert_called_once()


class TestParseObjectRefs:
    """Tests for parse_object_refs."""

    def test_s3_notification(self):
        """Test keys are URL-decoded from S3 notifications."""
        refs = parse_object_refs(_s3_event("logs/day+1/a%3Db.json.gz"))

        assert refs == [ObjectRef(bucket="source-bucket", key="logs/day 1/a=b.json.gz")]

    def test_multiple_records(self):
        """Test every record in a notification is returned in order."""
        refs = parse_object_refs(_s3_event("a.gz", "b.gz"))

        assert [r.key for r in refs] == ["a.gz", "b.gz"]

    def test_eventbridge_event(self):
        """Test EventBridge Object Created events."""
        body = {
            "detail-type": "Object Created",
            "detail": {"bucket": {"name": "eb-bucket"}, "object": {"key": "x.json.gz"}},
        }

        assert parse_object_refs(body) == [ObjectRef(bucket="eb-bucket", key="x.json.gz")]

    def test_bare_object_uses_default_bucket(self):
        """Test the default bucket fills in when the event names none."""
        refs = parse_object_refs('{"object": {"key": "y.json.gz"}}', default_bucket="fallback")

        assert refs == [ObjectRef(bucket="fallback", key="y.json.gz")]

    def test_test_event(self):
        """Test S3 test events name no object."""
        assert parse_object_refs('{"Event": "s3:TestEvent"}') == []

    def test_invalid_bodies(self):
        """Test unusable bodies raise ValueError."""
        with pytest.raises(ValueError):
            parse_object_refs("not json")
        with pytest.raises(ValueError):
            parse_object_refs("[1, 2]")
        with pytest.raises(ValueError):
            parse_object_refs('{"hello": "world"}')
        with pytest.raises(ValueError):
            parse_object_refs('{"object": {"key": "k"}}')

    def test_is_temporary_key(self):
        """Test temporary upload keys are recognised."""
        assert is_temporary_key("__temporary/part-0001") is True
        assert is_temporary_key("data/__temporary.gz") is False


class TestProcessQueueRecords:
    """Tests for process_queue_records."""

    def test_temporary_key_skipped(self):
        """Test a temporary key never reaches the pipeline."""
        run_key = MagicMock()

        results = process_queue_records(
            [_sqs_record("m1", _s3_event("__temporary/abc.json.gz"))], run_key
        )

        run_key.assert_not_called()
        assert results[0].success is True
        assert results[0].skipped_keys == ["__temporary/abc.json.gz"]

    def test_failure_does_not_block_next_key(self):
        """Test a failing key is recorded and later keys still run."""
        run_key = MagicMock(side_effect=[RuntimeError("boom"), StreamSummary(key="b.gz")])

        results = process_queue_records(
            [
                _sqs_record("m1", _s3_event("a.gz")),
                _sqs_record("m2", _s3_event("b.gz")),
            ],
            run_key,
        )

        assert run_key.call_count == 2
        assert results[0].success is False
        assert "a.gz: boom" in results[0].error
        assert results[1].success is True
        assert results[1].keys == ["b.gz"]

    def test_unparseable_message(self):
        """Test an unparseable body fails only its message."""
        run_key = MagicMock()

        results = process_queue_records(
            [_sqs_record("m1", "garbage"), _sqs_record("m2", _s3_event("c.gz"))],
            run_key,
        )

        assert results[0].error.startswith("Unparseable event")
        assert results[1].success is True
        run_key.assert_called_once_with(ObjectRef(bucket="source-bucket", key="c.gz"))


@patch("bq_loader.handler._build_runner")
@patch("bq_loader.handler.DependenciesContainer")
@patch("bq_loader.handler.config")
class TestLambdaHandler:
    """Tests for lambda_handler."""

    def _configure(self, mock_config):
        mock_config.source_bucket = "source-bucket"
        mock_config.default_object_key = ""

    def test_success_from_query_string(self, mock_config, mock_container_cls, mock_build_runner):
        """Test a key in the query string is loaded and summarized."""
        self._configure(mock_config)
        run_key = mock_build_runner.return_value
        run_key.return_value = StreamSummary(key="k.gz", total_records=2, succeeded=2, batches=1)

        response = lambda_handler({"queryStringParameters": {"key": "k.gz"}}, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["message"] == "Data processed and inserted successfully"
        assert body["summary"]["succeeded"] == 2
        run_key.assert_called_once_with(ObjectRef(bucket="source-bucket", key="k.gz"))
        mock_container_cls.return_value.shutdown_resources.assert_called_once()

    def test_key_from_base64_body(self, mock_config, mock_container_cls, mock_build_runner):
        """Test a base64-encoded JSON body names the key."""
        self._configure(mock_config)
        run_key = mock_build_runner.return_value
        run_key.return_value = StreamSummary(key="b.gz")
        body = base64.b64encode(b'{"key": "b.gz"}').decode("ascii")

        response = lambda_handler({"body": body, "isBase64Encoded": True}, None)

        assert response["statusCode"] == 200
        assert run_key.call_args.args[0].key == "b.gz"

    def test_default_key(self, mock_config, mock_container_cls, mock_build_runner):
        """Test the configured default key is used when the request names none."""
        self._configure(mock_config)
        mock_config.default_object_key = "fixed/export.json.gz"
        run_key = mock_build_runner.return_value
        run_key.return_value = StreamSummary(key="fixed/export.json.gz")

        response = lambda_handler({}, None)

        assert response["statusCode"] == 200
        assert run_key.call_args.args[0].key == "fixed/export.json.gz"

    def test_missing_key(self, mock_config, mock_container_cls, mock_build_runner):
        """Test a request without a key is rejected."""
        self._configure(mock_config)

        response = lambda_handler({"body": "not json"}, None)

        assert response["statusCode"] == 400
        mock_build_runner.assert_not_called()

    def test_malformed_base64_body(self, mock_config, mock_container_cls, mock_build_runner):
        """Test an undecodable base64 body is treated as naming no key."""
        self._configure(mock_config)

        response = lambda_handler({"body": "%%%not-base64", "isBase64Encoded": True}, None)

        assert response["statusCode"] == 400
        mock_build_runner.assert_not_called()

    def test_non_utf8_base64_body(self, mock_config, mock_container_cls, mock_build_runner):
        """Test a base64 body that is not UTF-8 is treated as naming no key."""
        self._configure(mock_config)
        body = base64.b64encode(b"\xff\xfe\xfa").decode("ascii")

        response = lambda_handler({"body": body, "isBase64Encoded": True}, None)

        assert response["statusCode"] == 400
        mock_build_runner.assert_not_called()

    def test_object_not_found(self, mock_config, mock_container_cls, mock_build_runner):
        """Test a missing object returns 404."""
        self._configure(mock_config)
        mock_build_runner.return_value.side_effect = ObjectNotFoundError("source-bucket", "k.gz")

        response = lambda_handler({"key": "k.gz"}, None)

        assert response["statusCode"] == 404
        assert "s3://source-bucket/k.gz" in json.loads(response["body"])["error"]

    def test_ingestion_failed(self, mock_config, mock_container_cls, mock_build_runner):
        """Test partial failures return 500 with the summary."""
        self._configure(mock_config)
        summary = StreamSummary(key="k.gz", succeeded=2, failed=1, batches=1, failed_batches=1)
        mock_build_runner.return_value.side_effect = IngestionFailedError(
            summary, [FailureDetail(line_number=3, message="bad")]
        )

        response = lambda_handler({"key": "k.gz"}, None)

        assert response["statusCode"] == 500
        body = json.loads(response["body"])
        assert "line 3: bad" in body["error"]
        assert body["summary"]["failed"] == 1
        mock_container_cls.return_value.shutdown_resources.assert_called_once()

    def test_invalid_configuration(self, mock_config, mock_container_cls, mock_build_runner):
        """Test a configuration error returns 500."""
        self._configure(mock_config)
        mock_config.validate.side_effect = ValueError("BQ_PROJECT_ID environment variable is required")

        response = lambda_handler({"key": "k.gz"}, None)

        assert response["statusCode"] == 500
        assert "BQ_PROJECT_ID" in json.loads(response["body"])["error"]
        mock_build_runner.assert_not_called()


@patch("bq_loader.handler._build_runner")
@patch("bq_loader.handler.DependenciesContainer")
@patch("bq_loader.handler.config")
class TestSqsHandler:
    """Tests for sqs_handler."""

    def test_reports_only_failed_messages(self, mock_config, mock_container_cls, mock_build_runner):
        """Test batchItemFailures lists only messages whose keys failed."""
        mock_config.source_bucket = "source-bucket"
        mock_build_runner.return_value.side_effect = [
            StreamSummary(key="ok.gz"),
            RuntimeError("insert failed"),
        ]
        event = {
            "Records": [
                _sqs_record("m1", _s3_event("ok.gz")),
                _sqs_record("m2", _s3_event("bad.gz")),
                _sqs_record("m3", _s3_event("__temporary/x.gz")),
            ]
        }

        response = sqs_handler(event, None)

        assert response == {"batchItemFailures": [{"itemIdentifier": "m2"}]}
        mock_container_cls.return_value.shutdown_resources.assert_called_once()

    def test_initialization_failure_fails_all(self, mock_config, mock_container_cls, mock_build_runner):
        """Test every message is retried when the loader cannot start."""
        mock_config.validate.side_effect = ValueError("BQ_TABLE_ID environment variable is required")
        event = {
            "Records": [
                _sqs_record("m1", _s3_event("a.gz")),
                _sqs_record("m2", _s3_event("b.gz")),
            ]
        }

        response = sqs_handler(event, None)

        assert response == {
            "batchItemFailures": [{"itemIdentifier": "m1"}, {"itemIdentifier": "m2"}]
        }
        mock_build_runner.assert_not_called()
