"""BigQuery tabledata.insertAll client."""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from bq_loader.errors import TransportError
from bq_loader.models.schemas import InsertAllResponse, RowError

logger = logging.getLogger(__name__)

INSERT_ALL_KIND = "bigquery#tableDataInsertAllRequest"


class BigQueryClient:
    """Handles streaming inserts over HTTPS."""

    def __init__(self, http_client: httpx.Client):
        """
        Initialize BigQuery client wrapper.

        Args:
            http_client: Shared httpx client.
        """
        self._http = http_client

    def insert_all(self, url: str, token: str, rows: list[dict[str, Any]]) -> InsertAllResponse:
        """
        POST one insertAll request.

        Args:
            url: insertAll endpoint of the destination table.
            token: OAuth2 bearer token.
            rows: Row payloads, each `{"json": value}`.

        Returns:
            InsertAllResponse with the status, raw body and any row errors.

        Raises:
            TransportError: If the rows cannot be serialized or no HTTP
                response was received.
        """
        payload = {"kind": INSERT_ALL_KIND, "rows": rows}

        try:
            response = self._http.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.error("insertAll request to %s failed: %s", url, e)
            raise TransportError(f"{type(e).__name__}: {e}") from e
        except (ValueError, TypeError) as e:
            # Rows that cannot be encoded as a request body
            logger.error("insertAll request body could not be serialized: %s", e)
            raise TransportError(f"Unserializable rows: {e}") from e

        result = InsertAllResponse(status_code=response.status_code, body_text=response.text)
        if not result.ok:
            logger.error("insertAll returned HTTP %d", response.status_code)
            return result

        try:
            body = response.json()
        except ValueError:
            logger.error("insertAll returned a non-JSON body with HTTP %d", response.status_code)
            result.parse_error = "non-JSON response body"
            return result

        raw_errors = body.get("insertErrors") if isinstance(body, dict) else None
        if raw_errors:
            try:
                result.insert_errors = [RowError.model_validate(e) for e in raw_errors]
            except ValidationError as e:
                logger.error("Unexpected insertErrors shape: %s", e)
                result.parse_error = f"unexpected insertErrors shape: {e.error_count()} error(s)"

        return result
