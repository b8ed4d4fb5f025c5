"""Configuration management for the NDJSON loader."""

import os
from dataclasses import dataclass, field
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv
from pydantic import ValidationError

from bq_loader.errors import ConfigurationError
from bq_loader.models.schemas import DEFAULT_MAX_BATCH_BYTES, LoaderConfig, ServiceCredential

# Load .env if exists (local dev only, no-op in Lambda)
load_dotenv()


@lru_cache(maxsize=4)
def _get_secret(secret_name: str, region: str = "us-east-1") -> str:
    """Retrieve a secret string from AWS Secrets Manager. Cached to avoid repeated API calls."""
    client = boto3.client("secretsmanager", region_name=region)
    try:
        response = client.get_secret_value(SecretId=secret_name)
        return response.get("SecretString", "")
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceNotFoundException":
            return ""
        raise


def _env(key: str, default: str = "", cast=str):
    """Dataclass field read from the environment when the Config is created."""
    return field(default_factory=lambda: cast(os.getenv(key) or default))


@dataclass
class Config:
    """Loader configuration loaded from environment variables."""

    # AWS
    aws_region: str = _env("AWS_REGION", "us-east-1")
    source_bucket: str = _env("SOURCE_BUCKET")

    # BigQuery destination
    bq_project_id: str = _env("BQ_PROJECT_ID")
    bq_dataset_id: str = _env("BQ_DATASET_ID")
    bq_table_id: str = _env("BQ_TABLE_ID")
    bq_scope: str = _env("BQ_SCOPE", "https://www.googleapis.com/auth/bigquery")

    # Service account key JSON, inline or as a Secrets Manager secret name
    bq_service_account: str = _env("BQ_SERVICE_ACCOUNT")
    bq_service_account_secret: str = _env("BQ_SERVICE_ACCOUNT_SECRET")

    # Pipeline
    max_batch_bytes: int = _env("MAX_BATCH_BYTES", str(DEFAULT_MAX_BATCH_BYTES), int)
    read_chunk_size: int = _env("READ_CHUNK_SIZE", str(64 * 1024), int)
    http_timeout: float = _env("HTTP_TIMEOUT", "60", float)
    stamp_field: str = _env("STAMP_FIELD")

    # Direct-request trigger fallback when the request names no key
    default_object_key: str = _env("DEFAULT_OBJECT_KEY")

    log_level: str = _env("LOG_LEVEL", "INFO")

    def validate(self) -> None:
        """Validate required configuration."""
        if not self.bq_project_id:
            raise ValueError("BQ_PROJECT_ID environment variable is required")

        if not self.bq_dataset_id:
            raise ValueError("BQ_DATASET_ID environment variable is required")

        if not self.bq_table_id:
            raise ValueError("BQ_TABLE_ID environment variable is required")

        if not self.bq_service_account and not self.bq_service_account_secret:
            raise ValueError(
                "BQ_SERVICE_ACCOUNT or BQ_SERVICE_ACCOUNT_SECRET environment variable is required"
            )

        if self.max_batch_bytes <= 0:
            raise ValueError("MAX_BATCH_BYTES must be positive")

    def service_credential(self) -> ServiceCredential:
        """Parse the service account key from the environment or Secrets Manager."""
        raw = self.bq_service_account
        if not raw and self.bq_service_account_secret:
            raw = _get_secret(self.bq_service_account_secret, self.aws_region)

        if not raw:
            raise ConfigurationError("No BigQuery service account credential configured")

        try:
            return ServiceCredential.model_validate_json(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid service account credential: {e}") from e

    def loader_config(self) -> LoaderConfig:
        """Build the explicit per-run configuration."""
        return LoaderConfig(
            destination_project_id=self.bq_project_id,
            destination_dataset_id=self.bq_dataset_id,
            destination_table_id=self.bq_table_id,
            max_batch_bytes=self.max_batch_bytes,
            service_credential=self.service_credential(),
        )


config = Config()
