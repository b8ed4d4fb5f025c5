"""Infrastructure package."""

from bq_loader.infrastructure.bigquery_client import BigQueryClient
from bq_loader.infrastructure.dependency_injection import DependenciesContainer
from bq_loader.infrastructure.oauth_client import OAuthClient
from bq_loader.infrastructure.s3_client import S3Client

__all__ = [
    "BigQueryClient",
    "DependenciesContainer",
    "OAuthClient",
    "S3Client",
]
