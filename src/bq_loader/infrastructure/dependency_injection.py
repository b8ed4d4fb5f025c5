"""Dependency injection container for the application."""

import os
from typing import Iterator

import boto3
import httpx
from dependency_injector import providers
from dependency_injector.containers import DeclarativeContainer

from bq_loader.config import Config
from bq_loader.infrastructure.bigquery_client import BigQueryClient
from bq_loader.infrastructure.oauth_client import OAuthClient
from bq_loader.infrastructure.s3_client import S3Client


def _create_session() -> boto3.Session:
    """Create boto3 session.

    In Lambda: Uses execution role automatically.
    Locally: Uses AWS_PROFILE_LOADER from environment.
    """
    region = os.getenv("AWS_REGION", "us-east-1")

    # In Lambda, use default credentials from execution role
    if os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
        return boto3.Session(region_name=region)

    # For local testing, use AWS profile
    profile = os.getenv("AWS_PROFILE_LOADER", "default")
    return boto3.Session(profile_name=profile, region_name=region)


def _init_http_client() -> Iterator[httpx.Client]:
    """Shared HTTP client for the token endpoint and BigQuery, closed on shutdown."""
    config = Config()
    client = httpx.Client(timeout=config.http_timeout)
    yield client
    client.close()


def _create_source_reader(s3_client: S3Client):
    """Factory for SourceReader to avoid circular import."""
    from bq_loader.services.source_reader import SourceReader

    config = Config()
    return SourceReader(s3_client, chunk_size=config.read_chunk_size)


class DependenciesContainer(DeclarativeContainer):
    """DI container for the application."""

    # Session (Lambda execution role or local AWS profile)
    session = providers.Singleton(_create_session)

    # S3 dependency chain
    s3_boto_client = providers.Singleton(
        lambda session: session.client("s3"),
        session=session,
    )

    s3_client = providers.Singleton(
        S3Client,
        client=s3_boto_client,
    )

    source_reader = providers.Singleton(
        _create_source_reader,
        s3_client=s3_client,
    )

    # HTTP dependency chain (OAuth token endpoint and BigQuery)
    http_client = providers.Resource(_init_http_client)

    oauth_client = providers.Singleton(
        OAuthClient,
        http_client=http_client,
    )

    bigquery_client = providers.Singleton(
        BigQueryClient,
        http_client=http_client,
    )
