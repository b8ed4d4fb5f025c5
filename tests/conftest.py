"""Shared fixtures."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from bq_loader.models.schemas import LoaderConfig, ServiceCredential


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def credential(private_key_pem) -> ServiceCredential:
    return ServiceCredential(
        client_email="loader@test-project.iam.gserviceaccount.com",
        private_key=private_key_pem,
    )


@pytest.fixture
def loader_config(credential) -> LoaderConfig:
    return LoaderConfig(
        destination_project_id="test-project",
        destination_dataset_id="events",
        destination_table_id="raw",
        max_batch_bytes=250,
        service_credential=credential,
    )
