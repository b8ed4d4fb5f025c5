"""Service-account credential handling: signed assertion and bearer token cache."""

import base64
import json
import logging
import time
from typing import Callable

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from bq_loader.errors import CredentialError
from bq_loader.infrastructure.oauth_client import OAuthClient
from bq_loader.models.schemas import ServiceCredential

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "https://www.googleapis.com/auth/bigquery"
ASSERTION_LIFETIME_SECONDS = 3600
# A cached token is reused only while it has at least this much time left
EXPIRY_MARGIN_SECONDS = 60


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_json(obj: dict) -> str:
    return _b64url(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def _load_private_key(credential: ServiceCredential) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(
            credential.private_key.encode("utf-8"),
            password=None,
        )
    except (ValueError, TypeError) as e:
        raise CredentialError(f"Invalid private key for {credential.client_email}: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise CredentialError(f"Private key for {credential.client_email} is not an RSA key")
    return key


def build_assertion(
    credential: ServiceCredential,
    scope: str = DEFAULT_SCOPE,
    issued_at: int | None = None,
) -> str:
    """
    Build an RS256-signed JWT for the jwt-bearer grant.

    Args:
        credential: Service account issuing the assertion.
        scope: OAuth scope requested.
        issued_at: Unix time for `iat`; defaults to now.

    Returns:
        Compact serialized JWT (header.payload.signature).

    Raises:
        CredentialError: If the private key cannot be used for RS256.
    """
    iat = int(time.time()) if issued_at is None else issued_at
    header = {"alg": "RS256", "typ": "JWT"}
    payload = {
        "iss": credential.client_email,
        "scope": scope,
        "aud": credential.token_uri,
        "iat": iat,
        "exp": iat + ASSERTION_LIFETIME_SECONDS,
    }

    signing_input = f"{_b64url_json(header)}.{_b64url_json(payload)}"
    private_key = _load_private_key(credential)
    signature = private_key.sign(
        signing_input.encode("ascii"),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
    return f"{signing_input}.{_b64url(signature)}"


class TokenProvider:
    """Exchanges the service credential for a bearer token and caches it."""

    def __init__(
        self,
        oauth_client: OAuthClient,
        credential: ServiceCredential,
        scope: str = DEFAULT_SCOPE,
        clock: Callable[[], float] = time.time,
    ):
        self._oauth_client = oauth_client
        self._credential = credential
        self._scope = scope
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0

    def get_token(self) -> str:
        """
        Return a bearer token, exchanging a fresh assertion when needed.

        Raises:
            CredentialError: If the exchange fails or returns no access token.
        """
        now = self._clock()
        if self._token and now < self._expires_at - EXPIRY_MARGIN_SECONDS:
            return self._token

        assertion = build_assertion(self._credential, self._scope, int(now))
        data = self._oauth_client.exchange_assertion(self._credential.token_uri, assertion)

        if not data or not data.get("access_token"):
            detail = ""
            if data:
                detail = f": {data.get('error', '')} {data.get('error_description', '')}".rstrip()
            raise CredentialError(
                f"Token exchange failed for {self._credential.client_email}{detail}"
            )

        self._token = data["access_token"]
        self._expires_at = now + int(data.get("expires_in", ASSERTION_LIFETIME_SECONDS))
        logger.info(
            "Obtained access token for %s (expires in %ds)",
            self._credential.client_email,
            int(self._expires_at - now),
        )
        return self._token
