"""OAuth2 token endpoint client."""

import logging

import httpx

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class OAuthClient:
    """Exchanges signed assertions for access tokens."""

    def __init__(self, http_client: httpx.Client):
        self._http = http_client

    def exchange_assertion(self, token_uri: str, assertion: str) -> dict | None:
        """
        Perform a jwt-bearer grant.

        Args:
            token_uri: OAuth2 token endpoint.
            assertion: Signed JWT.

        Returns:
            Decoded JSON body (token or error fields), or None if the
            endpoint could not be reached or did not return JSON.
        """
        try:
            response = self._http.post(
                token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as e:
            logger.error("Token request to %s failed: %s", token_uri, e)
            return None

        if response.is_error:
            logger.error("Token endpoint returned HTTP %d: %s", response.status_code, response.text)

        try:
            return response.json()
        except ValueError:
            logger.error("Token endpoint returned a non-JSON body")
            return None
