"""QTSP OAuth2 token acquisition.

Requests a bearer access token from the QTSP token endpoint using the
client-credentials grant. Credential-scoped tokens additionally carry an
``authorization_details`` entry binding the credential id, its password and
the SHA-256 digest of the document about to be signed.

This call is not retried here; the orchestrators wrap the whole token ->
SAD -> sign chain in the retry policy.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from qsign.services.encoding import SHA256_OID, generate_hash
from qsign.services.errors import (
    AccessTokenError,
    HashGenerationError,
    QtspUnauthorizedError,
    QtspUnreachableError,
    RemoteSignatureError,
)
from qsign.services.http_client import CONTENT_TYPE_FORM

if TYPE_CHECKING:
    from qsign.core.config import RemoteSignatureSettings
    from qsign.services.http_client import HttpClient
    from qsign.services.models import SigningRequest

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth2/token"
GRANT_TYPE = "client_credentials"

# Token scopes understood by the QTSP
SCOPE_SERVICE = "service"
SCOPE_CREDENTIAL = "credential"

ACCESS_TOKEN_FIELD = "access_token"
DOCUMENT_DIGEST_LABEL = "Issued Credential"


class QtspAuthClient:
    """Client for the QTSP OAuth2 token endpoint."""

    def __init__(self, settings: RemoteSignatureSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    @property
    def token_endpoint(self) -> str:
        return f"{self._settings.domain}{TOKEN_PATH}"

    async def request_access_token(
        self,
        signing_request: SigningRequest | None,
        scope: str,
    ) -> str:
        """Obtain an access token for the given scope.

        Args:
            signing_request: Request whose payload is digested into the
                authorization details. Only read for the credential scope.
            scope: SCOPE_SERVICE or SCOPE_CREDENTIAL.

        Returns:
            The access token string.

        Raises:
            AccessTokenError: Response lacks access_token or is not JSON.
            QtspUnauthorizedError: Client credentials rejected (HTTP 401).
            QtspUnreachableError: Host unreachable or DNS failure.
            RemoteSignatureError: Any other failure, with the cause chained.
        """
        endpoint = self.token_endpoint
        form: dict[str, str] = {"grant_type": GRANT_TYPE, "scope": scope}
        if scope == SCOPE_CREDENTIAL:
            data = signing_request.data if signing_request is not None else None
            form["authorization_details"] = self._build_authorization_details(data)

        headers = {
            "Authorization": self._basic_auth_header(),
            "Content-Type": CONTENT_TYPE_FORM,
        }

        try:
            response_text = await self._http.post(endpoint, headers, urlencode(form))
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("Access token endpoint [%s] returned %d", endpoint, status)
            if status == 401:
                raise QtspUnauthorizedError("Unauthorized: Invalid credentials") from e
            raise RemoteSignatureError(
                "Remote service error while retrieving access token"
            ) from e
        except httpx.ConnectError as e:
            logger.error("Could not reach host [%s] - check DNS or VPN", endpoint)
            raise QtspUnreachableError(
                "Signature service unreachable: host could not be resolved or connected"
            ) from e
        except (httpx.HTTPError, OSError) as e:
            logger.error("Unexpected error accessing [%s]: %s", endpoint, e)
            raise RemoteSignatureError("Unexpected error retrieving access token") from e

        return self._parse_access_token(response_text)

    def _basic_auth_header(self) -> str:
        credentials = (
            f"{self._settings.client_id}:{self._settings.client_secret.get_secret_value()}"
        )
        return "Basic " + base64.b64encode(credentials.encode("utf-8")).decode("ascii")

    def _build_authorization_details(self, document: str | None) -> str:
        """Serialize the authorization_details array for a credential token."""
        try:
            document_hash = generate_hash(document or "", SHA256_OID)
        except HashGenerationError as e:
            raise RemoteSignatureError("Error generating authorization details") from e

        details: dict[str, Any] = {
            "type": SCOPE_CREDENTIAL,
            "credentialID": self._settings.credential_id,
            "credentialPassword": self._settings.credential_password.get_secret_value(),
            "documentDigests": [{"hash": document_hash, "label": DOCUMENT_DIGEST_LABEL}],
            "hashAlgorithmOID": SHA256_OID,
        }
        return json.dumps([details])

    @staticmethod
    def _parse_access_token(response_text: str) -> str:
        try:
            response = json.loads(response_text)
        except json.JSONDecodeError as e:
            raise AccessTokenError("Error parsing access token response") from e

        if not isinstance(response, dict) or ACCESS_TOKEN_FIELD not in response:
            raise AccessTokenError("Access token missing in response")
        token = response[ACCESS_TOKEN_FIELD]
        if not isinstance(token, str) or not token:
            raise AccessTokenError("Access token missing in response")
        return token
