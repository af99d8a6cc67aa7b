"""CSC v2 protocol calls against the QTSP.

Covers credentials/authorize (Signature Activation Data), signatures/signDoc
and signatures/signHash. All calls are single attempts; retries are applied
by the callers through RetryPolicy.

Failures keep their transport cause chained so that a 5xx or timeout behind
a protocol error is still classified as recoverable.
"""

from __future__ import annotations

import binascii
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from qsign.services.encoding import b64decode, b64encode, b64url_decode
from qsign.services.errors import (
    PayloadMismatchError,
    QtspUnauthorizedError,
    QtspUnreachableError,
    RemoteSignatureError,
    SadMissingError,
    SignatureProcessingError,
)
from qsign.services.http_client import BEARER_PREFIX, CONTENT_TYPE_JSON
from qsign.services.models import SigningResult, SigningType

if TYPE_CHECKING:
    from qsign.core.config import RemoteSignatureSettings
    from qsign.services.http_client import HttpClient
    from qsign.services.models import SigningRequest

logger = logging.getLogger(__name__)

# CSC v2 endpoints (relative to the QTSP domain)
AUTHORIZE_PATH = "/csc/v2/credentials/authorize"
SIGN_DOC_PATH = "/csc/v2/signatures/signDoc"
SIGN_HASH_PATH = "/csc/v2/signatures/signHash"

SAD_FIELD = "SAD"
SIGNATURES_FIELD = "signatures"
DOCUMENT_WITH_SIGNATURE_FIELD = "DocumentWithSignature"

# signDoc constants
SIGNATURE_QUALIFIER = "eu_eidas_aesealqc"
SIGNATURE_FORMAT_JADES = "J"
CONFORMANCE_LEVEL = "Ades-B"
SIGN_ALGO_PLACEHOLDER = "OID_sign_algorithm"


class CscClientBase:
    """Shared JSON POST plumbing for the CSC endpoints."""

    def __init__(self, settings: RemoteSignatureSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    def _endpoint(self, path: str) -> str:
        return f"{self._settings.domain}{path}"

    def _authorize_body(self) -> dict[str, Any]:
        return {
            "credentialID": self._settings.credential_id,
            "numSignatures": 1,
            "authData": [
                {
                    "id": "password",
                    "value": self._settings.credential_password.get_secret_value(),
                }
            ],
        }

    async def _post_json(
        self,
        path: str,
        access_token: str,
        body: dict[str, Any],
        operation: str,
    ) -> dict[str, Any]:
        """POST a JSON body with a bearer token and parse the JSON response.

        Raises:
            QtspUnauthorizedError: HTTP 401.
            QtspUnreachableError: Host unreachable or DNS failure.
            RemoteSignatureError: Any other transport or decoding failure.
        """
        endpoint = self._endpoint(path)
        headers = {
            "Authorization": f"{BEARER_PREFIX}{access_token}",
            "Content-Type": CONTENT_TYPE_JSON,
        }
        try:
            response_text = await self._http.post(endpoint, headers, json.dumps(body))
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("%s: endpoint [%s] returned %d", operation, endpoint, status)
            if status == 401:
                raise QtspUnauthorizedError(f"{operation}: unauthorized") from e
            raise RemoteSignatureError(f"{operation}: remote service error ({status})") from e
        except httpx.ConnectError as e:
            logger.error("%s: could not reach host [%s]", operation, endpoint)
            raise QtspUnreachableError(f"{operation}: signature service unreachable") from e
        except (httpx.HTTPError, OSError) as e:
            logger.error("%s: transport error calling [%s]: %s", operation, endpoint, e)
            raise RemoteSignatureError(f"{operation}: transport error") from e

        try:
            response = json.loads(response_text)
        except json.JSONDecodeError as e:
            raise RemoteSignatureError(f"{operation}: response is not valid JSON") from e
        if not isinstance(response, dict):
            raise RemoteSignatureError(f"{operation}: response is not a JSON object")
        return response

    @staticmethod
    def _extract_sad(response: dict[str, Any]) -> str:
        sad = response.get(SAD_FIELD)
        if not isinstance(sad, str) or not sad:
            raise SadMissingError("SAD missing in response")
        return sad


class QtspSadClient(CscClientBase):
    """Obtains SAD and signs documents with signatures/signDoc."""

    async def request_sad(self, access_token: str) -> str:
        """Authorize the configured credential for one signature.

        Returns:
            The Signature Activation Data string.

        Raises:
            SadMissingError: The response has no SAD field.
        """
        response = await self._post_json(
            AUTHORIZE_PATH, access_token, self._authorize_body(), "credentials/authorize"
        )
        return self._extract_sad(response)

    async def sign_doc(
        self,
        access_token: str,
        sad: str,
        signing_request: SigningRequest,
    ) -> SigningResult:
        """Sign a document as JAdES through signatures/signDoc.

        The QTSP returns the signed JWS Base64-encoded; its payload must match
        the payload that was sent, compared as JSON.

        Raises:
            SignatureProcessingError: DocumentWithSignature missing or undecodable.
            PayloadMismatchError: The signed payload differs from the request.
        """
        data = signing_request.data or ""
        body = {
            "credentialID": self._settings.credential_id,
            "SAD": sad,
            "signatureQualifier": SIGNATURE_QUALIFIER,
            "documents": [
                {
                    "document": b64encode(data.encode("utf-8")),
                    "signature_format": SIGNATURE_FORMAT_JADES,
                    "conformance_level": CONFORMANCE_LEVEL,
                    "signAlgo": SIGN_ALGO_PLACEHOLDER,
                }
            ],
        }
        response = await self._post_json(SIGN_DOC_PATH, access_token, body, "signatures/signDoc")

        documents = response.get(DOCUMENT_WITH_SIGNATURE_FIELD)
        if not isinstance(documents, list) or not documents:
            raise SignatureProcessingError("No signature found in the response")

        try:
            signed_jws = b64decode(str(documents[0])).decode("utf-8")
        except (binascii.Error, ValueError) as e:
            raise SignatureProcessingError("Signed document is not valid Base64") from e

        self._verify_payload(signed_jws, data)
        logger.debug("signDoc returned a signed document matching the request payload")
        return SigningResult(
            type=signing_request.type or SigningType.JADES,
            data=signed_jws,
        )

    @staticmethod
    def _verify_payload(signed_jws: str, original_data: str) -> None:
        parts = signed_jws.split(".")
        if len(parts) != 3:
            raise SignatureProcessingError("Signed document is not a compact JWS")
        try:
            signed_payload = json.loads(b64url_decode(parts[1]).decode("utf-8"))
            expected_payload = json.loads(original_data)
        except (binascii.Error, ValueError) as e:
            raise SignatureProcessingError("Error decoding the signed payload") from e

        if signed_payload != expected_payload:
            raise PayloadMismatchError(
                "Signed payload received does not match the original data"
            )


class QtspSignHashClient(CscClientBase):
    """Authorizes and signs precomputed hashes through signatures/signHash."""

    async def authorize_for_hash(
        self,
        access_token: str,
        hash_b64url: str,
        hash_algo_oid: str,
    ) -> str:
        """Obtain a SAD bound to one specific hash."""
        body = self._authorize_body()
        body["hash"] = [hash_b64url]
        body["hashAlgo"] = hash_algo_oid
        response = await self._post_json(
            AUTHORIZE_PATH, access_token, body, "credentials/authorize (hash)"
        )
        return self._extract_sad(response)

    async def sign_hash(
        self,
        access_token: str,
        sad: str,
        hash_b64url: str,
        hash_algo_oid: str,
        sign_algo_oid: str,
    ) -> str:
        """Sign one hash and return the raw signature value.

        Raises:
            SignatureProcessingError: The signatures array is missing or empty.
        """
        body = {
            "credentialID": self._settings.credential_id,
            "SAD": sad,
            "hash": [hash_b64url],
            "hashAlgo": hash_algo_oid,
            "signAlgo": sign_algo_oid,
        }
        response = await self._post_json(
            SIGN_HASH_PATH, access_token, body, "signatures/signHash"
        )
        signatures = response.get(SIGNATURES_FIELD)
        if not isinstance(signatures, list) or not signatures or not signatures[0]:
            raise SignatureProcessingError("signHash response has no signatures")
        return str(signatures[0])
