"""Compact JWS assembly over CSC signatures/signHash.

The signing input (``b64url(header) + "." + b64url(payload)``) is digested
locally; only the digest travels to the QTSP. The returned signature is
appended as the third JWS segment.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from qsign.services.encoding import (
    SHA256_OID,
    SHA384_OID,
    SHA512_OID,
    b64url_encode,
    b64url_encode_utf8,
    digest,
    to_b64url,
)
from qsign.services.errors import RemoteSignatureError, SigningConfigurationError
from qsign.services.jades_header import (
    ECDSA_SHA256_OID,
    ECDSA_SHA384_OID,
    ECDSA_SHA512_OID,
)

if TYPE_CHECKING:
    from qsign.services.qtsp_csc import QtspSignHashClient
    from qsign.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

# JWS alg -> (hash algorithm OID, signature algorithm OID)
ALGORITHMS_BY_JWS_ALG = {
    "ES256": (SHA256_OID, ECDSA_SHA256_OID),
    "ES384": (SHA384_OID, ECDSA_SHA384_OID),
    "ES512": (SHA512_OID, ECDSA_SHA512_OID),
}


def algorithms_for_header(header_json: str) -> tuple[str, str]:
    """Hash and signature algorithm OIDs for the header's alg.

    Raises:
        SigningConfigurationError: Header is not JSON or alg is unsupported.
    """
    try:
        alg = json.loads(header_json).get("alg")
    except (ValueError, AttributeError) as e:
        raise SigningConfigurationError("JWS header is not a JSON object") from e
    algorithms = ALGORITHMS_BY_JWS_ALG.get(alg)
    if algorithms is None:
        raise SigningConfigurationError(f"Unsupported JWS alg for signHash: {alg}")
    return algorithms


class JwsSignHashService:
    """Produces compact JWS tokens by signing their digest remotely."""

    def __init__(self, sign_hash_client: QtspSignHashClient, retry_policy: RetryPolicy) -> None:
        self._client = sign_hash_client
        self._retry = retry_policy

    async def sign_jwt_with_sign_hash(
        self,
        access_token: str,
        header_json: str,
        payload_json: str,
    ) -> str:
        """Sign a JWT through authorize-for-hash and signHash.

        Args:
            access_token: Credential-scope QTSP bearer token.
            header_json: JWS header JSON (alg, typ, x5c and profile claims).
            payload_json: JWT payload JSON.

        Returns:
            The compact JWS ``header.payload.signature``.
        """
        hash_algo_oid, sign_algo_oid = algorithms_for_header(header_json)

        signing_input = f"{b64url_encode_utf8(header_json)}.{b64url_encode_utf8(payload_json)}"
        try:
            hash_b64url = b64url_encode(digest(signing_input.encode("ascii"), hash_algo_oid))
        except UnicodeEncodeError as e:
            raise RemoteSignatureError("Failed to compute signingInput digest") from e

        sad = await self._retry.run(
            lambda: self._client.authorize_for_hash(access_token, hash_b64url, hash_algo_oid),
            "credentials/authorize (hash)",
        )
        signature = await self._retry.run(
            lambda: self._client.sign_hash(
                access_token, sad, hash_b64url, hash_algo_oid, sign_algo_oid
            ),
            "signatures/signHash",
        )
        logger.debug("signHash returned a signature for alg %s", sign_algo_oid)
        return f"{signing_input}.{to_b64url(signature)}"
