"""Signing of status list credentials.

Status lists are system credentials: they have no procedure, so a failed
signature is reported to the caller and never deferred.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from qsign.services.errors import RemoteSignatureError
from qsign.services.models import SigningContext, SigningRequest, SigningType

if TYPE_CHECKING:
    from qsign.services.signing_providers import SigningProvider

logger = logging.getLogger(__name__)


class StatusListSigner:
    """Signs status list payloads as JAdES through the configured provider."""

    def __init__(self, provider: SigningProvider) -> None:
        self._provider = provider

    async def sign(self, payload: dict[str, Any], token: str, list_id: int) -> str:
        """Sign a status list credential payload.

        Args:
            payload: Status list credential claims.
            token: Bearer token forwarded to the signing backend.
            list_id: Status list id, used in error messages.

        Returns:
            The signed compact JWS.

        Raises:
            ValueError: payload or token is missing.
            RemoteSignatureError: Serialization or signing failed, or the
                signer returned an empty result.
        """
        if payload is None:
            raise ValueError("payload must not be null")
        if token is None:
            raise ValueError("token must not be null")

        try:
            data = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise RemoteSignatureError(
                f"StatusList payload serialization failed; list ID: {list_id}"
            ) from e

        request = SigningRequest(
            type=SigningType.JADES,
            data=data,
            context=SigningContext(token=token, procedure_id=None, email=None),
        )
        try:
            result = await self._provider.sign(request)
        except Exception as e:
            raise RemoteSignatureError(f"StatusList signing failed; list ID: {list_id}") from e

        if result is None or not result.data or not result.data.strip():
            raise RemoteSignatureError(f"Signer returned empty signingResult; list ID: {list_id}")
        logger.debug("Status list %s signed", list_id)
        return result.data
