"""Signing provider strategies.

Every provider exposes ``async sign(request) -> SigningResult``, validates
the request before any network call, and reports failures as SigningError
with the original error chained.

- InMemorySigningProvider: unsigned ``alg: none`` artifacts for dev and tests.
- CscSignDocSigningProvider: remote orchestrator (DSS server or CSC signDoc);
  issued credentials trigger the deferred-signing recovery on failure.
- CscSignHashSigningProvider: JAdES compact JWS through CSC signHash.
"""

from __future__ import annotations

import binascii
import logging
from typing import TYPE_CHECKING, Protocol

from qsign.services.encoding import b64decode, b64encode, b64url_encode_utf8
from qsign.services.errors import InvalidSigningRequestError, SigningError
from qsign.services.models import SigningResult, SigningType
from qsign.services.qtsp_auth import SCOPE_CREDENTIAL

if TYPE_CHECKING:
    from qsign.services.certificate_info import CertificateInfoResolver
    from qsign.services.jades_header import JadesHeaderBuilder
    from qsign.services.jws_sign_hash import JwsSignHashService
    from qsign.services.models import JadesProfile, SigningRequest
    from qsign.services.qtsp_auth import QtspAuthClient
    from qsign.services.remote_signature import RemoteSignatureOrchestrator
    from qsign.services.signing_recovery import SigningRecoveryService

logger = logging.getLogger(__name__)

UNSIGNED_JWS_HEADER = '{"alg":"none","typ":"JWT"}'


def validate_signing_request(request: SigningRequest | None) -> None:
    """Structural checks run before any signing work.

    Raises:
        InvalidSigningRequestError: Missing request, type, data, context or
            token, or blank data or token.
    """
    if request is None:
        raise InvalidSigningRequestError("SigningRequest must not be null")
    if request.type is None:
        raise InvalidSigningRequestError("SigningRequest.type must not be null")
    if request.data is None or not request.data.strip():
        raise InvalidSigningRequestError("SigningRequest.data must not be null/blank")
    if request.context is None:
        raise InvalidSigningRequestError("SigningRequest.context must not be null")
    if request.context.token is None or not request.context.token.strip():
        raise InvalidSigningRequestError("SigningContext.token must not be null/blank")


class SigningProvider(Protocol):
    """Uniform signing contract."""

    async def sign(self, request: SigningRequest) -> SigningResult: ...


class InMemorySigningProvider:
    """Produces structurally valid but unsigned artifacts. Never use in production."""

    async def sign(self, request: SigningRequest) -> SigningResult:
        validate_signing_request(request)
        data = request.data or ""

        if request.type == SigningType.JADES:
            return SigningResult(type=SigningType.JADES, data=self._unsigned_jws(data))
        return SigningResult(type=SigningType.COSE, data=self._passthrough_cose(data))

    @staticmethod
    def _unsigned_jws(payload_json: str) -> str:
        header = b64url_encode_utf8(UNSIGNED_JWS_HEADER)
        payload = b64url_encode_utf8(payload_json)
        return f"{header}.{payload}."

    @staticmethod
    def _passthrough_cose(cbor_b64: str) -> str:
        try:
            raw = b64decode(cbor_b64)
        except (binascii.Error, ValueError) as e:
            logger.warning(
                "COSE input was not valid Base64; using raw UTF-8 bytes as dummy COSE. reason=%s",
                e,
            )
            raw = cbor_b64.encode("utf-8")
        return b64encode(raw)


class CscSignDocSigningProvider:
    """Signs through the remote signature orchestrator.

    For issued credentials a failed signature moves the procedure to
    deferred signing. If that recovery fails as well, the recovery error is
    logged and the signing error is the one raised.
    """

    def __init__(
        self,
        orchestrator: RemoteSignatureOrchestrator,
        recovery: SigningRecoveryService,
    ) -> None:
        self._orchestrator = orchestrator
        self._recovery = recovery

    async def sign(self, request: SigningRequest) -> SigningResult:
        validate_signing_request(request)
        context = request.context
        procedure_id = context.procedure_id or ""
        issued = context.is_issued
        logger.debug(
            "Signing request received. type=%s, issued=%s, procedure_id=%s",
            request.type,
            issued,
            procedure_id,
        )

        try:
            if issued:
                return await self._orchestrator.sign_issued_credential(
                    request, context.token, procedure_id, context.email
                )
            return await self._orchestrator.sign_system_credential(request, context.token)
        except Exception as e:
            if issued:
                await self._recover(procedure_id, context.email)
            raise SigningError(f"Signing failed via CSC signDoc provider: {e}") from e

    async def _recover(self, procedure_id: str, email: str | None) -> None:
        try:
            await self._recovery.handle_post_recover_error(procedure_id, email)
        except Exception:
            logger.exception("Recovery failed for procedure %s", procedure_id)


class CscSignHashSigningProvider:
    """Builds a JAdES compact JWS and signs its digest with CSC signHash.

    Only JADES requests are supported.
    """

    def __init__(
        self,
        auth_client: QtspAuthClient,
        resolver: CertificateInfoResolver,
        jws_service: JwsSignHashService,
        header_builder: JadesHeaderBuilder,
        profile: JadesProfile,
    ) -> None:
        self._auth = auth_client
        self._resolver = resolver
        self._jws = jws_service
        self._header_builder = header_builder
        self._profile = profile

    async def sign(self, request: SigningRequest) -> SigningResult:
        validate_signing_request(request)
        if request.type != SigningType.JADES:
            raise SigningError("csc-sign-hash supports only JADES/JWT")

        try:
            access_token = await self._auth.request_access_token(request, SCOPE_CREDENTIAL)
            info = await self._resolver.request_certificate_info(
                access_token, self._resolver.credential_id
            )
            cert_info = self._resolver.parse_certificate_info(info)
            header_json = self._header_builder.build_header(cert_info, self._profile)
            jwt = await self._jws.sign_jwt_with_sign_hash(
                access_token, header_json, request.data or ""
            )
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Signing failed via CSC signHash provider: {e}") from e

        return SigningResult(type=SigningType.JADES, data=jwt)
