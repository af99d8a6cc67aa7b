"""Remote signature orchestration.

Runs one signing attempt against the configured backend and wraps it in the
retry policy:

- server mode: POST to the on-prem DSS endpoint ``{domain}/api/v1{sign_path}``
  with the caller's token as the Authorization header.
- cloud mode: CSC credential token -> credentials/authorize (SAD) ->
  signatures/signDoc, with the signed payload checked against the request.

Issued credentials (user-facing, with a procedure id) have their deferred
metadata deleted after a successful signature. System credentials never
touch deferred metadata. Recovery after exhausted retries is the caller's
job (see signing_providers).
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from qsign.core.config import RemoteSignatureMode
from qsign.services.errors import (
    QtspUnauthorizedError,
    QtspUnreachableError,
    RemoteSignatureError,
    RemoteSignatureUnavailableError,
)
from qsign.services.http_client import CONTENT_TYPE_JSON
from qsign.services.models import SigningResult, SigningType
from qsign.services.qtsp_auth import SCOPE_CREDENTIAL

if TYPE_CHECKING:
    from qsign.core.config import RemoteSignatureSettings
    from qsign.services.http_client import HttpClient
    from qsign.services.models import SigningRequest
    from qsign.services.procedure_repository import ProcedureRepository
    from qsign.services.qtsp_auth import QtspAuthClient
    from qsign.services.qtsp_csc import QtspSadClient
    from qsign.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

DSS_API_PREFIX = "/api/v1"


class RemoteSignatureOrchestrator:
    """Signs credentials through the DSS server or the CSC QTSP.

    Args:
        settings: Remote signature settings (mode, domain, sign path).
        auth_client: QTSP token client (cloud mode).
        sad_client: CSC authorize/signDoc client (cloud mode).
        http_client: Transport used for the DSS call (server mode).
        repository: Persistence for deferred credential metadata.
        retry_policy: Retry plan wrapped around each signing attempt.
    """

    def __init__(
        self,
        settings: RemoteSignatureSettings,
        auth_client: QtspAuthClient,
        sad_client: QtspSadClient,
        http_client: HttpClient,
        repository: ProcedureRepository,
        retry_policy: RetryPolicy,
    ) -> None:
        self._settings = settings
        self._auth = auth_client
        self._sad = sad_client
        self._http = http_client
        self._repository = repository
        self._retry = retry_policy

    async def sign_issued_credential(
        self,
        signing_request: SigningRequest,
        token: str | None,
        procedure_id: str,
        email: str | None,
    ) -> SigningResult:
        """Sign a user-facing credential.

        On success the procedure's deferred metadata is deleted. A failed
        delete is logged and never replaces the signed result. On signing
        failure nothing is deleted and the error propagates to the caller,
        which decides whether to run recovery.
        """
        logger.debug(
            "sign_issued_credential: type=%s, procedure_id=%s, has_email=%s",
            signing_request.type,
            procedure_id,
            bool(email),
        )
        result = await self._sign_with_retry(signing_request, token, "sign_issued_credential")
        logger.info("Successfully signed credential for procedure %s", procedure_id)
        try:
            await self._repository.delete_deferred_metadata_by_id(procedure_id)
        except Exception:
            logger.exception(
                "Failed to delete deferred metadata for signed procedure %s", procedure_id
            )
        return result

    async def sign_system_credential(
        self,
        signing_request: SigningRequest,
        token: str | None,
    ) -> SigningResult:
        """Sign an internal platform credential (e.g. a status list)."""
        logger.debug("sign_system_credential: type=%s", signing_request.type)
        return await self._sign_with_retry(signing_request, token, "sign_system_credential")

    async def _sign_with_retry(
        self,
        signing_request: SigningRequest,
        token: str | None,
        operation_name: str,
    ) -> SigningResult:
        result = await self._retry.run(
            lambda: self.get_signed_signature(signing_request, token),
            operation_name,
        )
        logger.info(
            "Remote signing succeeded (%s). result_type=%s, signed_length=%d",
            operation_name,
            result.type.value,
            len(result.data),
        )
        return result

    async def get_signed_signature(
        self,
        signing_request: SigningRequest,
        token: str | None,
    ) -> SigningResult:
        """Run a single signing attempt in the configured mode.

        Raises:
            RemoteSignatureUnavailableError: The configured mode is unknown.
        """
        mode = self._settings.type
        if mode == RemoteSignatureMode.SERVER.value:
            return await self._sign_with_dss(signing_request, token)
        if mode == RemoteSignatureMode.CLOUD.value:
            return await self._sign_with_qtsp(signing_request)
        raise RemoteSignatureUnavailableError("Remote signature service not available")

    async def _sign_with_dss(
        self,
        signing_request: SigningRequest,
        token: str | None,
    ) -> SigningResult:
        endpoint = f"{self._settings.domain}{DSS_API_PREFIX}{self._settings.sign_path}"
        signing_type = signing_request.type or SigningType.JADES
        body: dict[str, Any] = {
            "configuration": {"type": signing_type.value, "parameters": {}},
            "data": signing_request.data,
        }
        headers = {"Authorization": token or "", "Content-Type": CONTENT_TYPE_JSON}

        logger.info("Requesting signature from DSS service")
        try:
            response_text = await self._http.post(endpoint, headers, json.dumps(body))
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("DSS endpoint [%s] returned %d", endpoint, status)
            if status == 401:
                raise QtspUnauthorizedError("Unauthorized: signing server rejected token") from e
            raise RemoteSignatureError(f"Signing server error ({status})") from e
        except httpx.ConnectError as e:
            logger.error("Could not reach signing server [%s]", endpoint)
            raise QtspUnreachableError("Signing server unreachable") from e
        except (httpx.HTTPError, OSError) as e:
            logger.error("Error signing credential with server method: %s", e)
            raise RemoteSignatureError("Error calling signing server") from e

        try:
            return SigningResult.from_dict(json.loads(response_text))
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Error parsing signed data from DSS: %s", e)
            raise RemoteSignatureError("Error parsing signed data") from e

    async def _sign_with_qtsp(self, signing_request: SigningRequest) -> SigningResult:
        logger.info("Requesting signature from external QTSP")
        access_token = await self._auth.request_access_token(signing_request, SCOPE_CREDENTIAL)
        sad = await self._sad.request_sad(access_token)
        return await self._sad.sign_doc(access_token, sad, signing_request)
