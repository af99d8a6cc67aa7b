"""Resolve the signing identity embedded in issued credentials.

Server mode uses the static default signer configuration. Cloud mode derives
the identity from the QTSP certificate (credentials/list check, service
token, credentials/info, organizationIdentifier extraction) under the same
retry policy as signing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from qsign.services.models import DetailedIssuer, SimpleIssuer, issuer_did

if TYPE_CHECKING:
    from qsign.core.config import DefaultSignerSettings
    from qsign.services.certificate_info import CertificateInfoResolver
    from qsign.services.retry_policy import RetryPolicy
    from qsign.services.signing_recovery import SigningRecoveryService

logger = logging.getLogger(__name__)


class IssuerFactory:
    """Builds DetailedIssuer / SimpleIssuer values.

    Two call shapes:
    - ``create_*_issuer()``: errors propagate.
    - ``create_*_issuer_and_notify_on_error()``: a failed remote resolution
      runs the recovery transition for the procedure and returns None.
    """

    def __init__(
        self,
        default_signer: DefaultSignerSettings,
        resolver: CertificateInfoResolver,
        recovery: SigningRecoveryService,
        retry_policy: RetryPolicy,
    ) -> None:
        self._default_signer = default_signer
        self._resolver = resolver
        self._recovery = recovery
        self._retry = retry_policy

    async def create_detailed_issuer(self) -> DetailedIssuer:
        logger.debug("create_detailed_issuer")
        if self._resolver.is_server_mode():
            return self._build_local_detailed_issuer()
        return await self._create_remote_detailed_issuer()

    async def create_simple_issuer(self) -> SimpleIssuer:
        logger.debug("create_simple_issuer")
        if self._resolver.is_server_mode():
            return self._build_local_simple_issuer()
        detailed = await self._create_remote_detailed_issuer()
        return detailed.to_simple()

    async def create_detailed_issuer_and_notify_on_error(
        self,
        procedure_id: str,
        email: str | None,
    ) -> DetailedIssuer | None:
        """Resolve the issuer, deferring the procedure if that fails.

        Returns:
            The issuer, or None after recovery ran.

        Raises:
            Exception: Whatever the recovery itself raises.
        """
        logger.debug("create_detailed_issuer_and_notify_on_error")
        if self._resolver.is_server_mode():
            return self._build_local_detailed_issuer()
        return await self._create_remote_detailed_issuer_notify_on_error(procedure_id, email)

    async def create_simple_issuer_and_notify_on_error(
        self,
        procedure_id: str,
        email: str | None,
    ) -> SimpleIssuer | None:
        logger.debug("create_simple_issuer_and_notify_on_error")
        if self._resolver.is_server_mode():
            return self._build_local_simple_issuer()
        detailed = await self._create_remote_detailed_issuer_notify_on_error(procedure_id, email)
        return detailed.to_simple() if detailed is not None else None

    def _build_local_detailed_issuer(self) -> DetailedIssuer:
        signer = self._default_signer
        return DetailedIssuer(
            id=issuer_did(signer.organization_identifier),
            organization_identifier=signer.organization_identifier,
            organization=signer.organization,
            country=signer.country,
            common_name=signer.common_name,
            serial_number=signer.serial_number,
        )

    def _build_local_simple_issuer(self) -> SimpleIssuer:
        return SimpleIssuer(id=issuer_did(self._default_signer.organization_identifier))

    async def _create_remote_detailed_issuer(self) -> DetailedIssuer:
        try:
            return await self._retry.run(
                self._resolver.resolve_remote_detailed_issuer,
                "remote issuer resolution",
            )
        except Exception as e:
            logger.error("Error during remote issuer creation: %s", e)
            raise

    async def _create_remote_detailed_issuer_notify_on_error(
        self,
        procedure_id: str,
        email: str | None,
    ) -> DetailedIssuer | None:
        try:
            return await self._retry.run(
                self._resolver.resolve_remote_detailed_issuer,
                "remote issuer resolution",
            )
        except Exception as e:
            logger.error(
                "Error during remote issuer creation for procedure %s: %s",
                procedure_id,
                e,
            )
        await self._recovery.handle_post_recover_error(procedure_id, email)
        return None
