"""Deferred-signing recovery for issued credentials.

When remote signing of a user-facing credential cannot complete, the
procedure is moved to asynchronous signing:

1. load the procedure once (missing -> ProcedureNotFoundError, nothing written)
2. operation_mode=ASYNC, credential_status=PEND_SIGNATURE, save
3. deferred metadata, if any, gets operation_mode=ASYNC, save
4. notify ``email`` if given, otherwise the procedure's ``updated_by``

Steps 2 and 4 use the same loaded procedure. There is no locking: two
concurrent recoveries for one procedure both write the same target state.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from qsign.db.models import CredentialStatus, OperationMode
from qsign.services.email import PENDING_CREDENTIAL_TEMPLATE_KEY
from qsign.services.errors import ProcedureNotFoundError

if TYPE_CHECKING:
    from qsign.services.email import EmailNotificationService
    from qsign.services.procedure_repository import ProcedureRepository

logger = logging.getLogger(__name__)


class SigningRecoveryService:
    """Switches a procedure to deferred signing and notifies its owner.

    Args:
        repository: Procedure and deferred metadata persistence.
        email_service: Notification sender.
        frontend_domain: Issuer portal URL linked from the notification.
    """

    def __init__(
        self,
        repository: ProcedureRepository,
        email_service: EmailNotificationService,
        frontend_domain: str,
    ) -> None:
        self._repository = repository
        self._email = email_service
        self._frontend_domain = frontend_domain

    async def handle_post_recover_error(self, procedure_id: str, email: str | None) -> None:
        """Apply the deferred-signing transition for a procedure.

        Raises:
            ProcedureNotFoundError: No procedure with this id.
            EmailDeliveryError: The notification could not be sent (the
                state changes are already persisted by then).
        """
        logger.info("Handling post-recover error for procedure %s", procedure_id)

        procedure = await self._repository.find_procedure_by_id(procedure_id)
        if procedure is None:
            raise ProcedureNotFoundError(procedure_id)

        procedure.operation_mode = OperationMode.ASYNC
        procedure.credential_status = CredentialStatus.PEND_SIGNATURE
        procedure.updated_at = datetime.now(UTC)
        await self._repository.save_procedure(procedure)
        logger.info("Updated operation mode to ASYNC for procedure %s", procedure_id)

        deferred = await self._repository.find_deferred_metadata_by_procedure_id(procedure_id)
        if deferred is None:
            logger.error("No deferred metadata found for procedure %s", procedure_id)
        else:
            deferred.operation_mode = OperationMode.ASYNC
            await self._repository.save_deferred_metadata(deferred)
            logger.info("Updated operation mode to ASYNC for deferred metadata %s", procedure_id)

        target_email = email if email and email.strip() else procedure.updated_by
        if not target_email:
            logger.error("No recipient for pending signature notification of %s", procedure_id)
            return

        logger.info(
            "Sending pending signature notification for organization %s",
            procedure.organization_identifier,
        )
        await self._email.send_pending_signature_notification(
            to_email=target_email,
            template_key=PENDING_CREDENTIAL_TEMPLATE_KEY,
            procedure_id=procedure_id,
            frontend_domain=self._frontend_domain,
        )
