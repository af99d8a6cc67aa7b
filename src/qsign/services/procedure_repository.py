"""Persistence of credential procedures and deferred metadata.

The signing core depends only on the ProcedureRepository protocol. The
SQLAlchemy implementation works on a caller-owned AsyncSession: it flushes
but never commits, so the caller decides the transaction boundary.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import delete, select

from qsign.db.models import CredentialProcedure, DeferredCredentialMetadata

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class ProcedureRepository(Protocol):
    """Storage operations the signing core needs."""

    async def find_procedure_by_id(self, procedure_id: str) -> CredentialProcedure | None: ...

    async def save_procedure(self, procedure: CredentialProcedure) -> CredentialProcedure: ...

    async def find_deferred_metadata_by_procedure_id(
        self, procedure_id: str
    ) -> DeferredCredentialMetadata | None: ...

    async def save_deferred_metadata(
        self, metadata: DeferredCredentialMetadata
    ) -> DeferredCredentialMetadata: ...

    async def delete_deferred_metadata_by_id(self, procedure_id: str) -> None: ...


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning("Ignoring malformed procedure id: %s", value)
        return None


class SqlAlchemyProcedureRepository:
    """ProcedureRepository backed by PostgreSQL through SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_procedure_by_id(self, procedure_id: str) -> CredentialProcedure | None:
        key = _parse_uuid(procedure_id)
        if key is None:
            return None
        query = select(CredentialProcedure).where(CredentialProcedure.procedure_id == key)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def save_procedure(self, procedure: CredentialProcedure) -> CredentialProcedure:
        self._session.add(procedure)
        await self._session.flush()
        return procedure

    async def find_deferred_metadata_by_procedure_id(
        self, procedure_id: str
    ) -> DeferredCredentialMetadata | None:
        key = _parse_uuid(procedure_id)
        if key is None:
            return None
        query = select(DeferredCredentialMetadata).where(
            DeferredCredentialMetadata.procedure_id == key
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def save_deferred_metadata(
        self, metadata: DeferredCredentialMetadata
    ) -> DeferredCredentialMetadata:
        self._session.add(metadata)
        await self._session.flush()
        return metadata

    async def delete_deferred_metadata_by_id(self, procedure_id: str) -> None:
        """Delete the deferred metadata row owned by a procedure."""
        key = _parse_uuid(procedure_id)
        if key is None:
            return
        await self._session.execute(
            delete(DeferredCredentialMetadata).where(
                DeferredCredentialMetadata.procedure_id == key
            )
        )
        await self._session.flush()
        logger.debug("Deleted deferred metadata for procedure %s", procedure_id)
