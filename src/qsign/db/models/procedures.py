"""Credential procedure and deferred metadata models.

A credential procedure tracks one issuance; its deferred metadata row exists
while the credential still waits for a signature or a download.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Enum, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from qsign.db.models.base import (
    Base,
    CredentialStatus,
    OperationMode,
    TimestampTZ,
    UUIDPrimaryKey,
)


class CredentialProcedure(Base):
    """Issuance procedure whose signing mode the recovery flow may switch."""

    __tablename__ = "credential_procedure"

    procedure_id: Mapped[UUIDPrimaryKey]
    organization_identifier: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Email of the last user who touched the procedure; fallback recipient
    # for pending-signature notifications
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    operation_mode: Mapped[OperationMode] = mapped_column(
        Enum(OperationMode, name="operation_mode", create_constraint=True),
        nullable=False,
        default=OperationMode.SYNC,
    )
    credential_status: Mapped[CredentialStatus] = mapped_column(
        Enum(CredentialStatus, name="credential_status", create_constraint=True),
        nullable=False,
        default=CredentialStatus.DRAFT,
    )
    updated_at: Mapped[TimestampTZ]

    __table_args__ = (Index("ix_credential_procedure_status", "credential_status"),)


class DeferredCredentialMetadata(Base):
    """Deferred issuance bookkeeping, one row per procedure."""

    __tablename__ = "deferred_credential_metadata"

    id: Mapped[UUIDPrimaryKey]
    procedure_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, unique=True
    )
    operation_mode: Mapped[OperationMode | None] = mapped_column(
        Enum(OperationMode, name="operation_mode", create_constraint=True),
        nullable=True,
    )
