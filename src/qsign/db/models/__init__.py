"""SQLAlchemy ORM models for qsign.

- base: Common metadata, column annotations and enums
- procedures: Credential procedures and their deferred metadata
"""

from qsign.db.models.base import Base, CredentialStatus, OperationMode, metadata
from qsign.db.models.procedures import CredentialProcedure, DeferredCredentialMetadata

__all__ = [
    "Base",
    "CredentialProcedure",
    "CredentialStatus",
    "DeferredCredentialMetadata",
    "OperationMode",
    "metadata",
]
