"""Base model definitions and the enums shared by the procedure tables.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Common column annotations for UUID keys and timestamps
- Operation mode and credential status enums
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, MetaData, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

# UUID primary key with server-side default generation
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
]

# Timestamp with timezone, defaults to now
TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]


class Base(DeclarativeBase):
    """Declarative base for all qsign models."""

    metadata = metadata


# =============================================================================
# Common Enums
# =============================================================================


class OperationMode(enum.Enum):
    """How a credential procedure gets its signature.

    Values:
        SYNC: Signed inline during issuance
        ASYNC: Signing deferred after remote signing exhausted its retries
    """

    SYNC = "S"
    ASYNC = "A"


class CredentialStatus(enum.Enum):
    """Credential procedure lifecycle status.

    The signing core only ever writes PEND_SIGNATURE; the rest belong to the
    issuance workflow.
    """

    DRAFT = "DRAFT"
    WITHDRAWN = "WITHDRAWN"
    PEND_SIGNATURE = "PEND_SIGNATURE"
    PEND_DOWNLOAD = "PEND_DOWNLOAD"
    VALID = "VALID"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"
