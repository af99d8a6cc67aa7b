"""Value types shared by the signing services.

These are immutable dataclasses built once per signing attempt or identity
resolution call. Persistence entities (credential procedures, deferred
metadata) live in qsign.db.models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# did:elsi is the DID method for ETSI-legal-person identifiers
DID_ELSI_PREFIX = "did:elsi:"


class SigningType(str, Enum):
    """Kind of artifact to produce.

    JADES payloads are JSON and yield a compact JWS.
    COSE payloads are Base64 CBOR and yield Base64 COSE bytes.
    """

    JADES = "JADES"
    COSE = "COSE"


class JadesProfile(str, Enum):
    """JAdES baseline signature profile (ETSI TS 119 182-1)."""

    B_B = "B_B"  # Baseline-B, no timestamp
    B_T = "B_T"  # Baseline-T, signature time claim
    B_LT = "B_LT"  # Baseline-LT, validation material (not implemented)
    B_LTA = "B_LTA"  # Baseline-LTA, long-term archival (not implemented)


@dataclass(frozen=True, slots=True)
class SigningContext:
    """Who is asking for the signature and on behalf of which procedure.

    Attributes:
        token: Bearer token or opaque handle forwarded to the signing backend.
        procedure_id: Credential procedure id. Present only for issued
            (user-facing) credentials; None for system credentials.
        email: Notification address used if signing has to be deferred.
    """

    token: str | None
    procedure_id: str | None = None
    email: str | None = None

    @property
    def is_issued(self) -> bool:
        """Whether the request belongs to an issued credential lifecycle."""
        return bool(self.procedure_id and self.procedure_id.strip())


@dataclass(frozen=True, slots=True)
class SigningRequest:
    """An unsigned payload plus the context needed to sign it.

    Attributes:
        type: Artifact kind to produce.
        data: Unsigned payload (JSON for JADES, Base64 CBOR for COSE).
        context: Token and procedure context.
    """

    type: SigningType | None
    data: str | None
    context: SigningContext | None


@dataclass(frozen=True, slots=True)
class SigningResult:
    """A signed artifact (compact JWS or Base64 COSE bytes)."""

    type: SigningType
    data: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SigningResult:
        """Build from a {"type", "data"} mapping as returned by a DSS server."""
        return cls(type=SigningType(str(data["type"]).upper()), data=str(data["data"]))


@dataclass(frozen=True, slots=True)
class CertificateInfo:
    """Signing certificate and key metadata from CSC credentials/info.

    Attributes:
        certificates: Base64 DER certificates, leaf first.
        issuer_dn: Issuer distinguished name.
        subject_dn: Subject distinguished name.
        serial_number: Certificate serial number.
        valid_from: Validity start as returned by the QTSP.
        valid_to: Validity end as returned by the QTSP.
        key_algorithms: Signature algorithm OIDs supported by the key.
        key_length: Key length in bits.
    """

    certificates: list[str]
    issuer_dn: str | None
    subject_dn: str | None
    serial_number: str | None
    valid_from: str | None
    valid_to: str | None
    key_algorithms: list[str] = field(default_factory=list)
    key_length: int | None = None


@dataclass(frozen=True, slots=True)
class DetailedIssuer:
    """Full issuer identity embedded in issued credentials."""

    id: str
    organization_identifier: str
    organization: str | None
    country: str | None
    common_name: str | None
    serial_number: str | None

    def to_simple(self) -> SimpleIssuer:
        """Project to the id-only issuer shape."""
        return SimpleIssuer(id=self.id)


@dataclass(frozen=True, slots=True)
class SimpleIssuer:
    """Issuer identity reduced to its DID."""

    id: str


def issuer_did(organization_identifier: str) -> str:
    """Build the issuer DID for an organization identifier."""
    return f"{DID_ELSI_PREFIX}{organization_identifier}"
