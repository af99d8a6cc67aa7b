"""qsign service layer.

Remote signing orchestration for credential issuance:
- QtspAuthClient, QtspSadClient, QtspSignHashClient: CSC v2 protocol calls
- CertificateInfoResolver: issuer identity from the QTSP certificate
- JadesHeaderBuilder / JwsSignHashService: JAdES compact JWS over signHash
- RemoteSignatureOrchestrator: DSS server or CSC signDoc, with retries
- Signing providers (in-memory, csc-sign-doc, csc-sign-hash) and the registry
- SigningRecoveryService: deferred-signing transition and notification
- IssuerFactory: local or QTSP-derived issuer identity

Only the value types and errors are re-exported here; import the services
from their modules.
"""

from qsign.services.errors import (
    AccessTokenError,
    CertificateInfoError,
    HashGenerationError,
    InvalidSigningRequestError,
    OrganizationIdentifierNotFoundError,
    PayloadMismatchError,
    ProcedureNotFoundError,
    QtspUnauthorizedError,
    QtspUnreachableError,
    RemoteSignatureError,
    RemoteSignatureUnavailableError,
    RetriesExhaustedError,
    SadMissingError,
    SignatureProcessingError,
    SigningConfigurationError,
    SigningError,
)
from qsign.services.models import (
    CertificateInfo,
    DetailedIssuer,
    JadesProfile,
    SigningContext,
    SigningRequest,
    SigningResult,
    SigningType,
    SimpleIssuer,
)

__all__ = [
    "AccessTokenError",
    "CertificateInfo",
    "CertificateInfoError",
    "DetailedIssuer",
    "HashGenerationError",
    "InvalidSigningRequestError",
    "JadesProfile",
    "OrganizationIdentifierNotFoundError",
    "PayloadMismatchError",
    "ProcedureNotFoundError",
    "QtspUnauthorizedError",
    "QtspUnreachableError",
    "RemoteSignatureError",
    "RemoteSignatureUnavailableError",
    "RetriesExhaustedError",
    "SadMissingError",
    "SignatureProcessingError",
    "SigningConfigurationError",
    "SigningContext",
    "SigningError",
    "SigningRequest",
    "SigningResult",
    "SigningType",
    "SimpleIssuer",
]
