"""Exception hierarchy for the signing services.

Errors are always chained (``raise ... from cause``) so the retry policy can
look through a protocol-level error to the transport failure that caused it.
"""

from __future__ import annotations


class SigningError(Exception):
    """Raised by signing providers; wraps any failure behind sign()."""

    pass


class InvalidSigningRequestError(SigningError):
    """Signing request failed structural validation."""

    pass


class SigningConfigurationError(Exception):
    """Unknown provider, unsupported JAdES profile, or unsupported OID."""

    pass


class HashGenerationError(Exception):
    """Digest could not be computed (empty input or unsupported algorithm)."""

    pass


class RemoteSignatureError(Exception):
    """Base exception for QTSP and signing-server failures."""

    pass


class QtspUnauthorizedError(RemoteSignatureError):
    """The QTSP answered HTTP 401."""

    pass


class QtspUnreachableError(RemoteSignatureError):
    """The QTSP host could not be resolved or connected to."""

    pass


class AccessTokenError(RemoteSignatureError):
    """Token endpoint response lacks a usable access_token."""

    pass


class SadMissingError(RemoteSignatureError):
    """credentials/authorize response lacks the SAD field."""

    pass


class SignatureProcessingError(RemoteSignatureError):
    """Signing response is missing its signature or cannot be decoded."""

    pass


class PayloadMismatchError(SignatureProcessingError):
    """The signed document's payload differs from the payload sent."""

    pass


class RemoteSignatureUnavailableError(RemoteSignatureError):
    """The configured remote signature mode is not supported."""

    pass


class CertificateInfoError(Exception):
    """credentials/info or credentials/list returned unusable data."""

    pass


class OrganizationIdentifierNotFoundError(CertificateInfoError):
    """No certificate in the chain carries an organizationIdentifier."""

    pass


class RetriesExhaustedError(Exception):
    """All retry attempts failed with recoverable errors.

    The last underlying failure is available as ``__cause__`` (and ``cause``).
    """

    def __init__(self, operation: str, attempts: int, cause: BaseException) -> None:
        self.operation = operation
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"{operation} failed after {attempts} attempts: {cause}")


class ProcedureNotFoundError(Exception):
    """No credential procedure exists for the given id."""

    def __init__(self, procedure_id: str) -> None:
        self.procedure_id = procedure_id
        super().__init__(f"No credential procedure for {procedure_id}")
