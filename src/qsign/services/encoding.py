"""Digest and Base64 helpers used across the CSC protocol calls."""

from __future__ import annotations

import base64
import binascii
import hashlib

from qsign.services.errors import HashGenerationError

# NIST hash algorithm OIDs (RFC 5754)
SHA256_OID = "2.16.840.1.101.3.4.2.1"
SHA384_OID = "2.16.840.1.101.3.4.2.2"
SHA512_OID = "2.16.840.1.101.3.4.2.3"

_HASH_NAMES_BY_OID = {
    SHA256_OID: "sha256",
    SHA384_OID: "sha384",
    SHA512_OID: "sha512",
}


def digest(data: bytes, algorithm_oid: str = SHA256_OID) -> bytes:
    """Compute a raw digest for the given hash algorithm OID.

    Raises:
        HashGenerationError: If the OID is not a supported hash algorithm.
    """
    if not algorithm_oid:
        raise HashGenerationError("Algorithm is required")
    name = _HASH_NAMES_BY_OID.get(algorithm_oid)
    if name is None:
        raise HashGenerationError(f"Unsupported hash algorithm: {algorithm_oid}")
    return hashlib.new(name, data).digest()


def sha256_digest(data: bytes) -> bytes:
    """Raw SHA-256 digest."""
    return hashlib.sha256(data).digest()


def generate_hash(document: str, algorithm_oid: str = SHA256_OID) -> str:
    """Standard Base64 digest of a UTF-8 document.

    This is the form CSC expects in authorization_details documentDigests.

    Raises:
        HashGenerationError: If the document is empty or the OID unsupported.
    """
    if not document:
        raise HashGenerationError("The document cannot be null or empty")
    return b64encode(digest(document.encode("utf-8"), algorithm_oid))


def b64encode(data: bytes) -> str:
    """Standard padded Base64."""
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    """Strict standard Base64 decode.

    Raises:
        binascii.Error: If the input is not valid Base64.
    """
    return base64.b64decode(data, validate=True)


def b64url_encode(data: bytes) -> str:
    """Unpadded Base64URL, as used by JWS segments."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_encode_utf8(text: str) -> str:
    """Unpadded Base64URL of a UTF-8 string."""
    return b64url_encode(text.encode("utf-8"))


def b64url_decode(data: str) -> bytes:
    """Decode Base64URL with or without padding."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded)


def to_b64url(value: str) -> str:
    """Normalize a standard or URL-safe Base64 string to unpadded Base64URL."""
    return value.strip().replace("+", "-").replace("/", "_").rstrip("=")


def is_base64(value: str) -> bool:
    """Check whether a string is valid standard Base64."""
    try:
        b64decode(value)
    except (binascii.Error, ValueError):
        return False
    return True
