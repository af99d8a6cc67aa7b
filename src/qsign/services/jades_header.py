"""JAdES protected header construction.

Maps the signing key's algorithm OID to a JWS ``alg`` and applies the
profile-specific claims of ETSI TS 119 182-1. Only the B-B and B-T baseline
profiles are implemented.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from qsign.services.errors import SigningConfigurationError
from qsign.services.models import CertificateInfo, JadesProfile

# ECDSA signature algorithm OIDs (RFC 5758)
ECDSA_SHA256_OID = "1.2.840.10045.4.3.2"
ECDSA_SHA384_OID = "1.2.840.10045.4.3.3"
ECDSA_SHA512_OID = "1.2.840.10045.4.3.4"

JWS_ALG_BY_OID = {
    ECDSA_SHA256_OID: "ES256",
    ECDSA_SHA384_OID: "ES384",
    ECDSA_SHA512_OID: "ES512",
}

HEADER_TYP = "JWT"
SIGT_TIMESPEC = "milliseconds"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def jws_alg_for_oid(algorithm_oids: list[str] | None) -> str:
    """Map the first key algorithm OID to a JWS alg.

    Raises:
        SigningConfigurationError: The list is empty or the OID is unsupported.
    """
    if not algorithm_oids:
        raise SigningConfigurationError("No signing algorithm found in certificate info")
    alg = JWS_ALG_BY_OID.get(algorithm_oids[0])
    if alg is None:
        raise SigningConfigurationError(f"Unsupported OID: {algorithm_oids[0]}")
    return alg


class JadesHeaderBuilder:
    """Builds JWS headers for JAdES baseline signatures.

    Args:
        clock: Returns the current UTC time; used for the B-T sigT claim.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock

    def build_header(self, cert_info: CertificateInfo, profile: JadesProfile) -> str:
        """Build the header JSON for the given certificate and profile.

        The output is compact JSON with sorted keys, ready to be Base64URL
        encoded as the JWS header segment.

        Raises:
            SigningConfigurationError: Missing inputs, unsupported key
                algorithm, or a profile that is not implemented (B-LT, B-LTA).
        """
        if cert_info is None:
            raise SigningConfigurationError("Certificate info is required")
        if profile is None:
            raise SigningConfigurationError("JAdES profile is required")

        header: dict[str, Any] = {
            "alg": jws_alg_for_oid(cert_info.key_algorithms),
            "typ": HEADER_TYP,
            "x5c": list(cert_info.certificates),
        }
        self._apply_profile(header, JadesProfile(profile))
        return json.dumps(header, separators=(",", ":"), sort_keys=True)

    def _apply_profile(self, header: dict[str, Any], profile: JadesProfile) -> None:
        if profile == JadesProfile.B_B:
            return
        if profile == JadesProfile.B_T:
            signing_time = self._clock().astimezone(UTC)
            header["sigT"] = signing_time.isoformat(timespec=SIGT_TIMESPEC).replace("+00:00", "Z")
            return
        raise SigningConfigurationError(f"JAdES profile {profile.value} not yet supported")
