"""Issuer identity and key metadata from the QTSP certificate.

Calls CSC credentials/list and credentials/info and parses the returned
certificate chain to recover the issuer's organizationIdentifier (OID
2.5.4.97) and the subject DN attributes that make up a DetailedIssuer.

Resolution order for each chain entry:
1. Regex match ``organizationIdentifier=<id>`` on the decoded certificate text.
2. Parse the bytes as X.509 and read the 2.5.4.97 attribute.
The first entry yielding an identifier wins.
"""

from __future__ import annotations

import binascii
import logging
import re
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.x509.oid import NameOID

from qsign.core.config import RemoteSignatureMode
from qsign.services.encoding import b64decode
from qsign.services.errors import (
    CertificateInfoError,
    OrganizationIdentifierNotFoundError,
)
from qsign.services.models import CertificateInfo, DetailedIssuer, issuer_did
from qsign.services.qtsp_auth import SCOPE_SERVICE
from qsign.services.qtsp_csc import CscClientBase

if TYPE_CHECKING:
    from qsign.core.config import RemoteSignatureSettings
    from qsign.services.http_client import HttpClient
    from qsign.services.qtsp_auth import QtspAuthClient

logger = logging.getLogger(__name__)

INFO_PATH = "/csc/v2/credentials/info"
LIST_PATH = "/csc/v2/credentials/list"

ORGANIZATION_IDENTIFIER_PATTERN = re.compile(r"organizationIdentifier\s*=\s*([\w\-]+)")

KEY_STATUS_ENABLED = "enabled"
CERT_STATUS_VALID = "valid"


def parse_distinguished_name(dn: str) -> dict[str, str]:
    """Split an RFC 4514 DN into {attribute type: value}.

    Escaped separators (``\\,``) are kept inside values. The first
    occurrence of a repeated attribute type wins.
    """
    attributes: dict[str, str] = {}
    current: list[str] = []
    escaped = False
    rdns: list[str] = []
    for char in dn:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char in ",;":
            rdns.append("".join(current))
            current = []
        else:
            current.append(char)
    rdns.append("".join(current))

    for rdn in rdns:
        attr_type, sep, value = rdn.partition("=")
        if not sep:
            if rdn.strip():
                raise CertificateInfoError(f"Error parsing subjectDN: {dn}")
            continue
        value = re.sub(r"\\(.)", r"\1", value.strip())
        attributes.setdefault(attr_type.strip().upper(), value)
    return attributes


def _org_id_from_x509(cert_bytes: bytes) -> str | None:
    try:
        if cert_bytes.lstrip().startswith(b"-----BEGIN"):
            certificate = x509.load_pem_x509_certificate(cert_bytes)
        else:
            certificate = x509.load_der_x509_certificate(cert_bytes)
    except ValueError as e:
        logger.debug("Error parsing certificate: %s", e)
        return None

    for name in (certificate.subject, certificate.issuer):
        for attribute in name.get_attributes_for_oid(NameOID.ORGANIZATION_IDENTIFIER):
            value = str(attribute.value).strip()
            if value:
                return value
    return None


def extract_organization_identifier(certificates: list[Any]) -> str:
    """Find the first organizationIdentifier in a Base64 certificate chain.

    Raises:
        OrganizationIdentifierNotFoundError: No entry carries one.
        CertificateInfoError: An entry is not valid Base64.
    """
    for entry in certificates:
        try:
            cert_bytes = b64decode(str(entry))
        except (binascii.Error, ValueError) as e:
            raise CertificateInfoError("Certificate chain entry is not valid Base64") from e

        match = ORGANIZATION_IDENTIFIER_PATTERN.search(
            cert_bytes.decode("utf-8", errors="replace")
        )
        if match:
            return match.group(1)

        org_id = _org_id_from_x509(cert_bytes)
        if org_id:
            return org_id

    raise OrganizationIdentifierNotFoundError(
        "organizationIdentifier not found in the certificate."
    )


class CertificateInfoResolver(CscClientBase):
    """Resolves the remote issuer identity from the QTSP credential.

    Args:
        settings: Remote signature settings (domain, credential id).
        auth_client: Token client used for service-scope tokens.
        http_client: Transport shared with the other QTSP clients.
    """

    def __init__(
        self,
        settings: RemoteSignatureSettings,
        auth_client: QtspAuthClient,
        http_client: HttpClient,
    ) -> None:
        super().__init__(settings, http_client)
        self._auth = auth_client

    @property
    def credential_id(self) -> str:
        return self._settings.credential_id

    def is_server_mode(self) -> bool:
        """Whether signatures go to the on-prem DSS server."""
        return self._settings.type == RemoteSignatureMode.SERVER.value

    async def validate_credentials(self) -> bool:
        """Check that the configured credential is listed by the QTSP.

        Matching is trimmed and case-insensitive.
        """
        access_token = await self._auth.request_access_token(None, SCOPE_SERVICE)
        body = {
            "credentialInfo": True,
            "certificates": "chain",
            "certInfo": True,
            "authInfo": True,
            "onlyValid": True,
            "lang": 0,
            "clientData": "string",
        }
        response = await self._post_json(LIST_PATH, access_token, body, "credentials/list")

        credential_ids = response.get("credentialIDs")
        if not isinstance(credential_ids, list):
            return False
        expected = self.credential_id.strip().lower()
        return any(str(cid).strip().lower() == expected for cid in credential_ids)

    async def request_certificate_info(
        self,
        access_token: str,
        credential_id: str,
    ) -> dict[str, Any]:
        """Fetch the credentials/info document for a credential."""
        body = {
            "credentialID": credential_id,
            "certificates": "chain",
            "certInfo": "true",
            "authInfo": "true",
        }
        return await self._post_json(INFO_PATH, access_token, body, "credentials/info")

    async def resolve_remote_detailed_issuer(self) -> DetailedIssuer:
        """Validate the credential, then derive the issuer from its certificate.

        Raises:
            CertificateInfoError: The credential is not listed by the QTSP.
            OrganizationIdentifierNotFoundError: No organizationIdentifier found.
        """
        if not await self.validate_credentials():
            raise CertificateInfoError("Credentials mismatch.")

        access_token = await self._auth.request_access_token(None, SCOPE_SERVICE)
        info = await self.request_certificate_info(access_token, self.credential_id)
        return self.extract_issuer_from_certificate_info(info)

    def extract_issuer_from_certificate_info(self, info: dict[str, Any]) -> DetailedIssuer:
        """Build a DetailedIssuer from a credentials/info document."""
        logger.info("Starting extraction of issuer from certificate info")
        cert = info.get("cert")
        if not isinstance(cert, dict) or not isinstance(cert.get("subjectDN"), str):
            raise CertificateInfoError("Certificate info has no subjectDN")

        dn_attributes = parse_distinguished_name(cert["subjectDN"])
        serial_number = cert.get("serialNumber")
        certificates = cert.get("certificates")
        if not isinstance(certificates, list):
            certificates = []

        org_id = extract_organization_identifier(certificates)
        return DetailedIssuer(
            id=issuer_did(org_id),
            organization_identifier=org_id,
            organization=dn_attributes.get("O"),
            country=dn_attributes.get("C"),
            common_name=dn_attributes.get("CN"),
            serial_number=str(serial_number) if serial_number is not None else None,
        )

    @staticmethod
    def extract_x5c_chain(info: dict[str, Any]) -> list[str]:
        """Textual entries of cert.certificates, or an empty list."""
        cert = info.get("cert")
        chain = cert.get("certificates") if isinstance(cert, dict) else None
        if not isinstance(chain, list):
            return []
        return [entry for entry in chain if isinstance(entry, str)]

    @staticmethod
    def parse_certificate_info(info: dict[str, Any]) -> CertificateInfo:
        """Validate a credentials/info document and map it to CertificateInfo.

        Raises:
            CertificateInfoError: Missing sections, disabled key, no key
                algorithm, invalid certificate, or an empty chain.
        """
        key = info.get("key")
        if not isinstance(key, dict):
            raise CertificateInfoError("Missing 'key' section in CSC response")

        key_status = key.get("status")
        if str(key_status).lower() != KEY_STATUS_ENABLED:
            raise CertificateInfoError(f"Signing key is not enabled: {key_status}")

        key_algorithms = key.get("algo")
        if not isinstance(key_algorithms, list) or not key_algorithms:
            raise CertificateInfoError("No signing algorithm returned by QTSP")

        cert = info.get("cert")
        if not isinstance(cert, dict):
            raise CertificateInfoError("Missing 'cert' section in CSC response")

        cert_status = cert.get("status")
        if str(cert_status).lower() != CERT_STATUS_VALID:
            raise CertificateInfoError(f"Certificate is not valid: {cert_status}")

        certificates = cert.get("certificates")
        if not isinstance(certificates, list) or not certificates:
            raise CertificateInfoError("No certificate chain returned by QTSP")

        key_length = key.get("len")
        return CertificateInfo(
            certificates=[str(c) for c in certificates],
            issuer_dn=cert.get("issuerDN"),
            subject_dn=cert.get("subjectDN"),
            serial_number=cert.get("serialNumber"),
            valid_from=cert.get("validFrom"),
            valid_to=cert.get("validTo"),
            key_algorithms=[str(a) for a in key_algorithms],
            key_length=int(key_length) if key_length is not None else None,
        )
