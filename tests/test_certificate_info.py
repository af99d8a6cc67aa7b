"""Tests for issuer identity resolution from QTSP certificate info.

Test Categories:
1. Distinguished name parsing
2. organizationIdentifier extraction (text and X.509)
3. credentials/list validation and remote issuer resolution
4. credentials/info validation for the signHash path
"""

from __future__ import annotations

import base64
import json
from unittest.mock import AsyncMock

import pytest

from qsign.services.certificate_info import (
    CertificateInfoResolver,
    extract_organization_identifier,
    parse_distinguished_name,
)
from qsign.services.errors import CertificateInfoError, OrganizationIdentifierNotFoundError
from qsign.services.qtsp_auth import SCOPE_SERVICE, QtspAuthClient
from tests.factories import (
    CREDENTIAL_ID,
    QTSP_DOMAIN,
    create_certificate_b64,
    create_certificate_info,
    create_remote_settings,
)


def text_certificate(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


@pytest.fixture
def mock_auth() -> AsyncMock:
    auth = AsyncMock(spec=QtspAuthClient)
    auth.request_access_token.return_value = "svc-token"
    return auth


@pytest.fixture
def resolver(cloud_settings, mock_auth, mock_http) -> CertificateInfoResolver:
    return CertificateInfoResolver(cloud_settings, mock_auth, mock_http)


# =============================================================================
# TEST CLASS: parse_distinguished_name
# =============================================================================


class TestParseDistinguishedName:
    """Tests for DN parsing."""

    def test_basic_dn(self):
        attributes = parse_distinguished_name("CN=Example Seal, O=Example SL, C=ES")
        assert attributes == {"CN": "Example Seal", "O": "Example SL", "C": "ES"}

    def test_escaped_comma_stays_in_value(self):
        attributes = parse_distinguished_name(r"CN=Seal,O=Example\, S.L.,C=ES")
        assert attributes["O"] == "Example, S.L."

    def test_attribute_types_are_upper_cased(self):
        assert parse_distinguished_name("cn=Seal")["CN"] == "Seal"

    def test_first_occurrence_wins(self):
        assert parse_distinguished_name("OU=First,OU=Second")["OU"] == "First"

    def test_malformed_rdn(self):
        with pytest.raises(CertificateInfoError):
            parse_distinguished_name("CN=Seal,garbage")


# =============================================================================
# TEST CLASS: extract_organization_identifier
# =============================================================================


class TestExtractOrganizationIdentifier:
    """Tests for organizationIdentifier lookup over a chain."""

    def test_from_textual_certificate(self):
        chain = [text_certificate("Subject: organizationIdentifier=ORGID, CN=Seal")]
        assert extract_organization_identifier(chain) == "ORGID"

    def test_from_der_certificate(self):
        chain = [create_certificate_b64(organization_identifier="VATES-B12345678")]
        assert extract_organization_identifier(chain) == "VATES-B12345678"

    def test_first_entry_with_identifier_wins(self):
        chain = [
            create_certificate_b64(organization_identifier=None),
            create_certificate_b64(organization_identifier="VATES-A00000000"),
        ]
        assert extract_organization_identifier(chain) == "VATES-A00000000"

    def test_not_found(self):
        chain = [create_certificate_b64(organization_identifier=None)]
        with pytest.raises(
            OrganizationIdentifierNotFoundError, match="organizationIdentifier not found"
        ):
            extract_organization_identifier(chain)

    def test_empty_chain(self):
        with pytest.raises(OrganizationIdentifierNotFoundError):
            extract_organization_identifier([])

    def test_invalid_base64(self):
        with pytest.raises(CertificateInfoError):
            extract_organization_identifier(["%%%not-base64%%%"])


# =============================================================================
# TEST CLASS: CertificateInfoResolver
# =============================================================================


class TestValidateCredentials:
    """Tests for credentials/list matching."""

    @pytest.mark.asyncio
    async def test_listed_credential(self, resolver, mock_auth, mock_http):
        mock_http.post.return_value = json.dumps({"credentialIDs": ["other", " CRED-001 "]})

        assert await resolver.validate_credentials() is True
        mock_auth.request_access_token.assert_awaited_once_with(None, SCOPE_SERVICE)
        url, headers, _ = mock_http.post.await_args.args
        assert url == f"{QTSP_DOMAIN}/csc/v2/credentials/list"
        assert headers["Authorization"] == "Bearer svc-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", ['{"credentialIDs":["other"]}', "{}"])
    async def test_unlisted_credential(self, resolver, mock_http, response):
        mock_http.post.return_value = response

        assert await resolver.validate_credentials() is False


class TestResolveRemoteDetailedIssuer:
    """Tests for the full cloud-mode issuer resolution."""

    @pytest.mark.asyncio
    async def test_builds_issuer_from_certificate(self, resolver, mock_auth, mock_http):
        info = create_certificate_info(certificates=[create_certificate_b64()])
        mock_http.post.side_effect = [
            json.dumps({"credentialIDs": [CREDENTIAL_ID]}),
            json.dumps(info),
        ]

        issuer = await resolver.resolve_remote_detailed_issuer()

        assert issuer.id == "did:elsi:VATES-B12345678"
        assert issuer.organization_identifier == "VATES-B12345678"
        assert issuer.organization == "Example Issuer SL"
        assert issuer.country == "ES"
        assert issuer.common_name == "Example Issuer Seal"
        assert issuer.serial_number == "4F2A19"
        assert mock_auth.request_access_token.await_count == 2

        url, _, body = mock_http.post.await_args.args
        assert url == f"{QTSP_DOMAIN}/csc/v2/credentials/info"
        assert json.loads(body)["credentialID"] == CREDENTIAL_ID

    @pytest.mark.asyncio
    async def test_credentials_mismatch(self, resolver, mock_http):
        mock_http.post.return_value = json.dumps({"credentialIDs": ["someone-else"]})

        with pytest.raises(CertificateInfoError, match="Credentials mismatch"):
            await resolver.resolve_remote_detailed_issuer()
        assert mock_http.post.await_count == 1

    def test_extract_issuer_without_identifier(self, resolver):
        info = create_certificate_info(
            certificates=[create_certificate_b64(organization_identifier=None)]
        )
        with pytest.raises(OrganizationIdentifierNotFoundError):
            resolver.extract_issuer_from_certificate_info(info)

    def test_server_mode(self):
        settings = create_remote_settings("server")
        resolver = CertificateInfoResolver(settings, AsyncMock(), AsyncMock())
        assert resolver.is_server_mode()


class TestParseCertificateInfo:
    """Tests for credentials/info validation."""

    def test_valid_document(self):
        cert_info = CertificateInfoResolver.parse_certificate_info(create_certificate_info())

        assert cert_info.certificates == ["MIIBcert"]
        assert cert_info.key_algorithms == ["1.2.840.10045.4.3.2"]
        assert cert_info.key_length == 256
        assert cert_info.serial_number == "4F2A19"

    @pytest.mark.parametrize(
        ("info", "message"),
        [
            ({"cert": {}}, "Missing 'key'"),
            (create_certificate_info(key_status="disabled"), "not enabled"),
            (create_certificate_info(key_algorithms=[]), "No signing algorithm"),
            (create_certificate_info(cert_status="expired"), "not valid"),
            (create_certificate_info(certificates=[]), "No certificate chain"),
        ],
    )
    def test_invalid_documents(self, info, message):
        with pytest.raises(CertificateInfoError, match=message):
            CertificateInfoResolver.parse_certificate_info(info)

    def test_missing_cert_section(self):
        info = create_certificate_info()
        del info["cert"]
        with pytest.raises(CertificateInfoError, match="Missing 'cert'"):
            CertificateInfoResolver.parse_certificate_info(info)

    def test_extract_x5c_chain(self):
        info = create_certificate_info(certificates=["MIIBleaf", 42, "MIIBca"])
        assert CertificateInfoResolver.extract_x5c_chain(info) == ["MIIBleaf", "MIIBca"]
        assert CertificateInfoResolver.extract_x5c_chain({}) == []
