"""Signing provider selection and service wiring.

The provider selector (``QSIGN_SIGNING__PROVIDER``) is checked when the
provider is created at startup, so an unsupported value stops the process
before the first signature is requested.

Built-in selectors: ``in-memory`` and ``csc-sign-doc``. ``csc-sign-hash``
is only available when registered explicitly as an extension:

    provider = create_signing_provider(
        components,
        extensions={SigningProviderKind.CSC_SIGN_HASH: sign_hash_provider_factory},
    )
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from qsign.core.config import SigningProviderKind
from qsign.services.certificate_info import CertificateInfoResolver
from qsign.services.errors import SigningConfigurationError
from qsign.services.issuer_factory import IssuerFactory
from qsign.services.jades_header import JadesHeaderBuilder
from qsign.services.jws_sign_hash import JwsSignHashService
from qsign.services.qtsp_auth import QtspAuthClient
from qsign.services.qtsp_csc import QtspSadClient, QtspSignHashClient
from qsign.services.remote_signature import RemoteSignatureOrchestrator
from qsign.services.retry_policy import RetryPolicy
from qsign.services.signing_providers import (
    CscSignDocSigningProvider,
    CscSignHashSigningProvider,
    InMemorySigningProvider,
    SigningProvider,
)
from qsign.services.signing_recovery import SigningRecoveryService

if TYPE_CHECKING:
    from qsign.core.config import Settings
    from qsign.services.email import EmailNotificationService
    from qsign.services.http_client import HttpClient
    from qsign.services.procedure_repository import ProcedureRepository

logger = logging.getLogger(__name__)

BUILT_IN_PROVIDERS = (SigningProviderKind.IN_MEMORY, SigningProviderKind.CSC_SIGN_DOC)


@dataclass(frozen=True, slots=True)
class SigningComponents:
    """Wired signing services sharing one transport and repository."""

    settings: Settings
    retry_policy: RetryPolicy
    auth_client: QtspAuthClient
    sad_client: QtspSadClient
    sign_hash_client: QtspSignHashClient
    resolver: CertificateInfoResolver
    orchestrator: RemoteSignatureOrchestrator
    recovery: SigningRecoveryService
    header_builder: JadesHeaderBuilder
    issuer_factory: IssuerFactory


ProviderFactory = Callable[[SigningComponents], SigningProvider]


def build_signing_components(
    settings: Settings,
    http_client: HttpClient,
    repository: ProcedureRepository,
    email_service: EmailNotificationService,
    retry_policy: RetryPolicy | None = None,
) -> SigningComponents:
    """Wire the QTSP clients, orchestrator, recovery and issuer factory."""
    remote = settings.remote_signature
    retry = retry_policy or RetryPolicy.from_settings(settings.signing)

    auth_client = QtspAuthClient(remote, http_client)
    sad_client = QtspSadClient(remote, http_client)
    resolver = CertificateInfoResolver(remote, auth_client, http_client)
    recovery = SigningRecoveryService(
        repository, email_service, settings.issuer_frontend_url
    )
    orchestrator = RemoteSignatureOrchestrator(
        remote, auth_client, sad_client, http_client, repository, retry
    )
    return SigningComponents(
        settings=settings,
        retry_policy=retry,
        auth_client=auth_client,
        sad_client=sad_client,
        sign_hash_client=QtspSignHashClient(remote, http_client),
        resolver=resolver,
        orchestrator=orchestrator,
        recovery=recovery,
        header_builder=JadesHeaderBuilder(),
        issuer_factory=IssuerFactory(settings.default_signer, resolver, recovery, retry),
    )


def sign_hash_provider_factory(components: SigningComponents) -> SigningProvider:
    """Extension factory for the csc-sign-hash provider."""
    return CscSignHashSigningProvider(
        auth_client=components.auth_client,
        resolver=components.resolver,
        jws_service=JwsSignHashService(components.sign_hash_client, components.retry_policy),
        header_builder=components.header_builder,
        profile=components.settings.signing.signature_profile,
    )


def resolve_provider_kind(
    value: str | None,
    extensions: Mapping[SigningProviderKind, ProviderFactory] | None = None,
) -> SigningProviderKind:
    """Normalize and check a provider selector.

    Raises:
        SigningConfigurationError: Unknown selector, or csc-sign-hash without
            a registered extension.
    """
    normalized = (value or "").strip().lower()
    supported = ", ".join(kind.value for kind in BUILT_IN_PROVIDERS)
    try:
        kind = SigningProviderKind(normalized)
    except ValueError:
        raise SigningConfigurationError(
            f"Unknown signing provider '{value}'. Supported providers: {supported}"
        ) from None

    if kind not in BUILT_IN_PROVIDERS and kind not in (extensions or {}):
        raise SigningConfigurationError(
            f"Signing provider '{value}' must be provided by an extension module. "
            f"Built-in providers: {supported}"
        )
    return kind


def create_signing_provider(
    components: SigningComponents,
    extensions: Mapping[SigningProviderKind, ProviderFactory] | None = None,
) -> SigningProvider:
    """Create the provider selected by ``settings.signing.provider``.

    Raises:
        SigningConfigurationError: The selector is not supported.
    """
    selector = components.settings.signing.provider
    kind = resolve_provider_kind(selector, extensions)

    if extensions and kind in extensions:
        provider = extensions[kind](components)
    elif kind == SigningProviderKind.IN_MEMORY:
        provider = InMemorySigningProvider()
    else:
        provider = CscSignDocSigningProvider(components.orchestrator, components.recovery)

    logger.info("SigningProvider selected: %s", kind.value)
    return provider
