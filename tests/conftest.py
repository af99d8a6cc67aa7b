"""Pytest configuration and shared fixtures.

No test here talks to a real QTSP, database or SMTP server: the transport,
repository and email collaborators are mocks.
"""

from __future__ import annotations

import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from qsign.core.config import RemoteSignatureSettings
from qsign.services.email import EmailNotificationService
from qsign.services.http_client import HttpClient
from qsign.services.retry_policy import RetryPolicy
from tests.factories import create_remote_settings


# ---------------------------------------------------------------------------
# Settings fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def cloud_settings() -> RemoteSignatureSettings:
    """Remote signature settings in CSC cloud mode."""
    return create_remote_settings("cloud")


@pytest.fixture
def server_settings() -> RemoteSignatureSettings:
    """Remote signature settings in DSS server mode."""
    return create_remote_settings("server")


# ---------------------------------------------------------------------------
# Collaborator mocks
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_http() -> AsyncMock:
    """Transport mock; configure ``mock_http.post`` per test."""
    return AsyncMock(spec=HttpClient)


@pytest.fixture
def mock_repository() -> AsyncMock:
    """Procedure repository mock with nothing stored."""
    repository = AsyncMock()
    repository.find_procedure_by_id.return_value = None
    repository.find_deferred_metadata_by_procedure_id.return_value = None
    return repository


@pytest.fixture
def mock_email_service() -> AsyncMock:
    return AsyncMock(spec=EmailNotificationService)


@pytest.fixture
def mock_sleep() -> AsyncMock:
    """Records backoff delays instead of sleeping."""
    return AsyncMock()


@pytest.fixture
def retry_policy(mock_sleep: AsyncMock) -> RetryPolicy:
    """Default retry plan (3 retries) that never actually sleeps."""
    return RetryPolicy(sleep=mock_sleep, rng=random.Random(42))


@pytest.fixture
def mock_smtp_settings() -> MagicMock:
    """Create mock SMTP settings for testing."""
    settings = MagicMock()
    settings.host = "localhost"
    settings.port = 1025
    settings.username = None
    settings.password = None
    settings.use_tls = False
    settings.use_ssl = False
    settings.from_address = "noreply@issuer.test"
    settings.from_name = "Issuer Test"
    settings.timeout = 30
    return settings
