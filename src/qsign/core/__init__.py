"""qsign core module.

Shared components used across all services:
- Configuration management
- Logging setup
"""

from qsign.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    DefaultSignerSettings,
    Environment,
    RemoteSignatureMode,
    RemoteSignatureSettings,
    Settings,
    SigningProviderKind,
    SigningSettings,
    SMTPSettings,
)
from qsign.core.logging import configure_logging
from qsign.core.settings import clear_settings_cache, get_settings

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "DefaultSignerSettings",
    "Environment",
    "RemoteSignatureMode",
    "RemoteSignatureSettings",
    "SMTPSettings",
    "Settings",
    "SigningProviderKind",
    "SigningSettings",
    "clear_settings_cache",
    "configure_logging",
    "get_settings",
]
