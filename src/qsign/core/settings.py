"""Cached settings accessor.

``get_settings()`` loads ``QSIGN_*`` configuration once per process and exits
on invalid configuration. Tests call ``clear_settings_cache()`` after changing
the environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from qsign.core.config import ConfigValidationError, Settings, validate_settings

logger = logging.getLogger(__name__)


def _format_validation_errors(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        lines.append(f"  - {location}: {item['msg']}")
    return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and validate settings from the environment.

    Raises:
        SystemExit: If the configuration is missing fields or inconsistent.
    """
    try:
        settings = Settings()  # type: ignore[call-arg]
        validate_settings(settings)
    except ValidationError as e:
        logger.critical("Invalid signing configuration:\n%s", _format_validation_errors(e))
        raise SystemExit(1) from e
    except ConfigValidationError as e:
        logger.critical(
            "Invalid signing configuration: %s (field: %s)", e.message, e.field or "unknown"
        )
        raise SystemExit(1) from e

    logger.info(
        "Signing configuration loaded: environment=%s, remote_signature=%s, provider=%s",
        settings.environment.value,
        settings.remote_signature.type,
        settings.signing.provider,
    )
    return settings


def clear_settings_cache() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
