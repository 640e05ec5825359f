"""Process-wide access to the AS2 sender configuration.

    from as2sender.core.settings import configure_logging, get_settings

    settings = get_settings()
    configure_logging(settings)

Settings are read from the environment on first use and kept for the life
of the process; tests call clear_settings_cache() to pick up a changed
environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from as2sender.core.config import ConfigValidationError, Settings, validate_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _describe_validation_error(error: ValidationError) -> str:
    """One line per rejected field, e.g. '  - timeout_ms: Input should be ...'."""
    return "\n".join(
        f"  - {'.'.join(str(part) for part in item['loc']) or '<root>'}: {item['msg']}"
        for item in error.errors()
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load, validate and cache the AS2 settings.

    An invalid environment is logged and ends the process.

    Raises:
        SystemExit: With code 1 when the configuration is rejected.
    """
    try:
        settings = Settings()
    except ValidationError as e:
        logger.critical("Rejected AS2_* configuration:\n%s", _describe_validation_error(e))
        raise SystemExit(1) from e

    try:
        validate_settings(settings)
    except ConfigValidationError as e:
        logger.critical("Inconsistent AS2_* configuration on %s: %s", e.field or "?", e.message)
        raise SystemExit(1) from e

    return settings


def clear_settings_cache() -> None:
    """Forget the cached settings so the next get_settings() re-reads them."""
    get_settings.cache_clear()


def get_settings_safe() -> Settings | None:
    """Like get_settings(), but None instead of exiting on bad configuration."""
    try:
        return get_settings()
    except SystemExit:
        return None


def configure_logging(settings: Settings) -> None:
    """Set up root logging at the configured level."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )
