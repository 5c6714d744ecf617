"""
lending_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_engine_settings()`` is the only way the outer layers obtain the
    store URL, retry policy, log level and the default rate table.  The
    kernel never imports this package; ``lending_services.wiring`` hands the
    parsed values to kernel constructors.

Audit relevance:
    Every call logs a ``LENDING_CONFIG_TRACE`` entry with the configuration
    checksum, tying later operations to the exact defaults they ran with.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from lending_config.loader import DEFAULT_CONFIG_PATH, load_engine_settings
from lending_config.schema import EngineSettings, RetrySettings, StoreSettings

_logger = logging.getLogger("lending_kernel.config")


def get_engine_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """
    Load the engine configuration.

    Args:
        config_path: Override path to the YAML file. Defaults to the
            ``defaults.yaml`` shipped with this package.
        environ: Environment mapping; defaults to ``os.environ``.
            ``DATABASE_URL`` replaces the configured store URL.
    """
    settings = load_engine_settings(
        config_path or DEFAULT_CONFIG_PATH,
        os.environ if environ is None else environ,
    )
    _logger.info(
        "LENDING_CONFIG_TRACE",
        extra={
            "trace_type": "LENDING_CONFIG_TRACE",
            "checksum": settings.checksum,
            "setting_count": len(settings.settings),
            "dialect": settings.store.database_url.split(":", 1)[0],
        },
    )
    return settings


__all__ = [
    "EngineSettings",
    "RetrySettings",
    "StoreSettings",
    "get_engine_settings",
]
