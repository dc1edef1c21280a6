"""
library_config -- single public entrypoint for circulation configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``CirculationConfig``;
    ``to_policy()`` turns it into the kernel's ``CirculationPolicy``.

Architecture position:
    Configuration -- sits above ``library_kernel`` and below
    ``library_services``.  The kernel MUST NEVER import from
    ``library_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ConfigurationError`` -- malformed YAML or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LIBRARY_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from library_config.bridges import to_policy
from library_config.loader import ConfigurationError, load_config
from library_config.schema import CirculationConfig

_logger = logging.getLogger("library_kernel.config")

# Default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> CirculationConfig:
    """
    Load the active configuration.

    Args:
        path: YAML file to load.  Defaults to ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is malformed.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_config(config_path)

    _logger.info(
        "LIBRARY_CONFIG_TRACE",
        extra={
            "trace_type": "LIBRARY_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(config_path),
        },
    )
    return config


__all__ = [
    "CirculationConfig",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
    "to_policy",
]
