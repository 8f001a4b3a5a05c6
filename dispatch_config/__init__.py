"""
dispatch_config -- single public entrypoint for dispatch configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``DispatchConfiguration``.

Architecture position:
    Configuration.  This package sits above ``dispatch_kernel`` and below
    ``dispatch_services``.  The kernel MUST NEVER import from
    ``dispatch_config``; bridges in this package translate the
    configuration into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``DISPATCH_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each run to the exact rules that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dispatch_config.loader import load_configuration
from dispatch_config.schema import DispatchConfiguration
from dispatch_config.validator import validate_configuration

_logger = logging.getLogger("dispatch_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> DispatchConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration set file.
            Defaults to dispatch_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_configuration(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})

    _logger.info(
        "DISPATCH_CONFIG_TRACE",
        extra={
            "trace_type": "DISPATCH_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "grant_count": len(config.grants),
        },
    )
    return config


__all__ = ["DispatchConfiguration", "get_active_config"]
