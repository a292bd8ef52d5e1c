"""
itc_config -- single public entrypoint for ITC rule configuration.

Responsibility:
    ``get_active_config()`` is the one way to obtain the rule data at
    runtime: tax-rate enumeration, jurisdiction table, blocked-credit
    rules, legal constants and matching tolerances.

Architecture position:
    Configuration -- sits above ``itc_kernel`` and ``itc_engines`` and below
    ``itc_services``. Engines never import this package; bridges translate
    the configuration into engine policies.

Invariants enforced:
    - A configuration is returned only after it passes
      ``validate_configuration``.
    - The same file always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested rules file does not exist.
    - ``ConfigurationError`` -- the rules file fails validation.

Audit relevance:
    Every load emits an ``ITC_CONFIG_TRACE`` record with config id,
    version and checksum, tying each computation to the rule version in
    force.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from itc_config.loader import load_configuration
from itc_config.schema import ItcConfiguration
from itc_config.validator import validate_configuration
from itc_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("itc_kernel.config")

DEFAULT_RULES_PATH = Path(__file__).parent / "defaults" / "itc_rules.yaml"

_cache: dict[Path, ItcConfiguration] = {}
_cache_lock = threading.Lock()


def get_active_config(path: Path | str | None = None) -> ItcConfiguration:
    """
    Load, validate and cache the rules configuration.

    Args:
        path: Rules YAML to load; the packaged defaults when omitted.

    Raises:
        FileNotFoundError: the file does not exist.
        ConfigurationError: validation failed.
    """
    resolved = Path(path).resolve() if path is not None else DEFAULT_RULES_PATH
    with _cache_lock:
        cached = _cache.get(resolved)
        if cached is not None:
            return cached

        config = load_configuration(resolved)
        validation = validate_configuration(config)
        if not validation.is_valid:
            raise ConfigurationError(
                "Configuration validation failed:\n"
                + "\n".join(f"  - {e}" for e in validation.errors),
                source=str(resolved),
            )
        for warning in validation.warnings:
            _logger.warning("config_validation_warning", extra={"warning": warning})

        _logger.info(
            "ITC_CONFIG_TRACE",
            extra={
                "trace_type": "ITC_CONFIG_TRACE",
                "config_id": config.config_id,
                "config_version": config.version,
                "checksum": config.checksum,
                "tax_rate_count": len(config.tax_rates),
                "jurisdiction_count": len(config.jurisdictions),
            },
        )
        _cache[resolved] = config
        return config


def clear_config_cache() -> None:
    with _cache_lock:
        _cache.clear()


__all__ = [
    "DEFAULT_RULES_PATH",
    "ItcConfiguration",
    "clear_config_cache",
    "get_active_config",
]
