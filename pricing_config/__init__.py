"""
pricing_config -- single public entrypoint for pricing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.  Returns a frozen ``PricingDefaults``.

Architecture position:
    Configuration -- YAML-driven defaults.  Sits above ``pricing_kernel``
    and below ``pricing_services``.  The kernel and engines MUST NEVER
    import from ``pricing_config``; services pass the values they need
    into engine calls.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``KeyError`` / ``ValueError`` -- required keys missing or invalid.

Audit relevance:
    Every successful call emits a ``PRICING_CONFIG_TRACE`` log record with
    the config id, version and checksum, tying computed totals back to the
    exact defaults in force.
"""

from __future__ import annotations

from pathlib import Path

from pricing_config.loader import load_pricing_defaults
from pricing_config.schema import (
    HourlyDefaults,
    PricingDefaults,
    RetainerDefaults,
    SubmissionDefaults,
    TaxDefaults,
)
from pricing_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | None = None) -> PricingDefaults:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override configuration file.  Defaults to
            ``pricing_config/sets/default.yaml``.

    Returns:
        Frozen PricingDefaults.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        KeyError: If a required key is missing.
        ValueError: If a value is invalid.
    """
    config_path = path or _DEFAULT_CONFIG_PATH
    defaults = load_pricing_defaults(config_path)

    _logger.info(
        "PRICING_CONFIG_TRACE",
        extra={
            "trace_type": "PRICING_CONFIG_TRACE",
            "config_id": defaults.config_id,
            "config_version": defaults.version,
            "checksum": defaults.checksum,
            "source": str(config_path),
            "default_currency": defaults.default_currency,
            "default_billing_method": defaults.default_billing_method.value,
        },
    )
    return defaults


__all__ = [
    "HourlyDefaults",
    "PricingDefaults",
    "RetainerDefaults",
    "SubmissionDefaults",
    "TaxDefaults",
    "get_active_config",
]
