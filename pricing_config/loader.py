"""
Configuration Loader (``pricing_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``pricing_config.schema`` dataclasses.  Runtime callers go through
``pricing_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown currency, billing method or profile  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from pricing_config.schema import (
    HourlyDefaults,
    PricingDefaults,
    RetainerDefaults,
    SubmissionDefaults,
    TaxDefaults,
)
from pricing_kernel.domain.billing import BillingMethod, freeze_rate_table
from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.domain.values import to_decimal


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_currency_code(value: Any) -> str:
    code = str(value).upper().strip()
    if not CurrencyRegistry.is_valid(code):
        raise ValueError(f"Unsupported currency in configuration: {value!r}")
    return code


def parse_tax(data: dict[str, Any]) -> TaxDefaults:
    rate = to_decimal(data.get("rate_percent", 0), "tax.rate_percent")
    if rate < 0:
        raise ValueError("tax.rate_percent must be non-negative")
    return TaxDefaults(rate_percent=rate, inclusive=bool(data.get("inclusive", False)))


def parse_hourly(data: dict[str, Any]) -> HourlyDefaults:
    return HourlyDefaults(rate_table=freeze_rate_table(data.get("rate_table") or {}))


def parse_retainer(data: dict[str, Any]) -> RetainerDefaults:
    months = int(data.get("rollover_expiry_months", 3))
    if months < 1:
        raise ValueError("retainer.rollover_expiry_months must be a positive integer")
    return RetainerDefaults(rollover_expiry_months=months)


def parse_submission(data: dict[str, Any]) -> SubmissionDefaults:
    message = data.get("fallback_error_message")
    if message is None:
        return SubmissionDefaults()
    return SubmissionDefaults(fallback_error_message=str(message))


def parse_pricing_defaults(data: dict[str, Any]) -> PricingDefaults:
    """
    Parse a ``PricingDefaults`` from a dict.

    Raises:
        KeyError: if ``config_id``, ``version``, ``default_currency`` or
            ``default_billing_method`` is missing.
        ValueError: on unknown codes or out-of-range values.
    """
    default_currency = parse_currency_code(data["default_currency"])
    supported = tuple(
        parse_currency_code(c) for c in data.get("supported_currencies") or [default_currency]
    )
    if default_currency not in supported:
        raise ValueError(
            f"default_currency {default_currency} is not among supported_currencies"
        )
    quantity = to_decimal(data.get("fixed_fee_default_quantity", 1), "fixed_fee_default_quantity")
    if quantity <= Decimal("0"):
        raise ValueError("fixed_fee_default_quantity must be positive")

    return PricingDefaults(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        default_currency=default_currency,
        supported_currencies=supported,
        default_billing_method=BillingMethod(data["default_billing_method"]),
        fixed_fee_default_quantity=quantity,
        tax=parse_tax(data.get("tax") or {}),
        hourly=parse_hourly(data.get("hourly") or {}),
        retainer=parse_retainer(data.get("retainer") or {}),
        submission=parse_submission(data.get("submission") or {}),
        checksum=compute_checksum(data),
    )


def load_pricing_defaults(path: Path) -> PricingDefaults:
    """Load and parse one configuration file."""
    return parse_pricing_defaults(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
