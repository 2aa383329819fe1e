"""
Pricing configuration schema.

Frozen dataclasses the YAML configuration set is parsed into.  The
loader builds them; ``get_active_config()`` hands them out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

from pricing_kernel.domain.billing import BillingMethod, Profile


@dataclass(frozen=True)
class TaxDefaults:
    """Tax settings a new proposal starts with."""

    rate_percent: Decimal = Decimal("0")
    inclusive: bool = False


@dataclass(frozen=True)
class HourlyDefaults:
    """Rate table offered when an hourly context switches to HOURLY_TABLE."""

    rate_table: Mapping[Profile, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class RetainerDefaults:
    # Offered when rollover expiry is switched on
    rollover_expiry_months: int = 3


@dataclass(frozen=True)
class SubmissionDefaults:
    fallback_error_message: str = "Failed to save proposal"


@dataclass(frozen=True)
class PricingDefaults:
    """
    Complete pricing configuration.

    ``checksum`` is the SHA-256 of the canonical source data, for tracing.
    """

    config_id: str
    version: int
    default_currency: str
    supported_currencies: tuple[str, ...]
    default_billing_method: BillingMethod
    fixed_fee_default_quantity: Decimal = Decimal("1")
    tax: TaxDefaults = field(default_factory=TaxDefaults)
    hourly: HourlyDefaults = field(default_factory=HourlyDefaults)
    retainer: RetainerDefaults = field(default_factory=RetainerDefaults)
    submission: SubmissionDefaults = field(default_factory=SubmissionDefaults)
    checksum: str = ""
