"""
Rate Resolver -- effective hourly rate for a line item.

Resolution order:
    1. Blended rate active (BLENDED strategy, or ``use_blended_rate`` with a
       positive blended rate): the blended rate, regardless of profile.
    2. HOURLY_TABLE: the rate keyed by the item's profile, 0 when the
       profile is absent from the table.  Items without a profile keep
       their entered rate.
    3. FIXED_RANGE: the entered rate, unchanged.  The min/max range is
       advisory and never enforced.

Pure functions, no I/O.

Usage:
    from pricing_engines.rates import RateContext, resolve_rate

    ctx = RateContext.from_config(hourly_config, profile=Profile.PARTNER)
    rate = resolve_rate(ctx)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

from pricing_kernel.domain.billing import (
    HourlyConfig,
    Profile,
    RateStrategy,
    freeze_rate_table,
)
from pricing_kernel.domain.values import ZERO, to_optional_decimal
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.rates")


@dataclass(frozen=True)
class RateContext:
    """Everything the resolver needs to price one hourly item."""

    strategy: RateStrategy = RateStrategy.FIXED_RANGE
    profile: Profile | None = None
    rate_table: Mapping[Profile, Decimal] = field(default_factory=dict)
    blended_rate: Decimal = ZERO
    use_blended_rate: bool = False
    entered_rate: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategy", RateStrategy(self.strategy))
        object.__setattr__(self, "rate_table", freeze_rate_table(self.rate_table))
        object.__setattr__(
            self, "blended_rate", to_optional_decimal(self.blended_rate, "blended_rate") or ZERO
        )
        object.__setattr__(
            self, "entered_rate", to_optional_decimal(self.entered_rate, "entered_rate")
        )

    @classmethod
    def from_config(
        cls,
        config: HourlyConfig | None,
        profile: Profile | None = None,
        entered_rate: Decimal | None = None,
    ) -> RateContext:
        if config is None:
            return cls(profile=profile, entered_rate=entered_rate)
        return cls(
            strategy=config.rate_strategy,
            profile=profile,
            rate_table=config.rate_table,
            blended_rate=config.blended_rate,
            use_blended_rate=config.use_blended_rate,
            entered_rate=entered_rate,
        )

    @property
    def blended_active(self) -> bool:
        if self.strategy is RateStrategy.BLENDED:
            return True
        return self.use_blended_rate and self.blended_rate > ZERO


def resolve_rate(context: RateContext) -> Decimal:
    """
    Resolve the effective hourly rate.

    Returns:
        A non-negative Decimal rate.
    """
    if context.blended_active:
        return context.blended_rate

    if context.strategy is RateStrategy.HOURLY_TABLE and context.profile is not None:
        rate = context.rate_table.get(context.profile)
        if rate is None:
            logger.debug("rate_table_profile_missing", extra={
                "profile": context.profile.value,
            })
            return ZERO
        return rate

    return context.entered_rate if context.entered_rate is not None else ZERO


def rate_for_person(
    default_rate: Decimal | int | str | None,
    config: HourlyConfig | None,
) -> Decimal | None:
    """
    Rate to pre-fill when a person is attached to an hourly item.

    The blended rate wins over the person's default rate.  Returns None
    when there is nothing to pre-fill.
    """
    if config is not None and config.blended_active:
        return config.blended_rate
    return to_optional_decimal(default_rate, "default_rate")


def is_rate_editable(config: HourlyConfig | None) -> bool:
    """Hourly item rates are locked while a blended rate is active."""
    return config is None or not config.blended_active
