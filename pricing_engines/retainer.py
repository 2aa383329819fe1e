"""
Retainer Policy Evaluator -- validation, policy summary and drawdown.

Unused balance policy:
    EXPIRE    hours not used within a billing month are forfeited at the
              end of that month.  There is no configurable window.
    ROLLOVER  unused hours carry forward.  With ``unused_balance_expiry_months``
              set, a carried balance is forfeited after that many months
              of non-use; without it, balances roll over indefinitely.

Drawdown (one billing month):
    1. Hours used are drawn from carried balances, oldest first, then from
       the month's included hours.
    2. Hours beyond both are additional hours, billed per the
       additional-hours strategy: FIXED_RATE at the rate, RATE_RANGE as a
       min/max bracket, HOURLY_TABLE at the rate of the given profile.
    3. The unused allowance and the remaining carried balances are then
       forfeited or carried forward per the policy.

Pure functions, no I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from pricing_kernel.domain.billing import (
    AdditionalHoursType,
    Profile,
    ProjectScope,
    RetainerConfig,
    UnusedBalancePolicy,
)
from pricing_kernel.domain.values import ZERO, Currency, Money, to_decimal
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.retainer")


def validate_retainer(config: RetainerConfig) -> dict[str, str]:
    """
    Completeness check for a retainer configuration.

    Returns:
        Field-keyed error messages; empty when the configuration is complete.
    """
    errors: dict[str, str] = {}
    if config.monthly_amount <= ZERO:
        errors["monthly_amount"] = "Monthly retainer amount must be greater than 0"
    if config.hours_per_month <= ZERO:
        errors["hours_per_month"] = "Hours per month must be greater than 0"

    hours_type = config.additional_hours_type
    if hours_type is None:
        errors["additional_hours_type"] = "Please select how additional hours are billed"
    elif hours_type is AdditionalHoursType.FIXED_RATE:
        if not config.additional_hours_rate:
            errors["additional_hours_rate"] = "Please enter the additional hours rate"
    elif hours_type is AdditionalHoursType.RATE_RANGE:
        low, high = config.additional_hours_rate_min, config.additional_hours_rate_max
        if not low:
            errors["additional_hours_rate_min"] = "Please enter the minimum rate"
        if not high:
            errors["additional_hours_rate_max"] = "Please enter the maximum rate"
        elif low and low > high:
            errors["additional_hours_rate_max"] = "Maximum rate must not be below the minimum rate"
    elif not config.additional_hours_table:
        errors["additional_hours_table"] = "Please enter at least one hourly rate"

    if config.project_scope is ProjectScope.SPECIFIC_PROJECTS and not config.project_ids:
        errors["project_ids"] = "Please select at least one project"

    if config.unused_balance_policy is None:
        errors["unused_balance_policy"] = "Please select an unused balance policy"
    return errors


def policy_summary(config: RetainerConfig, currency: Currency | str) -> str:
    """One-line human-readable description of the retainer arrangement."""
    monthly = Money.of(config.monthly_amount, currency).format()
    parts = [f"{monthly} per month for {config.hours_per_month.normalize():f} hours"]
    if config.duration_months is not None:
        parts.append(f"over {config.duration_months} months")

    hours_type = config.additional_hours_type
    if hours_type is AdditionalHoursType.FIXED_RATE and config.additional_hours_rate is not None:
        rate = Money.of(config.additional_hours_rate, currency).format()
        parts.append(f"additional hours at {rate}/h")
    elif hours_type is AdditionalHoursType.RATE_RANGE:
        low = Money.of(config.additional_hours_rate_min or ZERO, currency).format()
        high = Money.of(config.additional_hours_rate_max or ZERO, currency).format()
        parts.append(f"additional hours at {low}-{high}/h")
    elif hours_type is AdditionalHoursType.HOURLY_TABLE:
        parts.append("additional hours per hourly rate table")

    policy = config.unused_balance_policy
    if policy is UnusedBalancePolicy.EXPIRE:
        parts.append("unused hours expire at the end of each month")
    elif policy is UnusedBalancePolicy.ROLLOVER:
        months = config.unused_balance_expiry_months
        if months is None:
            parts.append("unused hours roll over without expiry")
        else:
            parts.append(f"unused hours roll over and expire after {months} months of non-use")
    return ", ".join(parts)


# ============================================================================
# Drawdown
# ============================================================================


@dataclass(frozen=True)
class CarriedBalance:
    """Hours rolled over from an earlier month; ``age_months`` counts
    completed months of non-use."""

    hours: Decimal
    age_months: int = 0

    def __post_init__(self) -> None:
        hours = to_decimal(self.hours, "hours")
        if hours < ZERO:
            raise ValueError("hours must be non-negative")
        if self.age_months < 0:
            raise ValueError("age_months must be non-negative")
        object.__setattr__(self, "hours", hours)


@dataclass(frozen=True)
class DrawdownResult:
    """One month of retainer consumption."""

    hours_used: Decimal
    hours_from_carryover: Decimal
    hours_from_allowance: Decimal
    additional_hours: Decimal
    monthly_amount: Money
    additional_amount: Money | None
    additional_amount_min: Money | None
    additional_amount_max: Money | None
    unused_allowance: Decimal
    forfeited_hours: Decimal
    carried_forward: tuple[CarriedBalance, ...]

    @property
    def carried_forward_hours(self) -> Decimal:
        return sum((b.hours for b in self.carried_forward), ZERO)


def _additional_amounts(
    config: RetainerConfig,
    hours: Decimal,
    currency: Currency | str,
    profile: Profile | None,
) -> tuple[Money | None, Money | None, Money | None]:
    """(amount, min, max) for additional hours; None where not determinable."""
    zero = Money.zero(currency)
    if hours == ZERO:
        return zero, None, None
    match config.additional_hours_type:
        case AdditionalHoursType.FIXED_RATE:
            return Money.of(hours * (config.additional_hours_rate or ZERO), currency).round(), None, None
        case AdditionalHoursType.RATE_RANGE:
            low = Money.of(hours * (config.additional_hours_rate_min or ZERO), currency).round()
            high = Money.of(hours * (config.additional_hours_rate_max or ZERO), currency).round()
            return None, low, high
        case AdditionalHoursType.HOURLY_TABLE:
            table = config.additional_hours_table or {}
            if profile is None or profile not in table:
                logger.warning("retainer_additional_rate_unresolved", extra={
                    "profile": profile.value if profile else None,
                    "additional_hours": str(hours),
                })
                return None, None, None
            return Money.of(hours * table[profile], currency).round(), None, None
        case _:
            return None, None, None


def calculate_drawdown(
    config: RetainerConfig,
    hours_used: Decimal | int | str,
    currency: Currency | str,
    carried: Sequence[CarriedBalance] = (),
    profile: Profile | None = None,
) -> DrawdownResult:
    """
    Draw one month of used hours against a retainer.

    Args:
        config: Retainer configuration.
        hours_used: Hours worked in the month.
        currency: Currency for the monetary results.
        carried: Balances carried in from earlier months.
        profile: Profile billing the additional hours (HOURLY_TABLE only).

    Returns:
        DrawdownResult with the balances to carry into next month.
    """
    t0 = time.monotonic()
    hours_used = to_decimal(hours_used, "hours_used")
    if hours_used < ZERO:
        raise ValueError("hours_used must be non-negative")

    logger.info("retainer_drawdown_started", extra={
        "hours_used": str(hours_used),
        "hours_per_month": str(config.hours_per_month),
        "carried_hours": str(sum((b.hours for b in carried), ZERO)),
        "policy": config.unused_balance_policy.value if config.unused_balance_policy else None,
    })

    remaining = hours_used
    from_carryover = ZERO
    leftover: list[CarriedBalance] = []
    for balance in sorted(carried, key=lambda b: -b.age_months):
        take = min(balance.hours, remaining)
        remaining -= take
        from_carryover += take
        if balance.hours > take:
            leftover.append(CarriedBalance(balance.hours - take, balance.age_months))

    from_allowance = min(config.hours_per_month, remaining)
    remaining -= from_allowance
    additional = remaining
    unused = config.hours_per_month - from_allowance

    forfeited = ZERO
    carried_forward: list[CarriedBalance] = []
    if config.unused_balance_policy is UnusedBalancePolicy.ROLLOVER:
        window = config.unused_balance_expiry_months
        for balance in leftover:
            aged = CarriedBalance(balance.hours, balance.age_months + 1)
            if window is not None and aged.age_months >= window:
                forfeited += aged.hours
            else:
                carried_forward.append(aged)
        if unused > ZERO:
            carried_forward.append(CarriedBalance(unused, 0))
    else:
        # EXPIRE (or no policy yet): nothing survives the month
        forfeited = unused + sum((b.hours for b in leftover), ZERO)

    if forfeited > ZERO:
        logger.warning("retainer_hours_forfeited", extra={
            "forfeited_hours": str(forfeited),
            "policy": config.unused_balance_policy.value if config.unused_balance_policy else None,
        })

    amount, amount_min, amount_max = _additional_amounts(config, additional, currency, profile)
    result = DrawdownResult(
        hours_used=hours_used,
        hours_from_carryover=from_carryover,
        hours_from_allowance=from_allowance,
        additional_hours=additional,
        monthly_amount=Money.of(config.monthly_amount, currency).round(),
        additional_amount=amount,
        additional_amount_min=amount_min,
        additional_amount_max=amount_max,
        unused_allowance=unused,
        forfeited_hours=forfeited,
        carried_forward=tuple(carried_forward),
    )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("retainer_drawdown_completed", extra={
        "additional_hours": str(additional),
        "forfeited_hours": str(forfeited),
        "carried_forward_hours": str(result.carried_forward_hours),
        "duration_ms": duration_ms,
    })
    return result
