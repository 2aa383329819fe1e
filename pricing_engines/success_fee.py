"""
Success fee engine -- completeness rules and fee amounts.

    base fee     FIXED_AMOUNT: amount
                 HOURLY_RATE:  rate x hours worked
    success fee  PERCENTAGE:   transaction value x percent / 100
                 FIXED_AMOUNT: amount

Pure functions, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from pricing_kernel.domain.billing import SuccessFeeBaseType, SuccessFeeConfig, SuccessFeeType
from pricing_kernel.domain.values import HUNDRED, ZERO, Currency, Money, to_decimal
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.success_fee")


def validate_success_fee(config: SuccessFeeConfig) -> dict[str, str]:
    """Field-keyed errors; empty when both branches are complete."""
    errors: dict[str, str] = {}
    base, fee = config.base, config.fee

    if base.base_type is None:
        errors["base_type"] = "Please select a base fee type"
    elif base.base_type is SuccessFeeBaseType.FIXED_AMOUNT:
        if not base.amount:
            errors["base_amount"] = "Please enter the base fee amount"
    else:
        if not base.hourly_rate:
            errors["base_hourly_rate"] = "Please enter the base hourly rate"
        if not (base.hourly_description or "").strip():
            errors["base_hourly_description"] = "Please describe the hourly base work"

    if fee.fee_type is None:
        errors["fee_type"] = "Please select a success fee type"
    elif fee.fee_type is SuccessFeeType.PERCENTAGE:
        if not fee.percent:
            errors["fee_percent"] = "Please enter the success fee percentage"
        elif fee.percent > HUNDRED:
            errors["fee_percent"] = "Percentage cannot exceed 100%"
        if not fee.transaction_value:
            errors["fee_transaction_value"] = "Please enter the transaction value"
    elif not fee.amount:
        errors["fee_amount"] = "Please enter the success fee amount"
    return errors


@dataclass(frozen=True)
class SuccessFeeAmounts:
    base_fee: Money
    success_fee: Money

    @property
    def total_on_success(self) -> Money:
        return self.base_fee + self.success_fee


def calculate_success_fee(
    config: SuccessFeeConfig,
    currency: Currency | str,
    hours_worked: Decimal | int | str = ZERO,
) -> SuccessFeeAmounts:
    """
    Base and success fee amounts, rounded to the currency.

    Args:
        config: Success fee configuration.
        currency: Currency of the proposal.
        hours_worked: Hours billed against an HOURLY_RATE base.
    """
    hours = to_decimal(hours_worked, "hours_worked")
    base, fee = config.base, config.fee

    if base.base_type is SuccessFeeBaseType.FIXED_AMOUNT:
        base_amount = base.amount or ZERO
    elif base.base_type is SuccessFeeBaseType.HOURLY_RATE:
        base_amount = (base.hourly_rate or ZERO) * hours
    else:
        base_amount = ZERO

    if fee.fee_type is SuccessFeeType.PERCENTAGE:
        fee_amount = (fee.transaction_value or ZERO) * (fee.percent or ZERO) / HUNDRED
    elif fee.fee_type is SuccessFeeType.FIXED_AMOUNT:
        fee_amount = fee.amount or ZERO
    else:
        fee_amount = ZERO

    result = SuccessFeeAmounts(
        base_fee=Money.of(base_amount, currency).round(),
        success_fee=Money.of(fee_amount, currency).round(),
    )
    logger.debug("success_fee_calculated", extra={
        "base_type": base.base_type.value if base.base_type else None,
        "fee_type": fee.fee_type.value if fee.fee_type else None,
        "base_fee": str(result.base_fee.amount),
        "success_fee": str(result.success_fee.amount),
    })
    return result
