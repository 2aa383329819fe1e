"""
Payment term rules -- structure detection, validation and schedules.

A term validates against the structure the user picked.  Terms without
one (older drafts, collaborator records) are classified by their type
fields, first match wins:
    recurring enabled                        -> RECURRING
    installment type set                     -> INSTALLMENTS
    upfront type set                         -> UPFRONT_BALANCE
    otherwise                                -> ONE_TIME
A half-filled term is reported incomplete in the structure it was started
as.

Installment splits assign the rounding remainder to the last installment
so the parts always sum to the amount being split.

Pure functions, no I/O.  Dates are passed in, never read from the clock.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import ROUND_DOWN, Decimal
from typing import Collection

from pricing_kernel.domain.proposal import (
    BalancePaymentType,
    InstallmentFrequency,
    InstallmentType,
    PaymentStructure,
    PaymentTerm,
    RecurringFrequency,
    UpfrontType,
)
from pricing_kernel.domain.values import HUNDRED, ZERO, Money
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.payment_terms")


def detect_structure(term: PaymentTerm | None) -> PaymentStructure | None:
    """Chosen structure of a term, else the one its type fields imply."""
    if term is None:
        return None
    if term.structure is not None:
        return term.structure
    if term.recurring_enabled:
        return PaymentStructure.RECURRING
    if term.installment_type is not None:
        return PaymentStructure.INSTALLMENTS
    if term.upfront_type is not None:
        return PaymentStructure.UPFRONT_BALANCE
    return PaymentStructure.ONE_TIME


def _validate_upfront(term: PaymentTerm, errors: dict[str, str]) -> None:
    if term.upfront_type is None:
        errors["upfront_type"] = "Please select upfront payment type"
    if term.upfront_value is None:
        errors["upfront_value"] = "Please enter upfront payment amount"
    elif term.upfront_value < ZERO:
        errors["upfront_value"] = "Upfront payment must be positive"
    elif term.upfront_type is UpfrontType.PERCENT and term.upfront_value > HUNDRED:
        errors["upfront_value"] = "Percentage cannot exceed 100%"


def _validate_balance(
    term: PaymentTerm, milestone_ids: Collection[str], errors: dict[str, str]
) -> None:
    if term.balance_payment_type is None:
        errors["balance_payment_type"] = "Please select how the balance will be paid"
    elif term.balance_payment_type is BalancePaymentType.TIME_BASED:
        if term.balance_due_date is None:
            errors["balance_due_date"] = "Please select a due date"
    elif term.balance_payment_type is BalancePaymentType.MILESTONE_BASED:
        # Milestones may not exist yet; they are created in a later step
        if milestone_ids and not term.milestone_ids:
            errors["milestone_ids"] = "Please select at least one milestone"


def _validate_installments(term: PaymentTerm, errors: dict[str, str]) -> None:
    if term.installment_type is None:
        errors["installment_type"] = "Please select installment type"
    elif term.installment_type is InstallmentType.TIME_BASED:
        if not term.installment_count or term.installment_count < 1:
            errors["installment_count"] = "Please enter number of installments"
        if term.installment_frequency is None:
            errors["installment_frequency"] = "Please select installment frequency"
    elif not term.milestone_ids:
        errors["milestone_ids"] = "Please select at least one milestone"


def _validate_recurring(term: PaymentTerm, errors: dict[str, str]) -> None:
    if not term.recurring_enabled:
        return
    if term.recurring_frequency is None:
        errors["recurring_frequency"] = (
            "Please select recurring frequency or disable recurring payments"
        )
    if term.recurring_frequency is RecurringFrequency.CUSTOM and (
        not term.recurring_custom_months or term.recurring_custom_months < 1
    ):
        errors["recurring_custom_months"] = "Please enter a valid number of months"
    if term.recurring_start_date is None:
        errors["recurring_start_date"] = "Please select a start date"


def validate_payment_term(
    term: PaymentTerm,
    structure: PaymentStructure | None = None,
    milestone_ids: Collection[str] | None = None,
) -> dict[str, str]:
    """
    Completeness check for a payment term.

    Args:
        term: The payment term.
        structure: Overrides the term's own structure; detected when
            neither is set.
        milestone_ids: Ids of the draft's existing milestones; when given,
            references to other ids are reported.

    Returns:
        Field-keyed error messages; empty when valid.
    """
    structure = structure or detect_structure(term)
    errors: dict[str, str] = {}

    if structure is PaymentStructure.UPFRONT_BALANCE:
        _validate_upfront(term, errors)
        _validate_balance(term, milestone_ids or (), errors)
    elif structure is PaymentStructure.INSTALLMENTS:
        _validate_installments(term, errors)
    elif structure is PaymentStructure.RECURRING:
        _validate_recurring(term, errors)

    if milestone_ids is not None:
        unknown = [mid for mid in term.milestone_ids if mid not in milestone_ids]
        if unknown:
            errors.setdefault("milestone_ids", f"Unknown milestones: {', '.join(unknown)}")
    return errors


def upfront_amount(term: PaymentTerm, grand_total: Money) -> Money:
    """
    Upfront part of the grand total, never more than the total.

    PERCENT takes the percentage of the total; FIXED_AMOUNT the value.
    """
    if term.upfront_type is None or term.upfront_value is None:
        return Money.zero(grand_total.currency)
    if term.upfront_type is UpfrontType.PERCENT:
        value = grand_total.amount * term.upfront_value / HUNDRED
    else:
        value = term.upfront_value
    value = min(max(value, ZERO), grand_total.amount)
    return Money.of(value, grand_total.currency).round()


def balance_amount(term: PaymentTerm, grand_total: Money) -> Money:
    """What remains after the upfront part; zero for FULL_UPFRONT balances."""
    if term.balance_payment_type is BalancePaymentType.FULL_UPFRONT:
        return Money.zero(grand_total.currency)
    return (grand_total.round() - upfront_amount(term, grand_total)).clamp_non_negative()


def split_installments(amount: Money, count: int) -> tuple[Money, ...]:
    """
    Split an amount into ``count`` installments.

    Every installment but the last is the amount divided evenly and rounded
    down to minor units; the last takes the remainder.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    total = amount.round()
    quantum = Decimal("1").scaleb(-amount.currency.decimal_places)
    share = (total.amount / count).quantize(quantum, rounding=ROUND_DOWN)
    parts = [Money.of(share, amount.currency) for _ in range(count - 1)]
    parts.append(Money.of(total.amount - share * (count - 1), amount.currency))
    logger.debug("installments_split", extra={
        "amount": str(total.amount),
        "count": count,
        "installment": str(share),
        "last_installment": str(parts[-1].amount),
    })
    return tuple(parts)


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def installment_due_dates(
    start: date, count: int, frequency: InstallmentFrequency
) -> tuple[date, ...]:
    """Due dates of time-based installments, the first falling on ``start``."""
    frequency = InstallmentFrequency(frequency)
    if frequency is InstallmentFrequency.WEEKLY:
        return tuple(start + timedelta(weeks=i) for i in range(count))
    step = 1 if frequency is InstallmentFrequency.MONTHLY else 3
    return tuple(add_months(start, i * step) for i in range(count))


def recurring_interval_months(term: PaymentTerm) -> int | None:
    """Billing interval of an enabled recurring term in months."""
    if not term.recurring_enabled or term.recurring_frequency is None:
        return None
    if term.recurring_frequency is RecurringFrequency.CUSTOM:
        return term.recurring_custom_months
    return term.recurring_frequency.months


def default_recurring_start(today: date) -> date:
    """First day of this month before the 15th, else first day of next month."""
    if today.day < 15:
        return today.replace(day=1)
    return add_months(today.replace(day=1), 1)


def start_term(
    structure: PaymentStructure,
    today: date,
    previous: PaymentTerm | None = None,
) -> PaymentTerm:
    """
    Fresh term for a newly chosen structure.

    Fields of the previous structure are dropped.  ONE_TIME keeps a
    previously entered due date; UPFRONT_BALANCE starts at 0 percent;
    RECURRING starts disabled with the default start date filled in.
    """
    structure = PaymentStructure(structure)
    if structure is PaymentStructure.ONE_TIME:
        due = previous.balance_due_date if previous is not None else None
        return PaymentTerm(structure=structure, balance_due_date=due)
    if structure is PaymentStructure.UPFRONT_BALANCE:
        return PaymentTerm(structure=structure, upfront_type=UpfrontType.PERCENT, upfront_value=ZERO)
    if structure is PaymentStructure.RECURRING:
        return PaymentTerm(
            structure=structure,
            recurring_start_date=default_recurring_start(today),
        )
    return PaymentTerm(structure=structure)
