"""
Line Item Amount Calculator -- gross and discounted amount of one item.

Expenses (see ``pricing_engines.partition``) are pass-through costs: their
entered amount stands whatever the billing method.

Rules by billing method of the item:
    HOURLY      amount = hours x resolved rate (derived, read-only)
    FIXED_FEE   amount = quantity x unit price, quantity defaulting to 1;
                without a unit price the entered amount stands
    otherwise   amount is entered directly

Caps (``is_capped``): hourly items bill at most ``capped_hours`` hours, and
any item bills at most ``capped_amount``.

Discounted amount (used for totals, never stored over ``amount``):
    amount - (discount_amount if set, else amount x discount_percent / 100),
    floored at zero.

Pure functions, no I/O.
"""

from __future__ import annotations

import time
from dataclasses import replace
from decimal import Decimal
from typing import Sequence

from pricing_engines import partition
from pricing_engines.rates import RateContext, resolve_rate
from pricing_kernel.domain.billing import (
    BillingConfig,
    BillingMethod,
    HourlyConfig,
    RateStrategy,
    hourly_config_of,
)
from pricing_kernel.domain.proposal import LineItem
from pricing_kernel.domain.values import HUNDRED, ZERO
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.line_items")

DEFAULT_QUANTITY = Decimal("1")


def item_method(item: LineItem, proposal_method: BillingMethod | None) -> BillingMethod | None:
    """
    Billing method an item is priced under.

    Items carry their own method inside a mixed model; otherwise they
    inherit the proposal's method.
    """
    if item.billing_method is not None:
        return item.billing_method
    if proposal_method is BillingMethod.MIXED_MODEL:
        return None
    return proposal_method


def _apply_hours_cap(item: LineItem, hours: Decimal) -> Decimal:
    if item.is_capped and item.capped_hours is not None and hours > item.capped_hours:
        logger.warning("line_item_hours_cap_applied", extra={
            "hours": str(hours),
            "capped_hours": str(item.capped_hours),
        })
        return item.capped_hours
    return hours


def _apply_amount_cap(item: LineItem, amount: Decimal) -> Decimal:
    if item.is_capped and item.capped_amount is not None and amount > item.capped_amount:
        logger.warning("line_item_amount_cap_applied", extra={
            "amount": str(amount),
            "capped_amount": str(item.capped_amount),
        })
        return item.capped_amount
    return amount


def _hourly_rate(item: LineItem, hourly: HourlyConfig | None) -> Decimal:
    return resolve_rate(RateContext.from_config(hourly, item.profile, item.rate))


def calculate_amount(
    item: LineItem,
    method: BillingMethod | None,
    hourly: HourlyConfig | None = None,
    default_quantity: Decimal = DEFAULT_QUANTITY,
) -> Decimal:
    """
    Gross amount of an item priced under ``method``.

    Args:
        item: The line item.
        method: Billing method the item is priced under (see ``item_method``).
        hourly: Hourly configuration for rate resolution, if any.
        default_quantity: Quantity assumed for fixed-fee items without one.

    Returns:
        A non-negative Decimal.
    """
    if partition.is_expense(item):
        amount = item.amount
    elif method is BillingMethod.HOURLY:
        hours = _apply_hours_cap(item, item.quantity if item.quantity is not None else ZERO)
        amount = hours * _hourly_rate(item, hourly)
    elif method is BillingMethod.FIXED_FEE and item.unit_price is not None:
        quantity = item.quantity if item.quantity is not None else default_quantity
        amount = quantity * item.unit_price
    else:
        amount = item.amount

    amount = _apply_amount_cap(item, amount)
    return amount if amount > ZERO else ZERO


def discount_reduction(item: LineItem) -> Decimal:
    """Discount taken off the item's gross amount, before flooring."""
    if item.discount_amount is not None:
        return item.discount_amount
    if item.discount_percent:
        return item.amount * item.discount_percent / HUNDRED
    return ZERO


def discounted_amount(item: LineItem) -> Decimal:
    """
    Amount after the item's own discount, floored at zero.

    ``discount_percent=0`` with no discount amount is the same as no
    discount at all.
    """
    result = item.amount - discount_reduction(item)
    if result < ZERO:
        logger.warning("line_item_discount_clamped", extra={
            "amount": str(item.amount),
            "discount_amount": str(item.discount_amount),
            "discounted": str(result),
        })
        return ZERO
    return result


def recalculate_item(
    item: LineItem,
    method: BillingMethod | None,
    hourly: HourlyConfig | None = None,
    default_quantity: Decimal = DEFAULT_QUANTITY,
) -> LineItem:
    """
    Return the item with its derived fields brought up to date.

    Hourly items receive the resolved rate when it is not user-entered
    (blended or table lookup).  Fixed-fee items with a unit price get the
    default quantity when none is set.
    """
    if partition.is_expense(item):
        return item
    if method is BillingMethod.HOURLY:
        context = RateContext.from_config(hourly, item.profile, item.rate)
        rate = item.rate
        table_lookup = (
            context.strategy is RateStrategy.HOURLY_TABLE and item.profile is not None
        )
        if context.blended_active or table_lookup:
            rate = resolve_rate(context)
        item = replace(item, rate=rate)
    elif method is BillingMethod.FIXED_FEE and item.unit_price is not None and item.quantity is None:
        item = replace(item, quantity=default_quantity)

    amount = calculate_amount(item, method, hourly, default_quantity)
    if amount == item.amount:
        return item
    return replace(item, amount=amount)


def recalculate_items(
    items: Sequence[LineItem],
    proposal_method: BillingMethod | None,
    config: BillingConfig | None,
    default_quantity: Decimal = DEFAULT_QUANTITY,
) -> tuple[LineItem, ...]:
    """Recalculate every item against the proposal's method and config."""
    t0 = time.monotonic()
    hourly = hourly_config_of(config)
    result = tuple(
        recalculate_item(item, item_method(item, proposal_method), hourly, default_quantity)
        for item in items
    )
    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.debug("line_items_recalculated", extra={
        "method": proposal_method.value if proposal_method else None,
        "item_count": len(result),
        "blended_active": bool(hourly and hourly.blended_active),
        "duration_ms": duration_ms,
    })
    return result


def apply_blended_rate(
    items: Sequence[LineItem],
    proposal_method: BillingMethod | None,
    hourly: HourlyConfig,
) -> tuple[LineItem, ...]:
    """Force every hourly item's rate to the blended rate and reprice it."""
    if not hourly.blended_active:
        return tuple(items)
    result: list[LineItem] = []
    for item in items:
        method = item_method(item, proposal_method)
        if method is BillingMethod.HOURLY and not partition.is_expense(item):
            item = recalculate_item(replace(item, rate=hourly.blended_rate), method, hourly)
        result.append(item)
    return tuple(result)
