"""
Proposal Totals Aggregator.

    services_subtotal = sum of discounted services
    expenses_subtotal = sum of discounted expenses
    client_discount   = services x pct / 100  |  fixed amount  |  0
                        (services only, never more than the services subtotal)
    tax_base          = services_subtotal - client_discount
    tax               = inclusive: tax_base x rate / (100 + rate)
                        exclusive: tax_base x rate / 100
    grand_total       = inclusive: tax_base + expenses
                        exclusive: tax_base + tax + expenses

RETAINER proposals bypass line items: retainer_total = monthly amount x
duration (None without a duration) and the grand total is the retainer
total, or a single month when the duration is open-ended.  A retainer
component inside a mixed model is reported as ``retainer_total`` but not
added to the grand total, which stays line-item based.

Negative intermediates are clamped to zero and logged, never raised.
Every reported figure is rounded half-up to the currency's minor units;
the tax base is rounded before tax is derived from it so the rounded
parts always add up to the grand total.

Pure function, no I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from pricing_engines import partition
from pricing_engines.line_items import discounted_amount
from pricing_engines.tracer import traced_engine
from pricing_kernel.domain.billing import (
    BillingConfig,
    BillingMethod,
    RetainerConfig,
    retainer_config_of,
)
from pricing_kernel.domain.proposal import (
    ClientDiscount,
    DiscountType,
    LineItem,
    ProposalHeader,
    TaxConfig,
)
from pricing_kernel.domain.values import HUNDRED, ZERO, Currency, Money
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.totals")


@dataclass(frozen=True)
class ProposalTotals:
    """
    Live summary of a proposal.

    Immutable value object; every Money is rounded to minor units.
    """

    currency: Currency
    services_subtotal: Money
    expenses_subtotal: Money
    client_discount: Money
    tax_base: Money
    tax: Money
    grand_total: Money
    retainer_total: Money | None = None
    service_count: int = 0
    expense_count: int = 0
    tax_inclusive: bool = False

    @property
    def is_retainer_based(self) -> bool:
        return self.retainer_total is not None


def _round(amount: Decimal, currency: Currency) -> Decimal:
    return Money(amount, currency).round(ROUND_HALF_UP).amount


def client_discount_amount(services_subtotal: Decimal, discount: ClientDiscount) -> Decimal:
    """Client-level discount on the services subtotal, capped at the subtotal."""
    if discount.discount_type is DiscountType.PERCENT:
        reduction = services_subtotal * discount.value / HUNDRED
    elif discount.discount_type is DiscountType.AMOUNT:
        reduction = discount.value
    else:
        return ZERO
    if reduction > services_subtotal:
        logger.warning("client_discount_clamped", extra={
            "services_subtotal": str(services_subtotal),
            "discount": str(reduction),
        })
        return services_subtotal
    return reduction


def tax_amount(tax_base: Decimal, tax: TaxConfig) -> Decimal:
    """Tax contained in (inclusive) or added to (exclusive) the base."""
    if tax.rate_percent == ZERO or tax_base <= ZERO:
        return ZERO
    if tax.inclusive:
        return tax_base * tax.rate_percent / (HUNDRED + tax.rate_percent)
    return tax_base * tax.rate_percent / HUNDRED


def retainer_total(config: RetainerConfig) -> Decimal | None:
    """Monthly amount x duration; None while the duration is unset."""
    if config.duration_months is None:
        return None
    return config.monthly_amount * config.duration_months


def _retainer_totals(header: ProposalHeader, config: RetainerConfig) -> ProposalTotals:
    currency = header.currency
    zero = Money.zero(currency)
    total = retainer_total(config)
    if total is None:
        # Open-ended retainer: one month is the committed amount
        grand = Money.of(config.monthly_amount, currency).round()
        retainer = None
    else:
        grand = Money.of(total, currency).round()
        retainer = grand
    return ProposalTotals(
        currency=currency,
        services_subtotal=zero,
        expenses_subtotal=zero,
        client_discount=zero,
        tax_base=zero,
        tax=zero,
        grand_total=grand,
        retainer_total=retainer,
        tax_inclusive=header.tax.inclusive,
    )


@traced_engine("totals", "1.0", fingerprint_fields=("items", "header", "method", "config"))
def calculate_totals(
    *,
    items: Sequence[LineItem],
    header: ProposalHeader,
    method: BillingMethod | None = None,
    config: BillingConfig | None = None,
) -> ProposalTotals:
    """
    Aggregate line items into the proposal totals.

    Args:
        items: Line items with up-to-date gross amounts.
        header: Shared proposal fields (currency, tax, client discount).
        method: Top-level billing method.
        config: Billing configuration of the method.

    Returns:
        ProposalTotals with every figure rounded to the currency.
    """
    t0 = time.monotonic()
    currency = header.currency
    logger.info("totals_calculation_started", extra={
        "method": method.value if method else None,
        "currency": currency.code,
        "item_count": len(items),
        "tax_rate": str(header.tax.rate_percent),
        "tax_inclusive": header.tax.inclusive,
        "client_discount_type": header.client_discount.discount_type.value,
    })

    if method is BillingMethod.RETAINER:
        retainer = config if isinstance(config, RetainerConfig) else RetainerConfig()
        result = _retainer_totals(header, retainer)
    else:
        split = partition.partition_items(items)
        services = sum((discounted_amount(i) for i in split.services), ZERO)
        expenses = sum((discounted_amount(i) for i in split.expenses), ZERO)

        discount = client_discount_amount(services, header.client_discount)
        services_r = _round(services, currency)
        expenses_r = _round(expenses, currency)
        tax_base_r = _round(max(services - discount, ZERO), currency)
        discount_r = services_r - tax_base_r
        tax_r = _round(tax_amount(tax_base_r, header.tax), currency)

        if header.tax.inclusive:
            grand = tax_base_r + expenses_r
        else:
            grand = tax_base_r + tax_r + expenses_r

        retainer_component = retainer_config_of(config)
        component_total = retainer_total(retainer_component) if retainer_component else None

        result = ProposalTotals(
            currency=currency,
            services_subtotal=Money.of(services_r, currency),
            expenses_subtotal=Money.of(expenses_r, currency),
            client_discount=Money.of(discount_r, currency),
            tax_base=Money.of(tax_base_r, currency),
            tax=Money.of(tax_r, currency),
            grand_total=Money.of(grand, currency),
            retainer_total=(
                Money.of(component_total, currency).round()
                if component_total is not None else None
            ),
            service_count=len(split.services),
            expense_count=len(split.expenses),
            tax_inclusive=header.tax.inclusive,
        )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("totals_calculation_completed", extra={
        "method": method.value if method else None,
        "services_subtotal": str(result.services_subtotal.amount),
        "expenses_subtotal": str(result.expenses_subtotal.amount),
        "client_discount": str(result.client_discount.amount),
        "tax": str(result.tax.amount),
        "grand_total": str(result.grand_total.amount),
        "retainer_total": (
            str(result.retainer_total.amount) if result.retainer_total else None
        ),
        "duration_ms": duration_ms,
    })
    return result
