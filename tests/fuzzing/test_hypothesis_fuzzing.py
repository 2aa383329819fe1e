"""
Hypothesis-based property tests for the pricing engines.

Properties checked here:
- Client discount: never negative, never above the services subtotal
- Partition: every item lands in exactly one group, order preserved
- Grand total: adding a service or expense, or raising one item's amount
  with its own discount held fixed, never lowers it
- Installments: parts sum to the rounded amount; only the last differs
- Milestone removal: no item keeps a reference to a removed milestone
- Blended rate: every hourly service ends up on the blended rate
"""

from dataclasses import replace
from decimal import Decimal
from itertools import count

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from pricing_engines.line_items import apply_blended_rate, discounted_amount
from pricing_engines.milestones import MilestoneLedger
from pricing_engines.partition import is_expense, partition_items
from pricing_engines.payment_terms import split_installments
from pricing_engines.totals import calculate_totals, client_discount_amount
from pricing_kernel.domain.billing import BillingMethod, HourlyConfig, RateStrategy
from pricing_kernel.domain.proposal import (
    ClientDiscount,
    LineItem,
    ProposalHeader,
    TaxConfig,
)
from pricing_kernel.domain.values import Money

pytestmark = pytest.mark.slow

FUZZ_SETTINGS = settings(
    max_examples=150,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
percents = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
hours = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("500"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@st.composite
def line_items(draw, expense=None):
    """Priced items; ``expense`` forces the classification when given."""
    if expense is None:
        expense = draw(st.booleans())
    linked = expense and draw(st.booleans())
    item_discount = draw(st.one_of(st.none(), percents))
    return LineItem(
        description=draw(st.text(max_size=20)),
        amount=draw(amounts),
        discount_percent=item_discount,
        expense_id="exp-1" if linked else None,
        is_estimated=expense and not linked,
    )


@st.composite
def discounted_line_items(draw):
    """Priced items carrying no discount, a percent or a flat amount."""
    item = draw(line_items())
    branch = draw(st.sampled_from(["NONE", "PERCENT", "AMOUNT"]))
    if branch == "PERCENT":
        return item.with_discount_percent(draw(percents))
    if branch == "AMOUNT":
        return item.with_discount_amount(draw(amounts))
    return replace(item, discount_percent=None)


@st.composite
def client_discounts(draw, kind=None):
    if kind is None:
        kind = draw(st.sampled_from(["NONE", "PERCENT", "AMOUNT"]))
    if kind == "PERCENT":
        return ClientDiscount.percent(draw(percents))
    if kind == "AMOUNT":
        return ClientDiscount.amount(draw(amounts))
    return ClientDiscount.none()


@st.composite
def headers(draw, inclusive=None, discount_kind=None):
    if inclusive is None:
        inclusive = draw(st.booleans())
    return ProposalHeader(
        currency=draw(st.sampled_from(["EUR", "USD", "GBP"])),
        tax=TaxConfig(draw(percents), inclusive),
        client_discount=draw(client_discounts(discount_kind)),
    )


class TestClientDiscountBounds:
    @given(subtotal=amounts, discount=client_discounts())
    @FUZZ_SETTINGS
    def test_discount_within_subtotal(self, subtotal, discount):
        reduction = client_discount_amount(subtotal, discount)
        assert Decimal("0") <= reduction <= subtotal


class TestPartitionProperties:
    @given(items=st.lists(line_items(), max_size=12))
    @FUZZ_SETTINGS
    def test_exhaustive_and_disjoint(self, items):
        split = partition_items(items)
        assert split.item_count == len(items)
        assert all(not is_expense(i) for i in split.services)
        assert all(is_expense(i) for i in split.expenses)
        assert list(split.services) == [i for i in items if not is_expense(i)]
        assert list(split.expenses) == [i for i in items if is_expense(i)]


class TestGrandTotalMonotonic:
    @given(
        items=st.lists(line_items(), max_size=8),
        extra=line_items(),
        header=headers(),
    )
    @FUZZ_SETTINGS
    def test_adding_an_item_never_lowers_total(self, items, extra, header):
        before = calculate_totals(items=items, header=header, method=BillingMethod.FIXED_FEE)
        after = calculate_totals(
            items=[*items, extra], header=header, method=BillingMethod.FIXED_FEE
        )
        assert after.grand_total >= before.grand_total
        assert not after.grand_total.is_negative

    @given(
        items=st.lists(discounted_line_items(), min_size=1, max_size=8),
        increase=amounts.filter(lambda d: d > 0),
        header=headers(),
        data=st.data(),
    )
    @FUZZ_SETTINGS
    def test_raising_one_amount_never_lowers_total(self, items, increase, header, data):
        index = data.draw(st.integers(min_value=0, max_value=len(items) - 1))
        raised = list(items)
        raised[index] = replace(items[index], amount=items[index].amount + increase)
        assert raised[index].discount_percent == items[index].discount_percent
        assert raised[index].discount_amount == items[index].discount_amount

        before = calculate_totals(items=items, header=header, method=BillingMethod.FIXED_FEE)
        after = calculate_totals(items=raised, header=header, method=BillingMethod.FIXED_FEE)
        assert after.grand_total >= before.grand_total

    @pytest.mark.parametrize("inclusive", [True, False])
    @given(
        items=st.lists(discounted_line_items(), min_size=1, max_size=8),
        increase=amounts.filter(lambda d: d > 0),
        data=st.data(),
    )
    @FUZZ_SETTINGS
    def test_raising_one_amount_under_flat_client_discount(self, inclusive, items, increase, data):
        header = data.draw(headers(inclusive=inclusive, discount_kind="AMOUNT"))
        index = data.draw(st.integers(min_value=0, max_value=len(items) - 1))
        raised = list(items)
        raised[index] = replace(items[index], amount=items[index].amount + increase)

        before = calculate_totals(items=items, header=header, method=BillingMethod.FIXED_FEE)
        after = calculate_totals(items=raised, header=header, method=BillingMethod.FIXED_FEE)
        assert after.grand_total >= before.grand_total
        assert after.tax_base >= before.tax_base

    @given(items=st.lists(line_items(), max_size=8), header=headers())
    @FUZZ_SETTINGS
    def test_expenses_untouched_by_client_discount(self, items, header):
        totals = calculate_totals(items=items, header=header, method=BillingMethod.FIXED_FEE)
        expenses = sum((discounted_amount(i) for i in items if is_expense(i)), Decimal("0"))
        assert totals.expenses_subtotal == Money.of(expenses, header.currency).round()
        assert totals.client_discount <= totals.services_subtotal


class TestInstallmentSplit:
    @given(amount=amounts, parts=st.integers(min_value=1, max_value=36))
    @FUZZ_SETTINGS
    def test_parts_sum_to_amount(self, amount, parts):
        total = Money.of(amount, "EUR")
        split = split_installments(total, parts)
        assert len(split) == parts
        assert sum((p.amount for p in split), Decimal("0")) == total.round().amount
        assert len({p.amount for p in split[:-1]}) <= 1
        assert split[-1] >= split[0]


class TestMilestoneRemoval:
    @given(
        milestone_count=st.integers(min_value=1, max_value=6),
        assignments=st.lists(st.sets(st.integers(min_value=0, max_value=5)), max_size=8),
        data=st.data(),
    )
    @FUZZ_SETTINGS
    def test_no_dangling_references(self, milestone_count, assignments, data):
        counter = count(1)
        ledger = MilestoneLedger(id_factory=lambda: f"temp-{next(counter)}")
        ids = [ledger.add(f"M{n}").id for n in range(milestone_count)]
        for picks in assignments:
            index = ledger.add_item(LineItem(amount="10"))
            ledger.assign(index, [ids[p] for p in sorted(picks) if p < milestone_count])

        removed = data.draw(st.sampled_from(ids))
        ledger.remove(removed)

        assert removed not in ledger
        assert ledger.dangling_references() == frozenset()
        assert all(removed not in item.milestone_ids for item in ledger.items)
        assert len(ledger.items) == len(assignments)


class TestBlendedRateForcing:
    @given(
        blended=amounts.filter(lambda d: d > 0),
        entries=st.lists(st.tuples(hours, amounts, st.booleans()), min_size=1, max_size=8),
    )
    @FUZZ_SETTINGS
    def test_every_hourly_service_on_blended_rate(self, blended, entries):
        hourly = HourlyConfig(rate_strategy=RateStrategy.BLENDED, blended_rate=blended)
        items = [
            LineItem(
                billing_method=BillingMethod.HOURLY,
                quantity=quantity,
                rate=rate,
                amount=rate,
                expense_id="exp-1" if expense else None,
            )
            for quantity, rate, expense in entries
        ]
        forced = apply_blended_rate(items, BillingMethod.HOURLY, hourly)
        for original, item in zip(items, forced):
            if is_expense(original):
                assert item == original
            else:
                assert item.rate == blended
                assert item.amount == item.quantity * blended
