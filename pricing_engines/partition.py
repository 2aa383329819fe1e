"""
Services/Expenses Partitioner.

An item is an expense iff it is linked to a project expense
(``expense_id`` set) or flagged as an estimated expense.  Everything else
is a billable service.

``is_expense`` is the single classification rule: every total in
``pricing_engines.totals`` goes through ``partition_items``, which calls
it.  There is no stored flag that could disagree with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from pricing_kernel.domain.proposal import LineItem


def is_expense(item: LineItem) -> bool:
    """True for pass-through costs, False for billable services."""
    return item.expense_id is not None or item.is_estimated is True


@dataclass(frozen=True)
class Partition:
    """Items split into services and expenses, each keeping input order."""

    services: tuple[LineItem, ...]
    expenses: tuple[LineItem, ...]

    @property
    def item_count(self) -> int:
        return len(self.services) + len(self.expenses)


def partition_items(items: Sequence[LineItem]) -> Partition:
    """Split items into services and expenses. Exhaustive and disjoint."""
    services: list[LineItem] = []
    expenses: list[LineItem] = []
    for item in items:
        if is_expense(item):
            expenses.append(item)
        else:
            services.append(item)
    return Partition(services=tuple(services), expenses=tuple(expenses))
