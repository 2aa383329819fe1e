"""
Milestone Assignment Ledger.

Responsibility:
    Owns the milestones of a draft together with the line items that
    reference them, and keeps the many-to-many assignment consistent.

Invariants enforced:
    - Every id in an item's ``milestone_ids`` names an existing milestone.
      Removing a milestone strips its id from every item before the call
      returns; assigning an unknown id raises MilestoneNotFoundError.
    - Milestone ids are unique and immutable once added.

New milestones get a temporary id (``temp-<hex>``) until persisted; the
id factory is injectable for deterministic tests.

Not thread-safe; a draft is owned by a single editing session.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from uuid import uuid4

from pricing_kernel.domain.proposal import TEMP_ID_PREFIX, LineItem, Milestone
from pricing_kernel.exceptions import (
    DuplicateMilestoneError,
    LineItemNotFoundError,
    MilestoneNotFoundError,
)
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.milestones")


def _temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid4().hex}"


class MilestoneLedger:
    """Milestones plus the items that reference them."""

    def __init__(
        self,
        milestones: Iterable[Milestone] = (),
        items: Iterable[LineItem] = (),
        id_factory: Callable[[], str] | None = None,
    ):
        self._id_factory = id_factory or _temp_id
        self._milestones: dict[str, Milestone] = {}
        for milestone in milestones:
            if milestone.id in self._milestones:
                raise DuplicateMilestoneError(milestone.id)
            self._milestones[milestone.id] = milestone
        self._items: list[LineItem] = []
        for item in items:
            self._check_ids(item.milestone_ids)
            self._items.append(item)

    # -- read side ---------------------------------------------------------

    @property
    def milestones(self) -> tuple[Milestone, ...]:
        return tuple(self._milestones.values())

    @property
    def items(self) -> tuple[LineItem, ...]:
        return tuple(self._items)

    @property
    def milestone_ids(self) -> frozenset[str]:
        return frozenset(self._milestones)

    def __contains__(self, milestone_id: object) -> bool:
        return milestone_id in self._milestones

    def __len__(self) -> int:
        return len(self._milestones)

    def get(self, milestone_id: str) -> Milestone:
        try:
            return self._milestones[milestone_id]
        except KeyError:
            raise MilestoneNotFoundError(milestone_id) from None

    def items_for(self, milestone_id: str) -> tuple[int, ...]:
        """Indexes of items assigned to a milestone."""
        self.get(milestone_id)
        return tuple(
            i for i, item in enumerate(self._items) if milestone_id in item.milestone_ids
        )

    def dangling_references(self) -> frozenset[str]:
        """Item-referenced ids with no milestone. Always empty."""
        referenced = {mid for item in self._items for mid in item.milestone_ids}
        return frozenset(referenced - self._milestones.keys())

    # -- milestones --------------------------------------------------------

    def add(self, name: str = "", milestone_id: str | None = None, **fields) -> Milestone:
        """Add a milestone; a temporary id is generated when none is given."""
        milestone = Milestone(id=milestone_id or self._id_factory(), name=name, **fields)
        if milestone.id in self._milestones:
            raise DuplicateMilestoneError(milestone.id)
        self._milestones[milestone.id] = milestone
        logger.debug("milestone_added", extra={
            "milestone_id": milestone.id,
            "milestone_count": len(self._milestones),
        })
        return milestone

    def update(self, milestone_id: str, **changes) -> Milestone:
        """Change milestone fields. The id cannot change."""
        if "id" in changes:
            raise ValueError("Milestone id is immutable")
        updated = replace(self.get(milestone_id), **changes)
        self._milestones[milestone_id] = updated
        return updated

    def remove(self, milestone_id: str) -> Milestone:
        """Remove a milestone and strip its id from every item."""
        removed = self.get(milestone_id)
        del self._milestones[milestone_id]
        touched = 0
        for index, item in enumerate(self._items):
            if milestone_id in item.milestone_ids:
                self._items[index] = item.with_milestones(
                    [mid for mid in item.milestone_ids if mid != milestone_id]
                )
                touched += 1
        logger.info("milestone_removed", extra={
            "milestone_id": milestone_id,
            "items_unassigned": touched,
            "milestone_count": len(self._milestones),
        })
        return removed

    def clear(self) -> None:
        """Remove every milestone (and every assignment)."""
        for milestone_id in list(self._milestones):
            self.remove(milestone_id)

    def assign(self, item_index: int, milestone_ids: Sequence[str]) -> LineItem:
        """Replace the milestones assigned to one item."""
        self._check_index(item_index)
        self._check_ids(milestone_ids)
        item = self._items[item_index].with_milestones(milestone_ids)
        self._items[item_index] = item
        return item

    # -- items -------------------------------------------------------------

    def add_item(self, item: LineItem) -> int:
        self._check_ids(item.milestone_ids)
        self._items.append(item)
        return len(self._items) - 1

    def replace_item(self, index: int, item: LineItem) -> LineItem:
        self._check_index(index)
        self._check_ids(item.milestone_ids)
        self._items[index] = item
        return item

    def remove_item(self, index: int) -> LineItem:
        self._check_index(index)
        return self._items.pop(index)

    def set_items(self, items: Iterable[LineItem]) -> None:
        """Replace all items at once (all-or-nothing)."""
        new_items = list(items)
        for item in new_items:
            self._check_ids(item.milestone_ids)
        self._items = new_items

    def item(self, index: int) -> LineItem:
        self._check_index(index)
        return self._items[index]

    # -- helpers -----------------------------------------------------------

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._items):
            raise LineItemNotFoundError(index, len(self._items))

    def _check_ids(self, milestone_ids: Iterable[str]) -> None:
        for milestone_id in milestone_ids:
            if milestone_id not in self._milestones:
                raise MilestoneNotFoundError(milestone_id)
