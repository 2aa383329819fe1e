"""Tests for the milestone assignment ledger."""

from decimal import Decimal

import pytest

from pricing_engines.milestones import MilestoneLedger
from pricing_kernel.domain.proposal import LineItem, Milestone
from pricing_kernel.exceptions import (
    DuplicateMilestoneError,
    LineItemNotFoundError,
    MilestoneNotFoundError,
)


@pytest.fixture
def ledger(milestone_ids):
    ledger = MilestoneLedger(id_factory=milestone_ids)
    ledger.add("Signing")
    ledger.add("Closing", percent="50")
    ledger.add_item(LineItem(description="Due diligence", milestone_ids=("temp-1", "temp-2")))
    ledger.add_item(LineItem(description="Drafting", milestone_ids=("temp-2",)))
    ledger.add_item(LineItem(description="Filing"))
    return ledger


class TestAddAndUpdate:
    def test_temporary_ids_generated(self, ledger):
        assert [m.id for m in ledger.milestones] == ["temp-1", "temp-2"]
        assert not ledger.get("temp-1").is_persisted

    def test_default_id_factory(self):
        milestone = MilestoneLedger().add("Kick-off")
        assert milestone.id.startswith("temp-")

    def test_explicit_id(self, ledger):
        milestone = ledger.add("Signing", milestone_id="ms_42")
        assert "ms_42" in ledger and milestone.is_persisted

    def test_duplicate_id_rejected(self, ledger):
        with pytest.raises(DuplicateMilestoneError):
            ledger.add("Again", milestone_id="temp-1")

    def test_duplicate_on_construction(self):
        with pytest.raises(DuplicateMilestoneError):
            MilestoneLedger([Milestone("m1"), Milestone("m1")])

    def test_update_fields(self, ledger):
        updated = ledger.update("temp-2", name="Completion", amount="4000")
        assert updated.name == "Completion"
        assert updated.amount == Decimal("4000")

    def test_id_is_immutable(self, ledger):
        with pytest.raises(ValueError, match="immutable"):
            ledger.update("temp-1", id="other")

    def test_unknown_milestone(self, ledger):
        with pytest.raises(MilestoneNotFoundError):
            ledger.get("temp-9")


class TestRemovalCascade:
    def test_remove_strips_every_reference(self, ledger):
        ledger.remove("temp-2")
        assert ledger.items[0].milestone_ids == ("temp-1",)
        assert ledger.items[1].milestone_ids == ()
        assert ledger.dangling_references() == frozenset()

    def test_remove_logs_unassigned_count(self, ledger, captured_logs):
        ledger.remove("temp-2")
        record = next(r for r in captured_logs() if r["message"] == "milestone_removed")
        assert record["items_unassigned"] == 2

    def test_clear(self, ledger):
        ledger.clear()
        assert len(ledger) == 0
        assert all(not item.milestone_ids for item in ledger.items)


class TestAssignment:
    def test_items_for(self, ledger):
        assert ledger.items_for("temp-2") == (0, 1)
        assert ledger.items_for("temp-1") == (0,)

    def test_assign_replaces(self, ledger):
        item = ledger.assign(2, ["temp-1", "temp-1"])
        assert item.milestone_ids == ("temp-1",)

    def test_assign_unknown_milestone(self, ledger):
        with pytest.raises(MilestoneNotFoundError):
            ledger.assign(2, ["temp-7"])
        assert ledger.items[2].milestone_ids == ()

    def test_assign_unknown_item(self, ledger):
        with pytest.raises(LineItemNotFoundError):
            ledger.assign(5, ["temp-1"])

    def test_item_with_unknown_reference_rejected(self, ledger):
        with pytest.raises(MilestoneNotFoundError):
            ledger.add_item(LineItem(milestone_ids=("nope",)))
        with pytest.raises(MilestoneNotFoundError):
            MilestoneLedger(items=[LineItem(milestone_ids=("nope",))])

    def test_set_items_is_all_or_nothing(self, ledger):
        before = ledger.items
        with pytest.raises(MilestoneNotFoundError):
            ledger.set_items([LineItem(), LineItem(milestone_ids=("nope",))])
        assert ledger.items == before

    def test_remove_item(self, ledger):
        removed = ledger.remove_item(0)
        assert removed.description == "Due diligence"
        assert ledger.items_for("temp-1") == ()
