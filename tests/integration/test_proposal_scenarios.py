"""
End-to-end scenarios: build a proposal through the wizard and submit it.

Each scenario drives ProposalDraft, WizardController and submit_proposal
together, the way an editing session does:
- Fixed fee with milestone payments and a pass-through expense
- Retainer (no line items step)
- Billing method switched after the items step was completed
- Mixed model with per-item methods
- Edit mode: rebuilt from a stored proposal and resubmitted
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from pricing_engines.payment_terms import balance_amount, upfront_amount
from pricing_engines.wizard_steps import StepId
from pricing_kernel.domain.billing import (
    AdditionalHoursType,
    BillingMethod,
    RetainerConfig,
    UnusedBalancePolicy,
)
from pricing_kernel.domain.proposal import (
    ClientDiscount,
    LineItem,
    PaymentTerm,
    ProposalSnapshot,
)
from pricing_services.draft import ProposalDraft
from pricing_services.submission import SubmissionStatus, submit_proposal
from pricing_services.wizard import WizardController


def _advance_ok(wizard):
    result = wizard.advance()
    assert result.is_valid, dict(result.errors)
    return result


# ---------------------------------------------------------------------------
# Fixed fee with milestones
# ---------------------------------------------------------------------------


class TestFixedFeeWithMilestones:
    @pytest.fixture
    def session(self, make_draft):
        draft = make_draft(BillingMethod.FIXED_FEE)
        draft.select_client("client-1")
        draft.update_header(title="Due diligence")
        return draft, WizardController(draft)

    def _walk_to_review(self, draft, wizard):
        _advance_ok(wizard)  # billing

        term = PaymentTerm(
            upfront_type="PERCENT",
            upfront_value="30",
            balance_payment_type="MILESTONE_BASED",
        )
        draft.set_payment_term(term)
        _advance_ok(wizard)  # payment

        draft.set_use_milestones(True)
        assert wizard.advance().errors == {
            "milestones": "Please define at least one milestone or disable milestone payments"
        }
        draft.add_milestone("Signing", percent="40")
        draft.add_milestone("Closing", percent="60")
        _advance_ok(wizard)  # milestones

        draft.add_item(description="Drafting", unit_price="1000")
        draft.add_item(description="Registry fees", amount="150", is_estimated=True)
        draft.assign_milestones(0, ["temp-1", "temp-2"])
        draft.set_payment_term(replace(term, milestone_ids=("temp-1", "temp-2")))
        _advance_ok(wizard)  # items
        _advance_ok(wizard)  # review
        return term

    def test_full_flow(self, session, store):
        draft, wizard = session
        assert [s.value for s in wizard.step_ids] == [
            "billing", "payment", "milestones", "items", "review",
        ]
        self._walk_to_review(draft, wizard)
        assert wizard.is_on_review
        assert wizard.is_completed(StepId.REVIEW)

        totals = draft.totals()
        assert totals.services_subtotal.amount == Decimal("1000.00")
        assert totals.expenses_subtotal.amount == Decimal("150.00")
        assert totals.grand_total.amount == Decimal("1150.00")
        assert upfront_amount(draft.payment_term, totals.grand_total).amount == Decimal("345.00")
        assert balance_amount(draft.payment_term, totals.grand_total).amount == Decimal("805.00")

        outcome = submit_proposal(draft, store)
        assert outcome.status is SubmissionStatus.SUBMITTED
        payload, _ = store.saved[0]
        assert payload["amount"] == "1150.00"
        assert [m["name"] for m in payload["milestones"]] == ["Signing", "Closing"]
        assert payload["items"][0]["milestone_ids"] == ["temp-1", "temp-2"]
        assert payload["items"][0]["quantity"] == "1"
        assert payload["items"][1]["is_expense"] is True
        assert payload["payment_terms"][0]["milestone_ids"] == ["temp-1", "temp-2"]

    def test_removed_milestone_leaves_no_references(self, session, store):
        draft, wizard = session
        self._walk_to_review(draft, wizard)

        draft.remove_milestone("temp-2")
        assert draft.items[0].milestone_ids == ("temp-1",)
        assert draft.payment_term.milestone_ids == ("temp-1",)

        assert submit_proposal(draft, store).succeeded
        payload, _ = store.saved[0]
        assert [m["id"] for m in payload["milestones"]] == ["temp-1"]
        assert payload["items"][0]["milestone_ids"] == ["temp-1"]


# ---------------------------------------------------------------------------
# Retainer
# ---------------------------------------------------------------------------


class TestRetainerProposal:
    def test_retainer_flow(self, make_draft, store):
        draft = make_draft(BillingMethod.RETAINER)
        wizard = WizardController(draft)
        assert [s.value for s in wizard.step_ids] == ["billing", "payment", "review"]
        assert wizard.is_completed(StepId.ITEMS)

        draft.select_client("client-1")
        draft.update_header(title="Corporate retainer")

        blocked = wizard.advance()
        assert "retainer.monthly_amount" in blocked.errors
        assert "retainer.hours_per_month" in blocked.errors

        draft.update_config(RetainerConfig(
            monthly_amount="2000",
            hours_per_month="10",
            additional_hours_type=AdditionalHoursType.FIXED_RATE,
            additional_hours_rate="220",
            duration_months=12,
        ))
        _advance_ok(wizard)  # billing
        assert wizard.advance().errors == {
            "unused_balance_policy": "Please select an unused balance policy"
        }
        draft.update_config(
            draft.retainer_config.with_unused_balance_policy(UnusedBalancePolicy.EXPIRE)
        )
        _advance_ok(wizard)  # payment
        _advance_ok(wizard)  # review

        outcome = submit_proposal(draft, store)
        assert outcome.succeeded
        payload, _ = store.saved[0]
        assert payload["amount"] == "24000.00"
        assert payload["retainer_total"] == "24000.00"
        assert payload["retainer"]["unused_balance_policy"] == "EXPIRE"
        assert payload["items"] == []
        assert payload["payment_terms"] == []


# ---------------------------------------------------------------------------
# Method switch after the items step
# ---------------------------------------------------------------------------


class TestMethodSwitchMidFlow:
    def test_switch_requires_redoing_method_steps(self, make_draft, store):
        draft = make_draft(BillingMethod.HOURLY)
        draft.select_client("client-1")
        draft.update_header(title="Litigation support")
        wizard = WizardController(draft)

        _advance_ok(wizard)
        draft.set_payment_term(PaymentTerm())
        _advance_ok(wizard)
        draft.add_item(description="Hearing prep", quantity="4", rate="150")
        _advance_ok(wizard)
        assert wizard.is_on_review
        assert draft.totals().grand_total.amount == Decimal("600.00")

        draft.set_method(BillingMethod.FIXED_FEE)
        assert wizard.is_on_review
        assert wizard.completed == frozenset({StepId.BILLING})
        assert [s.value for s in wizard.step_ids] == [
            "billing", "payment", "milestones", "items", "review",
        ]
        assert draft.items[0].billing_method is BillingMethod.FIXED_FEE

        review = wizard.advance()
        assert set(review.errors) == {"payment", "items"}

        wizard.jump_to(1)
        _advance_ok(wizard)  # payment
        _advance_ok(wizard)  # milestones, optional
        _advance_ok(wizard)  # items
        _advance_ok(wizard)  # review

        assert submit_proposal(draft, store).succeeded
        payload, _ = store.saved[0]
        assert payload["billing_method"] == "FIXED_FEE"
        assert "rate" not in payload["items"][0]


# ---------------------------------------------------------------------------
# Mixed model
# ---------------------------------------------------------------------------


class TestMixedModelProposal:
    def test_per_item_methods(self, make_draft, store):
        draft = make_draft(BillingMethod.MIXED_MODEL)
        wizard = WizardController(draft)
        draft.select_client("client-1")
        draft.update_header(title="Transaction support")

        assert wizard.advance().errors == {
            "mixed_methods": "Please select at least one billing method for the mixed model"
        }
        draft.set_mixed_methods([BillingMethod.HOURLY, BillingMethod.FIXED_FEE])
        _advance_ok(wizard)

        draft.set_payment_term(PaymentTerm())
        _advance_ok(wizard)  # payment
        _advance_ok(wizard)  # milestones

        draft.add_item(
            description="Advice", quantity="3", rate="200", billing_method=BillingMethod.HOURLY
        )
        draft.add_item(description="Filing", unit_price="500")
        draft.set_client_discount(ClientDiscount.amount("100"))
        _advance_ok(wizard)  # items
        _advance_ok(wizard)  # review

        assert draft.items[1].billing_method is BillingMethod.FIXED_FEE
        totals = draft.totals()
        assert totals.services_subtotal.amount == Decimal("1100.00")
        assert totals.client_discount.amount == Decimal("100.00")
        assert totals.grand_total.amount == Decimal("1000.00")

        assert submit_proposal(draft, store).succeeded
        payload, _ = store.saved[0]
        assert payload["billing_config"]["mixed_methods"] == ["FIXED_FEE", "HOURLY"]
        assert [i["billing_method"] for i in payload["items"]] == ["HOURLY", "FIXED_FEE"]
        assert payload["items"][0]["rate"] == "200"
        assert payload["items"][1]["unit_price"] == "500"
        assert payload["client_discount_amount"] == "100"

    def test_deselecting_sub_method_restamps_items(self, make_draft):
        draft = make_draft(BillingMethod.MIXED_MODEL)
        draft.set_mixed_methods([BillingMethod.HOURLY, BillingMethod.FIXED_FEE])
        draft.add_item(quantity="3", rate="200", billing_method=BillingMethod.HOURLY)
        draft.set_mixed_methods([BillingMethod.FIXED_FEE])
        assert draft.items[0].billing_method is BillingMethod.FIXED_FEE


# ---------------------------------------------------------------------------
# Edit mode
# ---------------------------------------------------------------------------


class TestEditExistingProposal:
    def test_resubmit_stored_proposal(self, defaults, eur_header, store):
        snapshot = ProposalSnapshot(
            header=eur_header,
            method=BillingMethod.HOURLY,
            items=(
                LineItem(
                    description="Review",
                    billing_method=BillingMethod.HOURLY,
                    quantity="2",
                    rate="100",
                ),
            ),
            payment_term=PaymentTerm(),
            proposal_id="prop-42",
        )
        draft = ProposalDraft.from_snapshot(snapshot, defaults)
        wizard = WizardController(draft)

        assert wizard.edit_mode
        assert wizard.completed == frozenset({StepId.BILLING, StepId.PAYMENT, StepId.ITEMS})
        assert draft.items[0].amount == Decimal("200")

        wizard.jump_to(3)
        _advance_ok(wizard)
        draft.update_item(0, quantity="3")

        outcome = submit_proposal(draft, store)
        assert outcome.receipt == {"id": "prop-42", "amount": "300.00"}
        assert store.saved[0][1] == "prop-42"
        assert draft.proposal_id == "prop-42"
