"""
pricing_services.wizard -- step-by-step navigation over a ProposalDraft.

Responsibility:
    Keeps the current step and the set of completed steps for one editing
    session.  Forward moves are gated on the current step's validation;
    backward moves never are.  The step list follows the draft's billing
    method through a METHOD_CHANGED subscription.

Architecture position:
    Services layer.  Step applicability and validation rules live in
    ``pricing_engines.wizard_steps``; this module only holds navigation
    state.

Invariants enforced:
    - The current step is always an applicable step.
    - RETAINER proposals have the items step completed at all times.
    - A billing-method change clears the completion of payment, items and
      review, and of milestones when that step no longer applies.
    - In create mode, jumping forward requires every earlier step to be
      completed; in edit mode any applicable step can be reached.

Failure modes:
    - StepNavigationError on an out-of-range or locked jump target.
"""

from __future__ import annotations

from collections.abc import Callable

from pricing_engines.wizard_steps import (
    STEP_SUPERSET,
    StepId,
    StepValidation,
    WizardStep,
    applicable_steps,
    is_applicable,
    validate_billing,
    validate_step,
)
from pricing_kernel.domain.billing import BillingMethod
from pricing_kernel.exceptions import StepNavigationError
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_services.draft import ProposalDraft
from pricing_services.events import DraftEvent, DraftTopic

logger = get_logger("services.wizard")

# Steps whose rules depend on the billing method.
_METHOD_DEPENDENT_STEPS = frozenset({StepId.PAYMENT, StepId.ITEMS, StepId.REVIEW})


class WizardController:
    """
    Navigation state for one draft.

    Usage:
        wizard = WizardController(draft)
        result = wizard.advance()
        if not result.is_valid:
            show(result.errors)
    """

    def __init__(self, draft: ProposalDraft, *, edit_mode: bool | None = None):
        self.draft = draft
        self.edit_mode = draft.is_edit if edit_mode is None else edit_mode
        self._completed: set[StepId] = set()
        self._current = self.steps[0].id
        self._unsubscribe: Callable[[], None] = draft.bus.subscribe(
            DraftTopic.METHOD_CHANGED, self._on_method_changed
        )
        if self.edit_mode:
            self._premark_existing()
        self._complete_retainer_items()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def steps(self) -> tuple[WizardStep, ...]:
        return applicable_steps(self.draft.method)

    @property
    def step_ids(self) -> tuple[StepId, ...]:
        return tuple(step.id for step in self.steps)

    @property
    def current_step(self) -> WizardStep:
        return self.steps[self.current_index]

    @property
    def current_index(self) -> int:
        return self.step_ids.index(self._current)

    @property
    def completed(self) -> frozenset[StepId]:
        return frozenset(self._completed)

    @property
    def is_on_review(self) -> bool:
        return self._current is StepId.REVIEW

    def is_completed(self, step_id: StepId) -> bool:
        return StepId(step_id) in self._completed

    def can_advance(self) -> StepValidation:
        """Validate the current step without moving."""
        return validate_step(self._current, self.draft.snapshot(), self._completed)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def advance(self) -> StepValidation:
        """
        Complete the current step and move to the next one.

        On review the step is completed in place.  When validation fails
        nothing changes and the errors are returned.
        """
        validation = self.can_advance()
        with LogContext.bind(step_id=self._current.value, proposal_id=self.draft.proposal_id):
            if not validation.is_valid:
                logger.info("wizard_step_blocked", extra={
                    "error_fields": sorted(validation.errors),
                })
                return validation
            self._completed.add(self._current)
            if not self.is_on_review:
                self._current = self.step_ids[self.current_index + 1]
            logger.info("wizard_step_advanced", extra={
                "next_step": self._current.value,
                "completed_steps": sorted(s.value for s in self._completed),
            })
        return validation

    def back(self) -> WizardStep:
        """Move to the previous step; a no-op on the first step."""
        if self.current_index > 0:
            self._current = self.step_ids[self.current_index - 1]
        return self.current_step

    def jump_to(self, index: int) -> WizardStep:
        """Move to the step at ``index`` of the effective step list."""
        ids = self.step_ids
        if not 0 <= index < len(ids):
            raise StepNavigationError(self._current.value, index, "no such step")
        if not self.edit_mode and index > self.current_index:
            pending = [s.value for s in ids[:index] if s not in self._completed]
            if pending:
                raise StepNavigationError(
                    self._current.value,
                    index,
                    f"complete {', '.join(pending)} first",
                )
        self._current = ids[index]
        logger.debug("wizard_step_jumped", extra={"step_id": self._current.value, "index": index})
        return self.current_step

    def close(self) -> None:
        """Stop following the draft's method changes."""
        self._unsubscribe()

    # ------------------------------------------------------------------
    # Method changes
    # ------------------------------------------------------------------

    def _on_method_changed(self, event: DraftEvent) -> None:
        method = self.draft.method
        dropped = self._completed & _METHOD_DEPENDENT_STEPS
        self._completed -= _METHOD_DEPENDENT_STEPS
        if not is_applicable(StepId.MILESTONES, method) and StepId.MILESTONES in self._completed:
            self._completed.discard(StepId.MILESTONES)
            dropped.add(StepId.MILESTONES)
        if StepId.BILLING in self._completed and validate_billing(self.draft.snapshot()):
            self._completed.discard(StepId.BILLING)
            dropped.add(StepId.BILLING)
        self._complete_retainer_items()

        previous_step = self._current
        if not is_applicable(self._current, method):
            self._current = self._nearest_applicable(self._current)

        logger.info("wizard_steps_recomputed", extra={
            "method": method.value if method else None,
            "steps": [s.value for s in self.step_ids],
            "invalidated_steps": sorted(s.value for s in dropped),
            "previous_step": previous_step.value,
            "current_step": self._current.value,
        })

    def _nearest_applicable(self, step_id: StepId) -> StepId:
        """First applicable step after ``step_id`` in superset order,
        else the closest one before it."""
        order = [step.id for step in STEP_SUPERSET]
        position = order.index(step_id)
        method = self.draft.method
        for candidate in order[position + 1:]:
            if is_applicable(candidate, method):
                return candidate
        for candidate in reversed(order[:position]):
            if is_applicable(candidate, method):
                return candidate
        return self.step_ids[0]

    def _complete_retainer_items(self) -> None:
        if self.draft.method is BillingMethod.RETAINER:
            self._completed.add(StepId.ITEMS)

    def _premark_existing(self) -> None:
        draft = self.draft
        method = draft.method
        if method is not None:
            self._completed.add(StepId.BILLING)
        if draft.payment_term is not None:
            self._completed.add(StepId.PAYMENT)
        if draft.milestones and is_applicable(StepId.MILESTONES, method):
            self._completed.add(StepId.MILESTONES)
        if (draft.items or draft.milestones) and is_applicable(StepId.ITEMS, method):
            self._completed.add(StepId.ITEMS)
        logger.info("wizard_edit_mode_premarked", extra={
            "proposal_id": draft.proposal_id,
            "completed_steps": sorted(s.value for s in self._completed),
        })
