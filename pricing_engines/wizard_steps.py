"""
Wizard step rules -- applicability and per-step validation.

Step superset, in order:

    billing -> payment -> milestones -> items -> review

    milestones  only for FIXED_FEE and MIXED_MODEL
    items       every method except RETAINER

Each rule inspects a ProposalSnapshot and returns field-keyed error
messages; an empty mapping means the step may be left forwards.  Rules
never raise for incomplete input.  The stateful navigation lives in
``pricing_services.wizard``.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from pricing_engines.payment_terms import validate_payment_term
from pricing_engines.retainer import validate_retainer
from pricing_engines.success_fee import validate_success_fee
from pricing_kernel.domain.billing import (
    BillingConfig,
    BillingMethod,
    MixedModelConfig,
    RetainerConfig,
    SuccessFeeConfig,
    retainer_config_of,
)
from pricing_kernel.domain.proposal import ProposalSnapshot
from pricing_kernel.exceptions import UnknownStepError


class StepId(str, Enum):
    BILLING = "billing"
    PAYMENT = "payment"
    MILESTONES = "milestones"
    ITEMS = "items"
    REVIEW = "review"


@dataclass(frozen=True)
class WizardStep:
    id: StepId
    title: str
    required: bool
    conditional: bool


STEP_SUPERSET: tuple[WizardStep, ...] = (
    WizardStep(StepId.BILLING, "Billing Method", required=True, conditional=False),
    WizardStep(StepId.PAYMENT, "Payment Terms", required=True, conditional=False),
    WizardStep(StepId.MILESTONES, "Milestones", required=False, conditional=True),
    WizardStep(StepId.ITEMS, "Line Items", required=True, conditional=True),
    WizardStep(StepId.REVIEW, "Review", required=True, conditional=False),
)

_MILESTONE_METHODS = frozenset({BillingMethod.FIXED_FEE, BillingMethod.MIXED_MODEL})

# Retainer fields checked on the billing step; the unused balance policy
# belongs to the payment step.
_RETAINER_BILLING_FIELDS = ("monthly_amount", "hours_per_month", "project_ids")


def milestones_applicable(method: BillingMethod | None) -> bool:
    return method in _MILESTONE_METHODS


def items_applicable(method: BillingMethod | None) -> bool:
    return method is not BillingMethod.RETAINER


def is_applicable(step_id: StepId, method: BillingMethod | None) -> bool:
    if step_id is StepId.MILESTONES:
        return milestones_applicable(method)
    if step_id is StepId.ITEMS:
        return items_applicable(method)
    return True


def applicable_steps(method: BillingMethod | None) -> tuple[WizardStep, ...]:
    """Effective step list for a billing method."""
    return tuple(step for step in STEP_SUPERSET if is_applicable(step.id, method))


def get_step(step_id: StepId | str) -> WizardStep:
    try:
        key = StepId(step_id)
    except ValueError:
        raise UnknownStepError(str(step_id)) from None
    return next(step for step in STEP_SUPERSET if step.id is key)


@dataclass(frozen=True)
class StepValidation:
    """Outcome of validating one step."""

    step_id: StepId
    errors: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", MappingProxyType(dict(self.errors)))

    @property
    def is_valid(self) -> bool:
        return not self.errors


# ============================================================================
# Rules
# ============================================================================


def _prefixed(prefix: str, errors: Mapping[str, str]) -> dict[str, str]:
    return {f"{prefix}.{key}": message for key, message in errors.items()}


def _component_errors(method: BillingMethod, config: BillingConfig | None) -> dict[str, str]:
    if method is BillingMethod.RETAINER:
        retainer = config if isinstance(config, RetainerConfig) else RetainerConfig()
        errors = validate_retainer(retainer)
        return _prefixed(
            "retainer", {k: v for k, v in errors.items() if k in _RETAINER_BILLING_FIELDS}
        )
    if method is BillingMethod.SUCCESS_FEE:
        success = config if isinstance(config, SuccessFeeConfig) else SuccessFeeConfig()
        return _prefixed("success_fee", validate_success_fee(success))
    return {}


def validate_billing(snapshot: ProposalSnapshot) -> dict[str, str]:
    """Method selected; mixed models need sub-methods with complete configs."""
    method = snapshot.method
    if method is None:
        return {"method": "Please select a billing method"}

    if method is not BillingMethod.MIXED_MODEL:
        return _component_errors(method, snapshot.config)

    config = snapshot.config
    if not isinstance(config, MixedModelConfig) or not config.methods:
        return {"mixed_methods": "Please select at least one billing method for the mixed model"}
    errors: dict[str, str] = {}
    for sub_method, component in config.components.items():
        errors.update(_component_errors(sub_method, component))
    return errors


def validate_payment(snapshot: ProposalSnapshot) -> dict[str, str]:
    """
    Retainer-bearing proposals need an unused balance policy; every other
    proposal needs a complete proposal-level payment term.
    """
    retainer = retainer_config_of(snapshot.config)
    if retainer is None and snapshot.method is BillingMethod.RETAINER:
        retainer = RetainerConfig()
    milestone_ids = [m.id for m in snapshot.milestones]

    if retainer is not None:
        errors: dict[str, str] = {}
        if retainer.unused_balance_policy is None:
            errors["unused_balance_policy"] = "Please select an unused balance policy"
        if snapshot.payment_term is not None:
            errors.update(validate_payment_term(snapshot.payment_term, milestone_ids=milestone_ids))
        return errors

    if snapshot.payment_term is None:
        return {"payment_terms": "Please configure payment terms"}
    return validate_payment_term(snapshot.payment_term, milestone_ids=milestone_ids)


def validate_milestones(snapshot: ProposalSnapshot) -> dict[str, str]:
    """Optional step, unless milestone payments are switched on."""
    if snapshot.use_milestones and not snapshot.milestones:
        return {
            "milestones": "Please define at least one milestone or disable milestone payments"
        }
    return {}


def validate_items(snapshot: ProposalSnapshot) -> dict[str, str]:
    """At least one line item or milestone; always satisfied for RETAINER."""
    if snapshot.method is BillingMethod.RETAINER:
        return {}
    if not snapshot.items and not snapshot.milestones:
        return {"items": "Please add at least one line item or milestone"}
    return {}


def validate_review(
    snapshot: ProposalSnapshot, completed: Collection[StepId]
) -> dict[str, str]:
    """Every required step before review must be completed."""
    errors: dict[str, str] = {}
    for step in applicable_steps(snapshot.method):
        if step.id is StepId.REVIEW or not step.required:
            continue
        if step.id not in completed:
            errors[step.id.value] = f"Please complete the {step.title} step"
    return errors


_RULES: dict[StepId, Callable[[ProposalSnapshot], dict[str, str]]] = {
    StepId.BILLING: validate_billing,
    StepId.PAYMENT: validate_payment,
    StepId.MILESTONES: validate_milestones,
    StepId.ITEMS: validate_items,
}


def validate_step(
    step_id: StepId | str,
    snapshot: ProposalSnapshot,
    completed: Collection[StepId] = (),
) -> StepValidation:
    """Validate one step against a snapshot of the draft."""
    step = get_step(step_id)
    if step.id is StepId.REVIEW:
        errors = validate_review(snapshot, completed)
    else:
        errors = _RULES[step.id](snapshot)
    return StepValidation(step_id=step.id, errors=errors)
