"""
Module: pricing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation and validation engines.  This is the canonical import
    surface for ``pricing_services``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pricing_kernel (and sibling engine modules).
    MUST NOT import pricing_services or pricing_config.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic: floats never enter a calculation.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Totals calculations are traced via ``@traced_engine``
    (see ``pricing_engines.tracer``), emitting PRICING_ENGINE_TRACE records
    with engine name, version, input fingerprint and duration.

Usage:
    from pricing_engines import calculate_totals, partition_items
    from pricing_engines.milestones import MilestoneLedger
    from pricing_engines.wizard_steps import applicable_steps
"""

from pricing_engines.line_items import (
    apply_blended_rate,
    calculate_amount,
    discounted_amount,
    item_method,
    recalculate_item,
    recalculate_items,
)
from pricing_engines.milestones import MilestoneLedger
from pricing_engines.partition import Partition, is_expense, partition_items
from pricing_engines.payment_terms import (
    balance_amount,
    detect_structure,
    installment_due_dates,
    split_installments,
    start_term,
    upfront_amount,
    validate_payment_term,
)
from pricing_engines.rates import RateContext, is_rate_editable, rate_for_person, resolve_rate
from pricing_engines.retainer import (
    CarriedBalance,
    DrawdownResult,
    calculate_drawdown,
    policy_summary,
    validate_retainer,
)
from pricing_engines.success_fee import (
    SuccessFeeAmounts,
    calculate_success_fee,
    validate_success_fee,
)
from pricing_engines.totals import ProposalTotals, calculate_totals
from pricing_engines.tracer import traced_engine
from pricing_engines.wizard_steps import (
    STEP_SUPERSET,
    StepId,
    StepValidation,
    WizardStep,
    applicable_steps,
    validate_step,
)

__all__ = [
    # Line items
    "apply_blended_rate",
    "calculate_amount",
    "discounted_amount",
    "item_method",
    "recalculate_item",
    "recalculate_items",
    # Milestones
    "MilestoneLedger",
    # Partition
    "Partition",
    "is_expense",
    "partition_items",
    # Payment terms
    "balance_amount",
    "detect_structure",
    "installment_due_dates",
    "split_installments",
    "start_term",
    "upfront_amount",
    "validate_payment_term",
    # Rates
    "RateContext",
    "is_rate_editable",
    "rate_for_person",
    "resolve_rate",
    # Retainer
    "CarriedBalance",
    "DrawdownResult",
    "calculate_drawdown",
    "policy_summary",
    "validate_retainer",
    # Success fee
    "SuccessFeeAmounts",
    "calculate_success_fee",
    "validate_success_fee",
    # Totals
    "ProposalTotals",
    "calculate_totals",
    # Tracer
    "traced_engine",
    # Wizard steps
    "STEP_SUPERSET",
    "StepId",
    "StepValidation",
    "WizardStep",
    "applicable_steps",
    "validate_step",
]
