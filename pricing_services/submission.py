"""
pricing_services.submission -- payload building and the submit flow.

Responsibility:
    - ``build_payload``: serialize a validated snapshot and its totals into
      the single JSON-ready mapping handed to the persistence collaborator.
      Decimals travel as strings, dates as ISO strings, enums as values.
    - ``submit_proposal``: validate the draft, build the payload, call the
      ProposalStore, and report the outcome.  Collaborator failures become
      a single banner message and leave the draft open for retry.

Payload rules:
    - ``amount`` is the computed grand total.
    - Items drop UI-only flags (``is_estimate``, ``is_estimated``); pricing
      fields are kept only for the item's own method (rate, profile and caps
      for HOURLY; quantity and unit price for FIXED_FEE).
    - Milestones are sent only when milestone usage is on, with their
      (possibly temporary) ids for update matching; ``persisted`` is False
      for temporary ids.
    - Every payment term carries its ``structure``, detected for terms
      stored without one, and ``recurring_interval_months`` (None unless
      recurring is enabled).
    - Payment terms: proposal-level term first, then item-level terms in
      item order, each tagged with its ``item_index``.
    - Retainer fields are sent whenever the configuration carries a
      retainer.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from pricing_engines.line_items import discounted_amount, item_method
from pricing_engines.partition import is_expense
from pricing_engines.payment_terms import detect_structure, recurring_interval_months
from pricing_engines.totals import ProposalTotals
from pricing_kernel.domain.billing import (
    BillingMethod,
    MixedModelConfig,
    retainer_config_of,
)
from pricing_kernel.domain.proposal import (
    DiscountType,
    LineItem,
    PaymentTerm,
    ProposalSnapshot,
)
from pricing_kernel.exceptions import (
    CollaboratorError,
    ProposalValidationError,
    SubmissionFailedError,
)
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_services.collaborators import ProposalStore
from pricing_services.draft import ProposalDraft
from pricing_services.events import DraftTopic

logger = get_logger("services.submission")


def to_payload_value(value: Any) -> Any:
    """Convert a domain value into JSON-ready primitives."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(to_payload_value(k)): to_payload_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_payload_value(v) for v in value]
    if is_dataclass(value):
        return {f.name: to_payload_value(getattr(value, f.name)) for f in fields(value)}
    raise TypeError(f"Cannot serialize {type(value).__name__} into a payload")


# ============================================================================
# Payload
# ============================================================================


_HOURLY_ONLY_FIELDS = ("profile", "rate")
_CAP_FIELDS = ("capped_hours", "capped_amount")


def _item_payload(item: LineItem, method: BillingMethod | None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "item_id": item.item_id,
        "billing_method": method,
        "person_id": item.person_id,
        "description": item.description,
        "amount": item.amount,
        "net_amount": discounted_amount(item),
        "discount_percent": item.discount_percent,
        "discount_amount": item.discount_amount,
        "milestone_ids": item.milestone_ids,
        "expense_id": item.expense_id,
        "is_expense": is_expense(item),
    }
    match method:
        case BillingMethod.HOURLY:
            data["quantity"] = item.quantity
            for name in _HOURLY_ONLY_FIELDS:
                data[name] = getattr(item, name)
            if item.is_capped:
                data["is_capped"] = True
                for name in _CAP_FIELDS:
                    data[name] = getattr(item, name)
        case BillingMethod.FIXED_FEE:
            data["quantity"] = item.quantity
            data["unit_price"] = item.unit_price
    return {key: to_payload_value(value) for key, value in data.items()}


def _term_payload(term: PaymentTerm, item_index: int | None = None) -> dict[str, Any]:
    data = to_payload_value(term)
    data["structure"] = to_payload_value(detect_structure(term))
    data["recurring_interval_months"] = recurring_interval_months(term)
    data["item_index"] = item_index
    return data


def _billing_payload(snapshot: ProposalSnapshot) -> dict[str, Any]:
    config = snapshot.config
    if config is None:
        return {}
    if isinstance(config, MixedModelConfig):
        return {
            "mixed_methods": to_payload_value(config.methods),
            "components": {
                method.value: to_payload_value(component)
                for method, component in config.components.items()
            },
        }
    return to_payload_value(config)


def build_payload(snapshot: ProposalSnapshot, totals: ProposalTotals) -> dict[str, Any]:
    """
    Serialize a snapshot for the persistence collaborator.

    The snapshot is expected to be valid; no validation happens here.
    """
    header = snapshot.header
    discount = header.client_discount
    payload: dict[str, Any] = {
        "proposal_id": snapshot.proposal_id,
        "client_id": header.client_id,
        "lead_id": header.lead_id,
        "title": header.title,
        "description": header.description,
        "currency": header.currency.code,
        "issue_date": to_payload_value(header.issue_date),
        "expiry_date": to_payload_value(header.expiry_date),
        "tax_rate_percent": to_payload_value(header.tax.rate_percent),
        "tax_inclusive": header.tax.inclusive,
        "client_discount_percent": (
            to_payload_value(discount.value)
            if discount.discount_type is DiscountType.PERCENT else None
        ),
        "client_discount_amount": (
            to_payload_value(discount.value)
            if discount.discount_type is DiscountType.AMOUNT else None
        ),
        "tag_ids": list(header.tag_ids),
        "custom_tags": [t.strip() for t in header.custom_tags if t.strip()],
        "billing_method": to_payload_value(snapshot.method),
        "billing_config": _billing_payload(snapshot),
        "use_milestones": snapshot.use_milestones,
        "items": [
            _item_payload(item, item_method(item, snapshot.method)) for item in snapshot.items
        ],
        "amount": to_payload_value(totals.grand_total.amount),
    }

    if snapshot.use_milestones and snapshot.milestones:
        payload["milestones"] = [
            {**to_payload_value(m), "persisted": m.is_persisted} for m in snapshot.milestones
        ]

    terms: list[dict[str, Any]] = []
    if snapshot.payment_term is not None:
        terms.append(_term_payload(snapshot.payment_term))
    for index, item in enumerate(snapshot.items):
        if item.payment_term is not None:
            terms.append(_term_payload(item.payment_term, index))
    payload["payment_terms"] = terms

    retainer = retainer_config_of(snapshot.config)
    if retainer is not None:
        payload["retainer"] = to_payload_value(retainer)
        payload["retainer_total"] = to_payload_value(
            totals.retainer_total.amount if totals.is_retainer_based else None
        )
    return payload


# ============================================================================
# Submit
# ============================================================================


class SubmissionStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    INVALID = "INVALID"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SubmissionOutcome:
    status: SubmissionStatus
    receipt: Mapping[str, Any] | None = None
    field_errors: Mapping[str, str] = field(default_factory=dict)
    error_message: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "field_errors", MappingProxyType(dict(self.field_errors)))

    @property
    def succeeded(self) -> bool:
        return self.status is SubmissionStatus.SUBMITTED

    def raise_for_status(self) -> None:
        """Raise the typed error matching a failed outcome."""
        if self.status is SubmissionStatus.INVALID:
            raise ProposalValidationError(dict(self.field_errors))
        if self.status is SubmissionStatus.FAILED:
            raise SubmissionFailedError(self.error_message or "")


def submit_proposal(draft: ProposalDraft, store: ProposalStore) -> SubmissionOutcome:
    """
    Validate and persist a draft.

    Returns:
        SUBMITTED with the store's receipt (the draft is closed),
        INVALID with field errors, or FAILED with a banner message.  In the
        last two cases the draft is untouched and can be resubmitted.

    Raises:
        DraftClosedError: if the draft was already submitted or discarded.
    """
    draft.ensure_open()
    t0 = time.monotonic()
    with LogContext.bind(proposal_id=draft.proposal_id):
        logger.info("proposal_submission_started", extra={
            "mode": "edit" if draft.is_edit else "create",
            "method": draft.method.value if draft.method else None,
        })

        errors = draft.validate()
        if errors:
            logger.warning("proposal_submission_invalid", extra={
                "error_fields": sorted(errors),
            })
            return SubmissionOutcome(SubmissionStatus.INVALID, field_errors=errors)

        totals = draft.totals()
        payload = build_payload(draft.snapshot(), totals)
        fallback = draft.defaults.submission.fallback_error_message
        try:
            receipt = store.save(payload, draft.proposal_id)
        except CollaboratorError as exc:
            message = exc.user_message or fallback
            logger.warning("proposal_submission_failed", extra={
                "error_code": exc.code,
                "error_message": message,
            })
            draft.bus.publish(DraftTopic.SUBMISSION_FAILED, error_message=message)
            return SubmissionOutcome(SubmissionStatus.FAILED, error_message=message)
        except OSError:
            logger.exception("proposal_submission_failed", extra={
                "error_message": fallback,
            })
            draft.bus.publish(DraftTopic.SUBMISSION_FAILED, error_message=fallback)
            return SubmissionOutcome(SubmissionStatus.FAILED, error_message=fallback)

        draft.mark_submitted(receipt)
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("proposal_submission_completed", extra={
            "proposal_id": draft.proposal_id,
            "amount": payload["amount"],
            "currency": payload["currency"],
            "duration_ms": duration_ms,
        })
    return SubmissionOutcome(SubmissionStatus.SUBMITTED, receipt=dict(receipt))
