"""
Typed Exception Hierarchy for the Pricing Engine.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
(never parse the message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PricingError (base)
    |
    +-- ValidationError
    |   +-- ProposalValidationError
    |   +-- InvalidBillingConfigError
    |
    +-- LineItemError
    |   +-- LineItemNotFoundError
    |   +-- RateLockedError
    |
    +-- MilestoneError
    |   +-- MilestoneNotFoundError
    |   +-- DuplicateMilestoneError
    |
    +-- WizardError
    |   +-- UnknownStepError
    |   +-- StepNavigationError
    |
    +-- DraftError
    |   +-- DraftClosedError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- CollaboratorError
        +-- SubmissionFailedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|------------------------------------------
Validation    | PROPOSAL_INVALID         | Field-keyed validation failed on submit
              | INVALID_BILLING_CONFIG   | Config does not match the billing method
--------------|--------------------------|------------------------------------------
Line item     | LINE_ITEM_NOT_FOUND      | Index outside the item list
              | RATE_LOCKED              | Rate edit while a blended rate is active
--------------|--------------------------|------------------------------------------
Milestone     | MILESTONE_NOT_FOUND      | Unknown milestone id
              | DUPLICATE_MILESTONE      | Milestone id already present
--------------|--------------------------|------------------------------------------
Wizard        | UNKNOWN_STEP             | Step id not in the step superset
              | STEP_NAVIGATION_DENIED   | Jump to a step that is not reachable
--------------|--------------------------|------------------------------------------
Draft         | DRAFT_CLOSED             | Mutation after submission/cancellation
--------------|--------------------------|------------------------------------------
Currency      | INVALID_CURRENCY         | Code not in the supported registry
              | CURRENCY_MISMATCH        | Mixed currencies in one operation
--------------|--------------------------|------------------------------------------
Collaborator  | COLLABORATOR_ERROR       | External call failed (network/persistence)
              | SUBMISSION_FAILED        | Persistence rejected the payload

Nothing here is fatal: validation errors are blocked at entry and
collaborator errors leave the draft untouched so the user can retry.
"""


class PricingError(Exception):
    """
    Base exception for all pricing engine errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "PRICING_ERROR"


# Validation


class ValidationError(PricingError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"


class ProposalValidationError(ValidationError):
    """One or more fields failed validation."""

    code: str = "PROPOSAL_INVALID"

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        summary = "; ".join(f"{k}: {v}" for k, v in sorted(self.field_errors.items()))
        super().__init__(f"Proposal validation failed: {summary}")


class InvalidBillingConfigError(ValidationError):
    """A billing configuration does not belong to the requested method."""

    code: str = "INVALID_BILLING_CONFIG"

    def __init__(self, method: str, reason: str):
        self.method = method
        self.reason = reason
        super().__init__(f"Invalid configuration for {method}: {reason}")


# Line items


class LineItemError(PricingError):
    """Base exception for line item errors."""

    code: str = "LINE_ITEM_ERROR"


class LineItemNotFoundError(LineItemError):
    """No line item at the given position."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, index: int, item_count: int):
        self.index = index
        self.item_count = item_count
        super().__init__(f"No line item at index {index} (have {item_count})")


class RateLockedError(LineItemError):
    """
    The hourly rate cannot be edited because a blended rate is active.

    While blended, every hourly item carries the blended rate.
    """

    code: str = "RATE_LOCKED"

    def __init__(self, index: int, blended_rate: str):
        self.index = index
        self.blended_rate = blended_rate
        super().__init__(
            f"Rate of line item {index} is fixed to the blended rate {blended_rate}"
        )


# Milestones


class MilestoneError(PricingError):
    """Base exception for milestone ledger errors."""

    code: str = "MILESTONE_ERROR"


class MilestoneNotFoundError(MilestoneError):
    """Milestone id is not present in the ledger."""

    code: str = "MILESTONE_NOT_FOUND"

    def __init__(self, milestone_id: str):
        self.milestone_id = milestone_id
        super().__init__(f"Milestone not found: {milestone_id}")


class DuplicateMilestoneError(MilestoneError):
    """Milestone id already exists in the ledger."""

    code: str = "DUPLICATE_MILESTONE"

    def __init__(self, milestone_id: str):
        self.milestone_id = milestone_id
        super().__init__(f"Milestone already exists: {milestone_id}")


# Wizard


class WizardError(PricingError):
    """Base exception for wizard navigation errors."""

    code: str = "WIZARD_ERROR"


class UnknownStepError(WizardError):
    """Step id is not part of the wizard."""

    code: str = "UNKNOWN_STEP"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Unknown wizard step: {step_id}")


class StepNavigationError(WizardError):
    """Requested step cannot be reached from the current state."""

    code: str = "STEP_NAVIGATION_DENIED"

    def __init__(self, current_step: str, requested_index: int, reason: str):
        self.current_step = current_step
        self.requested_index = requested_index
        self.reason = reason
        super().__init__(
            f"Cannot move from step '{current_step}' to index {requested_index}: {reason}"
        )


# Draft lifecycle


class DraftError(PricingError):
    """Base exception for draft lifecycle errors."""

    code: str = "DRAFT_ERROR"


class DraftClosedError(DraftError):
    """The draft was submitted or discarded and no longer accepts changes."""

    code: str = "DRAFT_CLOSED"

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Draft is {state} and can no longer be modified")


# Currency


class CurrencyError(PricingError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not supported."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Unsupported currency code: {currency}")


class CurrencyMismatchError(CurrencyError):
    """Operation mixes amounts in different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(f"Currency mismatch: expected {expected}, received {received}")


# Collaborators


class CollaboratorError(PricingError):
    """
    An external collaborator (network, persistence) failed.

    ``field_errors`` holds structured validation errors returned by the
    collaborator, if any; ``user_message`` is the flattened banner text.
    """

    code: str = "COLLABORATOR_ERROR"

    def __init__(
        self,
        message: str,
        field_errors: dict[str, list[str] | str] | None = None,
    ):
        self.field_errors = dict(field_errors or {})
        self.user_message = flatten_error_message(message, self.field_errors)
        super().__init__(self.user_message)


class SubmissionFailedError(CollaboratorError):
    """The persistence collaborator rejected or failed to store the payload."""

    code: str = "SUBMISSION_FAILED"


def flatten_error_message(
    message: str,
    field_errors: dict[str, list[str] | str] | None,
) -> str:
    """Flatten collaborator field errors into one readable sentence."""
    if not field_errors:
        return message
    parts: list[str] = []
    for field, errors in sorted(field_errors.items()):
        if isinstance(errors, str):
            errors = [errors]
        joined = ", ".join(e for e in errors if e)
        parts.append(f"{field}: {joined}" if joined else field)
    return f"{message} ({'; '.join(parts)})"
