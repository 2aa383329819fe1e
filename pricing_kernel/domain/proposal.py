"""
Proposal data model -- line items, milestones, payment terms and header.

Responsibility:
    Immutable records for everything a proposal draft holds besides its
    billing configuration (see ``pricing_kernel.domain.billing``).

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - LineItem: numeric fields are non-negative Decimals, discount percent
      is within [0, 100], discount percent and discount amount are never
      both set, cap bounds exist only while ``is_capped``.
    - Milestone: non-empty id; percent within [0, 100].
    - ProposalHeader: client and lead are mutually exclusive.

LineItem stores no "is expense" flag; expense
classification is derived by ``pricing_engines.partition.is_expense``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum

from pricing_kernel.domain.billing import (
    BillingConfig,
    BillingMethod,
    Profile,
)
from pricing_kernel.domain.values import (
    HUNDRED,
    ZERO,
    Currency,
    to_decimal,
    to_optional_decimal,
)


def _check_non_negative(obj: object, names: tuple[str, ...]) -> None:
    for name in names:
        value = to_optional_decimal(getattr(obj, name), name)
        if value is not None and value < ZERO:
            raise ValueError(f"{name} must be non-negative")
        object.__setattr__(obj, name, value)


def _check_percent(value: Decimal | None, name: str) -> None:
    if value is not None and value > HUNDRED:
        raise ValueError(f"{name} cannot exceed 100")


# ============================================================================
# Line items
# ============================================================================


@dataclass(frozen=True)
class LineItem:
    """
    A single priced line of a proposal.

    ``amount`` is the gross (pre-discount) amount.  For hourly and
    fixed-fee items it is derived by the line item calculator; for other
    methods it is entered directly.
    """

    description: str = ""
    billing_method: BillingMethod | None = None
    person_id: str | None = None
    profile: Profile | None = None
    quantity: Decimal | None = None
    rate: Decimal | None = None
    unit_price: Decimal | None = None
    discount_percent: Decimal | None = None
    discount_amount: Decimal | None = None
    amount: Decimal = ZERO
    milestone_ids: tuple[str, ...] = ()
    expense_id: str | None = None
    is_estimated: bool = False  # estimated expense
    is_estimate: bool = False  # hourly quantity is an estimate
    is_capped: bool = False
    capped_hours: Decimal | None = None
    capped_amount: Decimal | None = None
    item_id: str | None = None
    payment_term: PaymentTerm | None = None

    def __post_init__(self) -> None:
        if self.billing_method is not None:
            object.__setattr__(self, "billing_method", BillingMethod(self.billing_method))
        if self.profile is not None:
            object.__setattr__(self, "profile", Profile(self.profile))
        _check_non_negative(
            self,
            (
                "quantity",
                "rate",
                "unit_price",
                "discount_percent",
                "discount_amount",
                "capped_hours",
                "capped_amount",
            ),
        )
        amount = to_decimal(self.amount, "amount")
        if amount < ZERO:
            raise ValueError("amount must be non-negative")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "milestone_ids", tuple(self.milestone_ids))

        _check_percent(self.discount_percent, "discount_percent")
        if self.discount_percent is not None and self.discount_amount is not None:
            raise ValueError("discount_percent and discount_amount are mutually exclusive")
        if not self.is_capped and (self.capped_hours is not None or self.capped_amount is not None):
            raise ValueError("cap bounds require is_capped")

    # Discount branch switches: setting one clears the other.

    def with_discount_percent(self, percent: Decimal | int | str | None) -> LineItem:
        return replace(self, discount_percent=percent, discount_amount=None)

    def with_discount_amount(self, amount: Decimal | int | str | None) -> LineItem:
        return replace(self, discount_amount=amount, discount_percent=None)

    def without_cap(self) -> LineItem:
        return replace(self, is_capped=False, capped_hours=None, capped_amount=None)

    def with_milestones(self, milestone_ids: tuple[str, ...] | list[str]) -> LineItem:
        # Preserve first-seen order, drop duplicates
        return replace(self, milestone_ids=tuple(dict.fromkeys(milestone_ids)))


# ============================================================================
# Milestones
# ============================================================================

TEMP_ID_PREFIX = "temp-"


@dataclass(frozen=True)
class Milestone:
    """A named payment checkpoint. ``id`` is the join key used by line items."""

    id: str
    name: str = ""
    description: str | None = None
    amount: Decimal | None = None
    percent: Decimal | None = None
    due_date: date | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Milestone id cannot be empty")
        _check_non_negative(self, ("amount", "percent"))
        _check_percent(self.percent, "percent")

    @property
    def is_persisted(self) -> bool:
        return not self.id.startswith(TEMP_ID_PREFIX)


# ============================================================================
# Payment terms
# ============================================================================


class PaymentStructure(str, Enum):
    ONE_TIME = "ONE_TIME"
    UPFRONT_BALANCE = "UPFRONT_BALANCE"
    INSTALLMENTS = "INSTALLMENTS"
    RECURRING = "RECURRING"


class UpfrontType(str, Enum):
    PERCENT = "PERCENT"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class BalancePaymentType(str, Enum):
    MILESTONE_BASED = "MILESTONE_BASED"
    TIME_BASED = "TIME_BASED"
    FULL_UPFRONT = "FULL_UPFRONT"


class InstallmentType(str, Enum):
    TIME_BASED = "TIME_BASED"
    MILESTONE_BASED = "MILESTONE_BASED"


class InstallmentFrequency(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"


class RecurringFrequency(str, Enum):
    MONTHLY_1 = "MONTHLY_1"
    MONTHLY_3 = "MONTHLY_3"
    MONTHLY_6 = "MONTHLY_6"
    YEARLY_12 = "YEARLY_12"
    CUSTOM = "CUSTOM"

    @property
    def months(self) -> int | None:
        """Interval in months; None for CUSTOM."""
        return _RECURRING_MONTHS.get(self)


_RECURRING_MONTHS = {
    RecurringFrequency.MONTHLY_1: 1,
    RecurringFrequency.MONTHLY_3: 3,
    RecurringFrequency.MONTHLY_6: 6,
    RecurringFrequency.YEARLY_12: 12,
}


@dataclass(frozen=True)
class PaymentTerm:
    """
    When and how a proposal (or a single item) is paid.

    ``structure`` is the structure the user picked.  Terms stored without
    one fall back to detection from the type fields (see
    ``pricing_engines.payment_terms``), where completeness is also checked.
    """

    structure: PaymentStructure | None = None
    upfront_type: UpfrontType | None = None
    upfront_value: Decimal | None = None
    balance_payment_type: BalancePaymentType | None = None
    balance_due_date: date | None = None
    installment_type: InstallmentType | None = None
    installment_count: int | None = None
    installment_frequency: InstallmentFrequency | None = None
    installment_maturity_dates: tuple[date, ...] = ()
    milestone_ids: tuple[str, ...] = ()
    recurring_enabled: bool = False
    recurring_frequency: RecurringFrequency | None = None
    recurring_custom_months: int | None = None
    recurring_start_date: date | None = None

    def __post_init__(self) -> None:
        for name, enum_type in (
            ("structure", PaymentStructure),
            ("upfront_type", UpfrontType),
            ("balance_payment_type", BalancePaymentType),
            ("installment_type", InstallmentType),
            ("installment_frequency", InstallmentFrequency),
            ("recurring_frequency", RecurringFrequency),
        ):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, enum_type(value))
        object.__setattr__(
            self, "upfront_value", to_optional_decimal(self.upfront_value, "upfront_value")
        )
        object.__setattr__(self, "installment_maturity_dates", tuple(self.installment_maturity_dates))
        object.__setattr__(self, "milestone_ids", tuple(self.milestone_ids))


# ============================================================================
# Header
# ============================================================================


class DiscountType(str, Enum):
    NONE = "NONE"
    PERCENT = "PERCENT"
    AMOUNT = "AMOUNT"


@dataclass(frozen=True)
class ClientDiscount:
    """Proposal-level discount, applied to services only."""

    discount_type: DiscountType = DiscountType.NONE
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "discount_type", DiscountType(self.discount_type))
        value = to_decimal(self.value, "value")
        if value < ZERO:
            raise ValueError("discount value must be non-negative")
        if self.discount_type is DiscountType.PERCENT:
            _check_percent(value, "discount percent")
        object.__setattr__(self, "value", value)

    @classmethod
    def none(cls) -> ClientDiscount:
        return cls()

    @classmethod
    def percent(cls, value: Decimal | int | str) -> ClientDiscount:
        return cls(DiscountType.PERCENT, value)

    @classmethod
    def amount(cls, value: Decimal | int | str) -> ClientDiscount:
        return cls(DiscountType.AMOUNT, value)


@dataclass(frozen=True)
class TaxConfig:
    """Tax rate in percent; inclusive rates are contained in the base."""

    rate_percent: Decimal = ZERO
    inclusive: bool = False

    def __post_init__(self) -> None:
        rate = to_decimal(self.rate_percent, "rate_percent")
        if rate < ZERO:
            raise ValueError("Tax rate cannot be negative")
        object.__setattr__(self, "rate_percent", rate)


@dataclass(frozen=True)
class ProposalHeader:
    """Fields shared by every billing method."""

    currency: Currency
    client_id: str | None = None
    lead_id: str | None = None
    title: str = ""
    description: str | None = None
    issue_date: date | None = None
    expiry_date: date | None = None
    tax: TaxConfig = field(default_factory=TaxConfig)
    client_discount: ClientDiscount = field(default_factory=ClientDiscount)
    tag_ids: tuple[str, ...] = ()
    custom_tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        if self.client_id and self.lead_id:
            raise ValueError("A proposal targets either a client or a lead, not both")
        object.__setattr__(self, "tag_ids", tuple(self.tag_ids))
        object.__setattr__(self, "custom_tags", tuple(self.custom_tags))


# ============================================================================
# Snapshot
# ============================================================================


@dataclass(frozen=True)
class ProposalSnapshot:
    """
    Point-in-time view of a draft, handed to step rules and the payload
    builder.
    """

    header: ProposalHeader
    method: BillingMethod | None = None
    config: BillingConfig | None = None
    items: tuple[LineItem, ...] = ()
    milestones: tuple[Milestone, ...] = ()
    use_milestones: bool = False
    payment_term: PaymentTerm | None = None
    proposal_id: str | None = None
