"""
Billing method configurations as a tagged union.

Responsibility:
    One frozen config type per billing method, so a proposal carries only
    the fields its method uses.  Success-fee fields on a fixed-fee
    proposal are unrepresentable rather than merely unused.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Amounts and rates are non-negative Decimals.
    - HourlyConfig / LineItem cap bounds exist only while capped.
    - RetainerConfig: expiry months are absent under EXPIRE and positive
      under ROLLOVER when present; only the active additional-hours branch
      carries values; project ids only under SPECIFIC_PROJECTS.
    - SuccessFeeConfig: exactly one base branch and one fee branch carry
      values; switching a branch returns a config with the other zeroed.
    - MixedModelConfig: components are keyed by secondary methods only and
      each component's method matches its key.

Completeness rules (e.g. "monthly amount must be positive") are NOT
enforced here -- drafts are built incrementally.  They live in the
engines' validators.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import ClassVar, Mapping, Union

from pricing_kernel.domain.values import ZERO, to_decimal, to_optional_decimal


class BillingMethod(str, Enum):
    """Top-level pricing model of a proposal."""

    FIXED_FEE = "FIXED_FEE"
    HOURLY = "HOURLY"
    RETAINER = "RETAINER"
    SUCCESS_FEE = "SUCCESS_FEE"
    MIXED_MODEL = "MIXED_MODEL"


# Methods that may appear inside a mixed model, in display order.
SECONDARY_METHODS: tuple[BillingMethod, ...] = (
    BillingMethod.FIXED_FEE,
    BillingMethod.HOURLY,
    BillingMethod.RETAINER,
    BillingMethod.SUCCESS_FEE,
)


class RateStrategy(str, Enum):
    """How hourly rates are resolved."""

    FIXED_RANGE = "FIXED_RANGE"  # advisory min/max, rate entered per item
    HOURLY_TABLE = "HOURLY_TABLE"  # rate keyed by professional profile
    BLENDED = "BLENDED"  # single rate overrides all


class Profile(str, Enum):
    """Professional profiles used by hourly rate tables."""

    SECRETARIAT = "SECRETARIAT"
    TRAINEE = "TRAINEE"
    JUNIOR_LAWYER = "JUNIOR_LAWYER"
    LAWYER = "LAWYER"
    SENIOR_LAWYER = "SENIOR_LAWYER"
    PARTNER = "PARTNER"


class AdditionalHoursType(str, Enum):
    """How retainer hours beyond the monthly allowance are billed."""

    FIXED_RATE = "FIXED_RATE"
    RATE_RANGE = "RATE_RANGE"
    HOURLY_TABLE = "HOURLY_TABLE"


class ProjectScope(str, Enum):
    ALL_PROJECTS = "ALL_PROJECTS"
    SPECIFIC_PROJECTS = "SPECIFIC_PROJECTS"


class UnusedBalancePolicy(str, Enum):
    """What happens to retainer hours left at the end of a month."""

    EXPIRE = "EXPIRE"  # forfeited at the end of the billing month
    ROLLOVER = "ROLLOVER"  # carried forward, optionally expiring after N months


class SuccessFeeBaseType(str, Enum):
    FIXED_AMOUNT = "FIXED_AMOUNT"
    HOURLY_RATE = "HOURLY_RATE"


class SuccessFeeType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


def _non_negative(value: Decimal | None, name: str) -> None:
    if value is not None and value < ZERO:
        raise ValueError(f"{name} must be non-negative")


def freeze_rate_table(
    rates: Mapping[Profile | str, object] | None,
) -> Mapping[Profile, Decimal]:
    """Normalise a profile -> rate mapping into a read-only Decimal table."""
    table: dict[Profile, Decimal] = {}
    for key, value in (rates or {}).items():
        profile = Profile(key)
        rate = to_decimal(value, f"rate[{profile.value}]")
        _non_negative(rate, f"rate[{profile.value}]")
        table[profile] = rate
    return MappingProxyType(table)


# ============================================================================
# Fixed fee
# ============================================================================


@dataclass(frozen=True)
class FixedFeeConfig:
    """Fixed fee with an hourly rate for out-of-scope work."""

    method: ClassVar[BillingMethod] = BillingMethod.FIXED_FEE

    fixed_amount: Decimal = ZERO
    out_of_scope_hourly_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("fixed_amount", "out_of_scope_hourly_rate"):
            value = to_decimal(getattr(self, name), name)
            _non_negative(value, name)
            object.__setattr__(self, name, value)


# ============================================================================
# Hourly
# ============================================================================


@dataclass(frozen=True)
class HourlyConfig:
    """
    Hourly billing configuration.

    ``use_blended_rate`` with a positive ``blended_rate`` (or the BLENDED
    strategy) fixes every hourly item to the blended rate.
    """

    method: ClassVar[BillingMethod] = BillingMethod.HOURLY

    rate_strategy: RateStrategy = RateStrategy.FIXED_RANGE
    rate_range_min: Decimal = ZERO
    rate_range_max: Decimal = ZERO
    rate_table: Mapping[Profile, Decimal] = field(default_factory=dict)
    blended_rate: Decimal = ZERO
    use_blended_rate: bool = False
    estimated_hours: Decimal = ZERO
    is_estimate: bool = False
    is_capped: bool = False
    cap_hours: Decimal | None = None
    capped_amount: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rate_strategy", RateStrategy(self.rate_strategy))
        for name in ("rate_range_min", "rate_range_max", "blended_rate", "estimated_hours"):
            value = to_decimal(getattr(self, name), name)
            _non_negative(value, name)
            object.__setattr__(self, name, value)
        for name in ("cap_hours", "capped_amount"):
            value = to_optional_decimal(getattr(self, name), name)
            _non_negative(value, name)
            object.__setattr__(self, name, value)
        object.__setattr__(self, "rate_table", freeze_rate_table(self.rate_table))
        if not self.is_capped and (self.cap_hours is not None or self.capped_amount is not None):
            raise ValueError("cap bounds require is_capped")

    @property
    def blended_active(self) -> bool:
        """True when the blended rate overrides every hourly rate."""
        if self.rate_strategy is RateStrategy.BLENDED:
            return True
        return self.use_blended_rate and self.blended_rate > ZERO


# ============================================================================
# Retainer
# ============================================================================

_ADDITIONAL_HOURS_FIELDS: dict[AdditionalHoursType, tuple[str, ...]] = {
    AdditionalHoursType.FIXED_RATE: ("additional_hours_rate",),
    AdditionalHoursType.RATE_RANGE: ("additional_hours_rate_min", "additional_hours_rate_max"),
    AdditionalHoursType.HOURLY_TABLE: ("additional_hours_table",),
}


@dataclass(frozen=True)
class RetainerConfig:
    """
    Monthly retainer with drawdown hours.

    Unused balance policy: EXPIRE forfeits unused hours at the end of each
    billing month and carries no expiry window.  ROLLOVER carries unused
    hours forward; ``unused_balance_expiry_months`` optionally forfeits
    rolled-over hours after that many months of non-use.
    """

    method: ClassVar[BillingMethod] = BillingMethod.RETAINER

    monthly_amount: Decimal = ZERO
    hours_per_month: Decimal = ZERO
    additional_hours_type: AdditionalHoursType | None = None
    additional_hours_rate: Decimal | None = None
    additional_hours_rate_min: Decimal | None = None
    additional_hours_rate_max: Decimal | None = None
    additional_hours_table: Mapping[Profile, Decimal] | None = None
    start_date: date | None = None
    duration_months: int | None = None
    project_scope: ProjectScope = ProjectScope.ALL_PROJECTS
    project_ids: tuple[str, ...] = ()
    unused_balance_policy: UnusedBalancePolicy | None = None
    unused_balance_expiry_months: int | None = None

    def __post_init__(self) -> None:
        for name in ("monthly_amount", "hours_per_month"):
            value = to_decimal(getattr(self, name), name)
            _non_negative(value, name)
            object.__setattr__(self, name, value)
        for name in ("additional_hours_rate", "additional_hours_rate_min", "additional_hours_rate_max"):
            value = to_optional_decimal(getattr(self, name), name)
            _non_negative(value, name)
            object.__setattr__(self, name, value)
        if self.additional_hours_table is not None:
            object.__setattr__(
                self, "additional_hours_table", freeze_rate_table(self.additional_hours_table)
            )
        if self.additional_hours_type is not None:
            object.__setattr__(
                self, "additional_hours_type", AdditionalHoursType(self.additional_hours_type)
            )
        object.__setattr__(self, "project_scope", ProjectScope(self.project_scope))
        object.__setattr__(self, "project_ids", tuple(self.project_ids))
        if self.unused_balance_policy is not None:
            object.__setattr__(
                self, "unused_balance_policy", UnusedBalancePolicy(self.unused_balance_policy)
            )

        active = _ADDITIONAL_HOURS_FIELDS.get(self.additional_hours_type, ())
        for hours_type, names in _ADDITIONAL_HOURS_FIELDS.items():
            if hours_type is self.additional_hours_type:
                continue
            for name in names:
                if name not in active and getattr(self, name) is not None:
                    raise ValueError(
                        f"{name} is only valid for additional hours type {hours_type.value}"
                    )

        if self.duration_months is not None and self.duration_months < 1:
            raise ValueError("duration_months must be at least 1")
        if self.project_scope is ProjectScope.ALL_PROJECTS and self.project_ids:
            raise ValueError("project_ids require SPECIFIC_PROJECTS scope")
        if self.unused_balance_expiry_months is not None:
            if self.unused_balance_policy is not UnusedBalancePolicy.ROLLOVER:
                raise ValueError("unused_balance_expiry_months only applies to ROLLOVER")
            if self.unused_balance_expiry_months < 1:
                raise ValueError("unused_balance_expiry_months must be a positive integer")

    def with_additional_hours_type(self, hours_type: AdditionalHoursType) -> RetainerConfig:
        """Switch the additional-hours branch; the new branch starts zeroed."""
        hours_type = AdditionalHoursType(hours_type)
        cleared = replace(
            self,
            additional_hours_type=None,
            additional_hours_rate=None,
            additional_hours_rate_min=None,
            additional_hours_rate_max=None,
            additional_hours_table=None,
        )
        if hours_type is AdditionalHoursType.FIXED_RATE:
            return replace(cleared, additional_hours_type=hours_type, additional_hours_rate=ZERO)
        if hours_type is AdditionalHoursType.RATE_RANGE:
            return replace(
                cleared,
                additional_hours_type=hours_type,
                additional_hours_rate_min=ZERO,
                additional_hours_rate_max=ZERO,
            )
        return replace(cleared, additional_hours_type=hours_type, additional_hours_table={})

    def with_unused_balance_policy(self, policy: UnusedBalancePolicy) -> RetainerConfig:
        """Select a policy; the expiry window resets."""
        return replace(
            self,
            unused_balance_policy=UnusedBalancePolicy(policy),
            unused_balance_expiry_months=None,
        )

    def with_rollover_expiry(self, months: int | None) -> RetainerConfig:
        """Set or clear the rollover expiry window (ROLLOVER only)."""
        return replace(self, unused_balance_expiry_months=months)

    def with_project_scope(
        self, scope: ProjectScope, project_ids: tuple[str, ...] = ()
    ) -> RetainerConfig:
        scope = ProjectScope(scope)
        if scope is ProjectScope.ALL_PROJECTS:
            project_ids = ()
        return replace(self, project_scope=scope, project_ids=tuple(project_ids))


# ============================================================================
# Success fee
# ============================================================================


@dataclass(frozen=True)
class SuccessFeeBase:
    """The guaranteed base fee of a success-fee arrangement."""

    base_type: SuccessFeeBaseType | None = None
    amount: Decimal | None = None
    hourly_rate: Decimal | None = None
    hourly_description: str | None = None

    def __post_init__(self) -> None:
        if self.base_type is not None:
            object.__setattr__(self, "base_type", SuccessFeeBaseType(self.base_type))
        for name in ("amount", "hourly_rate"):
            value = to_optional_decimal(getattr(self, name), name)
            _non_negative(value, name)
            object.__setattr__(self, name, value)
        hourly_fields = (self.hourly_rate, self.hourly_description)
        if self.base_type is not SuccessFeeBaseType.FIXED_AMOUNT and self.amount is not None:
            raise ValueError("amount is only valid for a FIXED_AMOUNT base")
        if self.base_type is not SuccessFeeBaseType.HOURLY_RATE and any(
            v is not None for v in hourly_fields
        ):
            raise ValueError("hourly fields are only valid for an HOURLY_RATE base")

    @classmethod
    def fixed_amount(cls, amount: Decimal | int | str = ZERO) -> SuccessFeeBase:
        return cls(base_type=SuccessFeeBaseType.FIXED_AMOUNT, amount=amount)

    @classmethod
    def hourly(cls, rate: Decimal | int | str = ZERO, description: str = "") -> SuccessFeeBase:
        return cls(
            base_type=SuccessFeeBaseType.HOURLY_RATE,
            hourly_rate=rate,
            hourly_description=description,
        )


@dataclass(frozen=True)
class SuccessFeeCharge:
    """The contingent fee charged on success."""

    fee_type: SuccessFeeType | None = None
    percent: Decimal | None = None
    transaction_value: Decimal | None = None
    amount: Decimal | None = None

    def __post_init__(self) -> None:
        if self.fee_type is not None:
            object.__setattr__(self, "fee_type", SuccessFeeType(self.fee_type))
        for name in ("percent", "transaction_value", "amount"):
            value = to_optional_decimal(getattr(self, name), name)
            _non_negative(value, name)
            object.__setattr__(self, name, value)
        if self.fee_type is not SuccessFeeType.PERCENTAGE and (
            self.percent is not None or self.transaction_value is not None
        ):
            raise ValueError("percent/transaction_value are only valid for a PERCENTAGE fee")
        if self.fee_type is not SuccessFeeType.FIXED_AMOUNT and self.amount is not None:
            raise ValueError("amount is only valid for a FIXED_AMOUNT fee")

    @classmethod
    def percentage(
        cls,
        percent: Decimal | int | str = ZERO,
        transaction_value: Decimal | int | str = ZERO,
    ) -> SuccessFeeCharge:
        return cls(
            fee_type=SuccessFeeType.PERCENTAGE,
            percent=percent,
            transaction_value=transaction_value,
        )

    @classmethod
    def fixed_amount(cls, amount: Decimal | int | str = ZERO) -> SuccessFeeCharge:
        return cls(fee_type=SuccessFeeType.FIXED_AMOUNT, amount=amount)


@dataclass(frozen=True)
class SuccessFeeConfig:
    """Base fee plus contingent success fee."""

    method: ClassVar[BillingMethod] = BillingMethod.SUCCESS_FEE

    base: SuccessFeeBase = field(default_factory=SuccessFeeBase)
    fee: SuccessFeeCharge = field(default_factory=SuccessFeeCharge)

    def with_base_type(self, base_type: SuccessFeeBaseType) -> SuccessFeeConfig:
        """Switch the base branch; the previous branch's values are dropped."""
        if SuccessFeeBaseType(base_type) is SuccessFeeBaseType.FIXED_AMOUNT:
            return replace(self, base=SuccessFeeBase.fixed_amount())
        return replace(self, base=SuccessFeeBase.hourly())

    def with_fee_type(self, fee_type: SuccessFeeType) -> SuccessFeeConfig:
        """Switch the fee branch; the previous branch's values are dropped."""
        if SuccessFeeType(fee_type) is SuccessFeeType.PERCENTAGE:
            return replace(self, fee=SuccessFeeCharge.percentage())
        return replace(self, fee=SuccessFeeCharge.fixed_amount())


# ============================================================================
# Mixed model
# ============================================================================

SimpleBillingConfig = Union[FixedFeeConfig, HourlyConfig, RetainerConfig, SuccessFeeConfig]


@dataclass(frozen=True)
class MixedModelConfig:
    """Combination of secondary billing methods, each with its own config."""

    method: ClassVar[BillingMethod] = BillingMethod.MIXED_MODEL

    components: Mapping[BillingMethod, SimpleBillingConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        ordered: dict[BillingMethod, SimpleBillingConfig] = {}
        given = {BillingMethod(k): v for k, v in self.components.items()}
        for method in SECONDARY_METHODS:
            if method in given:
                component = given.pop(method)
                if component.method is not method:
                    raise ValueError(
                        f"component for {method.value} is a {component.method.value} config"
                    )
                ordered[method] = component
        if given:
            names = ", ".join(sorted(m.value for m in given))
            raise ValueError(f"not allowed inside a mixed model: {names}")
        object.__setattr__(self, "components", MappingProxyType(ordered))

    @property
    def methods(self) -> tuple[BillingMethod, ...]:
        return tuple(self.components)

    def component(self, method: BillingMethod) -> SimpleBillingConfig | None:
        return self.components.get(BillingMethod(method))

    def with_methods(self, methods: tuple[BillingMethod, ...] | list[BillingMethod]) -> MixedModelConfig:
        """Select sub-methods, keeping configs of methods that stay selected."""
        selected = {BillingMethod(m) for m in methods}
        components = {
            m: self.components.get(m) or default_config(m)
            for m in SECONDARY_METHODS
            if m in selected
        }
        return MixedModelConfig(components=components)

    def with_component(self, component: SimpleBillingConfig) -> MixedModelConfig:
        components = dict(self.components)
        components[component.method] = component
        return MixedModelConfig(components=components)


BillingConfig = Union[
    FixedFeeConfig, HourlyConfig, RetainerConfig, SuccessFeeConfig, MixedModelConfig
]

_CONFIG_TYPES: dict[BillingMethod, type] = {
    BillingMethod.FIXED_FEE: FixedFeeConfig,
    BillingMethod.HOURLY: HourlyConfig,
    BillingMethod.RETAINER: RetainerConfig,
    BillingMethod.SUCCESS_FEE: SuccessFeeConfig,
    BillingMethod.MIXED_MODEL: MixedModelConfig,
}


def default_config(method: BillingMethod) -> BillingConfig:
    """Empty configuration for a billing method."""
    return _CONFIG_TYPES[BillingMethod(method)]()


def hourly_config_of(config: BillingConfig | None) -> HourlyConfig | None:
    """The hourly component of a config (top-level or inside a mixed model)."""
    if isinstance(config, HourlyConfig):
        return config
    if isinstance(config, MixedModelConfig):
        component = config.component(BillingMethod.HOURLY)
        return component if isinstance(component, HourlyConfig) else None
    return None


def retainer_config_of(config: BillingConfig | None) -> RetainerConfig | None:
    """The retainer component of a config (top-level or inside a mixed model)."""
    if isinstance(config, RetainerConfig):
        return config
    if isinstance(config, MixedModelConfig):
        component = config.component(BillingMethod.RETAINER)
        return component if isinstance(component, RetainerConfig) else None
    return None
