"""
Pure domain layer.

This module contains immutable value objects with NO dependencies on:
- Collaborators (persistence, network)
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from pricing_kernel.domain.billing import (
    SECONDARY_METHODS,
    AdditionalHoursType,
    BillingConfig,
    BillingMethod,
    FixedFeeConfig,
    HourlyConfig,
    MixedModelConfig,
    Profile,
    ProjectScope,
    RateStrategy,
    RetainerConfig,
    SuccessFeeBase,
    SuccessFeeBaseType,
    SuccessFeeCharge,
    SuccessFeeConfig,
    SuccessFeeType,
    UnusedBalancePolicy,
    default_config,
    hourly_config_of,
    retainer_config_of,
)
from pricing_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from pricing_kernel.domain.proposal import (
    TEMP_ID_PREFIX,
    BalancePaymentType,
    ClientDiscount,
    DiscountType,
    InstallmentFrequency,
    InstallmentType,
    LineItem,
    Milestone,
    PaymentStructure,
    PaymentTerm,
    ProposalHeader,
    ProposalSnapshot,
    RecurringFrequency,
    TaxConfig,
    UpfrontType,
)
from pricing_kernel.domain.values import HUNDRED, ZERO, Currency, Money, to_decimal

__all__ = [
    # Billing
    "AdditionalHoursType",
    "BillingConfig",
    "BillingMethod",
    "FixedFeeConfig",
    "HourlyConfig",
    "MixedModelConfig",
    "Profile",
    "ProjectScope",
    "RateStrategy",
    "RetainerConfig",
    "SECONDARY_METHODS",
    "SuccessFeeBase",
    "SuccessFeeBaseType",
    "SuccessFeeCharge",
    "SuccessFeeConfig",
    "SuccessFeeType",
    "UnusedBalancePolicy",
    "default_config",
    "hourly_config_of",
    "retainer_config_of",
    # Currency / values
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "HUNDRED",
    "Money",
    "ZERO",
    "to_decimal",
    # Proposal
    "BalancePaymentType",
    "ClientDiscount",
    "DiscountType",
    "InstallmentFrequency",
    "InstallmentType",
    "LineItem",
    "Milestone",
    "PaymentStructure",
    "PaymentTerm",
    "ProposalHeader",
    "ProposalSnapshot",
    "RecurringFrequency",
    "TEMP_ID_PREFIX",
    "TaxConfig",
    "UpfrontType",
]
