"""
pricing_services.draft -- the in-memory proposal being edited.

Responsibility:
    Owns every piece of draft state (header, billing method and its
    configuration, line items, milestones, payment terms) and keeps the
    derived parts consistent after each mutation: item amounts are
    recalculated, milestone references cascade, and method switches clean
    up state that no longer applies.  Every mutation announces itself on
    the draft's EventBus.

Architecture position:
    Services layer.  Delegates all arithmetic and rules to
    ``pricing_engines``; reads defaults from ``pricing_config``.

Invariants enforced:
    - Billing config always belongs to the current method
      (InvalidBillingConfigError otherwise).
    - Hourly item rates are locked while a blended rate is active
      (RateLockedError).
    - Item milestone ids and payment-term milestone ids reference existing
      milestones only.
    - A submitted or discarded draft rejects further mutation
      (DraftClosedError).

Not thread-safe: a draft belongs to exactly one editing session.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import date
from enum import Enum
from typing import Any

from pricing_config import PricingDefaults, get_active_config
from pricing_engines.line_items import item_method, recalculate_items
from pricing_engines.milestones import MilestoneLedger
from pricing_engines.partition import is_expense
from pricing_engines.payment_terms import start_term, validate_payment_term
from pricing_engines.rates import rate_for_person
from pricing_engines.retainer import validate_retainer
from pricing_engines.totals import ProposalTotals, calculate_totals
from pricing_engines.wizard_steps import (
    StepId,
    applicable_steps,
    milestones_applicable,
    validate_step,
)
from pricing_kernel.domain.billing import (
    BillingConfig,
    BillingMethod,
    HourlyConfig,
    MixedModelConfig,
    RateStrategy,
    RetainerConfig,
    UnusedBalancePolicy,
    default_config,
    hourly_config_of,
    retainer_config_of,
)
from pricing_kernel.domain.proposal import (
    ClientDiscount,
    LineItem,
    Milestone,
    PaymentStructure,
    PaymentTerm,
    ProposalHeader,
    ProposalSnapshot,
    TaxConfig,
)
from pricing_kernel.domain.values import Currency
from pricing_kernel.exceptions import (
    DraftClosedError,
    InvalidBillingConfigError,
    InvalidCurrencyError,
    RateLockedError,
)
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_services.collaborators import (
    ClientRecord,
    EntityCreator,
    EntityKind,
    LeadRecord,
    UserRecord,
    default_discount_for,
)
from pricing_services.events import DraftTopic, EventBus

logger = get_logger("services.draft")


class DraftState(str, Enum):
    OPEN = "OPEN"
    SUBMITTED = "SUBMITTED"
    DISCARDED = "DISCARDED"


class ProposalDraft:
    """
    One proposal under construction.

    Build with ``ProposalDraft.new()`` (create mode) or
    ``ProposalDraft.from_snapshot()`` (edit mode).
    """

    def __init__(
        self,
        header: ProposalHeader,
        method: BillingMethod | None = None,
        config: BillingConfig | None = None,
        *,
        items: Iterable[LineItem] = (),
        milestones: Iterable[Milestone] = (),
        use_milestones: bool = False,
        payment_term: PaymentTerm | None = None,
        proposal_id: str | None = None,
        defaults: PricingDefaults | None = None,
        bus: EventBus | None = None,
        clients: Iterable[ClientRecord] = (),
        leads: Iterable[LeadRecord] = (),
        users: Iterable[UserRecord] = (),
        id_factory: Callable[[], str] | None = None,
    ):
        self.defaults = defaults or get_active_config()
        self.bus = bus or EventBus()
        self.proposal_id = proposal_id
        self.state = DraftState.OPEN
        self.receipt: Mapping[str, Any] | None = None

        self._header = header
        self._method = BillingMethod(method) if method is not None else None
        self._config = config
        if self._method is not None and self._config is None:
            self._config = default_config(self._method)
        self._check_config(self._method, self._config)
        self._ledger = MilestoneLedger(milestones, items, id_factory=id_factory)
        self._use_milestones = use_milestones
        self._payment_term = payment_term

        self._clients: dict[str, ClientRecord] = {c.id: c for c in clients}
        self._leads: dict[str, LeadRecord] = {lead.id: lead for lead in leads}
        self._users: dict[str, UserRecord] = {u.id: u for u in users}

        self._ledger.set_items(self._recalculated(self._ledger.items))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(
        cls,
        defaults: PricingDefaults | None = None,
        *,
        method: BillingMethod | None = None,
        **kwargs: Any,
    ) -> ProposalDraft:
        """Create-mode draft seeded from configuration defaults."""
        defaults = defaults or get_active_config()
        header = ProposalHeader(
            currency=Currency(defaults.default_currency),
            tax=TaxConfig(defaults.tax.rate_percent, defaults.tax.inclusive),
        )
        draft = cls(
            header,
            method or defaults.default_billing_method,
            defaults=defaults,
            **kwargs,
        )
        logger.info("draft_created", extra={
            "mode": "create",
            "method": draft.method.value if draft.method else None,
            "currency": header.currency.code,
        })
        return draft

    @classmethod
    def from_snapshot(
        cls,
        snapshot: ProposalSnapshot,
        defaults: PricingDefaults | None = None,
        **kwargs: Any,
    ) -> ProposalDraft:
        """Edit-mode draft rebuilt from a persisted proposal."""
        draft = cls(
            snapshot.header,
            snapshot.method,
            snapshot.config,
            items=snapshot.items,
            milestones=snapshot.milestones,
            use_milestones=snapshot.use_milestones,
            payment_term=snapshot.payment_term,
            proposal_id=snapshot.proposal_id,
            defaults=defaults,
            **kwargs,
        )
        logger.info("draft_created", extra={
            "mode": "edit",
            "proposal_id": snapshot.proposal_id,
            "method": draft.method.value if draft.method else None,
            "item_count": len(snapshot.items),
            "milestone_count": len(snapshot.milestones),
        })
        return draft

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def header(self) -> ProposalHeader:
        return self._header

    @property
    def method(self) -> BillingMethod | None:
        return self._method

    @property
    def config(self) -> BillingConfig | None:
        return self._config

    @property
    def items(self) -> tuple[LineItem, ...]:
        return self._ledger.items

    @property
    def milestones(self) -> tuple[Milestone, ...]:
        return self._ledger.milestones

    @property
    def use_milestones(self) -> bool:
        return self._use_milestones

    @property
    def payment_term(self) -> PaymentTerm | None:
        return self._payment_term

    @property
    def is_edit(self) -> bool:
        return self.proposal_id is not None

    @property
    def is_open(self) -> bool:
        return self.state is DraftState.OPEN

    @property
    def clients(self) -> tuple[ClientRecord, ...]:
        return tuple(self._clients.values())

    @property
    def leads(self) -> tuple[LeadRecord, ...]:
        return tuple(self._leads.values())

    @property
    def hourly_config(self) -> HourlyConfig | None:
        return hourly_config_of(self._config)

    @property
    def retainer_config(self) -> RetainerConfig | None:
        return retainer_config_of(self._config)

    def snapshot(self) -> ProposalSnapshot:
        return ProposalSnapshot(
            header=self._header,
            method=self._method,
            config=self._config,
            items=self._ledger.items,
            milestones=self._ledger.milestones,
            use_milestones=self._use_milestones,
            payment_term=self._payment_term,
            proposal_id=self.proposal_id,
        )

    def totals(self) -> ProposalTotals:
        return calculate_totals(
            items=self._ledger.items,
            header=self._header,
            method=self._method,
            config=self._config,
        )

    # ------------------------------------------------------------------
    # Header
    # ------------------------------------------------------------------

    def update_header(self, **changes: Any) -> ProposalHeader:
        """Replace header fields (title, dates, tags, ...)."""
        self.ensure_open()
        if "currency" in changes:
            changes["currency"] = self._supported_currency(changes["currency"])
        if "custom_tags" in changes:
            changes["custom_tags"] = tuple(changes["custom_tags"])
        self._header = replace(self._header, **changes)
        self.bus.publish(DraftTopic.HEADER_CHANGED, fields=tuple(sorted(changes)))
        return self._header

    def set_currency(self, code: str) -> ProposalHeader:
        return self.update_header(currency=code)

    def set_tax(self, rate_percent: Any, inclusive: bool = False) -> ProposalHeader:
        return self.update_header(tax=TaxConfig(rate_percent, inclusive))

    def set_client_discount(self, discount: ClientDiscount) -> ProposalHeader:
        return self.update_header(client_discount=discount)

    def select_client(self, client_id: str) -> ProposalHeader:
        """Select a client (clearing any lead) and apply its default discount."""
        changes: dict[str, Any] = {"client_id": client_id, "lead_id": None}
        client = self._clients.get(client_id)
        discount = default_discount_for(client) if client else None
        if discount is not None:
            changes["client_discount"] = discount
            logger.info("client_default_discount_applied", extra={
                "client_id": client_id,
                "discount_type": discount.discount_type.value,
                "discount_value": str(discount.value),
            })
        return self.update_header(**changes)

    def select_lead(self, lead_id: str) -> ProposalHeader:
        return self.update_header(lead_id=lead_id, client_id=None)

    def create_entity(
        self,
        kind: EntityKind,
        fields: Mapping[str, Any],
        creator: EntityCreator,
    ) -> ClientRecord | LeadRecord:
        """
        Create a client or lead through a collaborator, add it to the local
        directory and select it.

        Collaborator errors propagate and leave the draft unchanged.
        """
        self.ensure_open()
        kind = EntityKind(kind)
        record = creator.create(kind, fields)
        if kind is EntityKind.CLIENT:
            self._clients[record.id] = record
            self.select_client(record.id)
        else:
            self._leads[record.id] = record
            self.select_lead(record.id)
        logger.info("entity_created", extra={"kind": kind.value, "entity_id": record.id})
        self.bus.publish(DraftTopic.ENTITY_CREATED, kind=kind, entity_id=record.id)
        return record

    # ------------------------------------------------------------------
    # Billing method and configuration
    # ------------------------------------------------------------------

    def set_method(self, method: BillingMethod) -> None:
        """
        Switch the billing method.

        The configuration starts from the method's defaults.  Milestones are
        dropped when the new method has no milestone step, and items are
        re-stamped and repriced under the new method.
        """
        self.ensure_open()
        method = BillingMethod(method)
        previous = self._method
        if method is previous:
            return

        self._method = method
        self._config = default_config(method)

        if not milestones_applicable(method) and (self._use_milestones or len(self._ledger)):
            self._use_milestones = False
            self._clear_milestones()

        self._ledger.set_items(self._recalculated(self._restamp(self._ledger.items)))
        logger.info("billing_method_changed", extra={
            "previous_method": previous.value if previous else None,
            "method": method.value,
            "item_count": len(self._ledger.items),
        })
        self.bus.publish(
            DraftTopic.METHOD_CHANGED,
            previous=previous,
            method=method,
            sub_methods=self._sub_methods(),
        )
        self.bus.publish(DraftTopic.ITEMS_CHANGED, reason="method_changed")

    def update_config(self, config: BillingConfig) -> None:
        """
        Replace the billing configuration of the current method.

        Inside a mixed model, a config of a selected sub-method replaces
        that component.
        """
        self.ensure_open()
        if isinstance(self._config, MixedModelConfig) and not isinstance(config, MixedModelConfig):
            if config.method not in self._config.components:
                raise InvalidBillingConfigError(
                    BillingMethod.MIXED_MODEL.value,
                    f"{config.method.value} is not a selected sub-method",
                )
            config = self._config.with_component(config)
        self._check_config(self._method, config)

        previous_methods = self._sub_methods()
        self._config = config
        self._ledger.set_items(self._recalculated(self._restamp(self._ledger.items)))
        logger.debug("billing_config_updated", extra={
            "method": self._method.value if self._method else None,
            "config_type": type(config).__name__,
        })
        if self._sub_methods() != previous_methods:
            self.bus.publish(
                DraftTopic.METHOD_CHANGED,
                previous=self._method,
                method=self._method,
                sub_methods=self._sub_methods(),
            )
        self.bus.publish(DraftTopic.ITEMS_CHANGED, reason="config_changed")

    def set_mixed_methods(self, methods: Sequence[BillingMethod]) -> None:
        """Select the sub-methods of a mixed model."""
        if not isinstance(self._config, MixedModelConfig):
            raise InvalidBillingConfigError(
                self._method.value if self._method else "NONE",
                "sub-methods only apply to MIXED_MODEL",
            )
        self.update_config(self._config.with_methods(methods))

    def set_rate_strategy(self, strategy: RateStrategy) -> None:
        """Change the hourly rate strategy; an empty rate table is seeded
        from the configured defaults."""
        hourly = self.hourly_config
        if hourly is None:
            raise InvalidBillingConfigError(
                self._method.value if self._method else "NONE", "no hourly configuration"
            )
        strategy = RateStrategy(strategy)
        changes: dict[str, Any] = {"rate_strategy": strategy}
        if strategy is RateStrategy.HOURLY_TABLE and not hourly.rate_table:
            changes["rate_table"] = dict(self.defaults.hourly.rate_table)
        self.update_config(replace(hourly, **changes))

    def set_rollover_expiry(self, enabled: bool, months: int | None = None) -> None:
        """Switch the rollover expiry window on (default months) or off."""
        retainer = self.retainer_config
        if retainer is None or retainer.unused_balance_policy is not UnusedBalancePolicy.ROLLOVER:
            raise InvalidBillingConfigError(
                BillingMethod.RETAINER.value, "expiry window requires the ROLLOVER policy"
            )
        if enabled:
            months = months or self.defaults.retainer.rollover_expiry_months
        else:
            months = None
        self.update_config(retainer.with_rollover_expiry(months))

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def add_item(self, item: LineItem | None = None, **fields: Any) -> int:
        """Append an item; its billing method defaults from the proposal."""
        self.ensure_open()
        item = item or LineItem(**fields)
        if item.billing_method is None:
            item = replace(item, billing_method=self._default_item_method())
        index = self._ledger.add_item(self._recalculated([item])[0])
        self.bus.publish(DraftTopic.ITEMS_CHANGED, reason="item_added", index=index)
        return index

    def update_item(self, index: int, **changes: Any) -> LineItem:
        """
        Change fields of one item and reprice it.

        Setting ``discount_percent`` clears ``discount_amount`` and vice
        versa.  Attaching ``person_id`` pre-fills the person's default rate
        on hourly items unless a blended rate is active.  Expense items keep
        their entered amount, so the blended rate never locks them.
        """
        self.ensure_open()
        item = self._ledger.item(index)
        prospective = replace(item, **{
            name: changes[name]
            for name in ("billing_method", "expense_id", "is_estimated")
            if name in changes
        })
        method = item_method(prospective, self._method)
        hourly = self.hourly_config

        if (
            "rate" in changes
            and method is BillingMethod.HOURLY
            and not is_expense(prospective)
            and hourly
            and hourly.blended_active
        ):
            raise RateLockedError(index, str(hourly.blended_rate))

        if changes.get("discount_percent") is not None:
            changes.pop("discount_amount", None)
            item = item.with_discount_percent(changes.pop("discount_percent"))
        elif changes.get("discount_amount") is not None:
            changes.pop("discount_percent", None)
            item = item.with_discount_amount(changes.pop("discount_amount"))

        if changes.get("is_capped") is False:
            for name in ("is_capped", "capped_hours", "capped_amount"):
                changes.pop(name, None)
            item = item.without_cap()

        if changes.get("person_id") and method is BillingMethod.HOURLY and "rate" not in changes:
            user = self._users.get(changes["person_id"])
            rate = rate_for_person(user.default_hourly_rate if user else None, hourly)
            if rate is not None:
                changes["rate"] = rate

        updated = self._recalculated([replace(item, **changes)])[0]
        self._ledger.replace_item(index, updated)
        self.bus.publish(DraftTopic.ITEMS_CHANGED, reason="item_updated", index=index)
        return updated

    def remove_item(self, index: int) -> LineItem:
        self.ensure_open()
        removed = self._ledger.remove_item(index)
        self.bus.publish(DraftTopic.ITEMS_CHANGED, reason="item_removed", index=index)
        return removed

    def set_item_payment_term(self, index: int, term: PaymentTerm | None) -> LineItem:
        return self.update_item(index, payment_term=term)

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def set_use_milestones(self, enabled: bool) -> None:
        self.ensure_open()
        if enabled and not milestones_applicable(self._method):
            raise InvalidBillingConfigError(
                self._method.value if self._method else "NONE",
                "milestones only apply to FIXED_FEE and MIXED_MODEL",
            )
        self._use_milestones = enabled
        self.bus.publish(DraftTopic.MILESTONES_CHANGED, reason="usage_changed")

    def add_milestone(self, name: str = "", **fields: Any) -> Milestone:
        self.ensure_open()
        milestone = self._ledger.add(name, **fields)
        self.bus.publish(DraftTopic.MILESTONES_CHANGED, reason="added", milestone_id=milestone.id)
        return milestone

    def update_milestone(self, milestone_id: str, **changes: Any) -> Milestone:
        self.ensure_open()
        milestone = self._ledger.update(milestone_id, **changes)
        self.bus.publish(
            DraftTopic.MILESTONES_CHANGED, reason="updated", milestone_id=milestone_id
        )
        return milestone

    def remove_milestone(self, milestone_id: str) -> Milestone:
        """Remove a milestone; items and payment terms drop the reference."""
        self.ensure_open()
        affected = self._ledger.items_for(milestone_id)
        removed = self._ledger.remove(milestone_id)
        self._strip_term_milestones({milestone_id})
        logger.info("milestone_removed", extra={
            "milestone_id": milestone_id,
            "affected_items": list(affected),
        })
        self.bus.publish(
            DraftTopic.MILESTONES_CHANGED, reason="removed", milestone_id=milestone_id
        )
        self.bus.publish(DraftTopic.ITEMS_CHANGED, reason="milestone_removed")
        return removed

    def assign_milestones(self, index: int, milestone_ids: Sequence[str]) -> LineItem:
        self.ensure_open()
        item = self._ledger.assign(index, milestone_ids)
        self.bus.publish(DraftTopic.ITEMS_CHANGED, reason="milestones_assigned", index=index)
        return item

    # ------------------------------------------------------------------
    # Payment terms
    # ------------------------------------------------------------------

    def set_payment_term(self, term: PaymentTerm | None) -> None:
        """Set the proposal-level payment term."""
        self.ensure_open()
        self._payment_term = term
        self.bus.publish(DraftTopic.HEADER_CHANGED, fields=("payment_term",))

    def choose_payment_structure(
        self,
        structure: PaymentStructure,
        today: date,
        index: int | None = None,
    ) -> PaymentTerm:
        """
        Start a fresh term for the chosen structure, on the proposal or on
        the item at ``index``.
        """
        previous = self._payment_term if index is None else self._ledger.item(index).payment_term
        term = start_term(structure, today, previous)
        if index is None:
            self.set_payment_term(term)
        else:
            self.set_item_payment_term(index, term)
        logger.debug("payment_structure_chosen", extra={
            "structure": term.structure.value,
            "item_index": index,
        })
        return term

    # ------------------------------------------------------------------
    # Validation and lifecycle
    # ------------------------------------------------------------------

    def validate(self) -> dict[str, str]:
        """
        Submission-level validation.

        Returns:
            Field-keyed errors across the header and every applicable step;
            empty when the draft can be submitted.
        """
        errors: dict[str, str] = {}
        header = self._header
        if not header.client_id and not header.lead_id:
            message = "Please select either a client or a lead"
            errors["client_id"] = message
            errors["lead_id"] = message
        if not header.title.strip():
            errors["title"] = "Title is required"
        if header.expiry_date and header.issue_date and header.expiry_date < header.issue_date:
            errors["expiry_date"] = "Expiry date must be after issue date"
        if self._use_milestones and not len(self._ledger):
            errors["milestones"] = (
                "At least one milestone must be defined when milestones are enabled"
            )

        snapshot = self.snapshot()
        for step in applicable_steps(self._method):
            if step.id is StepId.REVIEW:
                continue
            for key, message in validate_step(step.id, snapshot).errors.items():
                errors.setdefault(key, message)

        retainer = self.retainer_config
        if retainer is not None:
            for key, message in validate_retainer(retainer).items():
                errors.setdefault(f"retainer.{key}", message)

        milestone_ids = [m.id for m in self._ledger.milestones]
        for index, item in enumerate(self._ledger.items):
            if item.payment_term is None:
                continue
            for key, message in validate_payment_term(
                item.payment_term, milestone_ids=milestone_ids
            ).items():
                errors.setdefault(f"items[{index}].payment_term.{key}", message)
        return errors

    def mark_submitted(self, receipt: Mapping[str, Any]) -> None:
        """Close the draft after the collaborator stored it."""
        self.ensure_open()
        self.receipt = dict(receipt)
        if receipt.get("id"):
            self.proposal_id = str(receipt["id"])
        self.state = DraftState.SUBMITTED
        self.bus.publish(DraftTopic.SUBMITTED, proposal_id=self.proposal_id)

    def discard(self) -> None:
        self.ensure_open()
        self.state = DraftState.DISCARDED
        with LogContext.bind(proposal_id=self.proposal_id):
            logger.info("draft_discarded")
        self.bus.publish(DraftTopic.DISCARDED, proposal_id=self.proposal_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def ensure_open(self) -> None:
        if self.state is not DraftState.OPEN:
            raise DraftClosedError(self.state.value.lower())

    def _supported_currency(self, code: Currency | str) -> Currency:
        currency = code if isinstance(code, Currency) else Currency(code)
        if currency.code not in self.defaults.supported_currencies:
            raise InvalidCurrencyError(currency.code)
        return currency

    @staticmethod
    def _check_config(method: BillingMethod | None, config: BillingConfig | None) -> None:
        if config is None:
            return
        if method is None or config.method is not method:
            raise InvalidBillingConfigError(
                method.value if method else "NONE",
                f"got a {config.method.value} configuration",
            )

    def _sub_methods(self) -> tuple[BillingMethod, ...]:
        if isinstance(self._config, MixedModelConfig):
            return self._config.methods
        return ()

    def _default_item_method(self) -> BillingMethod | None:
        if self._method is BillingMethod.MIXED_MODEL:
            methods = self._sub_methods()
            return methods[0] if methods else None
        return self._method

    def _restamp(self, items: Iterable[LineItem]) -> list[LineItem]:
        """Give items a method that exists under the current configuration."""
        if self._method is BillingMethod.MIXED_MODEL:
            selected = self._sub_methods()
            fallback = selected[0] if selected else None
            return [
                item if item.billing_method in selected
                else replace(item, billing_method=fallback)
                for item in items
            ]
        return [
            item if item.billing_method is self._method
            else replace(item, billing_method=self._method)
            for item in items
        ]

    def _recalculated(self, items: Iterable[LineItem]) -> tuple[LineItem, ...]:
        return recalculate_items(
            list(items),
            self._method,
            self._config,
            self.defaults.fixed_fee_default_quantity,
        )

    def _clear_milestones(self) -> None:
        removed = set(self._ledger.milestone_ids)
        self._ledger.clear()
        self._strip_term_milestones(removed)
        self.bus.publish(DraftTopic.MILESTONES_CHANGED, reason="cleared")

    def _strip_term_milestones(self, milestone_ids: set[str]) -> None:
        term = self._payment_term
        if term is not None and milestone_ids.intersection(term.milestone_ids):
            self._payment_term = replace(
                term, milestone_ids=tuple(m for m in term.milestone_ids if m not in milestone_ids)
            )
        for index, item in enumerate(self._ledger.items):
            item_term = item.payment_term
            if item_term is not None and milestone_ids.intersection(item_term.milestone_ids):
                self._ledger.replace_item(index, replace(item, payment_term=replace(
                    item_term,
                    milestone_ids=tuple(
                        m for m in item_term.milestone_ids if m not in milestone_ids
                    ),
                )))
