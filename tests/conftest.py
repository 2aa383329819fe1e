"""
Pytest fixtures for the proposal pricing test suite.

Provides:
- Structured logging configured at DEBUG for the whole session
- ``captured_logs`` for asserting on emitted log records
- Configuration defaults, headers and drafts in their common shapes
- In-memory collaborator fakes (proposal store, entity creator)
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from itertools import count

import pytest

from pricing_config import get_active_config
from pricing_kernel.domain.billing import BillingMethod
from pricing_kernel.domain.proposal import ProposalHeader
from pricing_kernel.exceptions import CollaboratorError
from pricing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from pricing_services.collaborators import ClientRecord, EntityKind, LeadRecord, UserRecord
from pricing_services.draft import ProposalDraft


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pricing logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            calculate_totals(...)
            logs = captured_logs()
            assert any(r["message"] == "totals_calculation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pricing")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture(scope="session")
def defaults():
    """The shipped default configuration set."""
    return get_active_config()


@pytest.fixture
def eur_header():
    return ProposalHeader(
        currency="EUR",
        client_id="client-1",
        title="Share purchase agreement",
        issue_date=date(2026, 3, 1),
        expiry_date=date(2026, 3, 31),
    )


@pytest.fixture
def clients():
    return (
        ClientRecord("client-1", "Acme", company="Acme SA"),
        ClientRecord("client-2", "Globex", default_discount_percent=Decimal("10")),
        ClientRecord("client-3", "Initech", default_discount_amount=Decimal("250")),
    )


@pytest.fixture
def users():
    return (
        UserRecord("user-1", "Ana Partner", default_hourly_rate=Decimal("300")),
        UserRecord("user-2", "Rui Trainee"),
    )


@pytest.fixture
def milestone_ids():
    """Deterministic temporary milestone ids: temp-1, temp-2, ..."""
    counter = count(1)
    return lambda: f"temp-{next(counter)}"


@pytest.fixture
def make_draft(defaults, clients, users, milestone_ids):
    """Factory for create-mode drafts with the fixture directories."""

    def _make(method: BillingMethod | None = BillingMethod.HOURLY, **kwargs) -> ProposalDraft:
        kwargs.setdefault("clients", clients)
        kwargs.setdefault("users", users)
        kwargs.setdefault("id_factory", milestone_ids)
        return ProposalDraft.new(defaults, method=method, **kwargs)

    return _make


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeProposalStore:
    """Records every save; can be told to fail."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.saved: list[tuple[dict, str | None]] = []

    def save(self, payload, proposal_id=None):
        self.saved.append((payload, proposal_id))
        if self.error is not None:
            raise self.error
        return {"id": proposal_id or f"prop-{len(self.saved)}", "amount": payload["amount"]}


class FakeEntityCreator:
    def __init__(self, error: CollaboratorError | None = None):
        self.error = error
        self.created: list[tuple[EntityKind, dict]] = []

    def create(self, kind, fields):
        if self.error is not None:
            raise self.error
        self.created.append((kind, dict(fields)))
        entity_id = f"{kind.value.lower()}-new-{len(self.created)}"
        if kind is EntityKind.CLIENT:
            return ClientRecord(
                entity_id,
                fields["name"],
                default_discount_percent=fields.get("default_discount_percent"),
            )
        return LeadRecord(entity_id, fields["name"])


@pytest.fixture
def store():
    return FakeProposalStore()


@pytest.fixture
def entity_creator():
    return FakeEntityCreator()


@pytest.fixture
def make_store():
    """The store class itself, for tests that need a failing store."""
    return FakeProposalStore


@pytest.fixture
def make_entity_creator():
    return FakeEntityCreator
