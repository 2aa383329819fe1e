"""
pricing_services.collaborators -- contracts of the external systems a
draft talks to, and helpers for merging their responses.

Responsibility:
    - Plain records for the data consumed from collaborators (clients,
      leads, users, projects, tags).
    - Protocols for the side-effecting calls (persist a proposal, create a
      client or lead).  Results are opaque to the pricing engine apart
      from the fields declared here.
    - ``LatestWinsLookup``: merges auxiliary lookup responses so that only
      the latest request per key is applied.

Architecture position:
    Services layer.  Collaborator implementations (HTTP clients, stores)
    live outside this package and are injected.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, Hashable, Protocol, TypeVar, runtime_checkable

from pricing_kernel.domain.proposal import ClientDiscount
from pricing_kernel.domain.values import ZERO, to_optional_decimal
from pricing_kernel.logging_config import get_logger

logger = get_logger("services.collaborators")


# ---------------------------------------------------------------------------
# Consumed records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientRecord:
    id: str
    name: str
    company: str | None = None
    default_discount_percent: Decimal | None = None
    default_discount_amount: Decimal | None = None

    def __post_init__(self) -> None:
        for name in ("default_discount_percent", "default_discount_amount"):
            object.__setattr__(self, name, to_optional_decimal(getattr(self, name), name))


@dataclass(frozen=True)
class LeadRecord:
    id: str
    name: str
    company: str | None = None


@dataclass(frozen=True)
class UserRecord:
    id: str
    name: str
    default_hourly_rate: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "default_hourly_rate",
            to_optional_decimal(self.default_hourly_rate, "default_hourly_rate"),
        )


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    name: str
    status: ProjectStatus = ProjectStatus.ACTIVE

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ProjectStatus(self.status))


@dataclass(frozen=True)
class TagRecord:
    id: str
    name: str
    color: str | None = None


class EntityKind(str, Enum):
    CLIENT = "CLIENT"
    LEAD = "LEAD"


_SELECTABLE_PROJECT_STATUSES = frozenset({ProjectStatus.ACTIVE, ProjectStatus.COMPLETED})


def filter_selectable_projects(projects: Iterable[ProjectRecord]) -> tuple[ProjectRecord, ...]:
    """Projects a retainer can be scoped to: active or completed."""
    return tuple(p for p in projects if p.status in _SELECTABLE_PROJECT_STATUSES)


def default_discount_for(client: ClientRecord) -> ClientDiscount | None:
    """
    Client's default discount, percent preferred over amount.

    None when the client has no positive default.
    """
    if client.default_discount_percent and client.default_discount_percent > ZERO:
        return ClientDiscount.percent(client.default_discount_percent)
    if client.default_discount_amount and client.default_discount_amount > ZERO:
        return ClientDiscount.amount(client.default_discount_amount)
    return None


# ---------------------------------------------------------------------------
# Side-effecting collaborators
# ---------------------------------------------------------------------------


@runtime_checkable
class ProposalStore(Protocol):
    """
    Persists a submission payload.

    Returns the stored proposal's canonical record (at least ``id``).
    Raises CollaboratorError (or a subclass) on failure.
    """

    def save(self, payload: Mapping[str, Any], proposal_id: str | None = None) -> Mapping[str, Any]:
        ...


@runtime_checkable
class EntityCreator(Protocol):
    """Creates a client or lead; raises CollaboratorError on failure."""

    def create(self, kind: EntityKind, fields: Mapping[str, Any]) -> ClientRecord | LeadRecord:
        ...


# ---------------------------------------------------------------------------
# Latest-wins lookups
# ---------------------------------------------------------------------------

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LatestWinsLookup(Generic[K, V]):
    """
    Per-key results of auxiliary lookups (tags, projects of a client).

    ``request(key)`` issues a token; ``complete(key, token, result)``
    replaces the cached result only if the token is still the latest for
    that key.  Responses to superseded requests are discarded.
    """

    def __init__(self, name: str):
        self.name = name
        self._latest: dict[K, int] = {}
        self._results: dict[K, V] = {}
        self._counter = 0

    def request(self, key: K) -> int:
        self._counter += 1
        self._latest[key] = self._counter
        return self._counter

    def complete(self, key: K, token: int, result: V) -> bool:
        """Merge a response; returns False when it was stale and discarded."""
        if self._latest.get(key) != token:
            logger.info("stale_lookup_discarded", extra={
                "lookup": self.name,
                "key": str(key),
                "token": token,
                "latest_token": self._latest.get(key),
            })
            return False
        self._results[key] = result
        del self._latest[key]
        return True

    def is_pending(self, key: K) -> bool:
        return key in self._latest

    def get(self, key: K, default: V | None = None) -> V | None:
        return self._results.get(key, default)
