"""
pricing_services.events -- typed in-process event bus for draft changes.

Responsibility:
    Lets components that own a mutation announce it to interested parties
    (wizard controller, refresh hooks) through explicit subscriptions on
    typed topics.

Invariants enforced:
    - Subscribers are called synchronously, in subscription order.
    - An exception raised by a subscriber propagates to the publisher and
      stops delivery to later subscribers.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from pricing_kernel.logging_config import get_logger

logger = get_logger("services.events")


class DraftTopic(str, Enum):
    METHOD_CHANGED = "method_changed"
    ITEMS_CHANGED = "items_changed"
    MILESTONES_CHANGED = "milestones_changed"
    HEADER_CHANGED = "header_changed"
    SUBMITTED = "submitted"
    SUBMISSION_FAILED = "submission_failed"
    ENTITY_CREATED = "entity_created"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class DraftEvent:
    topic: DraftTopic
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


Subscriber = Callable[[DraftEvent], None]


class EventBus:
    """Synchronous publish/subscribe keyed by DraftTopic."""

    def __init__(self) -> None:
        self._subscribers: dict[DraftTopic, list[Subscriber]] = defaultdict(list)

    def subscribe(self, topic: DraftTopic, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        topic = DraftTopic(topic)
        self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[topic]:
                self._subscribers[topic].remove(callback)

        return unsubscribe

    def publish(self, topic: DraftTopic, **payload: Any) -> DraftEvent:
        event = DraftEvent(topic=DraftTopic(topic), payload=payload)
        logger.debug("draft_event_published", extra={
            "topic": event.topic.value,
            "subscriber_count": len(self._subscribers[event.topic]),
        })
        for callback in list(self._subscribers[event.topic]):
            callback(event)
        return event

    def subscriber_count(self, topic: DraftTopic) -> int:
        return len(self._subscribers[DraftTopic(topic)])
