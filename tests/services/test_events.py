"""Tests for the draft event bus."""

import pytest

from pricing_services.events import DraftEvent, DraftTopic, EventBus


class TestEventBus:
    def test_delivery_in_subscription_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe(DraftTopic.ITEMS_CHANGED, lambda e: seen.append(("first", e.payload["index"])))
        bus.subscribe(DraftTopic.ITEMS_CHANGED, lambda e: seen.append(("second", e.payload["index"])))
        bus.publish(DraftTopic.ITEMS_CHANGED, index=3)
        assert seen == [("first", 3), ("second", 3)]

    def test_topics_are_isolated(self):
        bus = EventBus()
        seen = []
        bus.subscribe(DraftTopic.SUBMITTED, seen.append)
        bus.publish(DraftTopic.DISCARDED)
        assert seen == []

    def test_string_topics_accepted(self):
        bus = EventBus()
        seen = []
        bus.subscribe("method_changed", seen.append)
        event = bus.publish("method_changed", method="HOURLY")
        assert seen == [event]
        assert event.topic is DraftTopic.METHOD_CHANGED

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(DraftTopic.SUBMITTED, seen.append)
        assert bus.subscriber_count(DraftTopic.SUBMITTED) == 1
        unsubscribe()
        unsubscribe()
        bus.publish(DraftTopic.SUBMITTED)
        assert seen == []
        assert bus.subscriber_count(DraftTopic.SUBMITTED) == 0

    def test_subscriber_error_propagates(self):
        bus = EventBus()
        later = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(DraftTopic.HEADER_CHANGED, broken)
        bus.subscribe(DraftTopic.HEADER_CHANGED, later.append)
        with pytest.raises(RuntimeError, match="boom"):
            bus.publish(DraftTopic.HEADER_CHANGED)
        assert later == []

    def test_payload_is_read_only(self):
        event = DraftEvent(DraftTopic.SUBMITTED, {"proposal_id": "p1"})
        with pytest.raises(TypeError):
            event.payload["proposal_id"] = "p2"
