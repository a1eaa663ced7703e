"""Tests for the progress event broadcaster."""

import asyncio

import pytest

from lualink.agent.broadcaster import EventBroadcaster, Subscriber
from lualink.agent.events import EventJournal, EventType, ProgressEvent


class BrokenSubscriber(Subscriber):
    """Subscriber whose delivery always fails."""

    def deliver(self, event):
        raise RuntimeError("stream gone")


class TestEventBroadcaster:
    """Test fan-out semantics."""

    def test_publish_reaches_every_subscriber(self):
        broadcaster = EventBroadcaster()
        first = broadcaster.subscribe("a")
        second = broadcaster.subscribe("b")

        broadcaster.publish(ProgressEvent.status("hello"))

        assert first.get_nowait().message == "hello"
        assert second.get_nowait().message == "hello"

    def test_no_replay_for_late_subscribers(self):
        broadcaster = EventBroadcaster()
        broadcaster.publish(ProgressEvent.status("before"))
        late = broadcaster.subscribe()
        broadcaster.publish(ProgressEvent.status("after"))

        assert late.pending() == 1
        assert late.get_nowait().message == "after"

    def test_unsubscribe_stops_delivery(self):
        broadcaster = EventBroadcaster()
        sub = broadcaster.subscribe()
        broadcaster.unsubscribe(sub)
        broadcaster.publish(ProgressEvent.status("ignored"))

        assert sub.pending() == 0
        assert broadcaster.subscriber_count == 0

    def test_unsubscribe_twice_is_harmless(self):
        broadcaster = EventBroadcaster()
        sub = broadcaster.subscribe()
        broadcaster.unsubscribe(sub)
        broadcaster.unsubscribe(sub)
        assert broadcaster.subscriber_count == 0

    def test_failing_subscriber_does_not_affect_others(self):
        broadcaster = EventBroadcaster()
        broken = BrokenSubscriber("broken")
        broadcaster._subscribers.append(broken)
        healthy = broadcaster.subscribe("healthy")

        broadcaster.publish(ProgressEvent.error("boom"))

        assert healthy.get_nowait().type == EventType.ERROR

    def test_publish_order_preserved(self):
        broadcaster = EventBroadcaster()
        sub = broadcaster.subscribe()
        for i in range(5):
            broadcaster.publish(ProgressEvent.status(str(i)))

        assert [sub.get_nowait().message for _ in range(5)] == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_get_times_out(self):
        sub = EventBroadcaster().subscribe()
        with pytest.raises(asyncio.TimeoutError):
            await sub.get(timeout=0.01)


class TestProgressEvent:
    """Test event serialization."""

    def test_status_dict(self):
        assert ProgressEvent.status("hi").to_dict() == {"type": "status", "message": "hi"}

    def test_data_dict(self):
        event = ProgressEvent.received(b"OK\n")
        assert event.to_dict() == {
            "type": "data",
            "message": "OK\n",
            "hex": "4f4b0a",
            "length": 3,
        }
        assert event.data == b"OK\n"


class TestEventJournal:
    """Test journal recording and publishing."""

    def test_journal_records_and_publishes(self):
        broadcaster = EventBroadcaster()
        sub = broadcaster.subscribe()
        journal = EventJournal(broadcaster)

        journal.status("one")
        journal.note("only in log")
        journal.error("two")

        assert [e.message for e in journal.events] == ["one", "two"]
        assert journal.logs == ["one", "only in log", "two"]
        assert [sub.get_nowait().message for _ in range(2)] == ["one", "two"]

    def test_journal_without_broadcaster(self):
        journal = EventJournal()
        journal.success("done")
        assert journal.events[0].type == EventType.SUCCESS
