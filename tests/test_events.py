"""
Tests for the event channel.
"""

import threading

from biomewatch.core.events import DEFAULT_MAX_EVENTS, EngineEvent, EventChannel
from biomewatch.core.monitor.types import TrackedInstance


class TestEventChannel:
    """Queueing, dispatch and subscriber isolation."""

    def test_drain_in_publish_order(self, channel):
        channel.status("one")
        channel.error("two")
        events = channel.drain()

        assert [(e.type, e.message) for e in events] == [("STATUS", "one"), ("ERROR", "two")]
        assert channel.drain() == []

    def test_dispatcher_delivers(self, channel):
        got = []
        done = threading.Event()

        def on_event(evt):
            got.append(evt.message)
            if len(got) == 2:
                done.set()

        channel.subscribe(on_event)
        channel.start()
        channel.status("a")
        channel.status("b")
        assert done.wait(2)
        channel.stop()

        assert got == ["a", "b"]

    def test_failing_subscriber_does_not_block_others(self, channel):
        got = []

        def broken(evt):
            raise ValueError("subscriber bug")

        channel.subscribe(broken)
        channel.subscribe(lambda evt: got.append(evt.message))
        channel.start()
        channel.status("still delivered")
        channel.stop()

        assert got == ["still delivered"]

    def test_stop_flushes_pending(self):
        channel = EventChannel()
        got = []
        channel.subscribe(lambda evt: got.append(evt.message))
        channel.start()
        for i in range(20):
            channel.status(str(i))
        channel.stop()

        assert got == [str(i) for i in range(20)]

    def test_unsubscribe(self, channel):
        got = []
        cb = got.append
        channel.subscribe(cb)
        channel.unsubscribe(cb)
        channel.unsubscribe(cb)
        channel.start()
        channel.status("x")
        channel.stop()

        assert got == []

    def test_full_queue_drops(self):
        channel = EventChannel(maxsize=1)
        channel.status("kept")
        channel.status("dropped")
        assert [e.message for e in channel.drain()] == ["kept"]

    def test_default_channel_is_bounded(self):
        channel = EventChannel()
        for i in range(DEFAULT_MAX_EVENTS + 5):
            channel.status(str(i))
        events = channel.drain()

        assert len(events) == DEFAULT_MAX_EVENTS
        assert events[-1].message == str(DEFAULT_MAX_EVENTS - 1)


class TestEngineEvent:
    """Event payloads."""

    def test_to_dict(self):
        inst = TrackedInstance(pid=7, username="Alice", display_name="Alice")
        evt = EngineEvent(type="TRANSIENT_EVENT_FIRED", instance=inst, kind="merchant",
                          detail={"tier": "exact"})
        d = evt.to_dict()

        assert evt.pid == 7
        assert d["pid"] == 7
        assert d["instance"] == "Alice"
        assert d["state"] == "Normal"
        assert d["kind"] == "merchant"
        assert d["tier"] == "exact"

    def test_without_instance(self):
        evt = EngineEvent(type="STATUS", message="hi")
        assert evt.pid is None
        assert evt.to_dict()["instance"] is None
