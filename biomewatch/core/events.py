"""
Typed engine events and the channel that carries them to consumers.

The engine only publishes. Subscribers run on the channel's dispatcher
thread, so a slow or failing subscriber never stalls a detection cycle.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional

from biomewatch.core.monitor.types import TrackedInstance

log = logging.getLogger(__name__)

EventType = Literal[
    "INSTANCE_ADDED",
    "INSTANCE_REMOVED",
    "STATE_CHANGED",
    "SECONDARY_ATTRIBUTE_CHANGED",
    "USERNAME_RESOLVED",
    "TRANSIENT_EVENT_FIRED",
    "STATUS",
    "ERROR",
]


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime())


@dataclass(frozen=True)
class EngineEvent:
    type: EventType
    at: str = field(default_factory=_now_iso)
    instance: Optional[TrackedInstance] = None  # snapshot, safe to keep
    kind: Optional[str] = None
    message: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def pid(self) -> Optional[int]:
        return self.instance.pid if self.instance else None

    def to_dict(self) -> dict:
        inst = self.instance
        return {
            "type": self.type,
            "at": self.at,
            "pid": inst.pid if inst else None,
            "instance": inst.display_name if inst else None,
            "state": inst.current_state.label if inst else None,
            "kind": self.kind,
            "message": self.message,
            **self.detail,
        }


Subscriber = Callable[[EngineEvent], None]


# Events kept while nobody starts the dispatcher or drains the queue
DEFAULT_MAX_EVENTS = 10_000


class EventChannel:
    """Bounded event queue.

    Consumers either ``start()`` the dispatcher thread or call ``drain()``
    periodically. Once ``maxsize`` events are pending, new ones are dropped
    with a warning.
    """

    def __init__(self, maxsize: int = DEFAULT_MAX_EVENTS) -> None:
        self._queue: "queue.Queue[EngineEvent]" = queue.Queue(maxsize=maxsize)
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()

    def subscribe(self, cb: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(cb)

    def unsubscribe(self, cb: Subscriber) -> None:
        with self._lock:
            if cb in self._subscribers:
                self._subscribers.remove(cb)

    def publish(self, evt: EngineEvent) -> None:
        try:
            self._queue.put_nowait(evt)
        except queue.Full:
            log.warning(f"Event channel full, dropped {evt.type}")

    def status(self, message: str) -> None:
        self.publish(EngineEvent(type="STATUS", message=message))

    def error(self, message: str) -> None:
        self.publish(EngineEvent(type="ERROR", message=message))

    def drain(self) -> list[EngineEvent]:
        """Pop everything queued so far without dispatching it."""
        out: list[EngineEvent] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_evt.clear()
        self._thread = threading.Thread(target=self._dispatch_loop, name="EventChannel", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_evt.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _deliver(self, evt: EngineEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for cb in subscribers:
            try:
                cb(evt)
            except Exception:
                log.exception(f"Subscriber failed on {evt.type}")

    def _dispatch_loop(self) -> None:
        while not self._stop_evt.is_set():
            try:
                evt = self._queue.get(timeout=0.25)
            except queue.Empty:
                continue
            self._deliver(evt)
        # flush what the engine published before stopping
        for evt in self.drain():
            self._deliver(evt)
