from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from biomewatch.core.logs.locator import path_key
from biomewatch.core.parsing.extractor import ExtractionResult, TransientHit
from .types import MatchTier, TrackedInstance, TransientFlag

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppliedChanges:
    state_changed: bool = False
    secondary_changed: bool = False
    fired: list[TransientHit] = field(default_factory=list)


class InstanceStore:
    """Owns every TrackedInstance and is the only code that mutates one."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._instances: dict[int, TrackedInstance] = {}
        self._locks: dict[int, threading.RLock] = {}
        self._lock = threading.Lock()
        self._clock = clock

    # Membership

    def add(self, instance: TrackedInstance) -> bool:
        with self._lock:
            if instance.pid in self._instances:
                return False
            self._instances[instance.pid] = instance
            self._locks[instance.pid] = threading.RLock()
            return True

    def remove(self, pid: int) -> Optional[TrackedInstance]:
        with self._lock:
            self._locks.pop(pid, None)
            return self._instances.pop(pid, None)

    def get(self, pid: int) -> Optional[TrackedInstance]:
        with self._lock:
            inst = self._instances.get(pid)
        return inst.snapshot() if inst else None

    def pids(self) -> list[int]:
        with self._lock:
            return list(self._instances)

    def instances(self) -> list[TrackedInstance]:
        with self._lock:
            live = list(self._instances.values())
        return [i.snapshot() for i in live]

    def for_each(self, fn: Callable[[TrackedInstance], None]) -> None:
        """Call ``fn`` with a snapshot of every instance, each under its own lock."""
        for pid in self.pids():
            with self.instance_lock(pid):
                inst = self.get(pid)
                if inst is not None:
                    fn(inst)

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def __contains__(self, pid: object) -> bool:
        with self._lock:
            return pid in self._instances

    @contextmanager
    def instance_lock(self, pid: int) -> Iterator[None]:
        with self._lock:
            lock = self._locks.get(pid)
        if lock is None:
            yield
            return
        with lock:
            yield

    def _live(self, pid: int) -> Optional[TrackedInstance]:
        with self._lock:
            return self._instances.get(pid)

    # Log assignment

    def assigned_log_paths(self, exclude_pid: Optional[int] = None) -> set[str]:
        with self._lock:
            return self._owned_paths(exclude_pid)

    def _owned_paths(self, exclude_pid: Optional[int]) -> set[str]:
        # caller holds self._lock
        owned: set[str] = set()
        for pid, inst in self._instances.items():
            if pid == exclude_pid:
                continue
            for path in (inst.primary_log_file, inst.state_log_file):
                if path:
                    owned.add(path_key(path))
        return owned

    def assign_primary(self, pid: int, path: str, tier: MatchTier) -> bool:
        # ownership check and write happen under the store lock so two
        # instances can never claim the same file
        with self.instance_lock(pid), self._lock:
            inst = self._instances.get(pid)
            if inst is None:
                return False
            if path_key(path) in self._owned_paths(exclude_pid=pid):
                log.warning(f"Refusing to assign {path} to PID {pid}: owned by another instance")
                return False
            inst.primary_log_file = path
            inst.primary_log_cursor = 0
            inst.primary_match = tier
            return True

    def assign_state_log(self, pid: int, path: str) -> bool:
        with self.instance_lock(pid), self._lock:
            inst = self._instances.get(pid)
            if inst is None:
                return False
            if path_key(path) in self._owned_paths(exclude_pid=pid):
                return False
            inst.state_log_file = path
            inst.state_log_cursor = 0
            return True

    def clear_missing_logs(self, pid: int, exists: Callable[[str], bool]) -> list[str]:
        """Drop log assignments whose file is gone; returns the dropped paths."""
        dropped: list[str] = []
        with self.instance_lock(pid):
            inst = self._live(pid)
            if inst is None:
                return dropped
            if inst.primary_log_file and not exists(inst.primary_log_file):
                dropped.append(inst.primary_log_file)
                inst.primary_log_file = None
                inst.primary_log_cursor = 0
                inst.primary_match = None
            if inst.state_log_file and not exists(inst.state_log_file):
                dropped.append(inst.state_log_file)
                inst.state_log_file = None
                inst.state_log_cursor = 0
        return dropped

    def advance_cursor(self, pid: int, path: str, cursor: int) -> None:
        with self.instance_lock(pid):
            inst = self._live(pid)
            if inst is None:
                return
            if inst.state_log_file == path:
                inst.state_log_cursor = cursor
            if inst.primary_log_file == path:
                inst.primary_log_cursor = cursor

    # Extracted state

    def set_username(self, pid: int, username: str) -> bool:
        """Returns True when the name is new for this instance."""
        with self.instance_lock(pid):
            inst = self._live(pid)
            if inst is None or inst.username == username:
                return False
            inst.username = username
            inst.display_name = username
            return True

    def apply_extraction(self, pid: int, result: ExtractionResult) -> AppliedChanges:
        changes = AppliedChanges()
        with self.instance_lock(pid):
            inst = self._live(pid)
            if inst is None:
                return changes
            now = self._clock()

            if result.new_state is not None and result.new_state != inst.current_state:
                inst.current_state = result.new_state
                inst.state_changed_at = now
                changes.state_changed = True
                if result.flags_reset:
                    inst.transient_flags.clear()

            if (result.new_secondary_attribute is not None
                    and result.new_secondary_attribute != inst.secondary_attribute):
                inst.secondary_attribute = result.new_secondary_attribute
                changes.secondary_changed = True

            for hit in result.transient_events:
                if inst.is_fired(hit.kind):
                    continue
                inst.transient_flags[hit.kind] = TransientFlag(triggered=True, triggered_at=now)
                changes.fired.append(hit)

            if result.watermark is not None and result.watermark > inst.last_processed_event_time:
                inst.last_processed_event_time = result.watermark
        return changes

    def rearm_expired_flags(self, pid: int, max_age: timedelta) -> list[str]:
        """Re-arm flags that fired longer than ``max_age`` ago."""
        rearmed: list[str] = []
        with self.instance_lock(pid):
            inst = self._live(pid)
            if inst is None:
                return rearmed
            now = self._clock()
            for kind, flag in inst.transient_flags.items():
                if flag.triggered and flag.triggered_at is not None and now - flag.triggered_at >= max_age:
                    flag.triggered = False
                    rearmed.append(kind)
        return rearmed
