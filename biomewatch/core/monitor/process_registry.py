from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional

import psutil

from .types import ProcessDescriptor

log = logging.getLogger(__name__)

ProcessIter = Callable[..., Iterable[psutil.Process]]


def _normalize_exe(name: str) -> str:
    n = name.strip().lower()
    if n.endswith(".exe"):
        n = n[:-4]
    return n


class ProcessRegistry:
    """Tracks live game-client processes and reports add/remove deltas."""

    def __init__(self, executable_names: Iterable[str], process_iter: Optional[ProcessIter] = None) -> None:
        self._names = {_normalize_exe(n) for n in executable_names if n.strip()}
        self._process_iter = process_iter or psutil.process_iter
        self._known: dict[int, ProcessDescriptor] = {}
        self._lock = threading.Lock()

    def _enumerate(self) -> dict[int, ProcessDescriptor]:
        found: dict[int, ProcessDescriptor] = {}
        for p in self._process_iter(attrs=["pid", "name", "create_time"]):
            try:
                info = p.info
                n = info.get("name")
                if not n or _normalize_exe(str(n)) not in self._names:
                    continue
                pid = int(info["pid"])
                found[pid] = ProcessDescriptor(pid=pid, name=str(n), start_time=info.get("create_time"))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return found

    def refresh(self) -> tuple[list[ProcessDescriptor], list[int]]:
        """Diff the live process list against the last refresh.

        A pid that now belongs to a process with a different create time is
        reported both as removed and as added.
        """
        try:
            current = self._enumerate()
        except (psutil.Error, OSError):
            log.exception("Process enumeration failed, keeping previous set")
            return [], []

        with self._lock:
            removed: list[int] = []
            added: list[ProcessDescriptor] = []
            for pid, old in self._known.items():
                new = current.get(pid)
                if new is None:
                    removed.append(pid)
                elif (old.start_time is not None and new.start_time is not None
                      and old.start_time != new.start_time):
                    log.info(f"PID {pid} was reused by a new process")
                    removed.append(pid)
                    added.append(new)
            for pid, desc in current.items():
                if pid not in self._known:
                    added.append(desc)
            self._known = current
        return added, removed

    def live_pids(self) -> set[int]:
        with self._lock:
            return set(self._known)
