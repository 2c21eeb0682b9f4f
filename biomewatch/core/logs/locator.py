"""
Maps game-client processes to the log files they write.

Log files carry no reliable process id, so assignment runs a chain of
heuristics, first success wins:

1. filename: the hex pid appears as a delimited token in the file name
2. content: the decimal pid appears in the first few KB of the file
3. temporal: file creation time is closest to the process start time

Files already owned by another instance are never candidates.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from biomewatch.core.monitor.types import MatchTier, TrackedInstance
from .reader import SafeLogReader

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogCandidate:
    path: str
    modified: float
    created: float


@dataclass(frozen=True)
class LogMatch:
    path: str
    tier: MatchTier
    detail: str = ""


def path_key(path: str) -> str:
    return os.path.normcase(os.path.abspath(path))


def _creation_time(st: os.stat_result) -> float:
    birth = getattr(st, "st_birthtime", None)
    return float(birth) if birth is not None else float(st.st_ctime)


def scan_log_dirs(dirs: Iterable[str], pattern: str = "*.log") -> list[LogCandidate]:
    """All log files in ``dirs``, newest-modified first."""
    found: list[LogCandidate] = []
    for d in dirs:
        if not d:
            continue
        base = Path(d)
        if not base.is_dir():
            continue
        try:
            entries = list(base.glob(pattern))
        except OSError as e:
            log.debug(f"Cannot list {base}: {e}")
            continue
        for p in entries:
            try:
                st = p.stat()
            except OSError:
                continue
            if not p.is_file():
                continue
            found.append(LogCandidate(path=str(p), modified=st.st_mtime, created=_creation_time(st)))
    found.sort(key=lambda c: c.modified, reverse=True)
    return found


def unassigned(candidates: list[LogCandidate], assigned: set[str]) -> list[LogCandidate]:
    return [c for c in candidates if path_key(c.path) not in assigned]


def _filename_regex(pid: int) -> re.Pattern[str]:
    hex_upper = f"{pid:X}"
    hex_lower = f"{pid:x}"
    alternatives = "|".join(sorted({re.escape(hex_upper), re.escape(hex_lower)}))
    # "_<hex>_" or "_<hex>." only; the dotted version prefix is not a pid token
    return re.compile(rf"_(?:{alternatives})(?=[_.])", re.IGNORECASE)


def _content_markers(pid: int) -> tuple[str, ...]:
    return (
        f"pid:{pid}",
        f"PID: {pid}",
        f",{pid:x},",
        f" {pid} ",
    )


class LogFileLocator:
    def __init__(
        self,
        reader: Optional[SafeLogReader] = None,
        filename_cap: int = 100,
        content_cap: int = 50,
        content_prefix_bytes: int = 32_768,
        temporal_window_seconds: float = 120.0,
    ) -> None:
        self._reader = reader or SafeLogReader()
        self._filename_cap = filename_cap
        self._content_cap = content_cap
        self._content_prefix_bytes = content_prefix_bytes
        self._window = temporal_window_seconds

    def locate(
        self,
        instance: TrackedInstance,
        candidates: list[LogCandidate],
        assigned: Optional[set[str]] = None,
    ) -> Optional[LogMatch]:
        """Pick the primary log for ``instance``.

        ``candidates`` must be ordered newest-modified first; ``assigned``
        holds ``path_key`` values owned by other instances.
        """
        pool = unassigned(candidates, assigned or set())
        if not pool:
            return None
        return (
            self.match_filename(instance.pid, pool)
            or self.match_content(instance.pid, pool)
            or self.match_temporal(instance.process_start_time, pool)
        )

    def locate_secondary(
        self,
        instance: TrackedInstance,
        candidates: list[LogCandidate],
        assigned: Optional[set[str]] = None,
    ) -> Optional[LogMatch]:
        """State log from a separate directory, by start time only."""
        return self.match_temporal(instance.process_start_time, unassigned(candidates, assigned or set()))

    def match_filename(self, pid: int, pool: list[LogCandidate]) -> Optional[LogMatch]:
        rx = _filename_regex(pid)
        for c in pool[:self._filename_cap]:
            # the extension dot counts as a trailing delimiter
            if rx.search(os.path.basename(c.path)):
                return LogMatch(path=c.path, tier="filename", detail=f"{pid:X}")
        return None

    def match_content(self, pid: int, pool: list[LogCandidate]) -> Optional[LogMatch]:
        markers = _content_markers(pid)
        for c in pool[:self._content_cap]:
            header = self._reader.read_prefix(c.path, self._content_prefix_bytes)
            if not header:
                continue
            for marker in markers:
                if marker in header:
                    return LogMatch(path=c.path, tier="content", detail=marker.strip())
        return None

    def match_temporal(self, start_time: Optional[float], pool: list[LogCandidate]) -> Optional[LogMatch]:
        best = self.nearest_by_start_time(start_time, pool, limit=1)
        if not best:
            return None
        c, diff = best[0]
        return LogMatch(path=c.path, tier="temporal", detail=f"{diff:.0f}s")

    def nearest_by_start_time(
        self,
        start_time: Optional[float],
        pool: list[LogCandidate],
        limit: int = 3,
    ) -> list[tuple[LogCandidate, float]]:
        if start_time is None:
            return []
        scored = [(c, abs(c.created - start_time)) for c in pool]
        in_window = [item for item in scored if item[1] <= self._window]
        # sort is stable: equal differences keep newest-first order
        in_window.sort(key=lambda item: item[1])
        return in_window[:limit]
