"""
State extraction from newest-first log lines.

Biome and aura are "latest value wins" scans that stop at the first resolved
line. Transient events walk back only until the watermark: every line at or
below it was already inspected by an earlier cycle, so a re-scan of the
same file never fires the same event twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from biomewatch.core.monitor.types import CurrentState, TrackedInstance
from biomewatch.core.states.catalog import UNKNOWN, StateCatalog
from . import patterns as p

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransientHit:
    kind: str
    label: str
    tier: p.HitTier
    detail: str
    logged_at: datetime
    line: str


@dataclass
class ExtractionResult:
    new_state: Optional[CurrentState] = None
    new_secondary_attribute: Optional[str] = None
    transient_events: list[TransientHit] = field(default_factory=list)
    watermark: Optional[datetime] = None
    flags_reset: bool = False


def parse_log_timestamp(line: str) -> Optional[datetime]:
    m = p.LOG_TIMESTAMP.match(line)
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1), p.LOG_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class StateExtractor:
    def __init__(
        self,
        catalog: StateCatalog,
        families: Iterable[p.TransientFamily] = p.DEFAULT_FAMILIES,
        reset_on_state_change: bool = True,
    ) -> None:
        self._catalog = catalog
        self._families = tuple(families)
        self._reset_on_state_change = reset_on_state_change

    def extract(self, instance: TrackedInstance, lines: list[str]) -> ExtractionResult:
        """Compute what changed for ``instance``; the instance is not touched."""
        new_state = self.extract_state(lines, instance.current_state)
        new_aura = self.extract_secondary(lines, instance.secondary_attribute)

        reset = new_state is not None and self._reset_on_state_change
        armed = [f.kind for f in self._families if reset or not instance.is_fired(f.kind)]
        hits, watermark = self.scan_transients(lines, instance.last_processed_event_time, armed)

        return ExtractionResult(
            new_state=new_state,
            new_secondary_attribute=new_aura,
            transient_events=hits,
            watermark=watermark,
            flags_reset=reset,
        )

    def match_state(self, line: str) -> Optional[str]:
        """Type id named by ``line``, ``UNKNOWN`` if unresolvable, None if no pattern hit."""
        for pattern in p.STATE_PATTERNS:
            text = pattern.text(line)
            if text is not None:
                return self._catalog.classify(text)
        return None

    def extract_state(self, lines: list[str], current: CurrentState) -> Optional[CurrentState]:
        for line in lines:
            type_id = self.match_state(line)
            if type_id is None or type_id == UNKNOWN:
                continue
            label = self._catalog.get(type_id).label
            if label == current.label:
                return None
            return CurrentState(type_id=type_id, label=label)
        return None

    def extract_secondary(self, lines: list[str], current: Optional[str]) -> Optional[str]:
        for line in lines:
            for rx in p.AURA_PATTERNS:
                m = rx.search(line)
                if m:
                    aura = m.group(1).replace("_", ": ")
                    return aura if aura != current else None
        return None

    def scan_transients(
        self,
        lines: list[str],
        watermark: datetime,
        armed: Iterable[str],
    ) -> tuple[list[TransientHit], datetime]:
        pending = [f for f in self._families if f.kind in set(armed)]
        hits: list[TransientHit] = []
        max_seen = watermark

        for line in lines:
            logged_at = parse_log_timestamp(line)
            if logged_at is None:
                continue
            if logged_at <= watermark:
                # everything older was handled by an earlier scan
                break
            if logged_at > max_seen:
                max_seen = logged_at
            if not pending:
                continue

            for family in list(pending):
                match = family.match(line)
                if match is None:
                    continue
                tier, detail = match
                hits.append(TransientHit(
                    kind=family.kind, label=family.label, tier=tier,
                    detail=detail, logged_at=logged_at, line=line,
                ))
                pending.remove(family)

        return hits, max_seen

    def extract_username(self, content: str) -> Optional[str]:
        """Best guess at the local player's name from a log prefix."""
        if not content:
            return None

        m = p.DISPLAY_NAME.search(content)
        if m and _plausible(m.group(1)):
            return m.group(1)

        m = p.PLAYER_JOINED.search(content)
        if m and _plausible(m.group(1)):
            return m.group(1)

        for m in p.PLAYERS_REF.finditer(content):
            name = m.group(1)
            if not _plausible(name) or name.endswith(p.ENGINE_SUFFIXES):
                continue
            return name

        fallback_numeric: Optional[str] = None
        for rx in p.USERNAME_FALLBACKS:
            for m in rx.finditer(content):
                name = m.group(1)
                if name.lower() in p.EXCLUDED_USERNAMES or name.endswith(p.FALLBACK_ENGINE_SUFFIXES):
                    continue
                # numeric tokens are usually user ids; keep one as a last resort
                if not name.isdigit():
                    return name
                if fallback_numeric is None:
                    fallback_numeric = name
        return fallback_numeric


def _plausible(name: str) -> bool:
    return name.lower() not in p.EXCLUDED_USERNAMES and not name.isdigit()
