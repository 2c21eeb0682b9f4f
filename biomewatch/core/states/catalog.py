"""
Canonical biome classification table.

The table is built once at startup and injected into the components that need
it. Entries are frozen; the catalog exposes no mutators.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

UNKNOWN = "unknown"
NORMAL = "normal"


@dataclass(frozen=True)
class CanonicalState:
    """One classification entry with its display metadata."""
    type_id: str
    label: str
    spawn_chance: str
    duration: str
    color: str
    rarity: int  # 0 = common, higher = rarer
    multiplier: float = 1.0
    keywords: tuple[str, ...] = ()


class StateCatalog:
    """Immutable free-text -> canonical state lookup."""

    def __init__(self, entries: Iterable[CanonicalState]) -> None:
        self._entries: dict[str, CanonicalState] = {}
        for entry in entries:
            self._entries[entry.type_id] = entry
        if UNKNOWN not in self._entries:
            self._entries[UNKNOWN] = CanonicalState(
                type_id=UNKNOWN, label="Unknown", spawn_chance="?", duration="?",
                color="#757575", rarity=0,
            )

        self._labels: dict[str, str] = {
            e.label.lower(): e.type_id for e in self._entries.values()
        }

        # Longest keyword first so "dreamspace" is tested before any shorter
        # keyword it contains. sorted() is stable, so ties keep table order.
        keywords: list[tuple[str, str]] = []
        for entry in self._entries.values():
            if entry.type_id == UNKNOWN:
                continue
            seen = set()
            for kw in (entry.label.lower(), *[k.lower() for k in entry.keywords]):
                if kw and kw not in seen:
                    seen.add(kw)
                    keywords.append((kw, entry.type_id))
        self._keywords: tuple[tuple[str, str], ...] = tuple(
            sorted(keywords, key=lambda item: len(item[0]), reverse=True)
        )

    def classify(self, text: str) -> str:
        """Resolve free text to a type id, or ``UNKNOWN``."""
        lower = (text or "").strip().lower()
        if not lower:
            return UNKNOWN

        exact = self._labels.get(lower)
        if exact is not None:
            return exact

        for keyword, type_id in self._keywords:
            if keyword in lower:
                return type_id
        return UNKNOWN

    def get(self, type_id: str) -> CanonicalState:
        return self._entries.get(type_id) or self._entries[UNKNOWN]

    def entries(self) -> list[CanonicalState]:
        return list(self._entries.values())

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


DEFAULT_STATES: tuple[CanonicalState, ...] = (
    # Standard biomes
    CanonicalState(NORMAL, "Normal", "Default", "Permanent", "#7CB342", 0, 1.0,
                   ("normal", "default", "base")),
    CanonicalState("sandstorm", "Sandstorm", "1/3,000/sec", "~11 min", "#FFB74D", 3, 4.0,
                   ("sandstorm", "sand storm", "desert")),
    CanonicalState("hell", "Hell", "1/6,666/sec", "~11 min", "#F44336", 4, 6.0,
                   ("hell", "inferno", "lava")),
    CanonicalState("starfall", "Starfall", "1/7,500/sec", "Variable", "#7C4DFF", 5, 5.0,
                   ("starfall", "star fall", "falling stars")),
    CanonicalState("heaven", "Heaven", "Rare", "Variable", "#FFEB3B", 6, 2.0,
                   ("heaven", "heavenly", "divine")),
    CanonicalState("corruption", "Corruption", "1/9,000/sec", "~11 min", "#9C27B0", 5, 5.0,
                   ("corruption", "corrupt", "corrupted")),
    CanonicalState("null", "Null", "1/10,100/sec", "Variable", "#9E9E9E", 6, 1000.0,
                   ("null", "void", "undefined")),
    CanonicalState("glitched", "Glitched", "1/30,000 on change", "Variable", "#00E676", 8, 1.0,
                   ("glitched", "glitch", "error")),
    CanonicalState("dreamspace", "Dreamspace", "1/3,500,000/sec", "~3 min", "#FF69B4", 10, 1.0,
                   ("dreamspace", "dream space")),
    CanonicalState("cyberspace", "Cyberspace", "1/5,000 (controller)", "~12 min", "#00FFFF", 7, 2.0,
                   ("cyberspace", "cyber", "digital")),
    # Weather
    CanonicalState("windy", "Windy", "1/500/sec", "Variable", "#B0BEC5", 1, 3.0,
                   ("windy", "wind", "gusty")),
    CanonicalState("snowy", "Snowy", "1/750/sec", "Variable", "#E3F2FD", 2, 3.0,
                   ("snowy", "snow", "blizzard", "winter")),
    CanonicalState("rainy", "Rainy", "1/750/sec", "Variable", "#42A5F5", 2, 4.0,
                   ("rainy", "rain", "storm")),
    # Events
    CanonicalState("pumpkin_moon", "Pumpkin Moon", "Event", "Event", "#FF6F00", 7, 1.0,
                   ("pumpkin moon", "pumpkin", "halloween")),
    CanonicalState("graveyard", "Graveyard", "Event", "Event", "#37474F", 7, 1.0,
                   ("graveyard", "grave", "cemetery")),
    CanonicalState("blood_rain", "Blood Rain", "Event", "Event", "#B71C1C", 8, 1.0,
                   ("blood rain", "bloodrain", "blood")),
    CanonicalState("aurora", "Aurora", "Event", "Event", "#26C6DA", 7, 1.0,
                   ("aurora", "northern lights", "borealis")),
    CanonicalState(UNKNOWN, "Unknown", "?", "?", "#757575", 0, 1.0, ()),
)


def default_catalog() -> StateCatalog:
    return StateCatalog(DEFAULT_STATES)
