"""Pattern tables for the game client's log lines."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Literal, Optional

HitTier = Literal["exact", "relaxed", "regex"]

LOG_TIMESTAMP = re.compile(r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z)")
LOG_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class StatePattern:
    """Regex whose first group is the free-text biome name."""

    def __init__(self, name: str, regex: re.Pattern[str]) -> None:
        self.name = name
        self.regex = regex

    def text(self, line: str) -> Optional[str]:
        m = self.regex.search(line)
        if not m:
            return None
        value = m.group(1).strip()
        return value or None


class RpcStatePattern(StatePattern):
    """BloxstrapRPC rich presence payload; biome sits in the large image."""

    def text(self, line: str) -> Optional[str]:
        m = self.regex.search(line)
        if not m:
            return None
        try:
            payload = json.loads(m.group(1))
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        data = payload.get("data", payload)
        if not isinstance(data, dict):
            return None

        image = data.get("largeImage")
        if isinstance(image, dict):
            for key in ("hoverText", "key"):
                value = image.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        for key in ("biome", "currentBiome"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


# Tried in order on each line; the first pattern that matches decides the line.
STATE_PATTERNS: tuple[StatePattern, ...] = (
    StatePattern("image_hover", re.compile(r'"largeImage":\{"hoverText":"([^"]+)"')),
    RpcStatePattern("rpc_payload", re.compile(r"\[BloxstrapRPC\]\s*(\{.*\})", re.IGNORECASE)),
    StatePattern("biome_field", re.compile(r'"biome":\s*"([^"]+)"', re.IGNORECASE)),
    StatePattern("biome_label", re.compile(r"(?:Biome|biome|BIOME)[:\s]+([A-Z\s]+)")),
    StatePattern("changed_to", re.compile(r"(?:Changed to|changed to)\s+([A-Z\s]+)", re.IGNORECASE)),
    StatePattern("biome_changed", re.compile(r"BIOME_CHANGED\s+([A-Z\s]+)")),
)

AURA_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"state":"Equipped \\"([^"\\]+)\\""'),
    re.compile(r'"hoverText":"Aura:\s*([^"]+)"'),
    re.compile(r"""Equipped\s+['"]([^'"]+)['"]""", re.IGNORECASE),
)


@dataclass(frozen=True)
class TransientFamily:
    """Patterns for one kind of one-shot event.

    ``exact`` phrases are tested first, then ``relaxed`` groups (every
    fragment of a group must appear), then ``regexes``. Substring tests
    ignore case.
    """
    kind: str
    label: str
    exact: tuple[str, ...] = ()
    relaxed: tuple[tuple[str, ...], ...] = ()
    regexes: tuple[re.Pattern[str], ...] = field(default_factory=tuple)

    def match(self, line: str) -> Optional[tuple[HitTier, str]]:
        lower = line.lower()
        for phrase in self.exact:
            if phrase.lower() in lower:
                return "exact", phrase
        for group in self.relaxed:
            if all(part.lower() in lower for part in group):
                return "relaxed", " ".join(group)
        for rx in self.regexes:
            m = rx.search(line)
            if m:
                groups = [g for g in m.groups() if g]
                return "regex", ", ".join(groups) if groups else m.group(0)
        return None


_I = re.IGNORECASE

MERCHANT = TransientFamily(
    kind="merchant",
    label="Mari",
    exact=("[Merchant]: Mari has arrived on the island",),
    relaxed=(("[Merchant]:", "Mari", "has arrived"),),
    regexes=(
        re.compile(r"Mari.*has\s+arrived", _I),
        re.compile(r"Traveling\s+Merchant.*arrived", _I),
        re.compile(r'"hoverText":"Mari"', _I),
        re.compile(r"Merchant\s+(?:has\s+)?(?:spawned|appeared)", _I),
        re.compile(r"Mari.*spawn", _I),
    ),
)

JESTER = TransientFamily(
    kind="jester",
    label="Jester",
    exact=("[Merchant]: Jester has arrived on the island",),
    relaxed=(("[Merchant]:", "Jester", "has arrived"),),
    regexes=(
        re.compile(r"Jester.*has\s+arrived", _I),
        re.compile(r"Jester.*spawn", _I),
        re.compile(r'"hoverText":"Jester"', _I),
        re.compile(r"Jester\s+(?:has\s+)?(?:spawned|appeared)", _I),
    ),
)

EDEN = TransientFamily(
    kind="eden",
    label="Eden",
    regexes=(
        re.compile(r"The Devourer of the Void, <b>(.*?)</b> has appeared somewhere in <i>(.*?)</i>\.", _I),
    ),
)

DEFAULT_FAMILIES: tuple[TransientFamily, ...] = (MERCHANT, JESTER, EDEN)

# Identity
DISPLAY_NAME = re.compile(r'"displayName"\s*:\s*"([A-Za-z0-9_]{3,20})"')
PLAYER_JOINED = re.compile(r"Player\s+([A-Za-z0-9_]{3,20})\s+(?:joined|added|entered)", _I)
PLAYERS_REF = re.compile(r"Players\.([A-Za-z0-9_]{3,20})(?:[^A-Za-z0-9_]|$)")

USERNAME_FALLBACKS: tuple[re.Pattern[str], ...] = (
    re.compile(r'displayName[":\s]+([A-Za-z0-9_]{3,20})'),
    PLAYERS_REF,
    re.compile(r'"name":"([A-Za-z0-9_]{3,20})"'),
    re.compile(r"user:\s*([A-Za-z0-9_]{3,20})"),
    re.compile(r"Player\s+([A-Za-z0-9_]{3,20})\s+added"),
)

EXCLUDED_USERNAMES = frozenset(n.lower() for n in (
    "PlayerScripts", "PlayerGui", "PlayerModule", "Players", "LocalPlayer",
    "HumanoidRootPart", "Humanoid", "Character", "LocalScript", "Workspace",
    "Camera", "Sound", "Animation", "Animator", "Backpack", "StarterGui",
    "ReplicatedStorage", "ReplicatedFirst", "ServerStorage", "ServerScriptService",
    "Head", "Torso", "RightArm", "LeftArm", "RightLeg", "LeftLeg",
    "http", "https", "www", "com", "org", "net", "roblox", "html", "json",
    "CaptureStorage", "Capture", "Storage", "RobloxStorage", "LocalStorage",
    "SoundService", "TeleportService", "RunService", "UserInputService",
    "ContentProvider", "CoreGui", "CorePackages", "Packages", "JoinScript",
    "DataStoreService", "MarketplaceService", "PolicyService", "MemStorageService",
    "HttpService", "Stats", "Plugin", "Selection", "DataModel", "RenderStepped",
    "ScriptContext", "LogService", "NetworkClient", "NetworkServer", "Visit",
))

# Engine object names end like this; player names in a Players.X reference do not
ENGINE_SUFFIXES = ("Service", "Storage", "Script", "Module", "Client", "Server", "Provider", "Gui")
FALLBACK_ENGINE_SUFFIXES = ("Service", "Storage", "Script", "Module")
