from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

from biomewatch.core.states.catalog import NORMAL

EngineStatus = Literal["STOPPED", "RUNNING"]
MatchTier = Literal["filename", "content", "temporal"]

EPOCH_MIN = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class EngineConfig:
    executable_names: list[str]
    log_dirs: list[str]
    state_log_dir: Optional[str]
    poll_interval_ms: int
    error_backoff_ms: int
    filename_candidate_cap: int
    content_candidate_cap: int
    content_prefix_bytes: int
    temporal_window_seconds: int
    tail_lines: int
    identity_prefix_bytes: int
    transient_rearm_seconds: Optional[int]
    parse_workers: int


@dataclass(frozen=True)
class ProcessDescriptor:
    pid: int
    name: str
    start_time: Optional[float]  # epoch seconds


@dataclass(frozen=True)
class CurrentState:
    type_id: str
    label: str


@dataclass
class TransientFlag:
    triggered: bool = False
    triggered_at: Optional[datetime] = None


@dataclass
class TrackedInstance:
    """Live game client together with its resolved logs and extracted state."""
    pid: int
    process_name: str = ""
    display_name: str = ""
    process_start_time: Optional[float] = None

    primary_log_file: Optional[str] = None
    primary_log_cursor: int = 0
    primary_match: Optional[MatchTier] = None

    state_log_file: Optional[str] = None
    state_log_cursor: int = 0

    username: Optional[str] = None

    current_state: CurrentState = field(default_factory=lambda: CurrentState(NORMAL, "Normal"))
    state_changed_at: Optional[datetime] = None
    secondary_attribute: Optional[str] = None

    transient_flags: dict[str, TransientFlag] = field(default_factory=dict)
    last_processed_event_time: datetime = EPOCH_MIN

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = f"Instance {self.pid}"

    @classmethod
    def from_descriptor(cls, desc: ProcessDescriptor) -> "TrackedInstance":
        return cls(pid=desc.pid, process_name=desc.name, process_start_time=desc.start_time)

    @property
    def parse_log_file(self) -> Optional[str]:
        """Log scanned for state and event lines."""
        return self.state_log_file or self.primary_log_file

    def is_fired(self, kind: str) -> bool:
        flag = self.transient_flags.get(kind)
        return bool(flag and flag.triggered)

    def snapshot(self) -> "TrackedInstance":
        return copy.deepcopy(self)


@dataclass
class EngineState:
    status: EngineStatus = "STOPPED"
    cycles: int = 0
    last_cycle_ok: bool = True
    last_error: Optional[str] = None
