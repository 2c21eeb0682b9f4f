from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field

from biomewatch.shared.paths import default_log_dirs, default_state_log_dir


class AppConfig(BaseModel):
    executable_names: List[str] = Field(default_factory=lambda: [
        "RobloxPlayerBeta.exe",
        "Windows10Universal.exe",
    ])
    log_dirs: List[str] = Field(default_factory=default_log_dirs)
    state_log_dir: Optional[str] = Field(default_factory=default_state_log_dir)
    poll_interval_ms: int = 2000
    error_backoff_ms: int = 5000
    filename_candidate_cap: int = 100
    content_candidate_cap: int = 50
    content_prefix_bytes: int = 32_768
    temporal_window_seconds: int = 120
    tail_lines: int = 2000
    identity_prefix_bytes: int = 2_097_152
    transient_rearm_seconds: Optional[int] = None
    parse_workers: int = 1

    def to_engine_config(self) -> dict:
        return {
            "executable_names": list(self.executable_names),
            "log_dirs": list(self.log_dirs),
            "state_log_dir": self.state_log_dir,
            "poll_interval_ms": self.poll_interval_ms,
            "error_backoff_ms": self.error_backoff_ms,
            "filename_candidate_cap": self.filename_candidate_cap,
            "content_candidate_cap": self.content_candidate_cap,
            "content_prefix_bytes": self.content_prefix_bytes,
            "temporal_window_seconds": self.temporal_window_seconds,
            "tail_lines": self.tail_lines,
            "identity_prefix_bytes": self.identity_prefix_bytes,
            "transient_rearm_seconds": self.transient_rearm_seconds,
            "parse_workers": self.parse_workers,
        }
