"""
Diagnose log assignment for running game clients.
Run this to see which heuristic tier would claim a log file for each process.

Expected behavior:
- Lists every matching process with its start time
- Shows the tier (filename / content / temporal) that matched, or "none"
- Files claimed by one process are not offered to the next
"""

import sys
import os
import time
import logging

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from biomewatch.shared.store import ConfigStore
from biomewatch.core.logs.locator import LogFileLocator, path_key, scan_log_dirs
from biomewatch.core.monitor.process_registry import ProcessRegistry
from biomewatch.core.monitor.types import TrackedInstance

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)

def main():
    print("=" * 60)
    print("Log Assignment Diagnostics")
    print("=" * 60)
    print()

    cfg = ConfigStore().load()
    registry = ProcessRegistry(cfg.executable_names)
    added, _ = registry.refresh()

    if not added:
        print(f"No running processes named {', '.join(cfg.executable_names)}")
        return 1

    candidates = scan_log_dirs(cfg.log_dirs)
    print(f"{len(candidates)} log candidates in:")
    for d in cfg.log_dirs:
        print(f"   {d}")
    print("-" * 60)

    locator = LogFileLocator(
        filename_cap=cfg.filename_candidate_cap,
        content_cap=cfg.content_candidate_cap,
        content_prefix_bytes=cfg.content_prefix_bytes,
        temporal_window_seconds=cfg.temporal_window_seconds,
    )
    assigned: set[str] = set()
    for desc in added:
        inst = TrackedInstance.from_descriptor(desc)
        started = time.strftime("%H:%M:%S", time.localtime(desc.start_time)) if desc.start_time else "?"
        match = locator.locate(inst, candidates, assigned)
        print(f"PID {desc.pid:>6} (0x{desc.pid:X}) {desc.name} started {started}")
        if match is None:
            print("   none")
            continue
        assigned.add(path_key(match.path))
        print(f"   {match.tier:<9} {os.path.basename(match.path)} {match.detail}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
