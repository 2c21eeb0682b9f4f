"""
Multi-instance detection engine.

One background thread runs a fixed-delay cycle:

    process refresh -> log assignment -> per-instance parse

Each phase is guarded on its own so a failure in one does not skip the rest,
and within the parse phase each instance is guarded on its own too. A cycle
with any failure waits ``error_backoff_ms`` before the next one.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Callable, Optional

from biomewatch.core.events import EngineEvent, EventChannel
from biomewatch.core.logs.locator import LogFileLocator, scan_log_dirs, unassigned
from biomewatch.core.logs.reader import SafeLogReader
from biomewatch.core.parsing.extractor import StateExtractor
from biomewatch.core.states.catalog import StateCatalog, default_catalog
from .instance_store import InstanceStore
from .process_registry import ProcessRegistry
from .types import EngineConfig, EngineState, TrackedInstance

log = logging.getLogger(__name__)


class DetectionEngine:
    """Background engine that tracks game clients and publishes EngineEvents."""

    def __init__(
        self,
        config: dict,
        catalog: Optional[StateCatalog] = None,
        channel: Optional[EventChannel] = None,
        registry: Optional[ProcessRegistry] = None,
        reader: Optional[SafeLogReader] = None,
        locator: Optional[LogFileLocator] = None,
        extractor: Optional[StateExtractor] = None,
        store: Optional[InstanceStore] = None,
        file_exists: Callable[[str], bool] = os.path.isfile,
    ) -> None:
        self._cfg = self._parse_config(config)
        self._catalog = catalog or default_catalog()
        self._channel = channel or EventChannel()
        self._registry = registry or ProcessRegistry(self._cfg.executable_names)
        self._reader = reader or SafeLogReader()
        self._locator = locator or LogFileLocator(
            reader=self._reader,
            filename_cap=self._cfg.filename_candidate_cap,
            content_cap=self._cfg.content_candidate_cap,
            content_prefix_bytes=self._cfg.content_prefix_bytes,
            temporal_window_seconds=self._cfg.temporal_window_seconds,
        )
        self._extractor = extractor or StateExtractor(self._catalog)
        self._store = store or InstanceStore()
        self._exists = file_exists

        self._state = EngineState()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self._waiting_for_log: set[int] = set()

    @staticmethod
    def _parse_config(config: dict) -> EngineConfig:
        """Parse config dict into EngineConfig."""
        return EngineConfig(
            executable_names=list(config.get("executable_names", ["RobloxPlayerBeta.exe", "Windows10Universal.exe"])),
            log_dirs=list(config.get("log_dirs", [])),
            state_log_dir=config.get("state_log_dir"),
            poll_interval_ms=config.get("poll_interval_ms", 2000),
            error_backoff_ms=config.get("error_backoff_ms", 5000),
            filename_candidate_cap=config.get("filename_candidate_cap", 100),
            content_candidate_cap=config.get("content_candidate_cap", 50),
            content_prefix_bytes=config.get("content_prefix_bytes", 32_768),
            temporal_window_seconds=config.get("temporal_window_seconds", 120),
            tail_lines=config.get("tail_lines", 2000),
            identity_prefix_bytes=config.get("identity_prefix_bytes", 2_097_152),
            transient_rearm_seconds=config.get("transient_rearm_seconds"),
            parse_workers=max(1, int(config.get("parse_workers", 1))),
        )

    @property
    def channel(self) -> EventChannel:
        return self._channel

    @property
    def catalog(self) -> StateCatalog:
        return self._catalog

    def instances(self) -> list[TrackedInstance]:
        return self._store.instances()

    def get_state(self) -> EngineState:
        with self._lock:
            return EngineState(
                status=self._state.status,
                cycles=self._state.cycles,
                last_cycle_ok=self._state.last_cycle_ok,
                last_error=self._state.last_error,
            )

    def start(self) -> None:
        with self._lock:
            if self._state.status == "RUNNING":
                return
            self._state.status = "RUNNING"

        self._stop_evt.clear()
        self._thread = threading.Thread(target=self._run, name="DetectionEngine", daemon=True)
        self._thread.start()
        self._status("Multi-instance detection started")

    def stop(self) -> None:
        """Stop scheduling cycles; an in-flight cycle runs to completion."""
        with self._lock:
            if self._state.status == "STOPPED":
                return
            self._state.status = "STOPPED"
        self._stop_evt.set()
        self._status("Detection stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _emit(self, evt: EngineEvent) -> None:
        self._channel.publish(evt)

    def _status(self, msg: str) -> None:
        log.info(msg)
        self._channel.status(msg)

    def _emit_error(self, msg: str) -> None:
        self._channel.error(msg)

    def _run(self) -> None:
        while not self._stop_evt.is_set():
            ok = self.run_cycle()
            delay_ms = self._cfg.poll_interval_ms if ok else self._cfg.error_backoff_ms
            self._stop_evt.wait(delay_ms / 1000.0)

    def run_cycle(self) -> bool:
        """Run one detection cycle. Returns False if any phase failed."""
        ok = True
        for name, phase in (
            ("refresh", self._refresh_instances),
            ("assignment", self._assign_logs),
            ("parse", self._parse_all),
        ):
            try:
                # a phase returns False when it already reported its own failures
                if phase() is False:
                    ok = False
            except Exception as e:
                ok = False
                log.exception(f"Detection {name} phase failed")
                self._emit_error(f"Detection error ({name}): {e}")
                with self._lock:
                    self._state.last_error = str(e)

        with self._lock:
            self._state.cycles += 1
            self._state.last_cycle_ok = ok
        return ok

    # Phase 1: processes

    def _refresh_instances(self) -> None:
        added, removed = self._registry.refresh()

        for pid in removed:
            inst = self._store.remove(pid)
            self._waiting_for_log.discard(pid)
            if inst is None:
                continue
            self._emit(EngineEvent(type="INSTANCE_REMOVED", instance=inst.snapshot()))
            self._status(f"Instance {inst.display_name} closed")

        for desc in added:
            inst = TrackedInstance.from_descriptor(desc)
            if not self._store.add(inst):
                continue
            self._emit(EngineEvent(type="INSTANCE_ADDED", instance=inst.snapshot()))
            self._status(f"Found new instance: PID {desc.pid}")

    # Phase 2: log files

    def _assign_logs(self) -> None:
        pids = self._store.pids()
        if not pids:
            return

        candidates = scan_log_dirs(self._cfg.log_dirs)
        state_candidates = scan_log_dirs([self._cfg.state_log_dir]) if self._cfg.state_log_dir else []

        for pid in pids:
            with self._store.instance_lock(pid):
                for path in self._store.clear_missing_logs(pid, self._exists):
                    log.info(f"Log {path} for PID {pid} disappeared, reassigning")

                inst = self._store.get(pid)
                if inst is None:
                    continue

                if inst.primary_log_file is None:
                    match = self._locator.locate(inst, candidates, self._store.assigned_log_paths(exclude_pid=pid))
                    if match and self._store.assign_primary(pid, match.path, match.tier):
                        self._waiting_for_log.discard(pid)
                        detail = f": {match.detail}" if match.tier == "temporal" else ""
                        self._status(f"Assigned log to PID {pid} ({match.tier} match{detail})")
                    elif pid not in self._waiting_for_log:
                        self._waiting_for_log.add(pid)
                        self._status(f"No log file found yet for PID {pid}, will retry")

                if inst.state_log_file is None and state_candidates:
                    match = self._locator.locate_secondary(
                        inst, state_candidates, self._store.assigned_log_paths(exclude_pid=pid))
                    if match and self._store.assign_state_log(pid, match.path):
                        log.info(f"State log for PID {pid}: {match.path} ({match.detail})")

    # Phase 3: parsing

    def _parse_all(self) -> bool:
        pids = self._store.pids()
        if self._cfg.parse_workers > 1 and len(pids) > 1:
            with ThreadPoolExecutor(max_workers=self._cfg.parse_workers, thread_name_prefix="parse") as pool:
                results = list(pool.map(self._parse_instance_guarded, pids))
        else:
            results = [self._parse_instance_guarded(pid) for pid in pids]
        return all(results)

    def _parse_instance_guarded(self, pid: int) -> bool:
        try:
            self._parse_instance(pid)
            return True
        except Exception as e:
            log.exception(f"Parsing PID {pid} failed")
            self._emit_error(f"Detection error (parse PID {pid}): {e}")
            with self._lock:
                self._state.last_error = str(e)
            return False

    def _parse_instance(self, pid: int) -> None:
        with self._store.instance_lock(pid):
            self._resolve_username(pid)
            self._parse_updates(pid)

    def _resolve_username(self, pid: int) -> None:
        inst = self._store.get(pid)
        if inst is None:
            return
        # Retry whenever the primary log was just (re)assigned
        if inst.username is not None and inst.primary_log_cursor > 0:
            return

        if inst.primary_log_file:
            content = self._reader.read_prefix(inst.primary_log_file, self._cfg.identity_prefix_bytes)
            if inst.parse_log_file != inst.primary_log_file and content:
                # primary is only scanned here, so its cursor marks the identity pass
                self._store.advance_cursor(pid, inst.primary_log_file, len(content.encode("utf-8")))
            name = self._extractor.extract_username(content)
            if name:
                if self._store.set_username(pid, name):
                    self._emit(EngineEvent(type="USERNAME_RESOLVED", instance=self._store.get(pid)))
                return

        if not self._cfg.state_log_dir or inst.process_start_time is None:
            return
        pool = scan_log_dirs([self._cfg.state_log_dir])
        owned = self._store.assigned_log_paths(exclude_pid=pid)
        for candidate, _ in self._locator.nearest_by_start_time(
                inst.process_start_time, unassigned(pool, owned), limit=3):
            content = self._reader.read_prefix(candidate.path, self._cfg.identity_prefix_bytes)
            name = self._extractor.extract_username(content)
            if not name:
                continue
            if inst.state_log_file is None:
                self._store.assign_state_log(pid, candidate.path)
            if self._store.set_username(pid, name):
                self._emit(EngineEvent(type="USERNAME_RESOLVED", instance=self._store.get(pid)))
                self._status(f"Found username {name} from log: {os.path.basename(candidate.path)}")
            return

    def _parse_updates(self, pid: int) -> None:
        if self._cfg.transient_rearm_seconds:
            rearmed = self._store.rearm_expired_flags(pid, timedelta(seconds=self._cfg.transient_rearm_seconds))
            if rearmed:
                log.debug(f"Re-armed {rearmed} for PID {pid}")

        inst = self._store.get(pid)
        if inst is None:
            return
        path = inst.parse_log_file
        if not path:
            return

        cursor = inst.state_log_cursor if inst.state_log_file else inst.primary_log_cursor
        size = self._reader.file_size(path)
        if size is None:
            return
        if size < cursor:
            log.info(f"{path} shrank, rescanning from the start")
            self._store.advance_cursor(pid, path, 0)
        elif size == cursor:
            return

        tail = self._reader.read_recent(path, self._cfg.tail_lines)
        if not tail.lines:
            return

        result = self._extractor.extract(inst, tail.lines)
        changes = self._store.apply_extraction(pid, result)
        self._store.advance_cursor(pid, path, tail.size)

        if not (changes.state_changed or changes.secondary_changed or changes.fired):
            return
        snap = self._store.get(pid)
        if snap is None:
            return

        if changes.state_changed:
            self._emit(EngineEvent(type="STATE_CHANGED", instance=snap, kind=snap.current_state.type_id))
            self._status(f"{snap.display_name}: biome is now {snap.current_state.label}")
        if changes.secondary_changed:
            self._emit(EngineEvent(type="SECONDARY_ATTRIBUTE_CHANGED", instance=snap,
                                   message=snap.secondary_attribute))
        for hit in changes.fired:
            self._emit(EngineEvent(
                type="TRANSIENT_EVENT_FIRED",
                instance=snap,
                kind=hit.kind,
                message=hit.detail,
                detail={"tier": hit.tier, "logged_at": hit.logged_at.isoformat()},
            ))
            self._status(f"{hit.label} detected ({hit.tier}): {snap.display_name}")
