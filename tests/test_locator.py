"""
Tests for process -> log file assignment.

Tier order: filename (hex pid token), content (decimal pid in header),
temporal (creation time near process start). Files owned by another
instance never take part.
"""

import os
import time

import pytest

from biomewatch.core.logs.locator import (
    LogCandidate,
    LogFileLocator,
    path_key,
    scan_log_dirs,
)
from biomewatch.core.monitor.types import TrackedInstance

from tests.factories import write_log

PID = 24156  # 0x5E5C


@pytest.fixture
def locator(reader):
    return LogFileLocator(reader=reader)


def candidates_for(*paths, created=None):
    now = time.time()
    out = []
    for i, p in enumerate(paths):
        out.append(LogCandidate(path=str(p), modified=now - i, created=created if created is not None else now - i))
    return out


class TestScanLogDirs:
    """Candidate listing."""

    def test_newest_modified_first(self, tmp_path):
        old = write_log(tmp_path / "old.log", ["a"])
        new = write_log(tmp_path / "new.log", ["b"])
        os.utime(old, (1_000_000, 1_000_000))
        os.utime(new, (2_000_000, 2_000_000))

        found = scan_log_dirs([str(tmp_path)])
        assert [os.path.basename(c.path) for c in found] == ["new.log", "old.log"]

    def test_merges_dirs_and_skips_missing(self, tmp_path):
        write_log(tmp_path / "a" / "one.log", ["a"])
        write_log(tmp_path / "b" / "two.log", ["b"])
        (tmp_path / "b" / "notes.txt").write_text("x")

        found = scan_log_dirs([str(tmp_path / "a"), str(tmp_path / "b"), str(tmp_path / "missing"), ""])
        assert sorted(os.path.basename(c.path) for c in found) == ["one.log", "two.log"]


class TestFilenameTier:
    """Hex pid as a delimited token in the file name."""

    def test_hex_pid_in_name(self, tmp_path, locator):
        target = write_log(tmp_path / "Player_5E5C_2024.log", ["x"])
        other = write_log(tmp_path / "Player_1234_2024.log", ["x"])
        inst = TrackedInstance(pid=PID)

        match = locator.locate(inst, candidates_for(other, target))
        assert match.path == str(target)
        assert match.tier == "filename"

    def test_lowercase_hex_followed_by_extension(self, tmp_path, locator):
        target = write_log(tmp_path / "0.1_Player_5e5c.log", ["x"])
        match = locator.locate(TrackedInstance(pid=PID), candidates_for(target))
        assert match.tier == "filename"

    def test_undelimited_hex_does_not_match(self, tmp_path, locator):
        f = write_log(tmp_path / "Player_5E5C1_2024.log", ["x"])
        g = write_log(tmp_path / "Player_A5E5C_2024.log", ["x"])
        assert locator.match_filename(PID, candidates_for(f, g)) is None

    def test_version_prefix_is_not_a_pid(self, locator):
        pool = [LogCandidate("/l/0.600.0.6000833_20241126T170514Z_Player_B0FC1_last.log", modified=1, created=1)]
        assert locator.match_filename(0x600, pool) is None
        assert locator.match_filename(0xB0FC1, pool).detail == "B0FC1"

    def test_token_needs_underscore_before(self, locator):
        pool = [LogCandidate("/l/Player-5E5C-2024.log", modified=1, created=1)]
        assert locator.match_filename(PID, pool) is None

    def test_cap_limits_candidates(self, tmp_path, reader):
        files = [write_log(tmp_path / f"other_{i}.log", ["x"]) for i in range(3)]
        target = write_log(tmp_path / "Player_5E5C_.log", ["x"])
        loc = LogFileLocator(reader=reader, filename_cap=3)

        assert loc.match_filename(PID, candidates_for(*files, target)) is None


class TestContentTier:
    """Decimal pid in the file header."""

    @pytest.mark.parametrize("header", [
        f"started pid:{PID} ok",
        f"Process PID: {PID}",
        f"x,{PID:x},y",
        f"launch {PID} done",
    ])
    def test_markers(self, tmp_path, locator, header):
        target = write_log(tmp_path / "client_log.log", [header])
        match = locator.locate(TrackedInstance(pid=PID), candidates_for(target))
        assert match.tier == "content"
        assert match.path == str(target)

    def test_marker_beyond_prefix_is_ignored(self, tmp_path, reader):
        target = write_log(tmp_path / "client.log", ["x" * 200, f"pid:{PID}"])
        loc = LogFileLocator(reader=reader, content_prefix_bytes=100)
        assert loc.match_content(PID, candidates_for(target)) is None

    def test_unreadable_candidate_skipped(self, tmp_path, locator):
        target = write_log(tmp_path / "client.log", [f"pid:{PID}"])
        pool = candidates_for(tmp_path / "gone.log", target)
        assert locator.match_content(PID, pool).path == str(target)


class TestTemporalTier:
    """Creation time closest to process start, within the window."""

    def test_closest_within_window(self, locator):
        start = 1_700_000_000.0
        pool = [
            LogCandidate("a.log", modified=3, created=start + 90),
            LogCandidate("b.log", modified=2, created=start - 10),
            LogCandidate("c.log", modified=1, created=start + 500),
        ]
        inst = TrackedInstance(pid=PID, process_start_time=start)

        match = locator.locate(inst, pool)
        assert match.path == "b.log"
        assert match.tier == "temporal"
        assert match.detail == "10s"

    def test_outside_window_rejected(self, locator):
        start = 1_700_000_000.0
        pool = [LogCandidate("a.log", modified=1, created=start + 121)]
        assert locator.locate(TrackedInstance(pid=PID, process_start_time=start), pool) is None

    def test_tie_keeps_newest_first(self, locator):
        start = 1_700_000_000.0
        pool = [
            LogCandidate("newer.log", modified=2, created=start + 5),
            LogCandidate("older.log", modified=1, created=start - 5),
        ]
        assert locator.match_temporal(start, pool).path == "newer.log"

    def test_no_start_time(self, locator):
        pool = [LogCandidate("a.log", modified=1, created=time.time())]
        assert locator.locate(TrackedInstance(pid=PID), pool) is None

    def test_nearest_limit(self, locator):
        start = 1_700_000_000.0
        pool = [LogCandidate(f"{i}.log", modified=i, created=start + i) for i in range(5)]
        near = locator.nearest_by_start_time(start, pool, limit=3)
        assert [c.path for c, _ in near] == ["0.log", "1.log", "2.log"]


class TestPrecedenceAndExclusivity:
    """First tier wins; assigned files are never offered."""

    def test_filename_beats_content(self, tmp_path, locator):
        by_content = write_log(tmp_path / "client_a.log", [f"pid:{PID}"])
        by_name = write_log(tmp_path / "Player_5E5C_b.log", ["nothing"])

        # content candidate is newer, filename still wins
        match = locator.locate(TrackedInstance(pid=PID), candidates_for(by_content, by_name))
        assert match.path == str(by_name)
        assert match.tier == "filename"

    def test_file_matching_both_reports_filename(self, tmp_path, locator):
        both = write_log(tmp_path / "Player_5E5C_x.log", [f"pid:{PID}"])
        assert locator.locate(TrackedInstance(pid=PID), candidates_for(both)).tier == "filename"

    def test_content_beats_temporal(self, tmp_path, locator):
        now = time.time()
        by_time = write_log(tmp_path / "t.log", ["x"])
        by_content = write_log(tmp_path / "c.log", [f"PID: {PID}"])
        pool = [
            LogCandidate(str(by_time), modified=2, created=now),
            LogCandidate(str(by_content), modified=1, created=now - 1000),
        ]
        match = locator.locate(TrackedInstance(pid=PID, process_start_time=now), pool)
        assert match.path == str(by_content)

    def test_assigned_files_excluded(self, tmp_path, locator):
        taken = write_log(tmp_path / "Player_5E5C_1.log", ["x"])
        inst = TrackedInstance(pid=PID)

        assert locator.locate(inst, candidates_for(taken), assigned={path_key(str(taken))}) is None

    def test_secondary_uses_temporal_only(self, tmp_path, locator):
        now = time.time()
        named = write_log(tmp_path / "Player_5E5C_1.log", ["x"])
        pool = [LogCandidate(str(named), modified=1, created=now - 1000)]
        inst = TrackedInstance(pid=PID, process_start_time=now)

        assert locator.locate_secondary(inst, pool) is None
        pool = [LogCandidate(str(named), modified=1, created=now - 3)]
        assert locator.locate_secondary(inst, pool).tier == "temporal"
