"""
Tests for the snapshot-based log reader.
"""

import os

from biomewatch.core.logs.reader import SafeLogReader

from tests.factories import write_log


class TestReadRecentLines:
    """Newest-first tail reads through a scratch copy."""

    def test_newest_first(self, tmp_path, reader):
        log = write_log(tmp_path / "a.log", ["one", "two", "three"])
        assert reader.read_recent_lines(log, 10) == ["three", "two", "one"]

    def test_max_lines(self, tmp_path, reader):
        log = write_log(tmp_path / "a.log", [f"line {i}" for i in range(50)])
        assert reader.read_recent_lines(log, 3) == ["line 49", "line 48", "line 47"]

    def test_trailing_fragment_is_skipped(self, tmp_path, reader):
        log = tmp_path / "a.log"
        log.write_bytes(b"first\nsecond\nhalf-writ")
        tail = reader.read_recent(log, 10)

        assert tail.lines == ["second", "first"]
        assert tail.size == len(b"first\nsecond\n")

    def test_no_complete_line(self, tmp_path, reader):
        log = tmp_path / "a.log"
        log.write_bytes(b"no newline yet")
        assert reader.read_recent_lines(log, 10) == []

    def test_crlf_is_stripped(self, tmp_path, reader):
        log = tmp_path / "a.log"
        log.write_bytes(b"alpha\r\nbeta\r\n")
        assert reader.read_recent_lines(log, 10) == ["beta", "alpha"]

    def test_lines_spanning_blocks(self, tmp_path, reader):
        long_line = "x" * 100_000
        log = write_log(tmp_path / "a.log", ["start", long_line, "end"])
        lines = reader.read_recent_lines(log, 10)

        assert lines == ["end", long_line, "start"]

    def test_many_lines_over_several_blocks(self, tmp_path, reader):
        lines = [f"{i:06d} " + "y" * 200 for i in range(2000)]
        log = write_log(tmp_path / "a.log", lines)
        got = reader.read_recent_lines(log, 1500)

        assert len(got) == 1500
        assert got[0] == lines[-1]
        assert got[-1] == lines[500]

    def test_empty_file(self, tmp_path, reader):
        log = tmp_path / "a.log"
        log.write_bytes(b"")
        assert reader.read_recent_lines(log, 10) == []

    def test_invalid_utf8_is_replaced(self, tmp_path, reader):
        log = tmp_path / "a.log"
        log.write_bytes(b"ok\n\xff\xfebad\n")
        lines = reader.read_recent_lines(log, 10)

        assert lines[1] == "ok"
        assert lines[0].endswith("bad")


class TestFailureHandling:
    """I/O failures give empty results and never leave scratch files behind."""

    def test_missing_file_returns_empty(self, tmp_path, reader, scratch):
        assert reader.read_recent_lines(tmp_path / "missing.log", 10) == []
        assert os.listdir(scratch) == []

    def test_scratch_cleaned_after_success(self, tmp_path, reader, scratch):
        log = write_log(tmp_path / "a.log", ["a", "b"])
        reader.read_recent_lines(log, 10)
        assert os.listdir(scratch) == []

    def test_zero_lines_requested(self, tmp_path, reader):
        log = write_log(tmp_path / "a.log", ["a"])
        assert reader.read_recent_lines(log, 0) == []

    def test_default_scratch_dir(self, tmp_path):
        log = write_log(tmp_path / "a.log", ["a"])
        assert SafeLogReader().read_recent_lines(log, 5) == ["a"]


class TestReadPrefix:
    """Bounded prefix reads for identity and content matching."""

    def test_prefix_is_bounded(self, tmp_path, reader):
        log = tmp_path / "a.log"
        log.write_bytes(b"0123456789" * 10)
        assert reader.read_prefix(log, 15) == "012345678901234"

    def test_prefix_missing_file(self, tmp_path, reader):
        assert reader.read_prefix(tmp_path / "nope.log", 100) == ""

    def test_file_size(self, tmp_path, reader):
        log = tmp_path / "a.log"
        log.write_bytes(b"abc")
        assert reader.file_size(log) == 3
        assert reader.file_size(tmp_path / "nope.log") is None
