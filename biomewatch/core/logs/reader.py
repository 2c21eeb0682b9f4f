"""
Safe reads of log files that another process is still appending to.

Tail reads go through a private snapshot: the live file is copied byte for
byte into a scratch file, the copy is read backwards block by block, and the
copy is deleted whatever happens. Python's ``open`` shares read and write
access on Windows, so the game client is never blocked by the copy.

All read failures degrade to an empty result.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

log = logging.getLogger(__name__)

PathLike = Union[str, Path]

_BLOCK_SIZE = 64 * 1024
_COPY_BUFFER = 1024 * 1024


@dataclass
class LogTail:
    lines: list[str] = field(default_factory=list)  # newest first
    size: int = 0  # bytes up to and including the last newline


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r")


class SafeLogReader:
    def __init__(self, scratch_dir: Optional[PathLike] = None) -> None:
        self._scratch_dir = str(scratch_dir) if scratch_dir is not None else None

    def read_recent_lines(self, path: PathLike, max_lines: int) -> list[str]:
        """Up to ``max_lines`` most recent complete lines, newest first."""
        return self.read_recent(path, max_lines).lines

    def read_recent(self, path: PathLike, max_lines: int) -> LogTail:
        if max_lines <= 0:
            return LogTail()

        try:
            if self._scratch_dir:
                os.makedirs(self._scratch_dir, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix="bw_log_", suffix=".tmp", dir=self._scratch_dir)
        except OSError as e:
            log.warning(f"Cannot create scratch file: {e}")
            return LogTail()

        try:
            with os.fdopen(fd, "wb") as dest, open(path, "rb") as src:
                shutil.copyfileobj(src, dest, _COPY_BUFFER)
            return self._read_reverse(temp_path, max_lines)
        except OSError as e:
            log.debug(f"Snapshot read of {path} failed: {e}")
            return LogTail()
        finally:
            try:
                os.remove(temp_path)
            except OSError:
                log.warning(f"Could not delete scratch file {temp_path}")

    @staticmethod
    def _read_reverse(path: str, max_lines: int) -> LogTail:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            end = f.tell()
            if end == 0:
                return LogTail()

            # Find the end of the last complete line; a trailing fragment is
            # still being written.
            pos = end
            tail = b""
            complete_end: Optional[int] = None
            while pos > 0 and complete_end is None:
                step = min(_BLOCK_SIZE, pos)
                pos -= step
                f.seek(pos)
                chunk = f.read(step)
                idx = chunk.rfind(b"\n")
                if idx >= 0:
                    complete_end = pos + idx + 1
                    tail = chunk[:idx + 1]
                    break
            if complete_end is None:
                return LogTail()

            lines: list[str] = []
            # tail ends with "\n"; everything before pos is still unread
            buffer = tail[:-1]
            while True:
                parts = buffer.split(b"\n")
                # parts[0] may continue into earlier blocks
                for raw in reversed(parts[1:]):
                    lines.append(_decode(raw))
                    if len(lines) >= max_lines:
                        return LogTail(lines=lines, size=complete_end)
                if pos == 0:
                    lines.append(_decode(parts[0]))
                    break
                step = min(_BLOCK_SIZE, pos)
                pos -= step
                f.seek(pos)
                buffer = f.read(step) + parts[0]

            return LogTail(lines=lines[:max_lines], size=complete_end)

    def read_prefix(self, path: PathLike, max_bytes: int) -> str:
        """First ``max_bytes`` of a file as text, or "" when unreadable."""
        try:
            with open(path, "rb") as f:
                return f.read(max_bytes).decode("utf-8", errors="replace")
        except OSError as e:
            log.debug(f"Prefix read of {path} failed: {e}")
            return ""

    @staticmethod
    def file_size(path: PathLike) -> Optional[int]:
        try:
            return os.stat(path).st_size
        except OSError:
            return None
