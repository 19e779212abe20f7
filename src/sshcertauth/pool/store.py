"""
Mapping table storage for pool accounts.

The table is a text file, one entry per line:

    "<identity>" <unixTimestamp> <slotId>

Access is serialized with an exclusive flock on a sidecar "<file>.lock" file,
so that the table itself can be replaced with os.replace while other
processes wait on the lock.
"""

import fcntl
import logging
import os
import re
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from ..errors import LockAcquisitionFailure, StoreIOError

logger = logging.getLogger(__name__)

LINE_RE = re.compile(r'^\s*"([^"]+)"\s+([0-9]+)\s+([0-9]+)\s*$')

# Poll interval while waiting for a bounded lock
LOCK_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class PoolEntry:
    """One identity bound to one pool slot."""
    identity: str
    slot_id: int
    assigned_at: int

    def to_line(self) -> str:
        return f'"{self.identity}" {self.assigned_at} {self.slot_id}\n'

    @classmethod
    def from_line(cls, line: str) -> Optional["PoolEntry"]:
        """Parse one table line, None if it does not match the grammar."""
        match = LINE_RE.match(line)
        if not match:
            return None
        return cls(
            identity=match.group(1),
            assigned_at=int(match.group(2)),
            slot_id=int(match.group(3)),
        )


def parse_table(lines: Iterable[str]) -> List[PoolEntry]:
    """Parse table lines, silently skipping malformed ones."""
    entries = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        entry = PoolEntry.from_line(line)
        if entry is None:
            logger.debug(f"Ignoring malformed mapping line {number}: {line.rstrip()!r}")
            continue
        entries.append(entry)
    return entries


def format_table(entries: Iterable[PoolEntry]) -> str:
    """Render entries sorted by slot id."""
    return "".join(entry.to_line() for entry in sorted(entries, key=lambda e: e.slot_id))


class MappingStore:
    """File-backed mapping table guarded by an exclusive lock."""

    def __init__(self, path: Union[str, Path], lock_timeout: Optional[float] = None):
        """
        Args:
            path: Mapping table file, written on first allocation
            lock_timeout: Seconds to wait for the lock, None blocks indefinitely
        """
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = lock_timeout

    def _acquire(self, fd: int) -> None:
        if self.lock_timeout is None:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
            except OSError as e:
                raise LockAcquisitionFailure(
                    f"Cannot acquire exclusive lock on mapfile {self.path}: {e}"
                ) from e
            return

        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockAcquisitionFailure(
                        f"Timed out after {self.lock_timeout}s waiting for lock on mapfile {self.path}"
                    )
                time.sleep(LOCK_POLL_INTERVAL)
            except OSError as e:
                raise LockAcquisitionFailure(
                    f"Cannot acquire exclusive lock on mapfile {self.path}: {e}"
                ) from e

    @contextmanager
    def locked(self) -> Iterator["MappingStore"]:
        """Hold the exclusive lock for the duration of the block."""
        try:
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise StoreIOError(f"Cannot open lock file {self.lock_path}: {e}") from e

        try:
            self._acquire(fd)
            try:
                yield self
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def read(self) -> List[PoolEntry]:
        """
        Read every well-formed entry. Call with the lock held.

        A missing table reads as empty. Lines that are not valid UTF-8 are
        dropped like any other malformed line.
        """
        try:
            with open(self.path, "rb") as f:
                raw_lines = f.readlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreIOError(f"Cannot read mapfile {self.path}: {e}") from e

        lines = []
        for number, raw in enumerate(raw_lines, start=1):
            try:
                lines.append(raw.decode("utf-8"))
            except UnicodeDecodeError:
                logger.debug(f"Ignoring undecodable mapping line {number}: {raw!r}")
        return parse_table(lines)

    def replace(self, entries: Iterable[PoolEntry]) -> None:
        """
        Atomically replace the table with entries. Call with the lock held.

        The new content is written to a temporary file in the same directory
        and renamed over the table, so readers see either the old or the new
        table in full.
        """
        content = format_table(entries)
        directory = self.path.parent

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        except OSError as e:
            raise StoreIOError(f"Cannot write mapfile {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StoreIOError(f"Cannot write mapfile {self.path}: {e}") from e
