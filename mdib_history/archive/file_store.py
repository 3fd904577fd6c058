"""
File-based message archive using append-only JSONL format.

Each line is a hash chain entry with prev_hash, record_hash and the record.
"""

import json
import os
from typing import Any, Dict, Iterator, Tuple

from ..core.canonical import canonical_json_str
from ..core.errors import ArchiveIOError, UnmarshalError
from .integrity import ZERO_HASH, chain_record
from .store import MessageArchive

try:
    import fcntl
except ImportError:  # Windows or unsupported platform
    fcntl = None


class FileMessageArchive(MessageArchive):
    """
    File-based append-only message archive.

    Storage format: JSONL (newline-delimited JSON)
    Each line: {"prev_hash": "...", "record_hash": "...", "record": {"seq": N, "type": "...", "data": {...}}}

    Guarantees:
    - Append-only (no mutations)
    - Fsync after each append (durability)
    - Hash chain integrity
    """

    def __init__(self, path: str) -> None:
        """
        Initialize file archive.

        Args:
            path: Path to JSONL file
        """
        self.path = path

        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

        if not os.path.exists(path):
            with open(path, "wb") as f:
                f.write(b"")

    def _last_seq_and_hash(self, f) -> Tuple[int, str]:
        """
        Read last sequence number and hash from the archive.

        Returns:
            (last_seq, last_hash) tuple
            (-1, ZERO_HASH) if archive is empty
        """
        last_seq = -1
        last_hash = ZERO_HASH

        f.seek(0)
        for line in f:
            if not line.strip():
                continue
            entry = json.loads(line)
            last_seq = entry["record"]["seq"]
            last_hash = entry["record_hash"]

        return last_seq, last_hash

    def _append_record(self, record_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with open(self.path, "a+b") as f:
                if fcntl:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    last_seq, last_hash = self._last_seq_and_hash(f)
                    record = {"seq": last_seq + 1, "type": record_type, "data": data}
                    entry = chain_record(last_hash, record)

                    f.seek(0, os.SEEK_END)
                    f.write((canonical_json_str(entry) + "\n").encode("utf-8"))
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    if fcntl:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            return entry
        except OSError as ex:
            raise ArchiveIOError(str(ex)) from ex

    def entries(self) -> Iterator[Dict[str, Any]]:
        try:
            with open(self.path, "rb") as f:
                for lineno, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        yield json.loads(line)
                    except ValueError as ex:
                        raise UnmarshalError(
                            f"Could not decode archive entry at {self.path}:{lineno}: {ex}"
                        ) from ex
        except OSError as ex:
            raise ArchiveIOError(str(ex)) from ex
