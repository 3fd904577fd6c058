"""
MessageArchive abstract interface.

Defines the contract of the captured message storage the historian reads from.
Implementations only provide raw hash-chain entries; decoding and the session
queries are shared.
"""

import dataclasses
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

from ..core.errors import UnmarshalError
from ..core.reports import Report, ReportKind, Snapshot
from .integrity import ChainVerificationResult, verify_chain

REPORT_RECORD = "report"
SNAPSHOT_RECORD = "snapshot"


class ArchiveQuery:
    """
    Closable, single-pass sequence of reports returned by archive queries.

    Owns the underlying read resources; closing it releases them even if the
    sequence was not consumed to the end.
    """

    def __init__(self, reports: Iterator[Report]) -> None:
        self._reports = reports
        self._closed = False

    def __iter__(self) -> "ArchiveQuery":
        return self

    def __next__(self) -> Report:
        if self._closed:
            raise StopIteration
        return next(self._reports)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        _close(self._reports)

    def __enter__(self) -> "ArchiveQuery":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _close(iterator: Iterator[Any]) -> None:
    close = getattr(iterator, "close", None)
    if close is not None:
        close()


def _record_of(entry: Any) -> Dict[str, Any]:
    if not isinstance(entry, dict):
        raise UnmarshalError(f"Archive entry is not an object: {entry!r:.80}")
    record = entry.get("record")
    if not isinstance(record, dict):
        raise UnmarshalError("Archive entry has no record", entry.get("record_hash"))
    if not isinstance(record.get("data") or {}, dict):
        raise UnmarshalError("Archive record data is not an object", entry.get("record_hash"))
    return record


class MessageArchive(ABC):
    """
    Abstract message archive.

    All implementations must guarantee:
    - Append-only (no updates, no deletes)
    - Arrival ordering (entries returned in append order)
    - Hash chain over all records
    """

    @abstractmethod
    def _append_record(self, record_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Append one record to the hash chain.

        Returns:
            The stored {"prev_hash", "record_hash", "record"} entry

        Raises:
            ArchiveIOError: If the record cannot be written
        """
        ...

    @abstractmethod
    def entries(self) -> Iterator[Dict[str, Any]]:
        """
        Read raw chain entries in append order.

        Raises:
            ArchiveIOError: If the storage cannot be read
            UnmarshalError: If an entry is not valid JSON
        """
        ...

    def append_report(self, report: Report) -> Report:
        """
        Archive a captured report.

        Returns:
            The report with its origin id (record hash) and arrival time assigned
        """
        if not report.timestamp:
            report = dataclasses.replace(report, timestamp=time.time_ns())
        entry = self._append_record(REPORT_RECORD, report.to_dict())
        return dataclasses.replace(report, origin_id=entry["record_hash"])

    def append_snapshot(self, snapshot: Snapshot) -> Snapshot:
        """Archive a full MDIB, returning it with origin id and arrival time assigned."""
        if not snapshot.timestamp:
            snapshot = dataclasses.replace(snapshot, timestamp=time.time_ns())
        entry = self._append_record(SNAPSHOT_RECORD, snapshot.to_dict())
        return dataclasses.replace(snapshot, origin_id=entry["record_hash"])

    def session_ids(self) -> Iterator[Optional[str]]:
        """
        Distinct sequence ids of all reports and snapshots, in order of first appearance.

        May contain None or empty ids of messages that carried none.
        """
        seen = set()
        entries = self.entries()
        try:
            for entry in entries:
                record = _record_of(entry)
                if record.get("type") not in (REPORT_RECORD, SNAPSHOT_RECORD):
                    continue
                sequence_id = (record.get("data") or {}).get("sequence_id")
                if sequence_id in seen:
                    continue
                seen.add(sequence_id)
                yield sequence_id
        finally:
            _close(entries)

    def _reports(self, accept: Callable[[Report], bool]) -> Iterator[Report]:
        entries = self.entries()
        try:
            for entry in entries:
                record = _record_of(entry)
                if record.get("type") != REPORT_RECORD:
                    continue
                report = Report.from_dict(
                    record.get("data") or {}, origin_id=entry.get("record_hash", "")
                )
                if accept(report):
                    yield report
        finally:
            _close(entries)

    def reports_by_session_and_kind(
        self, session_id: str, kinds: Iterable[ReportKind]
    ) -> ArchiveQuery:
        """Reports of one sequence id and the given kinds, in arrival order."""
        wanted = frozenset(kinds)
        return ArchiveQuery(
            self._reports(lambda r: r.sequence_id == session_id and r.kind in wanted)
        )

    def reports_by_session_kind_and_timestamp(
        self, session_id: str, timestamp: int, kinds: Iterable[ReportKind]
    ) -> ArchiveQuery:
        """Like reports_by_session_and_kind, restricted to arrival before timestamp (exclusive)."""
        wanted = frozenset(kinds)
        return ArchiveQuery(
            self._reports(
                lambda r: r.sequence_id == session_id and r.kind in wanted and r.timestamp < timestamp
            )
        )

    def first_snapshot_for_session(self, session_id: str) -> Optional[Snapshot]:
        """First archived full MDIB of a sequence id, or None."""
        entries = self.entries()
        try:
            for entry in entries:
                record = _record_of(entry)
                if record.get("type") != SNAPSHOT_RECORD:
                    continue
                data = record.get("data") or {}
                if data.get("sequence_id") != session_id:
                    continue
                return Snapshot.from_dict(data, origin_id=entry.get("record_hash", ""))
        finally:
            _close(entries)
        return None

    def verify(self) -> ChainVerificationResult:
        """Verify the hash chain over all archived records."""
        return verify_chain(self.entries())
