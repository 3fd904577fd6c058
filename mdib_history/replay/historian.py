"""
Historian: reconstruct the MDIB history of a sequence id.

The history starts with the first archived MDIB of the sequence and applies
every relevant report in arrival order. Reports are filtered against the
baseline version and, optionally, collapsed when retransmitted.
"""

import logging
from typing import Callable, Iterable, Iterator, Optional, TypeVar

from .. import metrics
from ..archive.store import ArchiveQuery, MessageArchive
from ..config import HistorianConfig
from ..core.errors import ArchiveIOError, NoBaselineSnapshot, ReportOlderThanCursor
from ..core.observer import InvalidationSink
from ..core.reports import EPISODIC_REPORT_KINDS, RELEVANT_REPORT_KINDS, Report, Snapshot
from ..logging_config import get_logger
from ..mdib.cursor import StateCursor
from ..mdib.engine import StateApplicationEngine, default_engine
from .filters import DuplicateCollapser, VersionOrderFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

REPORT_READ_ERROR = "Error while trying to retrieve reports from storage"
MDIB_READ_ERROR = "Error while trying to retrieve initial mdib from storage"
SESSION_READ_ERROR = "Error while trying to retrieve sequence ids from storage"


class HistoryResult:
    """
    Closable sequence of MDIB states, one per report, baseline first.

    Warning: unless the historian copies states, every element is the same
    StateCursor instance, updated in place. Advancing the sequence also
    changes all references obtained before. Use separate results for separate
    instances.
    """

    def __init__(self, query: ArchiveQuery, states: Iterator[StateCursor]) -> None:
        self._query = query
        self._states = states
        self._closed = False

    def __iter__(self) -> "HistoryResult":
        return self

    def __next__(self) -> StateCursor:
        if self._closed:
            raise StopIteration
        return next(self._states)

    def next(self) -> Optional[StateCursor]:
        """Cursor with the next report applied, or None once exhausted."""
        return next(self, None)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the archive query. The cursor is left as it is."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self._states, "close", None)
        if close is not None:
            close()
        self._query.close()

    def __enter__(self) -> "HistoryResult":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Historian:
    """
    Builds MDIB histories from a message archive.

    Usage:
        historian = Historian(archive, TestRunObserver())
        with historian.replay_history(sequence_id) as history:
            for mdib in history:
                ...
    """

    def __init__(
        self,
        archive: MessageArchive,
        sink: InvalidationSink,
        engine: Optional[StateApplicationEngine] = None,
        config: Optional[HistorianConfig] = None,
    ) -> None:
        self.archive = archive
        self.sink = sink
        self.engine = engine or default_engine()
        self.config = config or HistorianConfig()

    def _archive_failure(self, message: str, ex: BaseException) -> ArchiveIOError:
        logger.error("%s: %s", message, ex)
        logger.debug("%s", message, exc_info=ex)
        self.sink.invalidate(message, ex)
        metrics.track_invalidation("archive_io")
        if isinstance(ex, ArchiveIOError):
            return ex
        wrapped = ArchiveIOError(f"{message}: {ex}")
        wrapped.__cause__ = ex
        return wrapped

    def _read(self, message: str, read: Callable[[], T]) -> T:
        try:
            return read()
        except (ArchiveIOError, OSError) as ex:
            raise self._archive_failure(message, ex) from ex

    def _guarded(self, message: str, items: Iterable[T]) -> Iterator[T]:
        iterator = iter(items)
        try:
            while True:
                try:
                    item = next(iterator)
                except StopIteration:
                    return
                except (ArchiveIOError, OSError) as ex:
                    raise self._archive_failure(message, ex) from ex
                yield item
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

    def list_known_sessions(self) -> Iterator[str]:
        """
        Sequence ids used throughout the archive, from MDIBs and reports.

        Every call queries the archive again. None and empty ids are skipped.
        """
        for sequence_id in self._guarded(SESSION_READ_ERROR, self._read(SESSION_READ_ERROR, self.archive.session_ids)):
            if sequence_id:
                yield sequence_id

    def _baseline(self, sequence_id: str) -> Snapshot:
        snapshot = self._read(MDIB_READ_ERROR, lambda: self.archive.first_snapshot_for_session(sequence_id))
        if snapshot is None:
            raise NoBaselineSnapshot(sequence_id)
        return snapshot

    def new_state_cursor(self, sequence_id: str) -> StateCursor:
        """
        Create a cursor from the first archived MDIB of a sequence id.

        Raises:
            NoBaselineSnapshot: If the archive holds no MDIB for the sequence id
            ArchiveIOError: If the archive cannot be read
        """
        return self.engine.materialize(self._baseline(sequence_id))

    def replay_history(self, sequence_id: str, deduplicate: Optional[bool] = None) -> HistoryResult:
        """
        Build the history of a sequence id from its first MDIB and all relevant reports.

        Args:
            sequence_id: Sequence to replay
            deduplicate: Collapse retransmitted reports (None = config default)

        Raises:
            NoBaselineSnapshot: If the archive holds no MDIB for the sequence id
            ArchiveIOError: If the archive cannot be read
        """
        if deduplicate is None:
            deduplicate = self.config.deduplicate
        return self._history(
            sequence_id,
            lambda: self.archive.reports_by_session_and_kind(sequence_id, RELEVANT_REPORT_KINDS),
            deduplicate,
        )

    def replay_history_until(self, sequence_id: str, timestamp: int) -> HistoryResult:
        """
        Like replay_history, limited to reports that arrived before timestamp.

        Duplicates are always collapsed.

        Args:
            sequence_id: Sequence to replay
            timestamp: Arrival time bound in nanoseconds since epoch (exclusive)
        """
        return self._history(
            sequence_id,
            lambda: self.archive.reports_by_session_kind_and_timestamp(
                sequence_id, timestamp, RELEVANT_REPORT_KINDS
            ),
            True,
        )

    def _history(
        self, sequence_id: str, open_query: Callable[[], ArchiveQuery], deduplicate: bool
    ) -> HistoryResult:
        cursor = self.new_state_cursor(sequence_id)
        query = self._read(REPORT_READ_ERROR, open_query)

        reports: Iterator[Report] = VersionOrderFilter(
            self._guarded(REPORT_READ_ERROR, query), cursor.mdib_version
        )
        if deduplicate:
            reports = DuplicateCollapser(reports, self.sink)

        return HistoryResult(query, self._states(cursor, reports))

    def _emit(self, cursor: StateCursor) -> StateCursor:
        return cursor.copy() if self.config.copy_states else cursor

    def _states(self, cursor: StateCursor, reports: Iterator[Report]) -> Iterator[StateCursor]:
        log = get_logger(__name__, trace_id=cursor.sequence_id)
        yield self._emit(cursor)

        applied = 0
        for report in reports:
            if self._apply(cursor, report, log):
                applied += 1
            yield self._emit(cursor)

        log.debug("Replayed %d reports up to mdib version %s", applied, cursor.mdib_version)

    def _apply(self, cursor: StateCursor, report: Report, log: logging.LoggerAdapter) -> bool:
        cmp_version = report.version - cursor.mdib_version
        if cmp_version < 0:
            raise ReportOlderThanCursor(cursor.mdib_version, report.version, report.kind.value)

        if report.kind not in EPISODIC_REPORT_KINDS:
            log.debug("Not applying %s %s, it does not modify the mdib", report.kind.value, report.origin_id)
            return False

        if cmp_version == 0:
            log.debug(
                "Applying report of equal mdib version %s. This is expected when e.g. descriptors"
                " update, as both a report for description and state will arrive.",
                report.version,
            )
        log.debug("Applying report with mdib version %s, type %s", report.version, report.kind.value)
        with metrics.track_apply_duration(report.kind.value):
            self.engine.apply(cursor, report)
        metrics.track_report_applied(report.kind.value)
        return True

    def apply_one(self, cursor: StateCursor, report: Report) -> StateCursor:
        """
        Apply a single report on an existing cursor.

        Returns:
            The same cursor, updated in place

        Raises:
            ReportOlderThanCursor: If the report is older than the cursor (cursor unchanged)
            StateApplicationError: If the report cannot be merged (cursor unchanged)
        """
        self._apply(cursor, report, get_logger(__name__, trace_id=cursor.sequence_id))
        return cursor

    def all_reports(self, sequence_id: str, min_version: Optional[int] = None) -> Iterator[Report]:
        """Relevant reports of a sequence id in arrival order, optionally with version >= min_version."""
        with self._read(
            REPORT_READ_ERROR,
            lambda: self.archive.reports_by_session_and_kind(sequence_id, RELEVANT_REPORT_KINDS),
        ) as query:
            for report in self._guarded(REPORT_READ_ERROR, query):
                if min_version is None or report.version >= min_version:
                    yield report

    def all_reports_before(self, sequence_id: str, max_version: int) -> Iterator[Report]:
        """Relevant reports of a sequence id with version < max_version."""
        reports = self.all_reports(sequence_id)
        try:
            for report in reports:
                if report.version < max_version:
                    yield report
        finally:
            reports.close()

    def all_unique_reports(self, sequence_id: str, min_version: Optional[int] = None) -> Iterator[Report]:
        """Like all_reports, with retransmitted duplicates collapsed."""
        reports = self.all_reports(sequence_id, min_version)
        try:
            yield from DuplicateCollapser(reports, self.sink)
        finally:
            reports.close()
