"""
Stateful report stream filters.

Both filters are single-use iterators: they wrap exactly one report stream and
carry state from one element to the next, so they must be consumed
sequentially and never shared between iterations.
"""

import logging
from enum import Enum
from typing import Iterable, Iterator, Optional

from ..core.canonical import structurally_equal
from ..core.errors import DuplicateContentMismatch
from ..core.observer import InvalidationSink
from ..core.reports import Report
from .. import metrics

logger = logging.getLogger(__name__)


class FilterState(Enum):
    BEFORE_BASELINE = "before_baseline"
    AT_OR_AFTER_BASELINE = "at_or_after_baseline"


class VersionOrderFilter:
    """
    Drop reports older than the baseline until the first newer one arrives.

    Reports with the baseline version pass, since the first report may share
    its version with the snapshot. Once a report newer than the baseline was
    seen, everything passes, including late retransmissions of older versions.
    """

    def __init__(self, reports: Iterable[Report], baseline_version: int) -> None:
        self._reports: Iterator[Report] = iter(reports)
        self.baseline_version = baseline_version
        self.state = FilterState.BEFORE_BASELINE

    def accept(self, report: Report) -> bool:
        if self.state is FilterState.AT_OR_AFTER_BASELINE:
            return True
        if report.version > self.baseline_version:
            self.state = FilterState.AT_OR_AFTER_BASELINE
            return True
        if report.version < self.baseline_version:
            logger.debug(
                "Dropping report %s with mdib version %s older than baseline %s",
                report.origin_id,
                report.version,
                self.baseline_version,
            )
            return False
        return True

    def __iter__(self) -> "VersionOrderFilter":
        return self

    def __next__(self) -> Report:
        while True:
            report = next(self._reports)
            if self.accept(report):
                return report


class DuplicateCollapser:
    """
    Remove retransmitted reports from a version ordered stream.

    A report repeating the previous report's version and kind with identical
    content is dropped. Same version and kind with different content is a
    protocol violation: the test run is invalidated and the report is kept.
    """

    def __init__(self, reports: Iterable[Report], sink: InvalidationSink) -> None:
        self._reports: Iterator[Report] = iter(reports)
        self._sink = sink
        self._last: Optional[Report] = None
        self.dropped = 0
        self.mismatches = 0

    def __iter__(self) -> "DuplicateCollapser":
        return self

    def __next__(self) -> Report:
        while True:
            current = next(self._reports)
            last = self._last
            self._last = current

            if last is None or current.version > last.version:
                return current
            if current.kind != last.kind:
                return current
            if structurally_equal(current.payload, last.payload):
                self.dropped += 1
                metrics.track_duplicate_dropped(current.kind.value)
                logger.debug(
                    "Dropping duplicate %s with mdib version %s (%s repeats %s)",
                    current.kind.value,
                    current.version,
                    current.origin_id,
                    last.origin_id,
                )
                continue

            self.mismatches += 1
            cause = DuplicateContentMismatch(
                current.version, current.kind.value, last.origin_id, current.origin_id
            )
            self._sink.invalidate(
                f"Reports {last.origin_id} and {current.origin_id} have the same mdib version"
                f" {current.version} and type {current.kind.value} but different content",
                cause,
            )
            metrics.track_invalidation("duplicate_content_mismatch")
            return current
