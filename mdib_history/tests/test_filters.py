"""
Tests for the version order filter and the duplicate collapser.
"""

from typing import List, Optional, Tuple

from mdib_history.core.errors import DuplicateContentMismatch
from mdib_history.core.observer import InvalidationSink
from mdib_history.core.reports import Report, ReportKind
from mdib_history.replay.filters import DuplicateCollapser, FilterState, VersionOrderFilter


class RecordingSink(InvalidationSink):
    def __init__(self) -> None:
        self.calls: List[Tuple[str, Optional[BaseException]]] = []

    def invalidate(self, reason, cause=None):
        self.calls.append((reason, cause))


def report(version, kind=ReportKind.METRIC, payload=None, origin=None):
    return Report(
        sequence_id="seq",
        version=version,
        kind=kind,
        payload=payload if payload is not None else {"value": version},
        origin_id=origin or f"origin-{version}",
    )


def test_order_filter_boundary():
    """Older reports pass once a newer one was seen."""
    reports = [report(v) for v in [4, 5, 5, 6, 4, 7]]

    passed = [r.version for r in VersionOrderFilter(reports, baseline_version=5)]

    assert passed == [5, 5, 6, 4, 7]


def test_order_filter_state_transition():
    f = VersionOrderFilter([], baseline_version=3)

    assert f.state is FilterState.BEFORE_BASELINE
    assert not f.accept(report(2))
    assert f.accept(report(3))
    assert f.state is FilterState.BEFORE_BASELINE
    assert f.accept(report(4))
    assert f.state is FilterState.AT_OR_AFTER_BASELINE
    assert f.accept(report(1))


def test_order_filter_is_single_pass():
    f = VersionOrderFilter([report(1), report(2)], baseline_version=0)

    assert [r.version for r in f] == [1, 2]
    assert list(f) == []


def test_collapser_drops_identical_retransmission():
    sink = RecordingSink()
    reports = [report(1), report(1, origin="retransmit"), report(2)]

    collapser = DuplicateCollapser(reports, sink)
    kept = list(collapser)

    assert [r.origin_id for r in kept] == ["origin-1", "origin-2"]
    assert collapser.dropped == 1
    assert sink.calls == []


def test_collapser_ignores_key_order():
    sink = RecordingSink()
    reports = [
        report(1, payload={"a": 1, "b": [1, 2]}),
        report(1, payload={"b": [1, 2], "a": 1}),
    ]

    assert len(list(DuplicateCollapser(reports, sink))) == 1
    assert sink.calls == []


def test_collapser_keeps_different_kinds_of_same_version():
    """A description modification and its state report share the version."""
    sink = RecordingSink()
    reports = [
        report(3, kind=ReportKind.DESCRIPTION_MODIFICATION),
        report(3, kind=ReportKind.METRIC),
    ]

    assert len(list(DuplicateCollapser(reports, sink))) == 2
    assert sink.calls == []


def test_collapser_reports_content_mismatch():
    sink = RecordingSink()
    reports = [
        report(1, payload={"value": "A"}, origin="first"),
        report(1, payload={"value": "B"}, origin="second"),
    ]

    collapser = DuplicateCollapser(reports, sink)
    kept = list(collapser)

    assert [r.origin_id for r in kept] == ["first", "second"]
    assert collapser.mismatches == 1
    assert len(sink.calls) == 1
    reason, cause = sink.calls[0]
    assert "first" in reason
    assert "second" in reason
    assert "mdib version 1" in reason
    assert ReportKind.METRIC.value in reason
    assert isinstance(cause, DuplicateContentMismatch)
    assert cause.version == 1


def test_collapser_compares_against_latest_report():
    """After a mismatch, the later report is the new reference."""
    sink = RecordingSink()
    reports = [
        report(1, payload={"value": "A"}, origin="first"),
        report(1, payload={"value": "B"}, origin="second"),
        report(1, payload={"value": "B"}, origin="third"),
    ]

    kept = list(DuplicateCollapser(reports, sink))

    assert [r.origin_id for r in kept] == ["first", "second"]
    assert len(sink.calls) == 1


def test_collapser_compares_older_report_as_same_version():
    sink = RecordingSink()
    reports = [report(2, payload={"value": "x"}), report(1, payload={"value": "x"})]

    assert [r.version for r in DuplicateCollapser(reports, sink)] == [2]


def test_collapse_is_idempotent():
    reports = [
        report(1),
        report(1),
        report(2, payload={"value": "A"}),
        report(2, payload={"value": "B"}),
        report(3, kind=ReportKind.ALERT),
        report(3, kind=ReportKind.ALERT),
        report(4),
    ]

    once = list(DuplicateCollapser(reports, RecordingSink()))
    twice = list(DuplicateCollapser(once, RecordingSink()))

    assert once == twice
    assert [r.version for r in once] == [1, 2, 2, 3, 4]
