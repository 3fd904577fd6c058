"""
Tests for history replay.

Critical: replaying the same archive twice must produce the same sequence of
MDIB states, and the MDIB version must never decrease along a history.
"""

import time

import pytest

from mdib_history.config import HistorianConfig
from mdib_history.core.canonical import canonical_json_str
from mdib_history.core.errors import (
    ArchiveIOError,
    MissingImpliedValue,
    NoBaselineSnapshot,
    ReportOlderThanCursor,
    StateApplicationError,
)
from mdib_history.core.observer import TestRunObserver
from mdib_history.core.reports import Report, ReportKind
from mdib_history.replay import Historian
from mdib_history.tests.builders import (
    OTHER_SEQUENCE_ID,
    SEQUENCE_ID,
    MemoryArchive,
    alert_report,
    baseline,
    metric_report,
)


def make_historian(*reports, snapshot=None, config=None, archive=None):
    archive = archive if archive is not None else MemoryArchive()
    archive.append_snapshot(snapshot or baseline())
    for report in reports:
        archive.append_report(report)
    observer = TestRunObserver()
    return Historian(archive, observer, config=config), observer


def versions_of(history):
    with history:
        return [cursor.mdib_version for cursor in history]


def test_identical_retransmission_is_collapsed():
    historian, observer = make_historian(metric_report(1, 5), metric_report(1, 5), metric_report(2, 6))

    values = []
    with historian.replay_history(SEQUENCE_ID, deduplicate=True) as history:
        for cursor in history:
            values.append((cursor.mdib_version, cursor.state("metric0")["value"]))

    assert values == [(0, 1), (1, 5), (2, 6)]
    assert not observer.is_invalid


def test_conflicting_retransmission_invalidates_run():
    historian, observer = make_historian(metric_report(1, "A"), metric_report(1, "B"))

    values = []
    with historian.replay_history(SEQUENCE_ID, deduplicate=True) as history:
        for cursor in history:
            values.append(cursor.state("metric0")["value"])

    assert values == [1, "A", "B"]
    assert observer.is_invalid
    assert len(observer.reasons) == 1
    assert "mdib version 1" in observer.reasons[0]


def test_older_report_is_rejected_without_mutation():
    historian, _ = make_historian(snapshot=baseline(mdib_version=5))
    cursor = historian.new_state_cursor(SEQUENCE_ID)
    before = cursor.to_dict()

    with pytest.raises(ReportOlderThanCursor) as exc_info:
        historian.apply_one(cursor, metric_report(3, 99))

    assert exc_info.value.cursor_version == 5
    assert exc_info.value.report_version == 3
    assert cursor.to_dict() == before


def test_apply_one_applies_equal_and_newer_versions():
    historian, _ = make_historian(snapshot=baseline(mdib_version=5))
    cursor = historian.new_state_cursor(SEQUENCE_ID)

    assert historian.apply_one(cursor, metric_report(5, 10)) is cursor
    historian.apply_one(cursor, metric_report(6, 11))

    assert cursor.mdib_version == 6
    assert cursor.state("metric0")["value"] == 11


def test_without_dedup_every_report_is_a_step():
    historian, observer = make_historian(metric_report(1, 5), metric_report(1, 5), metric_report(2, 6))

    assert versions_of(historian.replay_history(SEQUENCE_ID)) == [0, 1, 1, 2]
    assert not observer.is_invalid


def test_dedup_default_from_config():
    reports = [metric_report(1, 5), metric_report(1, 5)]
    historian, _ = make_historian(*reports, config=HistorianConfig(deduplicate=True))

    assert versions_of(historian.replay_history(SEQUENCE_ID)) == [0, 1]
    assert versions_of(historian.replay_history(SEQUENCE_ID, deduplicate=False)) == [0, 1, 1]


def test_replay_is_deterministic():
    reports = [
        metric_report(1, 5),
        alert_report(2, True),
        metric_report(2, 7),
        metric_report(2, 7),
        metric_report(3, 8, state_version=1),
    ]
    historian, _ = make_historian(*reports)

    def run():
        with historian.replay_history(SEQUENCE_ID, deduplicate=True) as history:
            return [canonical_json_str(cursor.to_dict()) for cursor in history]

    assert run() == run()


def test_versions_never_decrease():
    reports = [metric_report(v, v) for v in [1, 2, 2, 3, 5, 8]]
    historian, _ = make_historian(*reports)

    versions = versions_of(historian.replay_history(SEQUENCE_ID))

    assert versions == sorted(versions)


def test_late_retransmission_fails_replay():
    """The order filter lets it through, applying it would move the cursor back."""
    historian, _ = make_historian(metric_report(1, 5), metric_report(2, 6), metric_report(1, 5))

    with historian.replay_history(SEQUENCE_ID) as history:
        assert history.next().mdib_version == 0
        assert history.next().mdib_version == 1
        assert history.next().mdib_version == 2
        with pytest.raises(ReportOlderThanCursor):
            history.next()


def test_reports_older_than_baseline_are_skipped():
    historian, _ = make_historian(
        metric_report(4, 40), metric_report(5, 50), metric_report(6, 60),
        snapshot=baseline(mdib_version=5),
    )

    with historian.replay_history(SEQUENCE_ID) as history:
        values = [cursor.state("metric0")["value"] for cursor in history]

    assert values == [1, 50, 60]


def test_first_element_is_unmodified_baseline():
    historian, _ = make_historian(metric_report(1, 5))

    with historian.replay_history(SEQUENCE_ID) as history:
        first = history.next()
        assert first.mdib_version == 0
        assert first.state("metric0")["value"] == 1


def test_shared_cursor_is_mutated_in_place():
    historian, _ = make_historian(metric_report(1, 5), metric_report(2, 6))

    with historian.replay_history(SEQUENCE_ID) as history:
        cursors = list(history)

    assert all(c is cursors[0] for c in cursors)
    assert cursors[0].mdib_version == 2


def test_copy_states_yields_independent_cursors():
    historian, _ = make_historian(
        metric_report(1, 5), metric_report(2, 6), config=HistorianConfig(copy_states=True)
    )

    with historian.replay_history(SEQUENCE_ID) as history:
        cursors = list(history)

    assert [c.mdib_version for c in cursors] == [0, 1, 2]
    assert [c.state("metric0")["value"] for c in cursors] == [1, 5, 6]


def test_non_episodic_reports_are_not_applied():
    invoked = Report(
        sequence_id=SEQUENCE_ID,
        version=1,
        kind=ReportKind.OPERATION_INVOKED,
        payload={"report_parts": [{"operation_handle_ref": "op0", "invocation_state": "Fin"}]},
    )
    historian, _ = make_historian(invoked, metric_report(2, 6))

    with historian.replay_history(SEQUENCE_ID, deduplicate=True) as history:
        steps = [(c.mdib_version, c.state("metric0")["value"]) for c in history]

    assert steps == [(0, 1), (0, 1), (2, 6)]


def test_missing_implied_value_stops_replay():
    historian, _ = make_historian(metric_report(1, 5, state_version=3), metric_report(2, 6))

    with historian.replay_history(SEQUENCE_ID) as history:
        history.next()
        cursor = history.next()
        with pytest.raises(MissingImpliedValue):
            history.next()

    assert cursor.mdib_version == 1
    assert cursor.state("metric0")["value"] == 5


def test_malformed_report_fails_replay_unchanged():
    malformed = Report(
        sequence_id=SEQUENCE_ID,
        version=2,
        kind=ReportKind.METRIC,
        payload={"report_parts": [{"states": [{"descriptor_handle": "metric0", "value": 99}, "garbage"]}]},
    )
    historian, _ = make_historian(metric_report(1, 5), malformed)

    with historian.replay_history(SEQUENCE_ID) as history:
        history.next()
        cursor = history.next()
        with pytest.raises(StateApplicationError):
            history.next()

    assert cursor.mdib_version == 1
    assert cursor.state("metric0")["value"] == 5


def test_replay_until_timestamp():
    historian, observer = make_historian(
        metric_report(1, 5, timestamp=100),
        metric_report(1, 5, timestamp=150),
        metric_report(2, 6, timestamp=200),
        metric_report(3, 7, timestamp=300),
    )

    # Bound is exclusive, duplicates always collapsed
    assert versions_of(historian.replay_history_until(SEQUENCE_ID, 300)) == [0, 1, 2]
    assert versions_of(historian.replay_history_until(SEQUENCE_ID, 100)) == [0]
    assert not observer.is_invalid


def test_missing_baseline():
    historian, _ = make_historian(metric_report(1, 5))

    with pytest.raises(NoBaselineSnapshot) as exc_info:
        historian.replay_history(OTHER_SEQUENCE_ID)

    assert exc_info.value.sequence_id == OTHER_SEQUENCE_ID


def test_sessions_are_isolated():
    archive = MemoryArchive()
    archive.append_snapshot(baseline(OTHER_SEQUENCE_ID))
    historian, _ = make_historian(
        metric_report(1, 5),
        metric_report(1, 99, sequence_id=OTHER_SEQUENCE_ID),
        metric_report(2, 6),
        archive=archive,
    )

    with historian.replay_history(SEQUENCE_ID) as history:
        assert [c.state("metric0")["value"] for c in history] == [1, 5, 6]
    with historian.replay_history(OTHER_SEQUENCE_ID) as history:
        assert [c.state("metric0")["value"] for c in history] == [1, 99]


def test_list_known_sessions():
    archive = MemoryArchive()
    archive.append_report(metric_report(1, 5, sequence_id=OTHER_SEQUENCE_ID))
    archive.append_report(metric_report(1, 5, sequence_id=""))
    historian, _ = make_historian(metric_report(1, 5), archive=archive)

    assert list(historian.list_known_sessions()) == [OTHER_SEQUENCE_ID, SEQUENCE_ID]
    # Restartable
    assert list(historian.list_known_sessions()) == [OTHER_SEQUENCE_ID, SEQUENCE_ID]


def test_archive_failure_invalidates_run():
    archive = MemoryArchive(fail_after=2)
    historian, observer = make_historian(metric_report(1, 5), metric_report(2, 6), archive=archive)

    with historian.replay_history(SEQUENCE_ID) as history:
        assert history.next().mdib_version == 0
        assert history.next().mdib_version == 1
        with pytest.raises(ArchiveIOError):
            history.next()

    assert observer.reasons == ["Error while trying to retrieve reports from storage"]


def test_close_releases_archive_query():
    archive = MemoryArchive()
    historian, _ = make_historian(metric_report(1, 5), metric_report(2, 6), archive=archive)

    history = historian.replay_history(SEQUENCE_ID)
    history.next()
    history.next()
    assert archive.open_reads == 1

    history.close()

    assert history.closed
    assert archive.open_reads == 0
    assert history.next() is None


def test_all_reports_queries():
    historian, observer = make_historian(
        metric_report(1, 5),
        metric_report(1, 5),
        metric_report(2, 6),
        alert_report(3, True),
        metric_report(1, 5, sequence_id=OTHER_SEQUENCE_ID),
    )

    assert [r.version for r in historian.all_reports(SEQUENCE_ID)] == [1, 1, 2, 3]
    assert [r.version for r in historian.all_reports(SEQUENCE_ID, min_version=2)] == [2, 3]
    assert [r.version for r in historian.all_reports_before(SEQUENCE_ID, 2)] == [1, 1]
    assert [r.version for r in historian.all_unique_reports(SEQUENCE_ID)] == [1, 2, 3]
    assert [r.version for r in historian.all_unique_reports(SEQUENCE_ID, min_version=3)] == [3]
    assert not observer.is_invalid


def test_all_reports_carry_origin_ids():
    historian, _ = make_historian(metric_report(1, 5), metric_report(2, 6))

    origins = [r.origin_id for r in historian.all_reports(SEQUENCE_ID)]

    assert len(origins) == 2
    assert all(len(o) == 64 for o in origins)
    assert origins[0] != origins[1]


def test_apply_duration_counts_engine_work_only():
    from prometheus_client import REGISTRY

    from mdib_history import metrics

    metrics.init_metrics()
    labels = {"report_type": ReportKind.METRIC.value}

    def observed():
        return REGISTRY.get_sample_value("mdib_history_report_apply_duration_seconds_count", labels) or 0

    def summed():
        return REGISTRY.get_sample_value("mdib_history_report_apply_duration_seconds_sum", labels) or 0

    historian, _ = make_historian(metric_report(1, 5), metric_report(2, 6))
    count_before, sum_before = observed(), summed()

    with historian.replay_history(SEQUENCE_ID) as history:
        for _ in history:
            # Consumer time between steps is not part of the histogram
            time.sleep(0.05)

    assert observed() - count_before == 2
    assert summed() - sum_before < 0.05
