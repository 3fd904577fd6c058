"""
Tests for the mdib-history command line.
"""

import json
import os
import tempfile

from typer.testing import CliRunner

from cli.main import app
from mdib_history.archive.file_store import FileMessageArchive
from mdib_history.tests.builders import SEQUENCE_ID, baseline, metric_report

runner = CliRunner()
QUIET = {"MDIB_HISTORY_LOG_LEVEL": "CRITICAL", "MDIB_HISTORY_S3_BUCKET": ""}


def write_archive(tmpdir, *reports):
    path = os.path.join(tmpdir, "archive.jsonl")
    archive = FileMessageArchive(path)
    archive.append_snapshot(baseline())
    for report in reports:
        archive.append_report(report)
    return path


def test_replay_json():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir, metric_report(1, 5), metric_report(1, 5), metric_report(2, 6))

        result = runner.invoke(
            app, ["replay", "--session", SEQUENCE_ID, "--archive", path, "--dedup", "--json"], env=QUIET
        )

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert [s["mdib_version"] for s in output["steps"]] == [0, 1, 2]
        assert output["invalid"] is False


def test_replay_invalidated_run_exits_1():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir, metric_report(1, "A"), metric_report(1, "B"))

        result = runner.invoke(
            app, ["replay", "--session", SEQUENCE_ID, "--archive", path, "--dedup", "--json"], env=QUIET
        )

        assert result.exit_code == 1


def test_replay_unknown_session_exits_2():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir)

        result = runner.invoke(app, ["replay", "--session", "urn:uuid:unknown", "--archive", path], env=QUIET)

        assert result.exit_code == 2


def test_sessions_json():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir, metric_report(1, 5))

        result = runner.invoke(app, ["sessions", "--archive", path, "--json"], env=QUIET)

        assert result.exit_code == 0
        assert json.loads(result.stdout)["sessions"] == [SEQUENCE_ID]


def test_reports_before_version():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir, metric_report(1, 5), metric_report(2, 6), metric_report(3, 7))

        result = runner.invoke(
            app,
            ["reports", "--session", SEQUENCE_ID, "--archive", path, "--before-version", "3", "--json"],
            env=QUIET,
        )

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert [r["mdib_version"] for r in output["reports"]] == [1, 2]


def test_reports_bounds_and_unique_combine():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(
            tmpdir,
            metric_report(1, 5),
            metric_report(2, 6),
            metric_report(2, 6),
            metric_report(3, 7),
            metric_report(4, 8),
        )

        result = runner.invoke(
            app,
            [
                "reports", "--session", SEQUENCE_ID, "--archive", path,
                "--min-version", "2", "--before-version", "4", "--unique", "--json",
            ],
            env=QUIET,
        )

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert [r["mdib_version"] for r in output["reports"]] == [2, 3]


def test_reports_unique_invalidated_run_exits_1():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir, metric_report(1, "A"), metric_report(1, "B"))

        result = runner.invoke(
            app, ["reports", "--session", SEQUENCE_ID, "--archive", path, "--unique", "--json"], env=QUIET
        )

        assert result.exit_code == 1
        output = json.loads(result.stdout)
        assert output["count"] == 2
        assert len(output["invalidations"]) == 1


def test_replay_malformed_report_exits_2():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir)
        FileMessageArchive(path)._append_record(
            "report",
            {
                "sequence_id": SEQUENCE_ID,
                "mdib_version": 1,
                "kind": "EpisodicMetricReport",
                "payload": {"report_parts": [{"states": ["garbage"]}]},
            },
        )

        result = runner.invoke(app, ["replay", "--session", SEQUENCE_ID, "--archive", path], env=QUIET)

        assert result.exit_code == 2


def test_verify_detects_tampering():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_archive(tmpdir, metric_report(1, 5))

        result = runner.invoke(app, ["verify", "--archive", path, "--json"], env=QUIET)
        assert result.exit_code == 0
        assert json.loads(result.stdout)["valid"] is True

        with open(path, "r") as f:
            lines = f.read().replace('"value":5', '"value":6')
        with open(path, "w") as f:
            f.write(lines)

        result = runner.invoke(app, ["verify", "--archive", path, "--json"], env=QUIET)
        assert result.exit_code == 1
        assert json.loads(result.stdout)["valid"] is False
