"""
Core primitives for MDIB history reconstruction.

This module provides:
- Report / Snapshot: Immutable captured messages
- Implied values: Standard defaults and version tracking
- Canonical: Deterministic payload comparison
- InvalidationSink: Channel for non-fatal protocol violations
"""

from .errors import (
    HistorianError,
    NoBaselineSnapshot,
    ReportOlderThanCursor,
    MissingImpliedValue,
    DuplicateContentMismatch,
    ArchiveIOError,
    UnmarshalError,
    StateApplicationError,
)
from .canonical import canonicalize, canonical_json_bytes, canonical_json_str, structurally_equal
from .implied import ImpliedValueTracker, VersionTrack, implied_value, resolve
from .reports import Report, ReportKind, Snapshot, RELEVANT_REPORT_KINDS, EPISODIC_REPORT_KINDS
from .observer import InvalidationSink, TestRunObserver

__all__ = [
    "HistorianError",
    "NoBaselineSnapshot",
    "ReportOlderThanCursor",
    "MissingImpliedValue",
    "DuplicateContentMismatch",
    "ArchiveIOError",
    "UnmarshalError",
    "StateApplicationError",
    "canonicalize",
    "canonical_json_bytes",
    "canonical_json_str",
    "structurally_equal",
    "ImpliedValueTracker",
    "VersionTrack",
    "implied_value",
    "resolve",
    "Report",
    "ReportKind",
    "Snapshot",
    "RELEVANT_REPORT_KINDS",
    "EPISODIC_REPORT_KINDS",
    "InvalidationSink",
    "TestRunObserver",
]
