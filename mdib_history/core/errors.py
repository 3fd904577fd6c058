"""
Exception types for MDIB history reconstruction.
"""

from typing import Optional


class HistorianError(Exception):
    """Base class for history reconstruction errors."""
    pass


class NoBaselineSnapshot(HistorianError):
    """Raised when no initial MDIB snapshot exists for a sequence id."""

    def __init__(self, sequence_id: str) -> None:
        self.sequence_id = sequence_id
        super().__init__(f"No initial mdib present for sequence id {sequence_id}")


class ReportOlderThanCursor(HistorianError):
    """Raised when a report would move the cursor back to an older MDIB version."""

    def __init__(self, cursor_version: int, report_version: int, kind: str) -> None:
        self.cursor_version = cursor_version
        self.report_version = report_version
        self.kind = kind
        super().__init__(
            "Cannot apply report older than current storage."
            f" Storage {cursor_version} Report {report_version} {kind}"
        )


class MissingImpliedValue(HistorianError):
    """Raised when a version attribute disappears after it was reported explicitly."""

    def __init__(self, handle: str, attribute: str) -> None:
        self.handle = handle
        self.attribute = attribute
        super().__init__(
            f"The {attribute} for handle {handle} is null but was not allowed to be."
            " It occurred previously without an implied value."
        )


class DuplicateContentMismatch(HistorianError):
    """
    Two reports share MDIB version and kind but differ in content.

    Never raised by the historian. Passed as the cause of a test run invalidation.
    """

    def __init__(self, version: int, kind: str, first_origin: str, second_origin: str) -> None:
        self.version = version
        self.kind = kind
        self.first_origin = first_origin
        self.second_origin = second_origin
        super().__init__(
            f"Reports {first_origin} and {second_origin} share mdib version {version}"
            f" and type {kind} but differ in content"
        )


class ArchiveIOError(HistorianError):
    """Raised when the message archive cannot be read or written."""
    pass


class UnmarshalError(HistorianError):
    """Raised when an archived record cannot be decoded."""

    def __init__(self, message: str, origin_id: Optional[str] = None) -> None:
        self.origin_id = origin_id
        super().__init__(message)


class StateApplicationError(HistorianError):
    """Raised when a report cannot be merged into the MDIB."""
    pass
