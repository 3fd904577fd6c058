"""
State application engine: merge reports into a StateCursor.

Handlers are registered per report kind. Applying is transactional: a report
that cannot be merged leaves the cursor as it was.
"""

import logging
from typing import Callable, Dict

from ..core.errors import HistorianError, StateApplicationError
from ..core.implied import implied_value
from ..core.reports import Report, ReportKind, Snapshot
from .cursor import StateCursor
from .handlers import register_handlers, write_descriptor, write_state

logger = logging.getLogger(__name__)

# Handler signature: (cursor, report) -> None, mutating the cursor
Handler = Callable[[StateCursor, Report], None]


class StateApplicationEngine:
    """
    Registry of report handlers.

    Usage:
        engine = StateApplicationEngine()
        engine.register(ReportKind.METRIC, apply_state_report)
        cursor = engine.materialize(snapshot)
        engine.apply(cursor, report)
    """

    def __init__(self) -> None:
        self._handlers: Dict[ReportKind, Handler] = {}

    def register(self, kind: ReportKind, handler: Handler) -> None:
        self._handlers[kind] = handler

    def handles(self, kind: ReportKind) -> bool:
        return kind in self._handlers

    def materialize(self, snapshot: Snapshot) -> StateCursor:
        """
        Create a fresh cursor from a full MDIB.

        Raises:
            StateApplicationError: If the MDIB tree is inconsistent
            MissingImpliedValue: If a handle occurs with and then without a version
        """
        raw = snapshot.to_dict()
        cursor = StateCursor(
            sequence_id=snapshot.sequence_id,
            mdib_version=implied_value(raw, "mdib_version"),
            description_version=implied_value(raw, "description_version"),
            state_version=implied_value(raw, "state_version"),
            instance_id=implied_value(raw, "instance_id"),
        )
        for descriptor in snapshot.descriptors:
            write_descriptor(cursor, descriptor, descriptor.get("parent"))
        for handle, descriptor in cursor.descriptors.items():
            parent = descriptor.get("parent")
            if parent is not None and parent not in cursor.descriptors:
                raise StateApplicationError(f"Descriptor {handle} references unknown parent {parent}")
        for state in snapshot.states:
            write_state(cursor, state)

        logger.debug(
            "Materialized mdib %s version %s with %d descriptors and %d states",
            cursor.sequence_id,
            cursor.mdib_version,
            len(cursor.descriptors),
            len(cursor.states),
        )
        return cursor

    def apply(self, cursor: StateCursor, report: Report) -> StateCursor:
        """
        Apply report to cursor in place.

        Returns:
            The same cursor instance

        Raises:
            StateApplicationError: If no handler is registered or the report cannot be merged
            MissingImpliedValue: If the report drops a version that was explicit before
        """
        if report.kind not in self._handlers:
            raise StateApplicationError(f"No handler for report type: {report.kind.value}")

        descriptors = dict(cursor.descriptors)
        states = dict(cursor.states)
        implied_values = cursor.implied_values.copy()
        try:
            self._handlers[report.kind](cursor, report)
        except (HistorianError, AttributeError, KeyError, TypeError, ValueError) as ex:
            cursor.descriptors = descriptors
            cursor.states = states
            cursor.implied_values = implied_values
            if isinstance(ex, HistorianError):
                raise
            raise StateApplicationError(
                f"Could not apply {report.kind.value} {report.origin_id}: {ex!r}"
            ) from ex

        cursor.mdib_version = report.version
        return cursor


def default_engine() -> StateApplicationEngine:
    """Engine with handlers for every episodic report kind."""
    engine = StateApplicationEngine()
    register_handlers(engine)
    return engine
