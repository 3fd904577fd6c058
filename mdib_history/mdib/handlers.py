"""
Report handlers for the state application engine.

Handlers never modify descriptor or state dicts in place; they store fresh,
normalized copies so the engine can roll back by restoring the previous maps.
"""

from typing import Any, Dict, Iterable, Optional

from ..core.errors import StateApplicationError
from ..core.implied import (
    descriptor_version,
    implied_value,
    state_descriptor_version,
    state_handle,
    state_version,
)
from ..core.reports import Report, ReportKind
from .cursor import StateCursor

CREATE = "Crt"
UPDATE = "Upt"
DELETE = "Del"

STATE_REPORT_KINDS = (
    ReportKind.METRIC,
    ReportKind.ALERT,
    ReportKind.CONTEXT,
    ReportKind.COMPONENT,
    ReportKind.OPERATIONAL_STATE,
)


def write_descriptor(
    cursor: StateCursor, descriptor: Dict[str, Any], parent: Optional[str]
) -> None:
    if "handle" not in descriptor:
        raise StateApplicationError("Descriptor without handle")
    normalized = dict(descriptor)
    normalized["descriptor_version"] = descriptor_version(descriptor, cursor.implied_values)
    normalized["parent"] = parent
    cursor.descriptors[descriptor["handle"]] = normalized


def write_state(cursor: StateCursor, state: Dict[str, Any]) -> None:
    descriptor_handle = state.get("descriptor_handle")
    if descriptor_handle is None:
        raise StateApplicationError("State without descriptor handle")
    if descriptor_handle not in cursor.descriptors:
        raise StateApplicationError(
            f"State {state_handle(state)} references unknown descriptor {descriptor_handle}"
        )
    normalized = dict(state)
    normalized["state_version"] = state_version(state, cursor.implied_values)
    normalized["descriptor_version"] = state_descriptor_version(state, cursor.implied_values)
    cursor.states[state_handle(state)] = normalized


def _write_states(cursor: StateCursor, states: Iterable[Dict[str, Any]]) -> None:
    for state in states:
        write_state(cursor, state)


def _delete_descriptor(cursor: StateCursor, handle: str) -> None:
    for child in cursor.children_of(handle):
        _delete_descriptor(cursor, child)
    del cursor.descriptors[handle]
    for key in [k for k, s in cursor.states.items() if s.get("descriptor_handle") == handle]:
        del cursor.states[key]


def apply_state_report(cursor: StateCursor, report: Report) -> None:
    """Episodic metric, alert, context, component and operational state reports."""
    for part in report.payload.get("report_parts", []):
        _write_states(cursor, part.get("states", []))


def apply_waveform_stream(cursor: StateCursor, report: Report) -> None:
    _write_states(cursor, report.payload.get("states", []))


def apply_description_modification(cursor: StateCursor, report: Report) -> None:
    """
    Create, update or delete descriptors.

    Each report part carries one modification type (implied value Upt), the
    parent of created descriptors, the descriptors and their states.
    """
    for part in report.payload.get("report_parts", []):
        modification = implied_value(part, "modification_type")
        descriptors = part.get("descriptors", [])

        if modification == CREATE:
            parent = part.get("parent_descriptor")
            if parent is not None and parent not in cursor.descriptors:
                raise StateApplicationError(f"Parent descriptor {parent} does not exist")
            for descriptor in descriptors:
                if descriptor.get("handle") in cursor.descriptors:
                    raise StateApplicationError(
                        f"Cannot create descriptor {descriptor.get('handle')}, it already exists"
                    )
                write_descriptor(cursor, descriptor, parent)
            _write_states(cursor, part.get("states", []))

        elif modification == UPDATE:
            for descriptor in descriptors:
                existing = cursor.descriptors.get(descriptor.get("handle"))
                if existing is None:
                    raise StateApplicationError(
                        f"Cannot update descriptor {descriptor.get('handle')}, it does not exist"
                    )
                write_descriptor(cursor, descriptor, existing.get("parent"))
            _write_states(cursor, part.get("states", []))

        elif modification == DELETE:
            for descriptor in descriptors:
                if descriptor.get("handle") not in cursor.descriptors:
                    raise StateApplicationError(
                        f"Cannot delete descriptor {descriptor.get('handle')}, it does not exist"
                    )
                _delete_descriptor(cursor, descriptor["handle"])

        else:
            raise StateApplicationError(f"Unknown modification type {modification}")


def register_handlers(engine) -> None:
    """Register the handlers for all episodic report kinds on an engine."""
    for kind in STATE_REPORT_KINDS:
        engine.register(kind, apply_state_report)
    engine.register(ReportKind.WAVEFORM, apply_waveform_stream)
    engine.register(ReportKind.DESCRIPTION_MODIFICATION, apply_description_modification)
