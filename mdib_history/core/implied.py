"""
Implied value resolution for optional MDIB attributes.

The standard defines a fixed default for every optional attribute. For the
version attributes of descriptors and states the default is only legal until
a handle has been seen with an explicit version: once a provider reported a
version for a handle, it must keep reporting it for the rest of the sequence.
"""

from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set, Tuple

from .errors import MissingImpliedValue

DEFAULT_CODING_SYSTEM = "urn:oid:1.2.840.10004.1.1.1.0.0.1"

IMPLIED_VALUES: Dict[str, Any] = {
    "mdib_version": 0,
    "instance_id": 0,
    "description_version": 0,
    "state_version": 0,
    "descriptor_version": 0,
    "safety_classification": "Inf",
    "activation_state": "On",
    "mode": "Real",
    "qi": Decimal(1),
    "retriggerable": True,
    "access_level": "Usr",
    "default_condition_generation_delay": timedelta(0),
    "default_signal_generation_delay": timedelta(0),
    "signal_delegation_supported": False,
    "acknowledgement_supported": False,
    "auto_limit_supported": False,
    "location": "Loc",
    "calibration_type": "Unspec",
    "criticality": "Lo",
    "critical_use": False,
    "coding_system": DEFAULT_CODING_SYSTEM,
    "lang": "en",
    "operating_mode": "Nml",
    "modification_type": "Upt",
    "update_period": timedelta(seconds=1),
    "context_association": "No",
}

# Attributes whose default depends on the node type.
TYPED_IMPLIED_VALUES: Dict[Tuple[str, str], Any] = {
    ("AlertConditionState", "presence"): False,
    ("LimitAlertConditionState", "presence"): False,
    ("AlertSignalState", "presence"): "Off",
}


class VersionTrack(str, Enum):
    DESCRIPTOR_VERSION = "descriptor version"
    STATE_VERSION = "state version"
    STATE_DESCRIPTOR_VERSION = "state descriptor version"


class ImpliedValueTracker:
    """
    Tracks which handles have been seen with an explicit version.

    Descriptor versions are tracked by descriptor handle. State versions and
    state descriptor versions are tracked by the state handle for multi states
    and by the descriptor handle otherwise. A separate tracker is required for
    each sequence id.
    """

    def __init__(self) -> None:
        self._explicit: Dict[VersionTrack, Set[str]] = {track: set() for track in VersionTrack}

    def is_initial(self, track: VersionTrack, handle: str) -> bool:
        return handle not in self._explicit[track]

    def set_non_initial(self, track: VersionTrack, handle: str) -> None:
        self._explicit[track].add(handle)

    def copy(self) -> "ImpliedValueTracker":
        other = ImpliedValueTracker()
        for track, handles in self._explicit.items():
            other._explicit[track] = set(handles)
        return other


def implied_value(node: Mapping[str, Any], attribute: str) -> Any:
    """
    Get an attribute or its implied value, without version tracking.

    Raises:
        KeyError: If the standard defines no implied value for the attribute
    """
    value = node.get(attribute)
    if value is not None:
        return value
    typed_key = (node.get("type"), attribute)
    if typed_key in TYPED_IMPLIED_VALUES:
        return TYPED_IMPLIED_VALUES[typed_key]
    if attribute not in IMPLIED_VALUES:
        raise KeyError(f"No implied value defined for attribute {attribute}")
    return IMPLIED_VALUES[attribute]


def is_state(node: Mapping[str, Any]) -> bool:
    return "descriptor_handle" in node


def state_handle(state: Mapping[str, Any]) -> str:
    """Handle of a multi state, descriptor handle of any other state."""
    return state.get("handle") or state["descriptor_handle"]


def _tracked_version(
    value: Any, handle: str, track: VersionTrack, tracker: ImpliedValueTracker
) -> int:
    if value is None:
        if not tracker.is_initial(track, handle):
            raise MissingImpliedValue(handle, track.value)
        return 0
    tracker.set_non_initial(track, handle)
    return int(value)


def descriptor_version(descriptor: Mapping[str, Any], tracker: ImpliedValueTracker) -> int:
    return _tracked_version(
        descriptor.get("descriptor_version"),
        descriptor["handle"],
        VersionTrack.DESCRIPTOR_VERSION,
        tracker,
    )


def state_version(state: Mapping[str, Any], tracker: ImpliedValueTracker) -> int:
    return _tracked_version(
        state.get("state_version"), state_handle(state), VersionTrack.STATE_VERSION, tracker
    )


def state_descriptor_version(state: Mapping[str, Any], tracker: ImpliedValueTracker) -> int:
    return _tracked_version(
        state.get("descriptor_version"),
        state_handle(state),
        VersionTrack.STATE_DESCRIPTOR_VERSION,
        tracker,
    )


def resolve(
    node: Mapping[str, Any], attribute: str, tracker: Optional[ImpliedValueTracker] = None
) -> Any:
    """
    Get an attribute of a descriptor or state, falling back to its implied value.

    Version attributes go through the tracker, every other attribute uses the
    fixed default. Must be called once per occurrence, in capture order.

    Raises:
        MissingImpliedValue: If a version is omitted after it was explicit before
        ValueError: If a version attribute is resolved without a tracker
    """
    if attribute in ("descriptor_version", "state_version"):
        if tracker is None:
            raise ValueError(f"Resolving {attribute} requires an ImpliedValueTracker")
        if not is_state(node):
            if attribute == "state_version":
                raise ValueError("Descriptors carry no state version")
            return descriptor_version(node, tracker)
        if attribute == "state_version":
            return state_version(node, tracker)
        return state_descriptor_version(node, tracker)
    return implied_value(node, attribute)
