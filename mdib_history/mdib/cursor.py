"""
Mutable MDIB state cursor.

A cursor is the MDIB as of the last applied report. Unlike the immutable
report records, it is updated in place by the state application engine.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.implied import ImpliedValueTracker


@dataclass
class StateCursor:
    """
    MDIB of one sequence id.

    Fields:
        sequence_id: Sequence id of the MDIB
        mdib_version: Version of the last applied report (never decreases)
        description_version: MdDescription version of the baseline
        state_version: MdState version of the baseline
        instance_id: Instance id of the baseline
        descriptors: handle -> descriptor, each with a "parent" handle (None for MDS)
        states: state handle (descriptor handle for single states) -> state
        implied_values: Version tracker of this reconstruction pass
    """
    sequence_id: str
    mdib_version: int = 0
    description_version: int = 0
    state_version: int = 0
    instance_id: int = 0
    descriptors: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    states: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    implied_values: ImpliedValueTracker = field(default_factory=ImpliedValueTracker)

    @property
    def version(self) -> int:
        return self.mdib_version

    def descriptor(self, handle: str) -> Optional[Dict[str, Any]]:
        return self.descriptors.get(handle)

    def state(self, handle: str) -> Optional[Dict[str, Any]]:
        return self.states.get(handle)

    def states_of(self, descriptor_handle: str) -> List[Dict[str, Any]]:
        """All states of a descriptor; more than one for context descriptors."""
        return [s for s in self.states.values() if s.get("descriptor_handle") == descriptor_handle]

    def children_of(self, handle: str) -> List[str]:
        return [h for h, d in self.descriptors.items() if d.get("parent") == handle]

    def copy(self) -> "StateCursor":
        """Independent deep copy, including the version tracker."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_id": self.sequence_id,
            "mdib_version": self.mdib_version,
            "description_version": self.description_version,
            "state_version": self.state_version,
            "instance_id": self.instance_id,
            "descriptors": self.descriptors,
            "states": self.states,
        }
