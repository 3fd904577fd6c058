"""
Report and snapshot models.

Reports are immutable records of MDIB changes as captured from the provider.
A snapshot is a full MDIB document (GetMdibResponse) used as replay baseline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .errors import UnmarshalError
from .implied import implied_value


class ReportKind(str, Enum):
    """Message body types relevant for MDIB history."""

    METRIC = "EpisodicMetricReport"
    ALERT = "EpisodicAlertReport"
    CONTEXT = "EpisodicContextReport"
    COMPONENT = "EpisodicComponentReport"
    OPERATIONAL_STATE = "EpisodicOperationalStateReport"
    DESCRIPTION_MODIFICATION = "DescriptionModificationReport"
    WAVEFORM = "WaveformStream"
    OBSERVED_VALUE = "ObservedValueStream"
    OPERATION_INVOKED = "OperationInvokedReport"


RELEVANT_REPORT_KINDS: FrozenSet[ReportKind] = frozenset(ReportKind)

# Kinds the state application engine writes into the MDIB; the rest pass through unapplied.
EPISODIC_REPORT_KINDS: FrozenSet[ReportKind] = frozenset(
    {
        ReportKind.METRIC,
        ReportKind.ALERT,
        ReportKind.CONTEXT,
        ReportKind.COMPONENT,
        ReportKind.OPERATIONAL_STATE,
        ReportKind.DESCRIPTION_MODIFICATION,
        ReportKind.WAVEFORM,
    }
)


def _version(value: Any) -> Optional[int]:
    """Decode an unsigned version counter. None (omitted) is kept as is."""
    if value is None:
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"Invalid version {value!r}")
    version = int(value)
    if version < 0:
        raise ValueError(f"Negative version {value!r}")
    return version


@dataclass(frozen=True)
class Report:
    """
    Immutable report record.

    Fields:
        sequence_id: Sequence id the report belongs to
        version: MDIB version of the report (implied value 0 if omitted)
        kind: Report body type
        payload: Report content (report parts, states, descriptors)
        origin_id: Archive-assigned token, only used for diagnostics
        timestamp: Arrival time in nanoseconds since epoch
    """
    sequence_id: str
    version: int
    kind: ReportKind
    payload: Dict[str, Any] = field(default_factory=dict)
    origin_id: str = ""
    timestamp: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_id": self.sequence_id,
            "mdib_version": self.version,
            "kind": self.kind.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any], origin_id: str = "") -> "Report":
        try:
            return Report(
                sequence_id=data["sequence_id"],
                version=_version(implied_value(data, "mdib_version")),
                kind=ReportKind(data["kind"]),
                payload=dict(data.get("payload") or {}),
                origin_id=origin_id,
                timestamp=int(data.get("timestamp", 0)),
            )
        except (KeyError, ValueError, TypeError) as ex:
            raise UnmarshalError(
                f"Could not unmarshall report in message {origin_id}: {ex}", origin_id
            ) from ex


@dataclass(frozen=True)
class Snapshot:
    """
    Full MDIB document of one sequence id.

    Versions keep their wire representation; None means omitted and resolves
    to the implied value when the snapshot is materialized.
    """
    sequence_id: str
    descriptors: List[Dict[str, Any]] = field(default_factory=list)
    states: List[Dict[str, Any]] = field(default_factory=list)
    mdib_version: Optional[int] = None
    description_version: Optional[int] = None
    state_version: Optional[int] = None
    instance_id: Optional[int] = None
    origin_id: str = ""
    timestamp: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sequence_id": self.sequence_id,
            "descriptors": self.descriptors,
            "states": self.states,
            "timestamp": self.timestamp,
        }
        for key in ("mdib_version", "description_version", "state_version", "instance_id"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any], origin_id: str = "") -> "Snapshot":
        try:
            return Snapshot(
                sequence_id=data["sequence_id"],
                descriptors=list(data.get("descriptors") or []),
                states=list(data.get("states") or []),
                mdib_version=_version(data.get("mdib_version")),
                description_version=_version(data.get("description_version")),
                state_version=_version(data.get("state_version")),
                instance_id=_version(data.get("instance_id")),
                origin_id=origin_id,
                timestamp=int(data.get("timestamp", 0)),
            )
        except (KeyError, ValueError, TypeError) as ex:
            raise UnmarshalError(
                f"Could not unmarshall Mdib in message {origin_id}: {ex}", origin_id
            ) from ex
