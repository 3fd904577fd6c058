"""
Canonical form of captured report payloads and archive records.

A retransmitted report is recognised by comparing canonical bytes: two payloads
with the same mdib version describe the same change exactly when these bytes
match, whatever the key order in the captured message was. The archive hash
chain and the payload digest column of the `reports` table are computed over
the same bytes.
"""

import hashlib
import json
from typing import Any


def canonicalize(obj: Any) -> Any:
    """
    Normalize a decoded payload so that equal report content has equal structure.

    Mapping keys are sorted and tuples become lists, recursively. The order of
    report parts and of states inside a part is meaningful and is left as is.
    """
    if isinstance(obj, dict):
        return {k: canonicalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    return obj


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Bytes fed to the archive record hash and to duplicate detection.

    Output is compact UTF-8 with sorted keys. Non-ASCII device labels are not
    escaped, so they hash the same on every platform.
    """
    canon = canonicalize(obj)
    s = json.dumps(canon, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def canonical_json_str(obj: Any) -> str:
    # One archive line per record
    return canonical_json_bytes(obj).decode("utf-8")


def payload_digest(obj: Any) -> str:
    """Short identity of a report payload, shown next to each report in listings."""
    return hashlib.sha256(canonical_json_bytes(obj)).hexdigest()


def structurally_equal(left: Any, right: Any) -> bool:
    """True if two report payloads carry the same content (retransmission, not conflict)."""
    return canonical_json_bytes(left) == canonical_json_bytes(right)
