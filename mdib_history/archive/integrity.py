"""
Hash chain integrity for the message archive.

Every archived record carries the hash of its predecessor. The record hash
doubles as the origin id handed out with decoded reports.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from ..core.canonical import canonical_json_bytes

ZERO_HASH = "0" * 64


def hash_record(prev_hash: str, record: Dict[str, Any]) -> str:
    """
    Compute hash of a record chained to the previous hash.

    Hash input: prev_hash + canonical_json(record)
    """
    b = prev_hash.encode("utf-8") + canonical_json_bytes(record)
    return hashlib.sha256(b).hexdigest()


def chain_record(prev_hash: str, record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create hash chain entry for storage.

    Returns:
        Dict ready for JSON serialization
    """
    return {
        "prev_hash": prev_hash,
        "record_hash": hash_record(prev_hash, record),
        "record": record,
    }


@dataclass
class ChainVerificationResult:
    valid: bool
    checked: int = 0
    error: Optional[str] = None
    mismatch_seq: Optional[int] = None
    expected: Optional[str] = None
    actual: Optional[str] = None


def verify_chain(entries: Iterable[Dict[str, Any]]) -> ChainVerificationResult:
    """
    Verify prev_hash links and record hashes of raw chain entries.

    Args:
        entries: Raw {"prev_hash", "record_hash", "record"} dicts in storage order
    """
    prev_hash = ZERO_HASH
    checked = 0
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("record"), dict):
            return ChainVerificationResult(valid=False, checked=checked, error="malformed entry")
        record = entry["record"]
        seq = record.get("seq")
        if entry.get("prev_hash") != prev_hash:
            return ChainVerificationResult(
                valid=False,
                checked=checked,
                error="prev_hash mismatch",
                mismatch_seq=seq,
                expected=prev_hash,
                actual=entry.get("prev_hash"),
            )
        computed = hash_record(prev_hash, record)
        if entry.get("record_hash") != computed:
            return ChainVerificationResult(
                valid=False,
                checked=checked,
                error="record_hash mismatch",
                mismatch_seq=seq,
                expected=computed,
                actual=entry.get("record_hash"),
            )
        prev_hash = computed
        checked += 1
    return ChainVerificationResult(valid=True, checked=checked)
