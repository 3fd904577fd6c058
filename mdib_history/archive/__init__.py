"""
Message archive access.

This module provides:
- MessageArchive: Abstract interface for captured message storage
- ArchiveQuery: Closable report sequence returned by queries
- FileMessageArchive: File-based append-only storage (JSONL)
- S3MessageArchive: S3-based append-only storage (one object per record)
- Integrity: Hash chain verification
"""

from ..config import HistorianConfig
from .store import ArchiveQuery, MessageArchive
from .file_store import FileMessageArchive
from .s3_store import S3MessageArchive
from .integrity import ZERO_HASH, ChainVerificationResult, chain_record, hash_record, verify_chain


def open_archive(config: HistorianConfig) -> MessageArchive:
    """S3 archive if a bucket is configured, file archive otherwise."""
    if config.s3_bucket:
        return S3MessageArchive(
            bucket=config.s3_bucket,
            prefix=config.s3_prefix,
            endpoint_url=config.s3_endpoint,
        )
    return FileMessageArchive(config.archive_path)


__all__ = [
    "ArchiveQuery",
    "MessageArchive",
    "FileMessageArchive",
    "S3MessageArchive",
    "ZERO_HASH",
    "ChainVerificationResult",
    "chain_record",
    "hash_record",
    "verify_chain",
    "open_archive",
]
