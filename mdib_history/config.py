"""
Historian configuration from environment variables.

Environment Variables:
    MDIB_HISTORY_ARCHIVE: Path to JSONL archive - default: /tmp/mdib-history/archive.jsonl
    MDIB_HISTORY_S3_BUCKET: Read the archive from this bucket instead of a file
    MDIB_HISTORY_S3_PREFIX: Key prefix inside the bucket - default: archive
    MDIB_HISTORY_S3_ENDPOINT: S3 endpoint URL (MinIO, localstack)
    MDIB_HISTORY_DEDUPLICATE: Collapse duplicates in replay_history by default - default: false
    MDIB_HISTORY_COPY_STATES: Yield a copy of the cursor per replay step - default: false
"""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_ARCHIVE_PATH = "/tmp/mdib-history/archive.jsonl"


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None or not val.strip():
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class HistorianConfig:
    """
    Fields:
        archive_path: JSONL archive location
        s3_bucket: S3 bucket holding the archive (None = use archive_path)
        s3_prefix: Key prefix of archive objects
        s3_endpoint: Custom S3 endpoint
        deduplicate: Default for replay_history(deduplicate=...)
        copy_states: Yield independent cursor copies instead of the shared cursor
    """
    archive_path: str = DEFAULT_ARCHIVE_PATH
    s3_bucket: Optional[str] = None
    s3_prefix: str = "archive"
    s3_endpoint: Optional[str] = None
    deduplicate: bool = False
    copy_states: bool = False

    @staticmethod
    def from_env() -> "HistorianConfig":
        return HistorianConfig(
            archive_path=os.getenv("MDIB_HISTORY_ARCHIVE", DEFAULT_ARCHIVE_PATH),
            s3_bucket=os.getenv("MDIB_HISTORY_S3_BUCKET") or None,
            s3_prefix=os.getenv("MDIB_HISTORY_S3_PREFIX", "archive"),
            s3_endpoint=os.getenv("MDIB_HISTORY_S3_ENDPOINT") or None,
            deduplicate=_env_bool("MDIB_HISTORY_DEDUPLICATE"),
            copy_states=_env_bool("MDIB_HISTORY_COPY_STATES"),
        )
