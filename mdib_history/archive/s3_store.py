"""
S3-based message archive using one-object-per-record pattern.

Each record is stored as a separate S3 object with key: {prefix}/{seq:010d}.json
Body format: {"prev_hash": "...", "record_hash": "...", "record": {...}}
"""

import json
import os
from typing import Any, Dict, Iterator, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.canonical import canonical_json_str
from ..core.errors import ArchiveIOError, UnmarshalError
from .integrity import ZERO_HASH, chain_record
from .store import MessageArchive


class S3MessageArchive(MessageArchive):
    """
    S3-based append-only message archive.

    Key naming: seq zero-padded to 10 digits ensures lex order = numeric order.
    Example: 0000000000.json, 0000000001.json, ...

    Appends use IfNoneMatch="*" so a concurrent writer claiming the same seq
    fails instead of overwriting.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "archive",
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
    ) -> None:
        """
        Initialize S3 archive.

        Args:
            bucket: S3 bucket name
            prefix: Key prefix for records
            endpoint_url: S3 endpoint URL (for MinIO, localstack, etc.)
            region: AWS region

        Raises:
            ArchiveIOError: If the bucket is not accessible
        """
        self.bucket = bucket
        self.prefix = prefix.rstrip("/")
        self.endpoint_url = endpoint_url
        self.region = region

        self.s3_client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region)

        if os.getenv("MDIB_HISTORY_S3_SKIP_BUCKET_CHECK", "").lower() != "true":
            try:
                self.s3_client.head_bucket(Bucket=bucket)
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                raise ArchiveIOError(
                    f"Bucket '{bucket}' not accessible (code: {error_code})"
                ) from e

    def _key_for_seq(self, seq: int) -> str:
        return f"{self.prefix}/{seq:010d}.json"

    def _seq_from_key(self, key: str) -> Optional[int]:
        if not key.startswith(self.prefix + "/"):
            return None
        basename = key[len(self.prefix) + 1 :]
        if not basename.endswith(".json"):
            return None
        try:
            return int(basename[:-5])
        except ValueError:
            return None

    def _list_keys(self) -> List[Tuple[int, str]]:
        paginator = self.s3_client.get_paginator("list_objects_v2")
        keys = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix + "/"):
            for obj in page.get("Contents", []):
                seq = self._seq_from_key(obj["Key"])
                if seq is not None:
                    keys.append((seq, obj["Key"]))
        keys.sort()
        return keys

    def _get_entry(self, key: str) -> Dict[str, Any]:
        response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
        body = response["Body"].read().decode("utf-8")
        try:
            return json.loads(body)
        except ValueError as ex:
            raise UnmarshalError(f"Could not decode archive entry {key}: {ex}") from ex

    def _append_record(self, record_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            keys = self._list_keys()
            if keys:
                last = self._get_entry(keys[-1][1])
                last_seq, last_hash = last["record"]["seq"], last["record_hash"]
            else:
                last_seq, last_hash = -1, ZERO_HASH

            record = {"seq": last_seq + 1, "type": record_type, "data": data}
            entry = chain_record(last_hash, record)
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=self._key_for_seq(last_seq + 1),
                Body=canonical_json_str(entry).encode("utf-8"),
                ContentType="application/json",
                IfNoneMatch="*",
            )
            return entry
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("PreconditionFailed", "412"):
                raise ArchiveIOError(f"Concurrent append to s3://{self.bucket}/{self.prefix}") from e
            raise ArchiveIOError(f"Failed to append record to S3: {e}") from e
        except BotoCoreError as e:
            raise ArchiveIOError(f"Failed to append record to S3: {e}") from e

    def entries(self) -> Iterator[Dict[str, Any]]:
        try:
            for _, key in self._list_keys():
                yield self._get_entry(key)
        except (BotoCoreError, ClientError) as e:
            raise ArchiveIOError(f"Failed to read records from S3: {e}") from e
