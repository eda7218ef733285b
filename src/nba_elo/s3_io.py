from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3


@dataclass
class S3Path:
    bucket: str
    key: str

    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


def parse_s3_uri(uri: str) -> Optional[S3Path]:
    if not uri.startswith("s3://"):
        return None
    bucket, _, key = uri[len("s3://") :].partition("/")
    if not bucket or not key:
        raise ValueError(f"S3 URI needs a bucket and a key: {uri}")
    return S3Path(bucket, key)


class S3IO:
    def __init__(self, bucket: str, region: str) -> None:
        self.bucket = bucket
        self.region = region
        self._client = boto3.client("s3", region_name=region)

    def _put_with_retry(self, key: str, body: bytes, max_attempts: int = 5) -> None:
        delay = 0.5
        for attempt in range(1, max_attempts + 1):
            try:
                self._client.put_object(Bucket=self.bucket, Key=key, Body=body)
                return
            except Exception:
                if attempt >= max_attempts:
                    raise
                time.sleep(delay)
                delay = min(8.0, delay * 2)

    def put_bytes(self, key: str, body: bytes) -> None:
        self._put_with_retry(key, body)

    def get_object_bytes(self, key: str) -> bytes:
        obj = self._client.get_object(Bucket=self.bucket, Key=key)
        return obj["Body"].read()


def make_part_key(prefix: str, *parts: str) -> str:
    return "/".join([prefix.strip("/")] + [p.strip("/") for p in parts])


def read_bytes(location: str, region: str = "us-east-1") -> bytes:
    """Read a local path or an ``s3://bucket/key`` URI."""
    s3_path = parse_s3_uri(location)
    if s3_path is None:
        return Path(location).read_bytes()
    return S3IO(s3_path.bucket, region).get_object_bytes(s3_path.key)


def write_bytes(location: str, body: bytes, region: str = "us-east-1") -> None:
    """Write to a local path (creating parents) or an ``s3://bucket/key`` URI."""
    s3_path = parse_s3_uri(location)
    if s3_path is None:
        path = Path(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
        return
    S3IO(s3_path.bucket, region).put_bytes(s3_path.key, body)
