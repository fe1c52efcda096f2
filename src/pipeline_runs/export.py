"""JSONL export of aggregated intelligence to a local directory or S3."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import boto3
from dotenv import load_dotenv

from aggregate_intelligence.models import IntelligenceResult
from common.datetime import utc_now
from common.serialization import serialize_dataclass

load_dotenv()

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "intelligence_items"


def flatten_result(result: IntelligenceResult) -> list[dict[str, Any]]:
    """One JSON-ready record per item, tagged with its bucket name."""
    records = []
    for bucket, items in result.buckets.items():
        for item in items:
            record = serialize_dataclass(item)
            record["bucket"] = bucket
            records.append(record)
    return records


def export_filename(prefix: str, now: datetime) -> str:
    return f"{prefix}_{now.strftime('%Y_%m_%d_%H_%M')}.jsonl"


def build_s3_key(prefix: str, now: datetime) -> str:
    """Partitioned key: <prefix>/year=YYYY/month=MM/day=DD/<file>."""
    return (
        f"{prefix}/"
        f"year={now.year:04d}/"
        f"month={now.month:02d}/"
        f"day={now.day:02d}/"
        f"{export_filename(prefix, now)}"
    )


def _to_jsonl(records: list[dict[str, Any]]) -> str:
    return "".join(json.dumps(record, default=str, ensure_ascii=False) + "\n" for record in records)


def save_local(
    records: list[dict[str, Any]],
    prefix: str = EXPORT_PREFIX,
    output_dir: str = "output",
    now: Optional[datetime] = None,
) -> Path:
    """Write records to output_dir/<prefix>_<timestamp>.jsonl and return the path."""
    now = now or utc_now()
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    filepath = output_path / export_filename(prefix, now)
    filepath.write_text(_to_jsonl(records), encoding="utf-8")

    logger.info("Saved %d records to %s", len(records), filepath)
    return filepath


def upload_s3(
    records: list[dict[str, Any]],
    prefix: str = EXPORT_PREFIX,
    bucket: Optional[str] = None,
    now: Optional[datetime] = None,
    s3_client=None,
) -> str:
    """Upload records as one JSONL object and return its key.

    The bucket defaults to the S3_BUCKET_NAME environment variable.
    """
    bucket = bucket or os.environ["S3_BUCKET_NAME"]
    key = build_s3_key(prefix, now or utc_now())

    s3 = s3_client or boto3.client("s3")
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=_to_jsonl(records).encode("utf-8"),
        ContentType="application/jsonl",
    )

    logger.info("Uploaded %d records to s3://%s/%s", len(records), bucket, key)
    return key
