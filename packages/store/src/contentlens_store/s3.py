"""S3Store: review state as one JSON document per review in an S3 bucket.

Data format: `<prefix><review_id>.json` (default prefix `reviews/`), holding
the ReviewRecord as a JSON object. Every write replaces the whole document,
which gives the store its last-writer-wins semantics across workers.

list_reviews() reads every document under the prefix and sorts in memory,
which is fine for an operator's `contentlens history` but not for dashboards
over large volumes.
"""

from __future__ import annotations

import json
import logging

from contentlens_store.base import BaseStore
from contentlens_store.models import ReviewRecord

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404"}


class S3Store(BaseStore):
    def __init__(
        self,
        bucket: str,
        prefix: str = "reviews/",
        region: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ):
        super().__init__()
        if not bucket:
            raise ValueError("S3Store requires a bucket name.")
        self._bucket = bucket
        self._prefix = prefix.rstrip("/") + "/"
        if client is None:
            try:
                import boto3
            except ImportError:
                raise ImportError("boto3 is required for S3Store. Install it with: pip install boto3")
            client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)
        self._client = client

    def _key(self, review_id: str) -> str:
        return f"{self._prefix}{review_id}.json"

    def _load(self, review_id: str) -> ReviewRecord | None:
        from botocore.exceptions import ClientError

        try:
            response = self._client.get_object(Bucket=self._bucket, Key=self._key(review_id))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in _MISSING_KEY_CODES:
                return None
            raise
        return ReviewRecord.from_dict(json.loads(response["Body"].read().decode("utf-8")))

    def _write(self, record: ReviewRecord) -> None:
        self._client.put_object(
            Bucket=self._bucket,
            Key=self._key(record.review_id),
            Body=json.dumps(record.to_dict(), indent=2).encode("utf-8"),
            ContentType="application/json",
        )

    def list_reviews(self, status: str | None = None, limit: int = 50) -> list[ReviewRecord]:
        records = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self._bucket, Prefix=self._prefix):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                if not key.endswith(".json"):
                    continue
                review_id = key[len(self._prefix) : -len(".json")]
                try:
                    record = self._load(review_id)
                except (ValueError, TypeError) as e:
                    logger.warning("Skipping unreadable review document %s: %s", key, e)
                    continue
                if record is not None and (status is None or record.status == status):
                    records.append(record)

        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]
