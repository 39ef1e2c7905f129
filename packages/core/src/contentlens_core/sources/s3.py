from __future__ import annotations

import logging

import boto3

from contentlens_core.sources.base import BaseContentSource

logger = logging.getLogger(__name__)


class S3ContentSource(BaseContentSource):
    """Fetches uploaded files and submitted text from S3.

    ``default_bucket`` is used for messages that carry a key but no bucket.
    ``endpoint_url`` points the client at LocalStack or another S3-compatible
    service.
    """

    def __init__(self, region: str, endpoint_url: str | None = None, default_bucket: str | None = None, client=None):
        self._default_bucket = default_bucket
        self._client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    def fetch_object(self, bucket: str | None, key: str | None) -> bytes:
        bucket = bucket or self._default_bucket
        if not bucket:
            raise ValueError(f"No bucket given for object {key!r} and no default bucket configured")
        logger.debug("Downloading s3://%s/%s", bucket, key)
        response = self._client.get_object(Bucket=bucket, Key=key)
        return response["Body"].read()
