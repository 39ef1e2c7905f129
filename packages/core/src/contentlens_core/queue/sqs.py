"""SQS transport for the review queue."""

from __future__ import annotations

import json
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ConnectionError as BotoConnectionError, ReadTimeoutError

from contentlens_core.errors import QueueUnavailableError, TransientQueueError
from contentlens_core.models import QueueMessage
from contentlens_core.queue.base import BaseQueue, preview_receipt_handle

logger = logging.getLogger(__name__)

_MISSING_QUEUE_CODES = {"AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist"}
_ACCESS_DENIED_CODES = {"AccessDenied", "AccessDeniedException"}
_THROTTLING_CODES = {"ThrottlingException", "RequestThrottled"}
_STALE_HANDLE_CODES = {"ReceiptHandleIsInvalid", "InvalidParameterValue"}


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return type(exc).__name__


class SQSQueue(BaseQueue):
    def __init__(self, queue_url: str, region: str, endpoint_url: str | None = None, client=None):
        if not queue_url:
            raise ValueError("An SQS queue URL is required.")
        self.queue_url = queue_url
        self._client = client or boto3.client("sqs", region_name=region, endpoint_url=endpoint_url)

    def receive_messages(
        self, max_messages: int, wait_time_seconds: int, visibility_timeout: int
    ) -> list[QueueMessage]:
        try:
            response = self._client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_time_seconds,
                VisibilityTimeout=visibility_timeout,
                AttributeNames=["ApproximateReceiveCount"],
                MessageAttributeNames=["All"],
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e) from e

        return [
            QueueMessage(
                message_id=m.get("MessageId", ""),
                receipt_handle=m.get("ReceiptHandle"),
                body=m.get("Body"),
                receive_count=int(m.get("Attributes", {}).get("ApproximateReceiveCount", 1)),
            )
            for m in response.get("Messages", [])
        ]

    def delete_message(self, receipt_handle: str | None) -> bool:
        if not receipt_handle:
            logger.warning("Cannot delete message: missing receipt handle")
            return False
        try:
            self._client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
        except (ClientError, BotoCoreError) as e:
            if _error_code(e) in _STALE_HANDLE_CODES:
                logger.warning(
                    "Receipt handle %s is invalid (message may have already been deleted or expired)",
                    preview_receipt_handle(receipt_handle),
                )
                return False
            raise self._translate(e) from e
        logger.debug("Deleted message %s", preview_receipt_handle(receipt_handle))
        return True

    def send_message(self, body: dict) -> str:
        try:
            response = self._client.send_message(QueueUrl=self.queue_url, MessageBody=json.dumps(body))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e) from e
        return response["MessageId"]

    def _translate(self, exc: Exception) -> Exception:
        code = _error_code(exc)
        if code in _MISSING_QUEUE_CODES:
            logger.critical("SQS queue %s does not exist", self.queue_url)
            return QueueUnavailableError(f"SQS queue does not exist: {self.queue_url}")
        if code in _ACCESS_DENIED_CODES:
            logger.critical("Access denied to SQS queue %s, check IAM permissions", self.queue_url)
            return QueueUnavailableError(f"Access denied to SQS queue: {self.queue_url}")
        if code in _THROTTLING_CODES:
            logger.warning("SQS request throttled (%s)", code)
        elif isinstance(exc, (BotoConnectionError, ReadTimeoutError)):
            logger.warning("SQS network error (%s): %s", code, exc)
        else:
            logger.error("SQS request failed (%s): %s", code, exc)
        return TransientQueueError(f"SQS request failed ({code}): {exc}")
