"""Queue worker loop: lease messages, hand them to the orchestrator, dispose of them.

Message disposition after an attempt:

    invalid body                        → delete (never reaches the orchestrator)
    completed                           → delete
    failed, fatal, failure persisted    → delete
    failed, delivered max_receive_count → delete (poison message)
    any other failure                   → leave; the lease expires and the
                                          queue redelivers it

A QueueUnavailableError stops the loop. Any other polling failure is logged
and retried after a capped exponential backoff; a transient failure to delete
a message is retried on the same schedule, up to DELETE_ATTEMPTS times.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass

from contentlens_core.errors import (
    FATAL,
    QueueUnavailableError,
    ReviewFailedError,
    TransientQueueError,
)
from contentlens_core.models import QueueMessage, ReviewRequest
from contentlens_core.orchestrator import ReviewOrchestrator
from contentlens_core.queue.base import BaseQueue, preview_receipt_handle

logger = logging.getLogger(__name__)

BODY_PREVIEW_LENGTH = 200
DELETE_ATTEMPTS = 3


@dataclass
class WorkerRunSummary:
    """Counters accumulated over the lifetime of a worker."""

    received: int = 0
    succeeded: int = 0
    failed: int = 0
    invalid: int = 0
    deleted: int = 0
    redelivered: int = 0
    poisoned: int = 0
    idle_polls: int = 0
    poll_errors: int = 0
    delete_errors: int = 0


class QueueWorker:
    def __init__(
        self,
        queue: BaseQueue,
        orchestrator: ReviewOrchestrator,
        max_messages: int = 10,
        wait_time_seconds: int = 20,
        visibility_timeout: int = 300,
        error_backoff: float = 5.0,
        max_error_backoff: float = 60.0,
        max_receive_count: int | None = None,
    ):
        self.queue = queue
        self.orchestrator = orchestrator
        self.max_messages = max_messages
        self.wait_time_seconds = wait_time_seconds
        self.visibility_timeout = visibility_timeout
        self.error_backoff = error_backoff
        self.max_error_backoff = max_error_backoff
        self.max_receive_count = max_receive_count
        self.summary = WorkerRunSummary()
        self._running = False

    # ------------------------------------------------------------------ #
    # Loop control                                                         #
    # ------------------------------------------------------------------ #

    async def run(self) -> WorkerRunSummary:
        """Poll until stop() is called or the queue becomes unusable.

        Re-raises QueueUnavailableError after stopping.
        """
        self._running = True
        consecutive_errors = 0
        logger.info("Worker started: %s", self.status())

        while self._running:
            try:
                await self.run_once()
                consecutive_errors = 0
            except QueueUnavailableError:
                logger.critical("Queue is unavailable - stopping worker")
                self._running = False
                raise
            except Exception as e:
                consecutive_errors += 1
                self.summary.poll_errors += 1
                delay = min(self.error_backoff * 2 ** (consecutive_errors - 1), self.max_error_backoff)
                logger.warning("Error polling queue (%s). Retrying in %.0fs...", e, delay)
                await asyncio.sleep(delay)

        logger.info("Worker stopped: %s", asdict(self.summary))
        return self.summary

    def stop(self) -> None:
        """Ask the loop to exit once the in-flight poll and batch finish."""
        self._running = False

    def status(self) -> dict:
        return {
            "running": self._running,
            "queue_url": getattr(self.queue, "queue_url", None),
            "max_messages": self.max_messages,
            "wait_time_seconds": self.wait_time_seconds,
            "visibility_timeout": self.visibility_timeout,
            "max_receive_count": self.max_receive_count,
        }

    async def run_once(self) -> int:
        """Receive one batch and process its messages concurrently.

        Returns the number of messages received.
        """
        messages = await asyncio.to_thread(
            self.queue.receive_messages,
            self.max_messages,
            self.wait_time_seconds,
            self.visibility_timeout,
        )
        if not messages:
            self.summary.idle_polls += 1
            return 0

        logger.info("Received %d message(s)", len(messages))
        self.summary.received += len(messages)
        await asyncio.gather(*(self.handle_message(m) for m in messages))
        return len(messages)

    # ------------------------------------------------------------------ #
    # Per-message handling                                                 #
    # ------------------------------------------------------------------ #

    async def handle_message(self, message: QueueMessage) -> bool:
        """Process one message. Returns True when the message was deleted."""
        start = time.monotonic()
        try:
            request = ReviewRequest.from_message_body(message.body)
        except Exception as e:
            # Any body that cannot become a request is structurally invalid.
            self.summary.invalid += 1
            logger.error(
                "Invalid message %s (%s) - deleting. Body preview: %r",
                message.message_id,
                e,
                (message.body or "")[:BODY_PREVIEW_LENGTH],
            )
            return await self._delete(message)

        logger.info(
            "Processing message %s for review %s (receipt %s, delivery %d)",
            message.message_id,
            request.review_id,
            preview_receipt_handle(message.receipt_handle),
            message.receive_count,
        )

        try:
            await self.orchestrator.process(request)
        except ReviewFailedError as e:
            self.summary.failed += 1
            if self._should_delete_failed(message, e):
                return await self._delete(message)
            self.summary.redelivered += 1
            logger.warning(
                "Review %s failed (%s); leaving message %s for redelivery",
                request.review_id,
                e.record.user_message,
                message.message_id,
            )
            return False
        except Exception:
            self.summary.failed += 1
            self.summary.redelivered += 1
            logger.exception(
                "Unexpected error processing message %s; leaving it for redelivery",
                message.message_id,
            )
            return False

        self.summary.succeeded += 1
        logger.info(
            "Message %s processed in %dms",
            message.message_id,
            round((time.monotonic() - start) * 1000),
        )
        return await self._delete(message)

    def _should_delete_failed(self, message: QueueMessage, error: ReviewFailedError) -> bool:
        if error.disposition == FATAL and error.persisted:
            logger.info("Review %s failed permanently; deleting message", error.review_id)
            return True
        if self.max_receive_count and message.receive_count >= self.max_receive_count:
            self.summary.poisoned += 1
            logger.error(
                "Review %s failed on delivery %d of %d; deleting poison message %s",
                error.review_id,
                message.receive_count,
                self.max_receive_count,
                message.message_id,
            )
            return True
        return False

    async def _delete(self, message: QueueMessage) -> bool:
        """Delete ``message``, retrying transient queue errors with backoff.

        Returns True only when the transport confirms the delete.
        """
        for attempt in range(DELETE_ATTEMPTS):
            try:
                deleted = await asyncio.to_thread(self.queue.delete_message, message.receipt_handle)
            except TransientQueueError as e:
                if attempt == DELETE_ATTEMPTS - 1:
                    self.summary.delete_errors += 1
                    logger.error(
                        "Failed to delete message %s after %d attempts (%s) - "
                        "it will be reprocessed after the visibility timeout",
                        message.message_id,
                        DELETE_ATTEMPTS,
                        e,
                    )
                    return False
                delay = min(self.error_backoff * 2**attempt, self.max_error_backoff)
                logger.warning(
                    "Error deleting message %s (attempt %d/%d): %s. Retrying in %.0fs...",
                    message.message_id,
                    attempt + 1,
                    DELETE_ATTEMPTS,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
                continue
            if not deleted:
                return False
            self.summary.deleted += 1
            return True
        return False
