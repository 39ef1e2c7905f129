"""Abstract queue transport.

The worker loop depends on BaseQueue, not on SQS, so the transport can be
swapped (or faked in tests) without touching the loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from contentlens_core.models import QueueMessage

RECEIPT_HANDLE_PREVIEW_LENGTH = 20


def preview_receipt_handle(receipt_handle: str | None) -> str:
    if not receipt_handle:
        return "undefined"
    return receipt_handle[:RECEIPT_HANDLE_PREVIEW_LENGTH] + "..."


class BaseQueue(ABC):
    @abstractmethod
    def receive_messages(
        self, max_messages: int, wait_time_seconds: int, visibility_timeout: int
    ) -> list[QueueMessage]:
        """Long-poll for up to ``max_messages`` messages and lease them.

        Raises QueueUnavailableError when the queue cannot be used at all and
        TransientQueueError for failures worth retrying.
        """

    @abstractmethod
    def delete_message(self, receipt_handle: str | None) -> bool:
        """Delete a leased message. Returns True when this call deleted it.

        A missing or already-invalid receipt handle is logged and returns
        False rather than raising.
        """

    @abstractmethod
    def send_message(self, body: dict) -> str:
        """Enqueue ``body`` as JSON and return the transport's message id."""
