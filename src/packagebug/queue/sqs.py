"""
Work queue adapter (AWS SQS).

The dispatcher only needs two operations:
- `receive_one(wait_seconds)`: long-poll for at most one message (None when empty)
- `delete(message)`: acknowledge a message once it is dispatched or discarded

Messages that are never deleted become visible again after the queue's visibility
timeout, which gives at-least-once delivery.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from packagebug.config.settings import Settings
from packagebug.errors import QueueError


@dataclass(frozen=True)
class QueueMessage:
    body: str
    receipt_handle: str
    message_id: str | None = None


class SqsQueue:
    """Single-message SQS consumer."""

    def __init__(self, queue_url: str, client: Any):
        self._queue_url = queue_url
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqsQueue":
        """Build the consumer; AWS credentials come from the usual boto3 chain (env first)."""
        endpoint = settings.queue.endpoint
        if not endpoint:
            raise RuntimeError("Queue is not configured. Set PACKAGEBUG_SQS_ENDPOINT.")
        client = boto3.client(
            "sqs",
            region_name=settings.queue.region,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )
        return cls(endpoint, client)

    def receive_one(self, wait_seconds: int) -> QueueMessage | None:
        try:
            resp = self._client.receive_message(
                QueueUrl=self._queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=int(wait_seconds),
            )
        except (BotoCoreError, ClientError) as exc:
            raise QueueError("receive message failed", cause=exc) from exc

        messages = resp.get("Messages") or []
        if not messages:
            return None
        raw = messages[0]
        return QueueMessage(
            body=str(raw.get("Body") or ""),
            receipt_handle=str(raw["ReceiptHandle"]),
            message_id=raw.get("MessageId"),
        )

    def delete(self, message: QueueMessage) -> None:
        try:
            self._client.delete_message(QueueUrl=self._queue_url, ReceiptHandle=message.receipt_handle)
        except (BotoCoreError, ClientError) as exc:
            raise QueueError("delete message failed", cause=exc) from exc
