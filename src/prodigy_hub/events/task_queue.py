"""
Resolution task queues.

Accepted cancellation requests are resolved asynchronously: the workflow
enqueues the cancellation id and a consumer calls ``resolve`` later. SQS is
used in deployment (consumed by the cancellation worker handler), an
in-memory deque for local runs and tests.
"""

import json
import threading
from collections import deque
from typing import Callable, Deque, List, Optional, Protocol, Tuple, runtime_checkable

import boto3
from aws_lambda_powertools.metrics import MetricUnit
from botocore.exceptions import BotoCoreError, ClientError

from prodigy_hub.handlers.utils.errors import ExternalServiceError
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer

TASK_ID_ATTRIBUTE = 'cancelProductOrderId'


@runtime_checkable
class ResolutionTaskQueue(Protocol):
    """Queue of cancellation resolution tasks."""

    def enqueue(self, cancellation_id: str, delay_seconds: int = 0) -> None:
        """Schedule the resolution of a cancellation request."""
        ...


class InMemoryResolutionTaskQueue:
    """FIFO of pending resolutions; ``drain`` runs them in order."""

    def __init__(self) -> None:
        self._tasks: Deque[Tuple[str, int]] = deque()
        self._lock = threading.Lock()

    def enqueue(self, cancellation_id: str, delay_seconds: int = 0) -> None:
        with self._lock:
            self._tasks.append((cancellation_id, 1))
        logger.debug("Resolution task queued", extra={"cancellation_id": cancellation_id})

    def pending(self) -> List[str]:
        with self._lock:
            return [cancellation_id for cancellation_id, _ in self._tasks]

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def drain(self, handler: Callable[[str, int], object], max_attempts: Optional[int] = None) -> int:
        """
        Run queued tasks until the queue is empty.

        A task whose handler raises is requeued with an incremented attempt
        number, up to ``max_attempts`` (unbounded when None); then the error
        propagates.

        Args:
            handler: Called with (cancellation id, attempt number)
            max_attempts: Attempts allowed per task

        Returns:
            Number of tasks completed
        """
        completed = 0
        while True:
            with self._lock:
                if not self._tasks:
                    return completed
                cancellation_id, attempt = self._tasks.popleft()
            try:
                handler(cancellation_id, attempt)
            except Exception:
                if max_attempts is not None and attempt >= max_attempts:
                    raise
                with self._lock:
                    self._tasks.append((cancellation_id, attempt + 1))
                continue
            completed += 1


class SqsResolutionTaskQueue:
    """Send resolution tasks to an SQS queue."""

    def __init__(self, queue_url: str, region_name: Optional[str] = None):
        self.queue_url = queue_url
        self.sqs = boto3.client('sqs', region_name=region_name) if region_name else boto3.client('sqs')

    @tracer.capture_method
    def enqueue(self, cancellation_id: str, delay_seconds: int = 0) -> None:
        """
        Send one resolution task.

        Raises:
            ExternalServiceError: If SQS rejects the message
        """
        try:
            response = self.sqs.send_message(
                QueueUrl=self.queue_url,
                MessageBody=json.dumps({TASK_ID_ATTRIBUTE: cancellation_id}),
                DelaySeconds=max(0, min(int(delay_seconds), 900)),
            )
        except (ClientError, BotoCoreError) as e:
            metrics.add_metric(name="ResolutionTaskEnqueueFailed", unit=MetricUnit.Count, value=1)
            logger.error("Failed to enqueue resolution task", extra={
                "cancellation_id": cancellation_id,
                "error": str(e),
            })
            raise ExternalServiceError(
                message=f"Failed to enqueue resolution task: {e}",
                service_name="SQS",
                error_code="QUEUE_UNAVAILABLE",
            ) from e

        logger.info("Resolution task queued", extra={
            "cancellation_id": cancellation_id,
            "message_id": response.get('MessageId'),
        })


def parse_task_body(body: str) -> str:
    """Cancellation id carried by an SQS task message."""
    return json.loads(body)[TASK_ID_ATTRIBUTE]
