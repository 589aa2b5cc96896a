"""
Cancellation Worker Handler - resolves queued cancellation requests.

Two triggers share this function:

* SQS batches of resolution tasks, processed with the Powertools batch
  processor. A record whose resolution hits a transient failure is reported
  as a batch item failure, so SQS redelivers it; the receive count is the
  attempt number.
* An EventBridge schedule (``source`` ``aws.events``) that terminates
  cancellations left unresolved past the resolution timeout.
"""

import json
from typing import Any, Dict

from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.batch import BatchProcessor, EventType, process_partial_response
from aws_lambda_powertools.utilities.data_classes.sqs_event import SQSRecord
from aws_lambda_powertools.utilities.typing import LambdaContext

from prodigy_hub.events.task_queue import parse_task_body
from prodigy_hub.handlers.utils.dependencies import get_container
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer

SCHEDULED_EVENT_SOURCE = 'aws.events'

processor = BatchProcessor(event_type=EventType.SQS)


@tracer.capture_method
def record_handler(record: SQSRecord) -> None:
    """Resolve the cancellation named by one task message."""
    try:
        cancellation_id = parse_task_body(record.body)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        # redelivery cannot fix a malformed task
        metrics.add_metric(name="MalformedResolutionTask", unit=MetricUnit.Count, value=1)
        logger.error("Malformed resolution task dropped", extra={
            "message_id": record.message_id,
            "error": str(e),
        })
        return

    attempt = int(record.attributes.approximate_receive_count or 1)
    tracer.put_annotation("cancel_product_order_id", cancellation_id)
    logger.append_keys(cancellation_id=cancellation_id, attempt=attempt)

    try:
        cancellation = get_container().cancellation_workflow.resolve(cancellation_id, attempt=attempt)
        if cancellation is not None:
            logger.info("Resolution task processed", extra={"state": cancellation.state.value})
    finally:
        logger.remove_keys(["cancellation_id", "attempt"])


@tracer.capture_method
def expire_stale_cancellations() -> Dict[str, Any]:
    expired = get_container().cancellation_workflow.expire_stale()
    metrics.add_metric(name="StaleCancellationsExpired", unit=MetricUnit.Count, value=expired)
    return {"expired": expired}


@logger.inject_lambda_context
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def lambda_handler(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Args:
        event: SQS batch event, or an EventBridge scheduled event
        context: Lambda context object

    Returns:
        Batch item failures for SQS, the number of expired cancellations for the schedule
    """
    if event.get('source') == SCHEDULED_EVENT_SOURCE:
        return expire_stale_cancellations()

    return process_partial_response(
        event=event,
        record_handler=record_handler,
        processor=processor,
        context=context,
    )
