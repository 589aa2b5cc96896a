"""
Integration tests for the cancellation flow over DynamoDB and SQS (moto).

A cancellation is accepted through the product ordering API, its resolution
task travels through SQS and the cancellation worker resolves it.
"""

from datetime import timedelta

import boto3
import pytest

from conftest import TABLE_NAME, response_body
from prodigy_hub.dal.dynamodb_handler import DynamoDBDocumentStore
from prodigy_hub.events.task_queue import SqsResolutionTaskQueue, parse_task_body
from prodigy_hub.handlers import cancellation_worker_handler, product_ordering_handler
from prodigy_hub.handlers.utils.dependencies import build_container, use_container
from prodigy_hub.handlers.utils.errors import ExternalServiceError
from prodigy_hub.models.cancel_product_order import CancellationState
from prodigy_hub.models.common import utc_now
from prodigy_hub.models.input import CreateCancelProductOrderRequest
from prodigy_hub.models.product_order import ProductOrder, ProductOrderState

ORDERS = "/productOrderingManagement/v4/productOrder"
CANCELLATIONS = "/productOrderingManagement/v4/cancelProductOrder"


@pytest.fixture
def sqs(dynamodb_table):
    """SQS client sharing the table's moto context."""
    return boto3.client("sqs", region_name="us-east-1")


@pytest.fixture
def queue_url(sqs):
    return sqs.create_queue(QueueName="prodigy-hub-cancellations")["QueueUrl"]


@pytest.fixture
def aws_container(dynamodb_table, queue_url, sink):
    container = build_container(
        store=DynamoDBDocumentStore(TABLE_NAME, region_name="us-east-1"),
        task_queue=SqsResolutionTaskQueue(queue_url, region_name="us-east-1"),
        publisher=sink,
    )
    use_container(container)
    return container


def receive_tasks(sqs, queue_url):
    """Receive queued tasks as the records of an SQS Lambda event."""
    response = sqs.receive_message(
        QueueUrl=queue_url,
        MaxNumberOfMessages=10,
        AttributeNames=["All"],
        WaitTimeSeconds=0,
    )
    return [
        {
            "messageId": message["MessageId"],
            "receiptHandle": message["ReceiptHandle"],
            "body": message["Body"],
            "attributes": message.get("Attributes", {}),
            "messageAttributes": {},
            "md5OfBody": message["MD5OfBody"],
            "eventSource": "aws:sqs",
            "eventSourceARN": "arn:aws:sqs:us-east-1:123456789012:prodigy-hub-cancellations",
            "awsRegion": "us-east-1",
        }
        for message in response.get("Messages", [])
    ]


@pytest.mark.integration
class TestSqsResolutionTaskQueue:
    def test_enqueue_sends_task(self, sqs, queue_url):
        SqsResolutionTaskQueue(queue_url, region_name="us-east-1").enqueue("C1")

        records = receive_tasks(sqs, queue_url)

        assert [parse_task_body(record["body"]) for record in records] == ["C1"]

    def test_unknown_queue(self, sqs, queue_url):
        queue = SqsResolutionTaskQueue(queue_url.replace("prodigy-hub-cancellations", "missing"), "us-east-1")

        with pytest.raises(ExternalServiceError) as exc_info:
            queue.enqueue("C1")

        assert exc_info.value.error_code == "QUEUE_UNAVAILABLE"


@pytest.mark.integration
class TestCancellationFlow:
    """End-to-end cancellation over the AWS backed container."""

    def test_cancellation_resolved_by_worker(
        self, aws_container, sqs, queue_url, api_gateway_event, lambda_context, sink,
    ):
        created = product_ordering_handler.lambda_handler(
            api_gateway_event("POST", ORDERS, {"id": "O1", "description": "Fibre"}), lambda_context,
        )
        assert created["statusCode"] == 201

        accepted = product_ordering_handler.lambda_handler(
            api_gateway_event("POST", CANCELLATIONS, {"productOrder": {"id": "O1"}}), lambda_context,
        )
        cancellation_id = response_body(accepted)["id"]

        assert accepted["statusCode"] == 201
        assert aws_container.orders.find_by_id("O1").state == ProductOrderState.ASSESSING_CANCELLATION

        records = receive_tasks(sqs, queue_url)
        assert len(records) == 1

        result = cancellation_worker_handler.lambda_handler({"Records": records}, lambda_context)

        assert result == {"batchItemFailures": []}
        assert aws_container.cancellations.find_by_id(cancellation_id).state == CancellationState.DONE
        assert aws_container.orders.find_by_id("O1").state == ProductOrderState.CANCELLED
        assert sink.types()[-2:] == ["CancelProductOrderStateChangeEvent", "ProductOrderStateChangeEvent"]

    def test_redelivered_task_is_idempotent(self, aws_container, sqs, queue_url, lambda_context):
        """A task delivered twice leaves the first outcome in place."""
        aws_container.orders.create(ProductOrder(
            id="O2",
            href=f"{ORDERS}/O2",
            state=ProductOrderState.IN_PROGRESS,
            creation_date=utc_now() - timedelta(days=30),
        ))
        cancellation = aws_container.cancellation_workflow.create(
            CreateCancelProductOrderRequest.model_validate({"productOrder": {"id": "O2"}})
        )
        records = receive_tasks(sqs, queue_url)

        cancellation_worker_handler.lambda_handler({"Records": records}, lambda_context)
        result = cancellation_worker_handler.lambda_handler({"Records": records}, lambda_context)

        assert result == {"batchItemFailures": []}
        assert aws_container.cancellations.find_by_id(cancellation.id).state == CancellationState.DONE
        # in progress past the grace period: rejected, prior state restored
        assert aws_container.orders.find_by_id("O2").state == ProductOrderState.IN_PROGRESS
