"""
Pytest configuration and shared fixtures for ProdigyHub.

This module provides the environment, in-memory service wiring, moto backed
AWS resources and API Gateway event builders used by the unit and
integration tests.
"""

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from unittest.mock import Mock

import pytest

# Powertools reads these when the observability singletons are created
os.environ.update({
    "AWS_DEFAULT_REGION": "us-east-1",
    "AWS_ACCESS_KEY_ID": "testing",
    "AWS_SECRET_ACCESS_KEY": "testing",
    "ENVIRONMENT": "test",
    "APP_VERSION": "test-1.0.0",
    "STORE_BACKEND": "memory",
    "POWERTOOLS_SERVICE_NAME": "prodigy-hub-test",
    "POWERTOOLS_METRICS_NAMESPACE": "ProdigyHubTest",
    "POWERTOOLS_TRACE_DISABLED": "true",
    "LOG_LEVEL": "DEBUG",
})

import boto3  # noqa: E402
from aws_lambda_env_modeler import modeler_impl as _env_modeler_impl  # noqa: E402
from moto import mock_aws  # noqa: E402

from prodigy_hub.dal.inmemory_handler import InMemoryDocumentStore  # noqa: E402
from prodigy_hub.dal.repositories import (  # noqa: E402
    CancelProductOrderRepository,
    ProductOrderRepository,
)
from prodigy_hub.events.event_publisher import InMemoryEventSink  # noqa: E402
from prodigy_hub.events.task_queue import InMemoryResolutionTaskQueue  # noqa: E402
from prodigy_hub.handlers.utils.dependencies import ServiceContainer, build_container, use_container  # noqa: E402
from prodigy_hub.handlers.utils.dynamic_configuration import _config_cache  # noqa: E402
from prodigy_hub.models.product_order import ProductOrder, ProductOrderState  # noqa: E402

TABLE_NAME = "prodigy-hub-test-table"
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset cached configuration and the handlers' container between tests."""
    _config_cache.clear()
    _env_modeler_impl.__parse_model_with_cache.cache_clear()
    yield
    _config_cache.clear()
    _env_modeler_impl.__parse_model_with_cache.cache_clear()
    use_container(None)


# Store and service fixtures
@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def task_queue() -> InMemoryResolutionTaskQueue:
    return InMemoryResolutionTaskQueue()


@pytest.fixture
def orders(store) -> ProductOrderRepository:
    return ProductOrderRepository(store)


@pytest.fixture
def cancellations(store) -> CancelProductOrderRepository:
    return CancelProductOrderRepository(store)


@pytest.fixture
def container(store, sink, task_queue) -> ServiceContainer:
    """In-memory container installed as the handlers' container."""
    container = build_container(store=store, task_queue=task_queue, publisher=sink)
    use_container(container)
    return container


@pytest.fixture
def make_order(orders) -> Callable[..., ProductOrder]:
    """Store a product order directly, bypassing the service."""

    def _make_order(
        order_id: str = "O1",
        state: ProductOrderState = ProductOrderState.ACKNOWLEDGED,
        creation_date: Optional[datetime] = None,
        **attributes: Any,
    ) -> ProductOrder:
        return orders.create(ProductOrder(
            id=order_id,
            href=f"/productOrderingManagement/v4/productOrder/{order_id}",
            state=state,
            creation_date=creation_date or NOW - timedelta(days=1),
            **attributes,
        ))

    return _make_order


# AWS fixtures
@pytest.fixture
def aws_credentials():
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock single-table DynamoDB layout."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {"AttributeName": "pk", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()
        yield table



# Lambda fixtures
@pytest.fixture
def api_gateway_event() -> Callable[..., Dict[str, Any]]:
    """Build an API Gateway REST proxy event."""

    def _event(
        method: str,
        path: str,
        body: Any = None,
        query: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
        return {
            "resource": path,
            "httpMethod": method,
            "path": path,
            "headers": {
                "Content-Type": "application/json",
                "User-Agent": "test-agent/1.0",
            },
            "multiValueHeaders": {},
            "body": body,
            "requestContext": {
                "requestId": "test-request-id-123",
                "accountId": "123456789012",
                "stage": "test",
                "httpMethod": method,
                "path": path,
                "protocol": "HTTP/1.1",
                "requestTime": "01/Jun/2024:12:00:00 +0000",
                "requestTimeEpoch": 1717243200000,
                "identity": {
                    "sourceIp": "127.0.0.1",
                    "userAgent": "test-agent/1.0",
                },
            },
            "pathParameters": None,
            "queryStringParameters": query,
            "multiValueQueryStringParameters": {key: [value] for key, value in query.items()} if query else None,
            "stageVariables": None,
            "isBase64Encoded": False,
        }

    return _event


@pytest.fixture
def lambda_context():
    """Create a mock Lambda context for testing."""
    context = Mock()
    context.function_name = "prodigy-hub-test"
    context.function_version = "1"
    context.invoked_function_arn = "arn:aws:lambda:us-east-1:123456789012:function:prodigy-hub-test"
    context.memory_limit_in_mb = 512
    context.get_remaining_time_in_millis = lambda: 30000
    context.aws_request_id = "test-request-id-123"
    context.log_group_name = "/aws/lambda/prodigy-hub-test"
    context.log_stream_name = "2024/06/01/[$LATEST]test123"
    return context


def response_header(response: Dict[str, Any], name: str) -> Optional[str]:
    """A response header, whichever of headers/multiValueHeaders carries it."""
    for key, value in (response.get("headers") or {}).items():
        if key.lower() == name.lower():
            return value
    for key, values in (response.get("multiValueHeaders") or {}).items():
        if key.lower() == name.lower() and values:
            return values[0]
    return None


def response_body(response: Dict[str, Any]) -> Any:
    return json.loads(response["body"]) if response.get("body") else None


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
