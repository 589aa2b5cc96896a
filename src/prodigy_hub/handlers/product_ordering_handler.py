"""
Product Ordering Handler - Lambda function for the TMF622 API.

Serves product orders and their cancellation requests; cancellations are
accepted here and resolved later by the cancellation worker.
"""

from aws_lambda_powertools.event_handler import Response
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext

from prodigy_hub.handlers.models.env_vars import get_handler_env_vars
from prodigy_hub.handlers.utils.dependencies import get_container
from prodigy_hub.handlers.utils.errors import create_api_response
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.handlers.utils.rest_api_resolver import (
    CANCEL_PRODUCT_ORDER_PATH,
    HEALTH_PATH,
    PRODUCT_ORDER_PATH,
    PRODUCT_ORDERING_TAG,
    build_resolver,
    handle_service_errors,
    health_check_response,
    list_response,
    parse_body,
    parse_list_query,
    query_parameters,
    request_error_context,
    resource_response,
)
from prodigy_hub.models.input import (
    CreateCancelProductOrderRequest,
    CreateProductOrderRequest,
    UpdateProductOrderRequest,
)

app = build_resolver('ProdigyHub Product Ordering API', [PRODUCT_ORDERING_TAG])

TAGS = [PRODUCT_ORDERING_TAG.name]


@app.get(HEALTH_PATH, tags=['Health'])
@tracer.capture_method
@handle_service_errors
def health_check() -> Response:
    logger.info("Health check requested")
    env_vars = get_handler_env_vars()
    return health_check_response(get_container().store, env_vars.APP_VERSION, env_vars.ENVIRONMENT)


@app.post(PRODUCT_ORDER_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def create_product_order() -> Response:
    """Create a product order, completing it with TMF defaults."""
    request = parse_body(app, CreateProductOrderRequest)
    order = get_container().product_orders.create(request, request_error_context(app, "create_product_order", request.id))

    tracer.put_annotation("product_order_id", order.id)
    logger.info("Product order created", extra={"order_id": order.id, "state": order.state.value})

    return resource_response(201, order.to_tmf_format(), location=order.href)


@app.get(PRODUCT_ORDER_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def list_product_orders() -> Response:
    filters, fields, offset, limit = parse_list_query(query_parameters(app))
    page = get_container().product_orders.list(filters, fields, offset, limit)
    return list_response(page)


@app.get(f"{PRODUCT_ORDER_PATH}/<order_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def get_product_order(order_id: str) -> Response:
    tracer.put_annotation("product_order_id", order_id)
    fields = query_parameters(app).get('fields')
    context = request_error_context(app, "get_product_order", order_id)
    return resource_response(200, get_container().product_orders.get(order_id, fields, context))


@app.patch(f"{PRODUCT_ORDER_PATH}/<order_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def patch_product_order(order_id: str) -> Response:
    """Merge-patch a product order; ``id``, ``href`` and ``@type`` cannot change."""
    tracer.put_annotation("product_order_id", order_id)
    request = parse_body(app, UpdateProductOrderRequest)
    order = get_container().product_orders.patch(
        order_id, request, request_error_context(app, "patch_product_order", order_id),
    )
    return resource_response(200, order.to_tmf_format())


@app.delete(f"{PRODUCT_ORDER_PATH}/<order_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def delete_product_order(order_id: str) -> Response:
    tracer.put_annotation("product_order_id", order_id)
    get_container().product_orders.delete(order_id, request_error_context(app, "delete_product_order", order_id))
    logger.info("Product order deleted", extra={"order_id": order_id})
    return create_api_response(status_code=204)


@app.post(CANCEL_PRODUCT_ORDER_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def create_cancel_product_order() -> Response:
    """
    Accept a cancellation request for a product order.

    The request is stored as ``acknowledged`` and its resolution queued; the
    order moves to ``assessingCancellation`` in the same transaction. Without
    an SQS queue the resolution runs in this invocation, after the request is
    accepted, and the response still shows the accepted request.
    """
    request = parse_body(app, CreateCancelProductOrderRequest)
    tracer.put_annotation("product_order_id", request.product_order.id)

    container = get_container()
    cancellation = container.cancellation_workflow.create(
        request, context=request_error_context(app, "create_cancel_product_order", request.product_order.id),
    )
    tracer.put_annotation("cancel_product_order_id", cancellation.id)

    resolved = container.run_pending_resolutions()
    if resolved:
        logger.info("Cancellation resolved in process", extra={"cancellation_id": cancellation.id, "tasks": resolved})

    return resource_response(201, cancellation.to_tmf_format(), location=cancellation.href)


@app.get(CANCEL_PRODUCT_ORDER_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def list_cancel_product_orders() -> Response:
    filters, fields, offset, limit = parse_list_query(query_parameters(app))
    page = get_container().cancellation_workflow.list(filters, fields, offset, limit)
    return list_response(page)


@app.get(f"{CANCEL_PRODUCT_ORDER_PATH}/<cancellation_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def get_cancel_product_order(cancellation_id: str) -> Response:
    tracer.put_annotation("cancel_product_order_id", cancellation_id)
    fields = query_parameters(app).get('fields')
    context = request_error_context(app, "get_cancel_product_order", cancellation_id)
    return resource_response(200, get_container().cancellation_workflow.get(cancellation_id, fields, context))


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_REST)
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def lambda_handler(event: dict, context: LambdaContext) -> dict:
    """
    Main Lambda handler function.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response
    """
    return app.resolve(event, context)
