"""
Product Inventory Handler - Lambda function for the TMF637 API.

Products are created completed with inventory defaults; a patch merges the
sent attributes and re-stamps ``lastUpdate``.
"""

from aws_lambda_powertools.event_handler import Response
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext

from prodigy_hub.handlers.models.env_vars import get_handler_env_vars
from prodigy_hub.handlers.utils.dependencies import get_container
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.handlers.utils.resource_routes import register_resource_routes
from prodigy_hub.handlers.utils.rest_api_resolver import (
    HEALTH_PATH,
    PRODUCT_INVENTORY_TAG,
    PRODUCT_PATH,
    build_resolver,
    handle_service_errors,
    health_check_response,
)

app = build_resolver('ProdigyHub Product Inventory API', [PRODUCT_INVENTORY_TAG])

register_resource_routes(app, PRODUCT_PATH, 'Product', [PRODUCT_INVENTORY_TAG.name])


@app.get(HEALTH_PATH, tags=['Health'])
@tracer.capture_method
@handle_service_errors
def health_check() -> Response:
    env_vars = get_handler_env_vars()
    return health_check_response(get_container().store, env_vars.APP_VERSION, env_vars.ENVIRONMENT)


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_REST)
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def lambda_handler(event: dict, context: LambdaContext) -> dict:
    return app.resolve(event, context)
