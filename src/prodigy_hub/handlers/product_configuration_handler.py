"""
Product Configuration Handler - Lambda function for the TMF760 API.

Check requests validate configuration items; query requests compute
configurations for request items. Both are answered synchronously when
``instantSync`` is set (200) and only acknowledged otherwise (201).
"""

from aws_lambda_powertools.event_handler import Response
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext

from prodigy_hub.handlers.models.env_vars import get_handler_env_vars
from prodigy_hub.handlers.utils.dependencies import get_container
from prodigy_hub.handlers.utils.errors import create_api_response
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.handlers.utils.rest_api_resolver import (
    CHECK_PRODUCT_CONFIGURATION_PATH,
    HEALTH_PATH,
    PRODUCT_CONFIGURATION_TAG,
    QUERY_PRODUCT_CONFIGURATION_PATH,
    build_resolver,
    handle_service_errors,
    health_check_response,
    list_response,
    parse_body,
    parse_list_query,
    query_parameters,
    resource_response,
)
from prodigy_hub.models.input import CreateCheckProductConfigurationRequest, CreateQueryProductConfigurationRequest

app = build_resolver('ProdigyHub Product Configuration API', [PRODUCT_CONFIGURATION_TAG])

TAGS = [PRODUCT_CONFIGURATION_TAG.name]


@app.get(HEALTH_PATH, tags=['Health'])
@tracer.capture_method
@handle_service_errors
def health_check() -> Response:
    env_vars = get_handler_env_vars()
    return health_check_response(get_container().store, env_vars.APP_VERSION, env_vars.ENVIRONMENT)


@app.post(CHECK_PRODUCT_CONFIGURATION_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def create_check_product_configuration() -> Response:
    request = parse_body(app, CreateCheckProductConfigurationRequest)
    tracer.put_annotation("instant_sync", request.instant_sync)

    check = get_container().configurations.create_check(request)
    return resource_response(200 if request.instant_sync else 201, check.to_tmf_format(), location=check.href)


@app.get(CHECK_PRODUCT_CONFIGURATION_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def list_check_product_configurations() -> Response:
    filters, fields, offset, limit = parse_list_query(query_parameters(app))
    return list_response(get_container().configurations.list_checks(filters, fields, offset, limit))


@app.get(f"{CHECK_PRODUCT_CONFIGURATION_PATH}/<check_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def get_check_product_configuration(check_id: str) -> Response:
    fields = query_parameters(app).get('fields')
    return resource_response(200, get_container().configurations.get_check(check_id, fields))


@app.delete(f"{CHECK_PRODUCT_CONFIGURATION_PATH}/<check_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def delete_check_product_configuration(check_id: str) -> Response:
    get_container().configurations.delete_check(check_id)
    logger.info("Check product configuration deleted", extra={"check_id": check_id})
    return create_api_response(status_code=204)


@app.post(QUERY_PRODUCT_CONFIGURATION_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def create_query_product_configuration() -> Response:
    request = parse_body(app, CreateQueryProductConfigurationRequest)
    tracer.put_annotation("instant_sync", request.instant_sync)

    query = get_container().configurations.create_query(request)
    return resource_response(200 if request.instant_sync else 201, query.to_tmf_format(), location=query.href)


@app.get(QUERY_PRODUCT_CONFIGURATION_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def list_query_product_configurations() -> Response:
    filters, fields, offset, limit = parse_list_query(query_parameters(app))
    return list_response(get_container().configurations.list_queries(filters, fields, offset, limit))


@app.get(f"{QUERY_PRODUCT_CONFIGURATION_PATH}/<query_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def get_query_product_configuration(query_id: str) -> Response:
    fields = query_parameters(app).get('fields')
    return resource_response(200, get_container().configurations.get_query(query_id, fields))


@app.delete(f"{QUERY_PRODUCT_CONFIGURATION_PATH}/<query_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def delete_query_product_configuration(query_id: str) -> Response:
    get_container().configurations.delete_query(query_id)
    logger.info("Query product configuration deleted", extra={"query_id": query_id})
    return create_api_response(status_code=204)


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_REST)
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def lambda_handler(event: dict, context: LambdaContext) -> dict:
    return app.resolve(event, context)
