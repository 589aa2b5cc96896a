"""
Event Hub Handler - Lambda function for the TMF688 API.

Listeners register hubs here, manage topics and read the event log.
"""

from aws_lambda_powertools.event_handler import Response
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext

from prodigy_hub.handlers.models.env_vars import get_handler_env_vars
from prodigy_hub.handlers.utils.dependencies import get_container
from prodigy_hub.handlers.utils.errors import create_api_response
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.handlers.utils.resource_routes import register_resource_routes
from prodigy_hub.handlers.utils.rest_api_resolver import (
    EVENT_MANAGEMENT_TAG,
    EVENT_PATH,
    HEALTH_PATH,
    HUB_PATH,
    TOPIC_PATH,
    build_resolver,
    handle_service_errors,
    health_check_response,
    list_response,
    parse_body,
    parse_list_query,
    query_parameters,
    resource_response,
)
from prodigy_hub.models.input import CreateEventRequest, CreateHubRequest

app = build_resolver('ProdigyHub Event Management API', [EVENT_MANAGEMENT_TAG])

TAGS = [EVENT_MANAGEMENT_TAG.name]

register_resource_routes(app, TOPIC_PATH, 'Topic', TAGS, patchable=False)


@app.get(HEALTH_PATH, tags=['Health'])
@tracer.capture_method
@handle_service_errors
def health_check() -> Response:
    env_vars = get_handler_env_vars()
    return health_check_response(get_container().store, env_vars.APP_VERSION, env_vars.ENVIRONMENT)


@app.post(HUB_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def register_hub() -> Response:
    request = parse_body(app, CreateHubRequest)
    hub = get_container().hub_service.register(request)
    return resource_response(201, hub.to_tmf_format(), location=hub.href)


@app.get(HUB_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def list_hubs() -> Response:
    filters, fields, offset, limit = parse_list_query(query_parameters(app))
    return list_response(get_container().hub_service.list_hubs(filters, fields, offset, limit))


@app.get(f"{HUB_PATH}/<hub_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def get_hub(hub_id: str) -> Response:
    fields = query_parameters(app).get('fields')
    return resource_response(200, get_container().hub_service.get_hub(hub_id, fields))


@app.delete(f"{HUB_PATH}/<hub_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def unregister_hub(hub_id: str) -> Response:
    get_container().hub_service.unregister(hub_id)
    logger.info("Hub unregistered", extra={"hub_id": hub_id})
    return create_api_response(status_code=204)


@app.post(EVENT_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def post_event() -> Response:
    """Publish a client supplied event to the log and the subscribed hubs."""
    request = parse_body(app, CreateEventRequest)
    event = get_container().hub_service.post_event(request)
    if event is None:
        # sink without an event log
        return create_api_response(status_code=202)
    return resource_response(201, event.to_tmf_format(), location=event.href)


@app.get(EVENT_PATH, tags=TAGS)
@tracer.capture_method
@handle_service_errors
def list_events() -> Response:
    filters, fields, offset, limit = parse_list_query(query_parameters(app))
    return list_response(get_container().hub_service.list_events(filters, fields, offset, limit))


@app.get(f"{EVENT_PATH}/<event_id>", tags=TAGS)
@tracer.capture_method
@handle_service_errors
def get_event(event_id: str) -> Response:
    fields = query_parameters(app).get('fields')
    return resource_response(200, get_container().hub_service.get_event(event_id, fields))


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_REST)
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def lambda_handler(event: dict, context: LambdaContext) -> dict:
    return app.resolve(event, context)
