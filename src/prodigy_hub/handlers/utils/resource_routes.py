"""
CRUD routes of the resources served by ``ResourceService``.

The catalog, inventory, qualification and topic handlers expose their
collections with the same five routes; ``register_resource_routes`` adds
them to a handler's resolver.
"""

from typing import Callable, List

from aws_lambda_powertools.event_handler import APIGatewayRestResolver, Response

from prodigy_hub.handlers.utils.dependencies import get_container
from prodigy_hub.handlers.utils.errors import create_api_response
from prodigy_hub.handlers.utils.observability import logger, tracer
from prodigy_hub.handlers.utils.rest_api_resolver import (
    handle_service_errors,
    list_response,
    parse_body,
    parse_list_query,
    query_parameters,
    request_error_context,
    resource_response,
)
from prodigy_hub.logic.resource_service import ResourceService
from prodigy_hub.models.input import ResourceRequest


def _route(name: str, func: Callable) -> Callable:
    func.__name__ = name
    return tracer.capture_method(handle_service_errors(func))


def register_resource_routes(
    app: APIGatewayRestResolver,
    path: str,
    collection: str,
    tags: List[str],
    patchable: bool = True,
) -> None:
    """
    Add list, create, get, patch and delete routes for ``collection`` under ``path``.

    Args:
        app: Resolver of the handler
        path: Collection path, e.g. ``/tmf-api/productInventory/v5/product``
        collection: Key of the resource service in the container
        tags: OpenAPI tags of the routes
        patchable: Whether the resources accept PATCH
    """
    name = path.rsplit('/', 1)[-1]

    def service() -> ResourceService:
        return get_container().resources[collection]

    def list_resources() -> Response:
        filters, fields, offset, limit = parse_list_query(query_parameters(app))
        return list_response(service().list(filters, fields, offset, limit))

    def create_resource() -> Response:
        payload = parse_body(app, ResourceRequest).to_payload()
        resource = service().create(payload, request_error_context(app, f"create_{name}"))
        return resource_response(201, resource.to_tmf_format(), location=resource.href)

    def get_resource(resource_id: str) -> Response:
        fields = query_parameters(app).get('fields')
        context = request_error_context(app, f"get_{name}", resource_id)
        return resource_response(200, service().get(resource_id, fields, context))

    def patch_resource(resource_id: str) -> Response:
        payload = parse_body(app, ResourceRequest).to_payload()
        context = request_error_context(app, f"patch_{name}", resource_id)
        return resource_response(200, service().patch(resource_id, payload, context).to_tmf_format())

    def delete_resource(resource_id: str) -> Response:
        service().delete(resource_id, request_error_context(app, f"delete_{name}", resource_id))
        logger.info(f"{collection} deleted", extra={"id": resource_id})
        return create_api_response(status_code=204)

    item_path = f"{path}/<resource_id>"
    app.get(path, tags=tags)(_route(f"list_{name}", list_resources))
    app.post(path, tags=tags)(_route(f"create_{name}", create_resource))
    app.get(item_path, tags=tags)(_route(f"get_{name}", get_resource))
    if patchable:
        app.patch(item_path, tags=tags)(_route(f"patch_{name}", patch_resource))
    app.delete(item_path, tags=tags)(_route(f"delete_{name}", delete_resource))
