"""
REST API resolver utilities shared by the ProdigyHub API handlers.

Each API handler owns an ``APIGatewayRestResolver`` built by ``build_resolver``;
routes are wrapped in ``handle_service_errors`` so that every failure becomes
a TMF ``Error`` response.
"""

import json
from functools import wraps
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

from aws_lambda_powertools.event_handler import APIGatewayRestResolver, CORSConfig, Response
from aws_lambda_powertools.event_handler.middlewares import NextMiddleware
from aws_lambda_powertools.event_handler.openapi.models import Tag
from aws_lambda_powertools.metrics import MetricUnit
from pydantic import BaseModel, ValidationError

from prodigy_hub.handlers.utils.dynamic_configuration import is_debug_mode
from prodigy_hub.handlers.utils.errors import (
    BaseServiceError,
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    ValidationError as ServiceValidationError,
    create_api_response,
    create_error_context,
    format_error_response,
    get_http_status_code,
    log_error_metrics,
)
from prodigy_hub.handlers.utils.observability import logger, metrics
from prodigy_hub.logic.shaping import RESERVED_QUERY_PARAMETERS, Page
from prodigy_hub.models.common import (
    EVENT_MANAGEMENT_BASE_PATH,
    PRODUCT_CATALOG_BASE_PATH,
    PRODUCT_CONFIGURATION_BASE_PATH,
    PRODUCT_INVENTORY_BASE_PATH,
    PRODUCT_OFFERING_QUALIFICATION_BASE_PATH,
    PRODUCT_ORDERING_BASE_PATH,
    utc_now,
)
from prodigy_hub.models.output import HealthCheckOutput

M = TypeVar('M', bound=BaseModel)

# API path constants
PRODUCT_ORDER_PATH = f"{PRODUCT_ORDERING_BASE_PATH}/productOrder"
CANCEL_PRODUCT_ORDER_PATH = f"{PRODUCT_ORDERING_BASE_PATH}/cancelProductOrder"
CHECK_PRODUCT_CONFIGURATION_PATH = f"{PRODUCT_CONFIGURATION_BASE_PATH}/checkProductConfiguration"
QUERY_PRODUCT_CONFIGURATION_PATH = f"{PRODUCT_CONFIGURATION_BASE_PATH}/queryProductConfiguration"
HUB_PATH = f"{EVENT_MANAGEMENT_BASE_PATH}/hub"
EVENT_PATH = f"{EVENT_MANAGEMENT_BASE_PATH}/event"
TOPIC_PATH = f"{EVENT_MANAGEMENT_BASE_PATH}/topic"
PRODUCT_PATH = f"{PRODUCT_INVENTORY_BASE_PATH}/product"
CHECK_QUALIFICATION_PATH = f"{PRODUCT_OFFERING_QUALIFICATION_BASE_PATH}/checkProductOfferingQualification"
QUERY_QUALIFICATION_PATH = f"{PRODUCT_OFFERING_QUALIFICATION_BASE_PATH}/queryProductOfferingQualification"
HEALTH_PATH = '/health'

# OpenAPI tags for documentation
PRODUCT_ORDERING_TAG = Tag(name='ProductOrdering', description='TMF622 product orders and their cancellation')
PRODUCT_CONFIGURATION_TAG = Tag(name='ProductConfiguration', description='TMF760 check and query configurations')
EVENT_MANAGEMENT_TAG = Tag(name='EventManagement', description='TMF688 listener hubs, topics and event log')
PRODUCT_CATALOG_TAG = Tag(name='ProductCatalog', description='TMF620 catalogs, categories, offerings, prices and specifications')
PRODUCT_INVENTORY_TAG = Tag(name='ProductInventory', description='TMF637 products held by customers')
PRODUCT_OFFERING_QUALIFICATION_TAG = Tag(name='ProductOfferingQualification', description='TMF679 check and query qualifications')
HEALTH_TAG = Tag(name='Health', description='Health check operations')

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
}

cors_config = CORSConfig(
    allow_origin="*",
    max_age=600,
    expose_headers=["X-Total-Count", "X-Result-Count", "X-Request-ID", "Location"],
    allow_headers=["content-type", "authorization"],
)


def add_security_headers(app: APIGatewayRestResolver, next_middleware: NextMiddleware) -> Response:
    """Add security headers to all responses."""
    response = next_middleware(app)
    response.headers.update(SECURITY_HEADERS)
    return response


def build_resolver(title: str, tags: list) -> APIGatewayRestResolver:
    """
    Create an API Gateway REST resolver with CORS, security headers and OpenAPI docs.

    Args:
        title: OpenAPI document title
        tags: OpenAPI tags of the handler's routes
    """
    app = APIGatewayRestResolver(cors=cors_config, enable_validation=False)
    app.use(middlewares=[add_security_headers])
    app.enable_swagger(
        path='/swagger',
        title=title,
        version='1.0.0',
        description='ProdigyHub TMF Open API implementation',
        tags=[*tags, HEALTH_TAG],
    )
    return app


def handle_service_errors(func):
    """Decorator to handle service errors and convert to HTTP responses."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except BaseServiceError as e:
            log_error_metrics(e)
            status_code = get_http_status_code(e)
            error_response = format_error_response(
                error=e,
                status_code=status_code,
                include_details=is_debug_mode(),
            )
            return create_api_response(
                status_code=status_code,
                body=error_response,
                headers={"Retry-After": str(e.retry_after)} if e.retry_after else None,
            )

        except ValidationError as e:
            # Pydantic validation of the request body
            logger.warning("Request validation failed", extra={
                "validation_errors": str(e),
                "error_count": e.error_count(),
            })
            metrics.add_metric(name="ValidationError", unit=MetricUnit.Count, value=1)

            field_errors = [
                {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in e.errors()
            ]
            validation_error = ServiceValidationError(
                message="Request validation failed",
                field_errors=field_errors,
            )
            return create_api_response(
                status_code=400,
                body=format_error_response(validation_error, status_code=400),
            )

        except Exception as e:
            logger.exception("Unexpected error in handler", extra={
                "error": str(e),
                "function_name": func.__name__,
            })
            metrics.add_metric(name="UnexpectedError", unit=MetricUnit.Count, value=1)

            unexpected_error = BaseServiceError(
                message="An unexpected error occurred",
                error_code="INTERNAL_SERVER_ERROR",
                severity=ErrorSeverity.CRITICAL,
                category=ErrorCategory.INFRASTRUCTURE,
            )
            return create_api_response(
                status_code=500,
                body=format_error_response(unexpected_error, status_code=500),
            )

    return wrapper


def request_error_context(
    app: APIGatewayRestResolver,
    operation: str,
    resource_id: Optional[str] = None,
) -> ErrorContext:
    """Error context of the current request, keyed by the API Gateway request id."""
    request_context = app.current_event.request_context
    request_id = (request_context.request_id if request_context else None) or "unknown"
    return create_error_context(request_id=request_id, operation=operation, resource_id=resource_id)


def parse_body(app: APIGatewayRestResolver, model: Type[M]) -> M:
    """
    Decode and validate the JSON body of the current request.

    Raises:
        ValidationError: If the body is not a JSON object
        pydantic.ValidationError: If the body does not match ``model``
    """
    try:
        body = json.loads(app.current_event.body or "{}")
    except json.JSONDecodeError as e:
        raise ServiceValidationError(message=f"Invalid JSON in request body: {e.msg}") from e
    if not isinstance(body, dict):
        raise ServiceValidationError(message="Request body must be a JSON object")
    return model.model_validate(body)


def _non_negative_int(params: Mapping[str, str], name: str, default: int) -> int:
    raw = params.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        value = -1
    if value < 0:
        raise ServiceValidationError(
            message=f"Query parameter '{name}' must be a non-negative integer",
            field_errors=[{"field": name, "message": f"invalid value '{raw}'"}],
        )
    return value


def parse_list_query(params: Optional[Mapping[str, str]]) -> Tuple[Dict[str, str], Optional[str], int, int]:
    """
    Split list query parameters into filters, field selection and paging.

    Returns:
        (filters, fields, offset, limit); ``limit`` defaults to 20 and is capped at 100

    Raises:
        ValidationError: If offset or limit is not a non-negative integer
    """
    params = params or {}
    offset = _non_negative_int(params, 'offset', 0)
    limit = min(_non_negative_int(params, 'limit', DEFAULT_LIMIT), MAX_LIMIT)
    filters = {key: value for key, value in params.items() if key not in RESERVED_QUERY_PARAMETERS}
    return filters, params.get('fields') or None, offset, limit


def query_parameters(app: APIGatewayRestResolver) -> Dict[str, str]:
    return dict(app.current_event.query_string_parameters or {})


def list_response(page: Page) -> Response:
    """200 response for a list page, carrying the TMF count headers."""
    return create_api_response(
        status_code=200,
        body=page.items,
        headers={
            "X-Total-Count": str(page.total),
            "X-Result-Count": str(len(page.items)),
        },
    )


def resource_response(status_code: int, document: Any, location: Optional[str] = None) -> Response:
    return create_api_response(
        status_code=status_code,
        body=document,
        headers={"Location": location} if location else None,
    )


def health_check_response(store: Any, version: str, environment: str) -> Response:
    """200 when the document store is healthy, 503 otherwise."""
    db_health = store.health_check()
    status = "healthy" if db_health.get("status") == "healthy" else "unhealthy"
    if status == "healthy":
        metrics.add_metric(name="HealthCheckSuccess", unit=MetricUnit.Count, value=1)
    else:
        metrics.add_metric(name="HealthCheckFailure", unit=MetricUnit.Count, value=1)

    output = HealthCheckOutput(
        status=status,
        timestamp=utc_now(),
        version=version,
        environment=environment,
        checks={"database": db_health},
    )
    return create_api_response(
        status_code=200 if status == "healthy" else 503,
        body=output.model_dump_json(),
    )
