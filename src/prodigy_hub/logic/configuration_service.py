"""
Business Logic Layer for TMF760 product configuration requests.
"""

import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

from aws_lambda_powertools.metrics import MetricUnit

from prodigy_hub.dal import ConditionalCheckFailedError
from prodigy_hub.dal.repositories import CheckProductConfigurationRepository, QueryProductConfigurationRepository
from prodigy_hub.events.event_publisher import EventSink
from prodigy_hub.events.event_schemas import TmfEventType, entity_payload
from prodigy_hub.handlers.utils.errors import DuplicateIdError, ErrorContext, ResourceNotFoundError
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.logic.configuration_builder import DEFAULT_BASE_URL, build_check_items, build_computed_items
from prodigy_hub.logic.shaping import Page, select_fields, to_page
from prodigy_hub.models.common import PRODUCT_CONFIGURATION_BASE_PATH, utc_now
from prodigy_hub.models.input import CreateCheckProductConfigurationRequest, CreateQueryProductConfigurationRequest
from prodigy_hub.models.product_configuration import (
    CheckProductConfiguration,
    ConfigurationItemState,
    ConfigurationRequestState,
    QueryProductConfiguration,
)


class ConfigurationRequestNotFoundError(ResourceNotFoundError):
    """Raised when a check or query configuration request is not found."""

    def __init__(self, resource_type: str, resource_id: str, context: Optional[ErrorContext] = None):
        super().__init__(resource_type=resource_type, resource_id=resource_id, context=context)


def _default_id(prefix: str, taken: Callable[[str], bool]) -> str:
    """``<prefix>_<epoch ms>``, moved to the next free millisecond on collision."""
    millis = int(time.time() * 1000)
    while taken(f"{prefix}_{millis}"):
        millis += 1
    return f"{prefix}_{millis}"


class ProductConfigurationService:
    """Check and query product configurations."""

    def __init__(
        self,
        checks: CheckProductConfigurationRepository,
        queries: QueryProductConfigurationRepository,
        events: EventSink,
        base_url: str = DEFAULT_BASE_URL,
        enforce_max_cardinality: Union[bool, Callable[[], bool]] = False,
    ):
        """
        Args:
            checks: Check request store
            queries: Query request store
            events: Event sink receiving the create events
            base_url: Base of placeholder hrefs in generated items
            enforce_max_cardinality: Validator option, or a provider read at each check
        """
        self.checks = checks
        self.queries = queries
        self.events = events
        self.base_url = base_url
        self.enforce_max_cardinality = enforce_max_cardinality

    def _enforce_max_cardinality(self) -> bool:
        if callable(self.enforce_max_cardinality):
            return self.enforce_max_cardinality()
        return self.enforce_max_cardinality

    @tracer.capture_method
    def create_check(self, request: CreateCheckProductConfigurationRequest) -> CheckProductConfiguration:
        """
        Create a check request; items are validated when ``instantSync`` is set.

        Raises:
            DuplicateIdError: If the client supplied id is already used
        """
        check_id = request.id or _default_id('check', self.checks.exists)
        state = ConfigurationRequestState.DONE if request.instant_sync else ConfigurationRequestState.ACKNOWLEDGED
        items = build_check_items(
            request.check_product_configuration_item,
            instant_sync=request.instant_sync,
            base_url=self.base_url,
            specification=request.product_configuration_specification,
            enforce_max_cardinality=self._enforce_max_cardinality(),
        )

        document: Dict[str, Any] = {
            **request.to_document(),
            'id': check_id,
            'href': f"{PRODUCT_CONFIGURATION_BASE_PATH}/checkProductConfiguration/{check_id}",
            '@type': 'CheckProductConfiguration',
            'state': state.value,
            'checkProductConfigurationItem': [item.to_document() for item in items],
            'creationDate': utc_now().isoformat(),
        }
        check = CheckProductConfiguration.model_validate(document)

        try:
            check = self.checks.create(check)
        except ConditionalCheckFailedError as e:
            raise DuplicateIdError("CheckProductConfiguration", check_id) from e

        rejected = sum(1 for item in items if item.state == ConfigurationItemState.REJECTED)
        if rejected:
            metrics.add_metric(name="ConfigurationItemRejected", unit=MetricUnit.Count, value=rejected)
        logger.info("Check product configuration created", extra={
            "check_id": check.id,
            "state": check.state.value,
            "items": len(items),
            "rejected_items": rejected,
        })

        self.events.publish(TmfEventType.CHECK_PRODUCT_CONFIGURATION_CREATE, entity_payload(check))
        return check

    @tracer.capture_method
    def create_query(self, request: CreateQueryProductConfigurationRequest) -> QueryProductConfiguration:
        """
        Create a query request; computed items are derived when ``instantSync`` is set.

        Raises:
            ValidationError: If a request item id is not numeric
            DuplicateIdError: If the client supplied id is already used
        """
        query_id = request.id or _default_id('query', self.queries.exists)
        if request.instant_sync:
            state = ConfigurationRequestState.DONE
            computed = build_computed_items(request.request_product_configuration_item, base_url=self.base_url)
        else:
            state = ConfigurationRequestState.ACKNOWLEDGED
            computed = []

        document: Dict[str, Any] = {
            **request.to_document(),
            'id': query_id,
            'href': f"{PRODUCT_CONFIGURATION_BASE_PATH}/queryProductConfiguration/{query_id}",
            '@type': 'QueryProductConfiguration',
            'state': state.value,
            'computedProductConfigurationItem': [item.to_document() for item in computed],
            'creationDate': utc_now().isoformat(),
        }
        query = QueryProductConfiguration.model_validate(document)

        try:
            query = self.queries.create(query)
        except ConditionalCheckFailedError as e:
            raise DuplicateIdError("QueryProductConfiguration", query_id) from e

        logger.info("Query product configuration created", extra={
            "query_id": query.id,
            "state": query.state.value,
            "computed_items": len(computed),
        })

        self.events.publish(TmfEventType.QUERY_PRODUCT_CONFIGURATION_CREATE, entity_payload(query))
        return query

    def get_check(self, check_id: str, fields: Optional[str] = None) -> Dict[str, Any]:
        check = self.checks.find_by_id(check_id)
        if check is None:
            raise ConfigurationRequestNotFoundError("CheckProductConfiguration", check_id)
        return select_fields(check.to_tmf_format(), fields)

    def get_query(self, query_id: str, fields: Optional[str] = None) -> Dict[str, Any]:
        query = self.queries.find_by_id(query_id)
        if query is None:
            raise ConfigurationRequestNotFoundError("QueryProductConfiguration", query_id)
        return select_fields(query.to_tmf_format(), fields)

    def list_checks(
        self,
        filters: Optional[Mapping[str, str]] = None,
        fields: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Page:
        checks, total = self.checks.find_many(filters, offset, limit)
        return to_page(checks, total, fields)

    def list_queries(
        self,
        filters: Optional[Mapping[str, str]] = None,
        fields: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Page:
        queries, total = self.queries.find_many(filters, offset, limit)
        return to_page(queries, total, fields)

    @tracer.capture_method
    def delete_check(self, check_id: str) -> None:
        if not self.checks.delete(check_id):
            raise ConfigurationRequestNotFoundError("CheckProductConfiguration", check_id)

    @tracer.capture_method
    def delete_query(self, query_id: str) -> None:
        if not self.queries.delete(query_id):
            raise ConfigurationRequestNotFoundError("QueryProductConfiguration", query_id)
