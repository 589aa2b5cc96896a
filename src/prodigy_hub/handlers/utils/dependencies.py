"""
Composition root: builds the stores, queues and services the handlers use.

The container is built once per Lambda execution environment, on first use,
from ``HandlerEnvVars``. Tests install their own container with
``use_container``.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional

import httpx

from prodigy_hub.dal import BaseDocumentStore, get_document_store
from prodigy_hub.dal.repositories import (
    CancelProductOrderRepository,
    CheckProductConfigurationRepository,
    EventRepository,
    HubRepository,
    ProductOrderRepository,
    EntityRepository,
    QueryProductConfigurationRepository,
)
from prodigy_hub.events.event_publisher import EventPublisher, EventSink
from prodigy_hub.events.task_queue import (
    InMemoryResolutionTaskQueue,
    ResolutionTaskQueue,
    SqsResolutionTaskQueue,
)
from prodigy_hub.handlers.models.env_vars import HandlerEnvVars, get_handler_env_vars
from prodigy_hub.handlers.utils.dynamic_configuration import get_service_configuration
from prodigy_hub.handlers.utils.observability import logger
from prodigy_hub.logic.cancellation_policy import ConfiguredCancellationPolicy
from prodigy_hub.logic.cancellation_workflow import CancellationWorkflow
from prodigy_hub.logic.configuration_service import ProductConfigurationService
from prodigy_hub.logic.hub_service import HubService
from prodigy_hub.logic.product_order_service import ProductOrderService
from prodigy_hub.logic.qualification import ProductOfferingQualifier
from prodigy_hub.logic.resource_kinds import (
    catalog_kinds,
    check_qualification_kind,
    product_kind,
    query_qualification_kind,
    topic_kind,
)
from prodigy_hub.logic.resource_service import ResourceService


@dataclass
class ServiceContainer:
    """Everything a handler needs, wired together."""

    store: BaseDocumentStore
    orders: ProductOrderRepository
    cancellations: CancelProductOrderRepository
    checks: CheckProductConfigurationRepository
    queries: QueryProductConfigurationRepository
    hubs: HubRepository
    events: EventRepository
    publisher: EventSink
    task_queue: ResolutionTaskQueue
    cancellation_workflow: CancellationWorkflow
    product_orders: ProductOrderService
    configurations: ProductConfigurationService
    hub_service: HubService
    # catalog, inventory, qualification and topic services by collection
    resources: Dict[str, ResourceService] = field(default_factory=dict)

    def run_pending_resolutions(self) -> int:
        """Resolve the cancellations waiting in an in-memory task queue.

        Returns:
            Number of resolution tasks run; 0 for queues consumed elsewhere
        """
        if not isinstance(self.task_queue, InMemoryResolutionTaskQueue):
            return 0
        workflow = self.cancellation_workflow
        return self.task_queue.drain(workflow.resolve, max_attempts=workflow.max_attempts)


def build_resource_services(store: BaseDocumentStore, publisher: EventSink, base_url: str) -> Dict[str, ResourceService]:
    """Services of the catalog, inventory, qualification and topic collections, by collection."""
    services: Dict[str, ResourceService] = {}

    def register(kind, on_create=None) -> None:
        repository = EntityRepository(store, kind.collection, kind.sort_attribute)
        services[kind.collection] = ResourceService(kind, repository, publisher, on_create=on_create)

    for kind in catalog_kinds():
        register(kind)
    register(product_kind(base_url))
    register(topic_kind())

    qualifier = ProductOfferingQualifier(services['ProductOffering'].repository)
    register(check_qualification_kind(), on_create=qualifier.check)
    register(query_qualification_kind(), on_create=qualifier.query)
    return services


def build_container(
    env_vars: Optional[HandlerEnvVars] = None,
    store: Optional[BaseDocumentStore] = None,
    task_queue: Optional[ResolutionTaskQueue] = None,
    publisher: Optional[EventSink] = None,
    http_client: Optional[httpx.Client] = None,
) -> ServiceContainer:
    """
    Wire stores, queues and services.

    Args:
        env_vars: Static configuration, read from the environment when omitted
        store: Document store override
        task_queue: Resolution task queue override
        publisher: Event sink override
        http_client: Client for hub callbacks

    Returns:
        The wired container
    """
    env_vars = env_vars or get_handler_env_vars()

    if store is None:
        store = get_document_store(
            env_vars.STORE_BACKEND,
            table_name=env_vars.TABLE_NAME,
            **({} if env_vars.STORE_BACKEND == 'memory' else {
                'region_name': env_vars.AWS_REGION,
                'endpoint_url': env_vars.DYNAMODB_ENDPOINT_URL,
            }),
        )

    orders = ProductOrderRepository(store)
    cancellations = CancelProductOrderRepository(store)
    checks = CheckProductConfigurationRepository(store)
    queries = QueryProductConfigurationRepository(store)
    hubs = HubRepository(store)
    events = EventRepository(store)

    if publisher is None:
        publisher = EventPublisher(
            events=events,
            hubs=hubs,
            http_client=http_client,
            callback_timeout=env_vars.HUB_CALLBACK_TIMEOUT_SECONDS,
            event_bus_name=env_vars.EVENT_BUS_NAME,
        )

    if task_queue is None:
        if env_vars.CANCELLATION_QUEUE_URL:
            task_queue = SqsResolutionTaskQueue(env_vars.CANCELLATION_QUEUE_URL, region_name=env_vars.AWS_REGION)
        else:
            task_queue = InMemoryResolutionTaskQueue()

    workflow = CancellationWorkflow(
        orders=orders,
        cancellations=cancellations,
        events=publisher,
        task_queue=task_queue,
        policy=ConfiguredCancellationPolicy(lambda: get_service_configuration().cancellation_policy),
        resolution_timeout=timedelta(seconds=env_vars.CANCELLATION_RESOLUTION_TIMEOUT_SECONDS),
        max_attempts=env_vars.CANCELLATION_MAX_ATTEMPTS,
    )

    logger.info("Service container built", extra={
        "store_backend": env_vars.STORE_BACKEND,
        "task_queue": type(task_queue).__name__,
        "environment": env_vars.ENVIRONMENT,
    })

    return ServiceContainer(
        store=store,
        orders=orders,
        cancellations=cancellations,
        checks=checks,
        queries=queries,
        hubs=hubs,
        events=events,
        publisher=publisher,
        task_queue=task_queue,
        cancellation_workflow=workflow,
        product_orders=ProductOrderService(orders, cancellations, publisher),
        configurations=ProductConfigurationService(
            checks,
            queries,
            publisher,
            base_url=env_vars.BASE_URL,
            enforce_max_cardinality=lambda: get_service_configuration().configuration_validation.enforce_max_cardinality,
        ),
        hub_service=HubService(hubs, events, publisher),
        resources=build_resource_services(store, publisher, env_vars.BASE_URL),
    )


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = build_container()
    return _container


def use_container(container: Optional[ServiceContainer]) -> None:
    """Install ``container`` as the handlers' container; None rebuilds on next use."""
    global _container
    _container = container
