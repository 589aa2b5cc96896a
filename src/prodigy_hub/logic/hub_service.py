"""
Business Logic Layer for TMF688 hubs and the event log.
"""

import uuid
from typing import Any, Dict, Mapping, Optional

from aws_lambda_powertools.metrics import MetricUnit

from prodigy_hub.dal.repositories import EventRepository, HubRepository
from prodigy_hub.events.event_publisher import EventSink
from prodigy_hub.handlers.utils.errors import ErrorContext, ResourceNotFoundError
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.logic.shaping import Page, select_fields, to_page
from prodigy_hub.models.common import EVENT_MANAGEMENT_BASE_PATH, utc_now
from prodigy_hub.models.hub import Event, Hub
from prodigy_hub.models.input import CreateEventRequest, CreateHubRequest


class HubNotFoundError(ResourceNotFoundError):
    def __init__(self, hub_id: str, context: Optional[ErrorContext] = None):
        super().__init__(resource_type="Hub", resource_id=hub_id, context=context)


class EventNotFoundError(ResourceNotFoundError):
    def __init__(self, event_id: str, context: Optional[ErrorContext] = None):
        super().__init__(resource_type="Event", resource_id=event_id, context=context)


class HubService:
    """Listener registration and event log queries."""

    def __init__(self, hubs: HubRepository, events: EventRepository, publisher: EventSink):
        self.hubs = hubs
        self.events = events
        self.publisher = publisher

    @tracer.capture_method
    def register(self, request: CreateHubRequest) -> Hub:
        hub_id = str(uuid.uuid4())
        hub = self.hubs.create(Hub(
            id=hub_id,
            href=f"{EVENT_MANAGEMENT_BASE_PATH}/hub/{hub_id}",
            callback=request.callback,
            query=request.query,
            creation_date=utc_now(),
        ))
        metrics.add_metric(name="HubRegistered", unit=MetricUnit.Count, value=1)
        logger.info("Hub registered", extra={"hub_id": hub.id, "callback": hub.callback, "query": hub.query})
        return hub

    @tracer.capture_method
    def unregister(self, hub_id: str) -> None:
        if not self.hubs.delete(hub_id):
            raise HubNotFoundError(hub_id)

    def get_hub(self, hub_id: str, fields: Optional[str] = None) -> Dict[str, Any]:
        hub = self.hubs.find_by_id(hub_id)
        if hub is None:
            raise HubNotFoundError(hub_id)
        return select_fields(hub.to_tmf_format(), fields)

    def list_hubs(
        self,
        filters: Optional[Mapping[str, str]] = None,
        fields: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Page:
        hubs, total = self.hubs.find_many(filters, offset, limit)
        return to_page(hubs, total, fields)

    @tracer.capture_method
    def post_event(self, request: CreateEventRequest) -> Optional[Event]:
        """Publish a client supplied event to the log and the matching hubs."""
        return self.publisher.publish(request.event_type, request.event)

    def get_event(self, event_id: str, fields: Optional[str] = None) -> Dict[str, Any]:
        event = self.events.find_by_id(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return select_fields(event.to_tmf_format(), fields)

    def list_events(
        self,
        filters: Optional[Mapping[str, str]] = None,
        fields: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Page:
        events, total = self.events.find_many(filters, offset, limit)
        return to_page(events, total, fields)
