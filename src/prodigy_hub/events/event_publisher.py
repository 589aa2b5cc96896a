"""
TMF688 event publisher.

Publishing is fire-and-forget for the caller: the event is stored in the
event log, POSTed to every registered hub whose query matches, and forwarded
to EventBridge when a bus is configured. Failures of any of these steps are
logged and counted, never raised.
"""

import json
import time
import uuid
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

import boto3
import httpx
from aws_lambda_powertools.metrics import MetricUnit
from botocore.exceptions import BotoCoreError, ClientError

from prodigy_hub.dal.repositories import EventRepository, HubRepository
from prodigy_hub.events.event_schemas import TmfEventType
from prodigy_hub.handlers.utils.errors import BaseServiceError
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.models.common import EVENT_MANAGEMENT_BASE_PATH, utc_now
from prodigy_hub.models.hub import Event

EVENT_SOURCE = 'prodigyhub.tmf'


class EventSink(Protocol):
    """Receives the domain events emitted by the services."""

    def publish(self, event_type: Union[TmfEventType, str], payload: Dict[str, Any]) -> Optional[Event]:
        ...


class InMemoryEventSink:
    """Event sink recording events, for tests and local runs."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, event_type: Union[TmfEventType, str], payload: Dict[str, Any]) -> Optional[Event]:
        name = event_type.value if isinstance(event_type, TmfEventType) else event_type
        self.events.append((name, payload))
        return None

    def types(self) -> List[str]:
        return [event_type for event_type, _ in self.events]


class EventPublisher:
    """Store events and notify hubs and, optionally, EventBridge."""

    def __init__(
        self,
        events: EventRepository,
        hubs: HubRepository,
        http_client: Optional[httpx.Client] = None,
        callback_timeout: float = 5.0,
        event_bus_name: Optional[str] = None,
        eventbridge_client: Any = None,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
    ):
        """
        Args:
            events: Event log repository
            hubs: Registered hubs repository
            http_client: Client used for hub callbacks
            callback_timeout: Timeout of one callback delivery, in seconds
            event_bus_name: EventBridge bus to forward events to, if any
            eventbridge_client: boto3 EventBridge client override
            max_retries: EventBridge retries after the first attempt
            retry_backoff: Initial EventBridge backoff, in seconds
        """
        self.events = events
        self.hubs = hubs
        self.http_client = http_client or httpx.Client(timeout=callback_timeout)
        self.event_bus_name = event_bus_name
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.eventbridge = eventbridge_client
        if event_bus_name and self.eventbridge is None:
            self.eventbridge = boto3.client('events')

    @tracer.capture_method
    def publish(self, event_type: Union[TmfEventType, str], payload: Dict[str, Any]) -> Event:
        event_type_name = event_type.value if isinstance(event_type, TmfEventType) else event_type
        event_id = str(uuid.uuid4())
        event = Event(
            id=event_id,
            href=f"{EVENT_MANAGEMENT_BASE_PATH}/event/{event_id}",
            event_id=event_id,
            event_time=utc_now(),
            event_type=event_type_name,
            event=payload,
        )

        try:
            event = self.events.create(event)
        except BaseServiceError as e:
            metrics.add_metric(name="EventStoreFailed", unit=MetricUnit.Count, value=1)
            logger.error("Failed to store event", extra={
                "event_id": event_id,
                "event_type": event_type_name,
                "error_code": e.error_code,
            })

        logger.info("Event published", extra={
            "event_id": event_id,
            "event_type": event_type_name,
            "entity_id": payload.get('entityId'),
        })
        metrics.add_metric(name="EventPublished", unit=MetricUnit.Count, value=1)

        self._notify_hubs(event)
        if self.eventbridge is not None:
            self._forward_to_eventbridge(event)
        return event

    def _notify_hubs(self, event: Event) -> None:
        try:
            hubs = self.hubs.find_all()
        except BaseServiceError as e:
            logger.error("Failed to load hubs", extra={"error_code": e.error_code, "event_id": event.id})
            return

        body = event.to_tmf_format()
        for hub in hubs:
            if not hub.accepts(event.event_type):
                continue
            try:
                response = self.http_client.post(hub.callback, json=body)
                response.raise_for_status()
            except httpx.HTTPError as e:
                metrics.add_metric(name="HubNotificationFailed", unit=MetricUnit.Count, value=1)
                logger.warning("Hub notification failed", extra={
                    "hub_id": hub.id,
                    "callback": hub.callback,
                    "event_id": event.id,
                    "error": str(e),
                })
                continue
            metrics.add_metric(name="HubNotificationDelivered", unit=MetricUnit.Count, value=1)
            logger.debug("Hub notified", extra={"hub_id": hub.id, "event_id": event.id})

    def _forward_to_eventbridge(self, event: Event) -> None:
        entry = {
            'Source': EVENT_SOURCE,
            'DetailType': event.event_type,
            'Detail': json.dumps(event.to_tmf_format(), default=str),
            'EventBusName': self.event_bus_name,
        }

        for attempt in range(self.max_retries + 1):
            try:
                response = self.eventbridge.put_events(Entries=[entry])
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"EventBridge publish attempt {attempt + 1} failed", extra={
                    "error": str(e),
                    "event_id": event.id,
                })
                if attempt < self.max_retries:
                    time.sleep(self.retry_backoff * (2 ** attempt))
                continue

            if response.get('FailedEntryCount', 0) == 0:
                return
            failed_entry = response.get('Entries', [{}])[0]
            logger.warning("EventBridge rejected event", extra={
                "event_id": event.id,
                "error_code": failed_entry.get('ErrorCode'),
                "error_message": failed_entry.get('ErrorMessage'),
            })
            break

        metrics.add_metric(name="EventForwardFailed", unit=MetricUnit.Count, value=1)
        logger.error("Failed to forward event to EventBridge", extra={
            "event_id": event.id,
            "event_bus_name": self.event_bus_name,
        })
