"""
Unit tests for event publishing, hub delivery and the hub service.

Hub callbacks go through an ``httpx.MockTransport``; EventBridge is a mock
client.
"""

import json
from unittest.mock import Mock

import httpx
import pytest
from botocore.exceptions import ClientError

from prodigy_hub.dal.repositories import EventRepository, HubRepository
from prodigy_hub.events.event_publisher import EVENT_SOURCE, EventPublisher
from prodigy_hub.events.event_schemas import TmfEventType, entity_payload, resource_key
from prodigy_hub.logic.hub_service import EventNotFoundError, HubNotFoundError, HubService
from prodigy_hub.models.cancel_product_order import CancelProductOrder, ProductOrderRef
from prodigy_hub.models.input import CreateEventRequest, CreateHubRequest


class Listener:
    """Records the callbacks it receives; answers with ``status_code``."""

    def __init__(self, status_code=201):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)

    @property
    def urls(self):
        return [str(request.url) for request in self.requests]


@pytest.fixture
def listener():
    return Listener()


@pytest.fixture
def hubs(store):
    return HubRepository(store)


@pytest.fixture
def events(store):
    return EventRepository(store)


@pytest.fixture
def publisher(events, hubs, listener):
    return EventPublisher(events, hubs, http_client=httpx.Client(transport=httpx.MockTransport(listener)))


@pytest.fixture
def hub_service(hubs, events, publisher):
    return HubService(hubs, events, publisher)


def _cancellation():
    return CancelProductOrder(
        id="C1",
        href="/productOrderingManagement/v4/cancelProductOrder/C1",
        product_order=ProductOrderRef(id="O1"),
    )


class TestEventSchemas:
    def test_resource_key(self):
        assert resource_key("CancelProductOrder") == "cancelProductOrder"

    def test_entity_payload(self):
        payload = entity_payload(_cancellation())

        assert payload["entityId"] == "C1"
        assert payload["state"] == "acknowledged"
        assert payload["@type"] == "CancelProductOrder"
        assert payload["cancelProductOrder"]["productOrder"]["id"] == "O1"


class TestEventPublisher:
    """Test cases for EventPublisher."""

    def test_event_is_stored(self, publisher, events):
        event = publisher.publish(TmfEventType.CANCEL_PRODUCT_ORDER_CREATE, entity_payload(_cancellation()))

        stored = events.find_by_id(event.id)
        assert stored.event_type == "CancelProductOrderCreateEvent"
        assert stored.href == f"/tmf-api/event/v4/event/{event.id}"
        assert stored.event["entityId"] == "C1"

    def test_matching_hubs_are_notified(self, hub_service, publisher, listener):
        hub_service.register(CreateHubRequest(callback="http://all.example.com/events"))
        hub_service.register(CreateHubRequest(
            callback="http://cancel.example.com/events",
            query="eventType=CancelProductOrderStateChangeEvent",
        ))

        publisher.publish(TmfEventType.PRODUCT_ORDER_CREATE, {"entityId": "O1"})
        publisher.publish(TmfEventType.CANCEL_PRODUCT_ORDER_STATE_CHANGE, {"entityId": "C1"})

        assert sorted(listener.urls) == sorted([
            "http://all.example.com/events",
            "http://all.example.com/events",
            "http://cancel.example.com/events",
        ])
        body = json.loads(listener.requests[-1].content)
        assert body["eventType"] in ("ProductOrderCreateEvent", "CancelProductOrderStateChangeEvent")
        assert "eventId" in body

    def test_delivery_failures_are_not_raised(self, hubs, events):
        failing = Listener(status_code=500)
        publisher = EventPublisher(events, hubs, http_client=httpx.Client(transport=httpx.MockTransport(failing)))
        HubService(hubs, events, publisher).register(CreateHubRequest(callback="http://down.example.com"))

        event = publisher.publish("CustomEvent", {"entityId": "X"})

        assert len(failing.requests) == 1
        assert events.find_by_id(event.id) is not None

    def test_unreachable_hub(self, hubs, events):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        publisher = EventPublisher(events, hubs, http_client=httpx.Client(transport=httpx.MockTransport(refuse)))
        HubService(hubs, events, publisher).register(CreateHubRequest(callback="http://gone.example.com"))

        assert publisher.publish("CustomEvent", {"entityId": "X"}) is not None

    def test_forwarded_to_eventbridge(self, events, hubs):
        eventbridge = Mock()
        eventbridge.put_events.return_value = {"FailedEntryCount": 0, "Entries": [{"EventId": "1"}]}
        publisher = EventPublisher(events, hubs, event_bus_name="prodigy-bus", eventbridge_client=eventbridge)

        publisher.publish(TmfEventType.PRODUCT_ORDER_DELETE, {"entityId": "O1"})

        entry = eventbridge.put_events.call_args.kwargs["Entries"][0]
        assert entry["Source"] == EVENT_SOURCE
        assert entry["DetailType"] == "ProductOrderDeleteEvent"
        assert entry["EventBusName"] == "prodigy-bus"

    def test_eventbridge_retries_then_gives_up(self, events, hubs):
        eventbridge = Mock()
        eventbridge.put_events.side_effect = ClientError(
            {"Error": {"Code": "InternalException", "Message": "boom"}}, "PutEvents",
        )
        publisher = EventPublisher(
            events, hubs, event_bus_name="prodigy-bus", eventbridge_client=eventbridge, retry_backoff=0,
        )

        publisher.publish("CustomEvent", {"entityId": "X"})

        assert eventbridge.put_events.call_count == 3


class TestHubService:
    """Test cases for hub registration and the event log."""

    def test_register_and_unregister(self, hub_service):
        hub = hub_service.register(CreateHubRequest(callback="http://listener.example.com"))

        assert hub.href == f"/tmf-api/event/v4/hub/{hub.id}"
        assert hub_service.get_hub(hub.id)["callback"] == "http://listener.example.com"
        assert hub_service.list_hubs().total == 1

        hub_service.unregister(hub.id)

        with pytest.raises(HubNotFoundError):
            hub_service.get_hub(hub.id)
        with pytest.raises(HubNotFoundError):
            hub_service.unregister(hub.id)

    def test_post_and_read_events(self, hub_service):
        event = hub_service.post_event(CreateEventRequest(event_type="CustomEvent", event={"entityId": "X"}))

        assert hub_service.get_event(event.id)["eventType"] == "CustomEvent"
        assert hub_service.list_events({"eventType": "customevent"}).total == 1
        with pytest.raises(EventNotFoundError):
            hub_service.get_event("missing")
