"""
Unit tests for the catalog, inventory and topic resource services.
"""

from unittest.mock import patch

import pytest

from conftest import NOW
from prodigy_hub.dal import ConditionalCheckFailedError
from prodigy_hub.dal.repositories import EntityRepository
from prodigy_hub.handlers.utils.errors import (
    ConcurrentModificationError,
    DuplicateIdError,
    ResourceNotFoundError,
    ValidationError,
    create_error_context,
)
from prodigy_hub.logic.resource_kinds import catalog_kinds, product_kind, topic_kind
from prodigy_hub.logic.resource_service import ResourceService

LATER = NOW.replace(hour=13)


def _service(kind, store, sink, clock=lambda: NOW):
    return ResourceService(kind, EntityRepository(store, kind.collection, kind.sort_attribute), sink, clock=clock)


@pytest.fixture
def products(store, sink):
    return _service(product_kind('https://api.example.com'), store, sink)


@pytest.fixture
def offerings(store, sink):
    kind = next(kind for kind in catalog_kinds() if kind.collection == 'ProductOffering')
    return _service(kind, store, sink)


class TestCreate:
    """Test cases for resource creation."""

    def test_product_defaults_are_filled(self, products, sink):
        document = products.create({"name": "Fibre 100"}).to_document()

        assert document["id"].startswith("prod-")
        assert document["href"] == f"/tmf-api/productInventory/v5/product/{document['id']}"
        assert document["@type"] == "Product"
        assert document["name"] == "Fibre 100"
        assert document["description"] == "Default product description"
        assert document["status"] == "created"
        assert document["creationDate"] == NOW.isoformat()
        assert document["lastUpdate"] == NOW.isoformat()
        assert document["startDate"] == document["creationDate"]
        assert document["isBundle"] is False
        assert document["productCharacteristic"] == [] and document["realizingService"] == []
        assert "productSpecification" not in document
        assert sink.types() == ["ProductCreateEvent"]

    def test_sent_references_are_completed(self, products):
        document = products.create({"productSpecification": {"id": "PS1"}, "billingAccount": {}}).to_document()

        assert document["productSpecification"] == {
            "id": "PS1",
            "href": "https://api.example.com/productSpecification/default-spec-id",
            "name": "Default Specification",
            "version": "1.0",
        }
        assert document["billingAccount"] == {"id": "default-billing-id", "name": "Default Billing Account"}

    def test_client_id_and_dates_are_handled(self, products):
        document = products.create({"id": "P1", "creationDate": "2020-01-01T00:00:00Z", "note": None}).to_document()

        assert document["id"] == "P1"
        assert document["creationDate"] == NOW.isoformat()
        assert "note" not in document

    def test_duplicate_id_is_rejected(self, products):
        products.create({"id": "P1"})

        with pytest.raises(DuplicateIdError):
            products.create({"id": "P1"})

    def test_type_attributes_must_be_strings(self, products):
        with pytest.raises(ValidationError) as exc_info:
            products.create({"@baseType": 7})

        assert exc_info.value.field_errors == [{"field": "@baseType", "message": "@baseType must be string"}]

    def test_catalog_offering_defaults(self, offerings, sink):
        document = offerings.create({"name": "Fibre", "productOfferingTerm": [{"name": "Annual"}]}).to_document()

        assert document["@type"] == "ProductOffering"
        assert document["isSellable"] is True
        assert document["lifecycleStatus"] == "Active"
        assert document["productOfferingTerm"] == [{"name": "Annual", "duration": {"amount": 12, "units": "Month"}}]
        assert "creationDate" not in document
        assert document["lastUpdate"] == NOW.isoformat()
        assert sink.types() == ["ProductOfferingCreateEvent"]

    def test_topic_requires_name_and_is_silent(self, store, sink):
        topics = _service(topic_kind(), store, sink)

        with pytest.raises(ValidationError, match="Missing required field: name"):
            topics.create({})
        topic = topics.create({"name": "orders"}).to_document()

        assert topic["@baseType"] == "topic"
        assert topic["href"] == f"/tmf-api/event/v4/topic/{topic['id']}"
        assert sink.events == []


class TestRead:
    """Test cases for get and list."""

    def test_get_selects_fields(self, products):
        products.create({"id": "P1", "name": "Fibre"})

        assert products.get("P1", fields="name") == {
            "@type": "Product",
            "id": "P1",
            "href": "/tmf-api/productInventory/v5/product/P1",
            "name": "Fibre",
        }

    def test_not_found_carries_context(self, products):
        context = create_error_context("req-1", "get_product", "missing")

        with pytest.raises(ResourceNotFoundError) as exc_info:
            products.get("missing", context=context)

        assert exc_info.value.context == context

    def test_list_filters_and_pages(self, products):
        for index in range(3):
            products.create({"id": f"P{index}", "status": "active" if index else "created"})

        page = products.list({"status": "active"}, offset=0, limit=1)

        assert page.total == 2
        assert len(page.items) == 1
        assert page.items[0]["status"] == "active"


class TestPatch:
    """Test cases for merge patches."""

    def test_merge_removes_nulls_and_keeps_immutables(self, store, sink):
        products = _service(product_kind(), store, sink, clock=iter([NOW, LATER]).__next__)
        products.create({"id": "P1", "name": "Fibre", "productSerialNumber": "SN-1"})
        sink.events.clear()

        document = products.patch("P1", {
            "id": "other",
            "creationDate": "2020-01-01T00:00:00Z",
            "description": "Upgraded",
            "productSerialNumber": None,
        }).to_document()

        assert document["id"] == "P1"
        assert document["creationDate"] == NOW.isoformat()
        assert document["lastUpdate"] == LATER.isoformat()
        assert document["description"] == "Upgraded"
        assert document["name"] == "Fibre"
        # removed attribute falls back to its patch default
        assert document["productSerialNumber"] == ""
        assert sink.types() == ["ProductAttributeValueChangeEvent"]

    def test_status_change_is_announced(self, products, sink):
        products.create({"id": "P1"})
        sink.events.clear()

        products.patch("P1", {"status": "suspended"})

        assert sink.types() == ["ProductAttributeValueChangeEvent", "ProductStateChangeEvent"]

    def test_cleared_status_becomes_active(self, products):
        products.create({"id": "P1"})

        assert products.patch("P1", {"status": None}).to_document()["status"] == "active"

    def test_missing_resource(self, products):
        with pytest.raises(ResourceNotFoundError):
            products.patch("missing", {"name": "x"})

    def test_concurrent_write_is_rejected(self, products):
        products.create({"id": "P1"})

        with patch.object(
            products.repository, "update",
            side_effect=ConditionalCheckFailedError("Product", "revision changed"),
        ):
            with pytest.raises(ConcurrentModificationError):
                products.patch("P1", {"name": "Fibre"})


class TestDelete:
    """Test cases for deletion."""

    def test_delete_announces_removal(self, products, sink):
        products.create({"id": "P1"})

        products.delete("P1")

        assert products.repository.find_by_id("P1") is None
        assert sink.types()[-1] == "ProductDeleteEvent"

    def test_delete_missing(self, products):
        with pytest.raises(ResourceNotFoundError):
            products.delete("missing")
