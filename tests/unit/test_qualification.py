"""
Unit tests for product offering qualification against the catalog.
"""

import pytest

from conftest import NOW
from prodigy_hub.dal.repositories import EntityRepository
from prodigy_hub.handlers.utils.errors import ValidationError
from prodigy_hub.logic.qualification import ProductOfferingQualifier
from prodigy_hub.logic.resource_kinds import check_qualification_kind, query_qualification_kind
from prodigy_hub.logic.resource_service import ResourceService
from prodigy_hub.models.common import TmfEntity


@pytest.fixture
def offerings(store):
    repository = EntityRepository(store, 'ProductOffering', 'lastUpdate')
    for offering_id, attributes in {
        "PO-1": {"name": "Fibre 100", "isSellable": True, "category": [{"id": "CAT-1"}]},
        "PO-2": {"name": "Fibre 500", "isSellable": True, "category": [{"id": "CAT-2"}]},
        "PO-3": {"name": "Legacy DSL", "isSellable": False},
        "PO-4": {"name": "ISDN", "isSellable": True, "lifecycleStatus": "Retired"},
    }.items():
        repository.create(TmfEntity.model_validate({
            "id": offering_id,
            "href": f"/tmf-api/productCatalogManagement/v5/productOffering/{offering_id}",
            "@type": "ProductOffering",
            **attributes,
        }))
    return repository


@pytest.fixture
def qualifier(offerings):
    return ProductOfferingQualifier(offerings, clock=lambda: NOW)


@pytest.fixture
def checks(store, sink, qualifier):
    kind = check_qualification_kind()
    return ResourceService(kind, EntityRepository(store, kind.collection), sink, on_create=qualifier.check, clock=lambda: NOW)


@pytest.fixture
def queries(store, sink, qualifier):
    kind = query_qualification_kind()
    return ResourceService(kind, EntityRepository(store, kind.collection), sink, on_create=qualifier.query, clock=lambda: NOW)


def _check_items(*offering_ids):
    return [{"productOffering": {"id": offering_id}} for offering_id in offering_ids]


class TestCheckQualification:
    """Test cases for check requests."""

    def test_type_is_required(self, checks):
        with pytest.raises(ValidationError, match="Missing required field: @type"):
            checks.create({"instantSyncQualification": True})

    def test_request_without_instant_sync_is_acknowledged(self, checks, sink):
        document = checks.create({
            "@type": "CheckProductOfferingQualification",
            "checkProductOfferingQualificationItem": _check_items("PO-1"),
        }).to_document()

        assert document["state"] == "acknowledged"
        assert document["@baseType"] == "CheckProductOfferingQualification"
        assert document["provideAlternative"] is False
        assert "qualificationResult" not in document
        assert "qualificationItemResult" not in document["checkProductOfferingQualificationItem"][0]
        assert sink.types() == ["CheckProductOfferingQualificationCreateEvent"]

    def test_all_sellable_offerings_qualify(self, checks):
        document = checks.create({
            "@type": "CheckProductOfferingQualification",
            "instantSyncQualification": True,
            "checkProductOfferingQualificationItem": _check_items("PO-1", "PO-2"),
        }).to_document()

        assert document["state"] == "done"
        assert document["qualificationResult"] == "qualified"
        assert document["effectiveQualificationDate"] == NOW.isoformat()
        items = document["checkProductOfferingQualificationItem"]
        assert [item["id"] for item in items] == ["1", "2"]
        assert {item["qualificationItemResult"] for item in items} == {"qualified"}
        assert {item["state"] for item in items} == {"done"}

    def test_unavailable_offerings_carry_reasons(self, checks):
        document = checks.create({
            "@type": "CheckProductOfferingQualification",
            "instantSyncQualification": True,
            "provideResultReason": True,
            "checkProductOfferingQualificationItem": _check_items("PO-1", "PO-3", "PO-4", "missing") + [{}],
        }).to_document()

        assert document["qualificationResult"] == "unqualified"
        items = document["checkProductOfferingQualificationItem"]
        assert "eligibilityResultReason" not in items[0]
        assert [item["eligibilityResultReason"][0]["code"] for item in items[1:]] == [
            "OFFERING_NOT_SELLABLE",
            "OFFERING_RETIRED",
            "OFFERING_NOT_FOUND",
            "OFFERING_NOT_REFERENCED",
        ]

    def test_only_available_items_are_kept(self, checks):
        document = checks.create({
            "@type": "CheckProductOfferingQualification",
            "instantSyncQualification": True,
            "provideOnlyAvailable": True,
            "checkProductOfferingQualificationItem": _check_items("PO-1", "PO-3"),
        }).to_document()

        assert document["qualificationResult"] == "unqualified"
        assert [item["productOffering"]["id"] for item in document["checkProductOfferingQualificationItem"]] == ["PO-1"]


class TestQueryQualification:
    """Test cases for query requests."""

    def test_lists_orderable_offerings(self, queries):
        document = queries.create({
            "@type": "QueryProductOfferingQualification",
            "instantSyncQualification": True,
        }).to_document()

        items = document["qualifiedProductOfferingItem"]
        assert sorted(item["productOffering"]["id"] for item in items) == ["PO-1", "PO-2"]
        assert items[0]["productOffering"]["@type"] == "ProductOfferingRef"
        assert document["qualificationResult"] == "qualified"

    def test_search_criteria_filters_by_category(self, queries):
        document = queries.create({
            "@type": "QueryProductOfferingQualification",
            "instantSyncQualification": True,
            "searchCriteria": {"category": {"id": "CAT-2"}},
        }).to_document()

        assert document["searchCriteria"]["@type"] == "SearchCriteria"
        assert [item["productOffering"]["id"] for item in document["qualifiedProductOfferingItem"]] == ["PO-2"]

    def test_no_match_is_unqualified(self, queries):
        document = queries.create({
            "@type": "QueryProductOfferingQualification",
            "instantSyncQualification": True,
            "searchCriteria": {"productOffering": {"id": "PO-3"}},
        }).to_document()

        assert document["qualifiedProductOfferingItem"] == []
        assert document["qualificationResult"] == "unqualified"

    def test_creation_date_cannot_be_patched(self, queries):
        created = queries.create({"@type": "QueryProductOfferingQualification"})

        patched = queries.patch(created.id, {"creationDate": "2020-01-01T00:00:00Z", "description": "retry"})

        assert patched.to_document()["creationDate"] == NOW.isoformat()
        assert patched.to_document()["description"] == "retry"
