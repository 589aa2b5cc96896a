"""
Unit tests for the generic document shaping utilities.
"""

from prodigy_hub.logic.shaping import (
    Computed,
    ListOf,
    WhenPresent,
    fill_defaults,
    get_path,
    matches_filters,
    select_fields,
    sort_newest_first,
)


class TestFillDefaults:
    """Test cases for fill_defaults."""

    def test_missing_and_none_values_are_filled(self):
        shape = {"priority": "4", "note": [], "category": "B2C product order"}

        result = fill_defaults({"priority": None, "category": "B2B"}, shape)

        assert result == {"priority": "4", "note": [], "category": "B2B"}

    def test_defaults_are_copied(self):
        shape = {"note": []}

        first = fill_defaults({}, shape)
        first["note"].append("changed")

        assert fill_defaults({}, shape)["note"] == []

    def test_nested_shapes_and_lists(self):
        shape = {
            "productOffering": {"@type": "ProductOfferingRef"},
            "items": ListOf({"quantity": 1, "action": "add"}),
        }

        result = fill_defaults({"items": [{"quantity": 3}, {}]}, shape)

        assert result["productOffering"] == {"@type": "ProductOfferingRef"}
        assert result["items"] == [{"quantity": 3, "action": "add"}, {"quantity": 1, "action": "add"}]

    def test_computed_reads_filled_record(self):
        shape = {
            "items": ListOf({"value": 1}),
            "total": Computed(lambda record: sum(item["value"] for item in record["items"])),
        }

        assert fill_defaults({"items": [{}, {"value": 5}]}, shape)["total"] == 6

    def test_input_is_not_modified(self):
        record = {"items": [{}]}
        fill_defaults(record, {"items": ListOf({"value": 1})})
        assert record == {"items": [{}]}

    def test_when_present_completes_only_sent_records(self):
        shape = {"billingAccount": WhenPresent({"id": "default-billing-id", "name": "Default"})}

        assert fill_defaults({}, shape) == {}
        assert fill_defaults({"billingAccount": {"id": "BA1"}}, shape) == {
            "billingAccount": {"id": "BA1", "name": "Default"},
        }


class TestSelectFields:
    def test_mandatory_fields_always_kept(self):
        document = {"@type": "ProductOrder", "id": "O1", "href": "/o/O1", "state": "acknowledged", "note": []}

        assert select_fields(document, "state") == {
            "@type": "ProductOrder", "id": "O1", "href": "/o/O1", "state": "acknowledged",
        }

    def test_no_fields_keeps_everything(self):
        document = {"id": "O1", "note": []}
        assert select_fields(document, None) == document


class TestFilters:
    """Test cases for attribute filters."""

    document = {
        "id": "O1",
        "state": "inProgress",
        "creationDate": "2024-05-01T10:00:00+00:00",
        "productOrder": {"id": "P9"},
        "productOrderItem": [{"quantity": 2}, {"quantity": 5}],
    }

    def test_equality_is_case_insensitive(self):
        assert matches_filters(self.document, {"state": "INPROGRESS"})
        assert not matches_filters(self.document, {"state": "completed"})

    def test_dotted_paths(self):
        assert matches_filters(self.document, {"productOrder.id": "P9"})
        assert get_path(self.document, "productOrderItem.quantity") == [2, 5]
        assert matches_filters(self.document, {"productOrderItem.quantity": "5"})

    def test_date_comparisons(self):
        assert matches_filters(self.document, {"creationDate.gte": "2024-05-01T00:00:00Z"})
        assert not matches_filters(self.document, {"creationDate.lt": "2024-04-01"})

    def test_missing_attribute_does_not_match(self):
        assert not matches_filters(self.document, {"description": "anything"})

    def test_reserved_parameters_are_ignored(self):
        assert matches_filters(self.document, {"fields": "state", "offset": "0", "limit": "2"})


def test_sort_newest_first_puts_undated_last():
    documents = [
        {"id": "old", "creationDate": "2024-01-01T00:00:00Z"},
        {"id": "undated"},
        {"id": "new", "creationDate": "2024-06-01T00:00:00Z"},
    ]

    assert [document["id"] for document in sort_newest_first(documents)] == ["new", "old", "undated"]
