"""
Generic document shaping utilities.

One declarative mechanism replaces per-resource default fillers:

* ``fill_defaults`` completes a record from a shape description;
* ``select_fields`` implements the TMF ``fields`` query parameter;
* ``matches_filters`` and ``paginate`` implement list filtering and paging.

A shape maps attribute names to defaults:

* a plain value is deep-copied in when the attribute is missing or None;
* ``Computed(fn)`` calls ``fn(record)`` to derive the value from the record;
* a nested mapping is itself a shape, applied to the nested record (created
  when missing);
* ``ListOf(shape)`` applies the shape to every dictionary of a list
  attribute (an empty list when missing);
* ``WhenPresent(shape)`` applies the shape to a nested record the client
  sent, and leaves the attribute out otherwise.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

# Always kept by select_fields
MANDATORY_FIELDS = ('@type', 'id', 'href')

# Query parameters that are not attribute filters
RESERVED_QUERY_PARAMETERS = frozenset({'fields', 'offset', 'limit', 'sort'})

_OPERATORS = {
    'gte': lambda left, right: left >= right,
    'gt': lambda left, right: left > right,
    'lte': lambda left, right: left <= right,
    'lt': lambda left, right: left < right,
}


class Page(NamedTuple):
    """One page of a listed collection."""

    items: List[Dict[str, Any]]
    total: int


class Computed:
    """Default derived from the record being filled."""

    def __init__(self, factory: Callable[[Dict[str, Any]], Any]):
        self.factory = factory


class ListOf:
    """Shape applied to each element of a list attribute."""

    def __init__(self, shape: Mapping[str, Any]):
        self.shape = shape


class WhenPresent:
    """Shape applied to a nested record only when the record carries it."""

    def __init__(self, shape: Mapping[str, Any]):
        self.shape = shape


def fill_defaults(record: Mapping[str, Any], shape: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``record`` completed with the defaults in ``shape``."""
    result = dict(record)
    for name, default in shape.items():
        current = result.get(name)
        if isinstance(default, WhenPresent):
            if isinstance(current, Mapping):
                result[name] = fill_defaults(current, default.shape)
        elif isinstance(default, ListOf):
            result[name] = [
                fill_defaults(element, default.shape) if isinstance(element, Mapping) else element
                for element in (current or [])
            ]
        elif isinstance(default, Mapping):
            if current is None:
                result[name] = fill_defaults({}, default)
            elif isinstance(current, Mapping):
                result[name] = fill_defaults(current, default)
        elif current is None:
            if isinstance(default, Computed):
                result[name] = default.factory(result)
            else:
                result[name] = copy.deepcopy(default)
    return result


def select_fields(document: Mapping[str, Any], fields: Optional[str]) -> Dict[str, Any]:
    """Keep the comma separated top-level ``fields`` plus the mandatory ones."""
    if not fields:
        return dict(document)
    wanted = {field.strip() for field in fields.split(',') if field.strip()}
    wanted.update(MANDATORY_FIELDS)
    return {name: value for name, value in document.items() if name in wanted}


def get_path(document: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted attribute path; lists fan out over their elements."""
    values: List[Any] = [document]
    for part in path.split('.'):
        next_values = []
        for value in values:
            if isinstance(value, Mapping) and part in value:
                next_values.append(value[part])
            elif isinstance(value, list):
                next_values.extend(
                    element[part] for element in value if isinstance(element, Mapping) and part in element
                )
        values = next_values
    if not values:
        return None
    return values[0] if len(values) == 1 else values


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare(actual: Any, operator: str, expected: str) -> bool:
    actual_date, expected_date = _parse_datetime(actual), _parse_datetime(expected)
    if actual_date is not None and expected_date is not None:
        return _OPERATORS[operator](actual_date, expected_date)
    actual_number, expected_number = _parse_number(actual), _parse_number(expected)
    if actual_number is not None and expected_number is not None:
        return _OPERATORS[operator](actual_number, expected_number)
    return False


def _equals(actual: Any, expected: str) -> bool:
    if isinstance(actual, list):
        return any(_equals(element, expected) for element in actual)
    if isinstance(actual, bool):
        return str(actual).lower() == expected.lower()
    if isinstance(actual, (str, int, float)):
        return str(actual).lower() == expected.lower()
    return False


def split_filter_key(key: str) -> Tuple[str, Optional[str]]:
    """Split ``creationDate.gte`` into (``creationDate``, ``gte``)."""
    path, _, suffix = key.rpartition('.')
    if path and suffix in _OPERATORS:
        return path, suffix
    return key, None


def matches_filters(document: Mapping[str, Any], filters: Mapping[str, str]) -> bool:
    """Whether ``document`` satisfies every attribute filter.

    Equality is a case-insensitive string comparison; ``.gte``/``.gt``/
    ``.lte``/``.lt`` suffixes compare dates or numbers. Documents without the
    filtered attribute do not match.
    """
    for key, expected in filters.items():
        if key in RESERVED_QUERY_PARAMETERS or expected is None:
            continue
        path, operator = split_filter_key(key)
        actual = get_path(document, path)
        if actual is None:
            return False
        if operator is None:
            if not _equals(actual, str(expected)):
                return False
        elif not _compare(actual, operator, str(expected)):
            return False
    return True


def sort_newest_first(documents: Iterable[Dict[str, Any]], attribute: str = 'creationDate') -> List[Dict[str, Any]]:
    """Sort documents by a date attribute, newest first; undated last."""
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(
        documents,
        key=lambda document: _parse_datetime(document.get(attribute)) or epoch,
        reverse=True,
    )


def paginate(documents: List[Dict[str, Any]], offset: int, limit: int) -> List[Dict[str, Any]]:
    """Slice one page out of ``documents``."""
    return documents[offset:offset + limit]


def to_page(resources: Iterable[Any], total: int, fields: Optional[str] = None) -> Page:
    """Render resources (TMF models) into a page, applying field selection."""
    return Page([select_fields(resource.to_tmf_format(), fields) for resource in resources], total)
