"""
Response shaping for TMF760 check and query requests.

Check items are completed with a context item reference and their
validation outcome. Query requests get one computed item per request item,
carrying a fixed offer configuration (a single Color characteristic, two
contract terms and a one-time price).
"""

import copy
from typing import Any, Dict, List, Optional

from prodigy_hub.handlers.utils.errors import ValidationError
from prodigy_hub.logic.configuration_validator import validate
from prodigy_hub.logic.shaping import fill_defaults
from prodigy_hub.models.product_configuration import (
    CheckProductConfigurationItem,
    ConfigurationItemState,
    QueryProductConfigurationItem,
)

DEFAULT_BASE_URL = 'http://localhost:3000'
PLACEHOLDER_QUOTE_ID = '3472'


def _string_value(value: str, selected: bool) -> Dict[str, Any]:
    return {
        '@type': 'ConfigurationCharacteristicValue',
        'isSelectable': True,
        'isSelected': selected,
        'characteristicValue': {'name': 'Color', 'value': value, '@type': 'StringCharacteristic'},
    }


def _contract_term(name: str) -> Dict[str, Any]:
    return {'@type': 'ConfigurationTerm', 'name': name, 'isSelectable': True, 'isSelected': False}


def computed_configuration_shape(base_url: str = DEFAULT_BASE_URL) -> Dict[str, Any]:
    """Defaults of the product configuration of a computed query item."""
    return {
        '@type': 'ProductConfiguration',
        'isSelectable': False,
        'isSelected': True,
        'isVisible': True,
        'configurationAction': [{
            '@type': 'ConfigurationAction',
            'action': 'add',
            'description': 'Add new product',
            'isSelected': True,
        }],
        'configurationTerm': [_contract_term('12 month contract'), _contract_term('24 month contract')],
        'configurationCharacteristic': [{
            '@type': 'ConfigurationCharacteristic',
            'id': '77',
            'name': 'Color',
            'valueType': 'string',
            'minCardinality': 1,
            'maxCardinality': 1,
            'isConfigurable': True,
            'configurationCharacteristicValue': [_string_value('Blue', True), _string_value('Red', False)],
        }],
        'configurationPrice': [{
            '@type': 'ConfigurationPrice',
            'name': 'Product price',
            'priceType': 'oneTimeCharge',
            'productOfferingPrice': {
                'id': '1747',
                'href': f"{base_url}/productOfferingPrice/1747",
                'name': 'One time charge',
                '@referredType': 'ProductOfferingPrice',
                '@type': 'ProductOfferingPrice',
            },
            'price': {
                'taxRate': 22,
                '@type': 'Price',
                'dutyFreeAmount': {'unit': 'USD', 'value': 100, '@type': 'Money'},
                'taxIncludedAmount': {'unit': 'USD', 'value': 122, '@type': 'Money'},
            },
        }],
    }


def context_item_shape(item_id: str, base_url: str = DEFAULT_BASE_URL) -> Dict[str, Any]:
    """Placeholder reference to the quote item a check item belongs to."""
    return {
        '@type': 'ItemRef',
        'id': item_id,
        'itemId': item_id,
        'entityId': PLACEHOLDER_QUOTE_ID,
        'entityHref': f"{base_url}/quote/{PLACEHOLDER_QUOTE_ID}",
        'name': f"Quote item {item_id}",
        '@referredType': 'QuoteItem',
    }


def build_check_items(
    items: List[CheckProductConfigurationItem],
    instant_sync: bool,
    base_url: str = DEFAULT_BASE_URL,
    specification: Optional[Dict[str, Any]] = None,
    enforce_max_cardinality: bool = False,
) -> List[CheckProductConfigurationItem]:
    """
    Shape the items of a check request, validating them when resolved synchronously.

    Args:
        items: Items as received
        instant_sync: Whether the request is resolved now
        base_url: Base of placeholder hrefs
        specification: Request level productConfigurationSpecification; replaces
            the items' own specification when given
        enforce_max_cardinality: Validator option

    Returns:
        The shaped items, in request order
    """
    shaped = []
    for item in items:
        shape: Dict[str, Any] = {
            '@type': 'CheckProductConfigurationItem',
            'contextItem': context_item_shape(item.id, base_url),
        }
        document = fill_defaults(item.to_document(), shape)
        if specification is not None:
            document['productConfigurationSpecification'] = copy.deepcopy(specification)

        if instant_sync:
            validation = validate(item, enforce_max_cardinality=enforce_max_cardinality)
            document['state'] = validation.state.value
            document['stateReason'] = [reason.to_document() for reason in validation.reasons]
        else:
            document.pop('state', None)
            document['stateReason'] = []

        shaped.append(CheckProductConfigurationItem.model_validate(document))
    return shaped


def derive_computed_item_id(request_item_id: str) -> str:
    """``"01"`` -> ``"02"``, ``"09"`` -> ``"10"``.

    Raises:
        ValidationError: If the request item id is not an integer
    """
    try:
        number = int(request_item_id)
    except ValueError as e:
        raise ValidationError(
            message=f"Request item id '{request_item_id}' is not numeric",
            field_errors=[{
                'field': 'requestProductConfigurationItem.id',
                'message': 'Request item ids must be numeric to derive computed item ids',
            }],
        ) from e
    return str(number + 1).zfill(2)


def build_computed_item(
    request_item: QueryProductConfigurationItem,
    base_url: str = DEFAULT_BASE_URL,
) -> QueryProductConfigurationItem:
    """Synthesize the computed item answering one request item."""
    computed_id = derive_computed_item_id(request_item.id)

    copied: Dict[str, Any] = {'id': computed_id}
    if request_item.product_configuration is not None:
        requested = request_item.product_configuration.to_document()
        for name in ('productOffering', 'configurationAction'):
            if requested.get(name) is not None:
                copied[name] = requested[name]

    configuration = fill_defaults(copied, computed_configuration_shape(base_url))
    return QueryProductConfigurationItem.model_validate({
        '@type': 'QueryProductConfigurationItem',
        'id': computed_id,
        'state': ConfigurationItemState.APPROVED.value,
        'productConfigurationItemRelationship': [{
            '@type': 'ProductConfigurationItemRelationship',
            'id': request_item.id,
            'relationshipType': 'requestItem',
        }],
        'productConfiguration': configuration,
    })


def build_computed_items(
    request_items: List[QueryProductConfigurationItem],
    base_url: str = DEFAULT_BASE_URL,
) -> List[QueryProductConfigurationItem]:
    """One computed item per request item, ordering preserved."""
    return [build_computed_item(request_item, base_url) for request_item in request_items]
