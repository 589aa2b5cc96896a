"""
Resource kinds of the catalog (TMF620), inventory (TMF637), qualification
(TMF679) and topic (TMF688) APIs.

Each kind names its collection and path, and the shape a created record is
completed with.
"""

from typing import Any, Dict, List

from prodigy_hub.logic.configuration_builder import DEFAULT_BASE_URL
from prodigy_hub.logic.resource_service import ResourceKind
from prodigy_hub.logic.shaping import Computed, ListOf, WhenPresent
from prodigy_hub.models.common import (
    EVENT_MANAGEMENT_BASE_PATH,
    PRODUCT_CATALOG_BASE_PATH,
    PRODUCT_INVENTORY_BASE_PATH,
    PRODUCT_OFFERING_QUALIFICATION_BASE_PATH,
)

TYPE_ATTRIBUTES = ('@baseType', '@schemaLocation')


def _empty_lists(*names: str) -> Dict[str, List[Any]]:
    return {name: [] for name in names}


def product_kind(base_url: str = DEFAULT_BASE_URL) -> ResourceKind:
    """TMF637 Product, an instance of an offering held in the inventory."""
    return ResourceKind(
        name='product',
        collection='Product',
        base_path=PRODUCT_INVENTORY_BASE_PATH,
        id_prefix='prod-',
        created_attributes=('creationDate',),
        updated_attribute='lastUpdate',
        state_attribute='status',
        immutable_attributes=('creationDate',),
        string_attributes=TYPE_ATTRIBUTES,
        shape={
            'name': 'Default Product Name',
            'description': 'Default product description',
            'status': 'created',
            'startDate': Computed(lambda product: product['creationDate']),
            'terminationDate': '',
            'productSerialNumber': '',
            'isBundle': False,
            'isCustomerVisible': True,
            '@baseType': 'BaseProduct',
            '@schemaLocation': 'http://example.com/schema/Product',
            **_empty_lists(
                'relatedParty', 'productCharacteristic', 'productPrice', 'productRelationship',
                'place', 'productOrderItem', 'realizingResource', 'realizingService', 'agreementItem',
            ),
            'productSpecification': WhenPresent({
                'id': 'default-spec-id',
                'href': f"{base_url}/productSpecification/default-spec-id",
                'name': 'Default Specification',
                'version': '1.0',
            }),
            'billingAccount': WhenPresent({'id': 'default-billing-id', 'name': 'Default Billing Account'}),
            'productOffering': WhenPresent({'id': 'default-offering-id', 'name': 'Default Product Offering'}),
        },
        patch_defaults={
            'name': 'Updated Product Name',
            'description': 'Updated description',
            'status': 'active',
            'productSerialNumber': '',
            'terminationDate': '',
        },
    )


def _qualification_kind(name: str, collection: str, items_attribute: str) -> ResourceKind:
    return ResourceKind(
        name=name,
        collection=collection,
        base_path=PRODUCT_OFFERING_QUALIFICATION_BASE_PATH,
        created_attributes=('creationDate',),
        state_attribute='state',
        immutable_attributes=('creationDate',),
        required_attributes=('@type',),
        string_attributes=TYPE_ATTRIBUTES,
        shape={
            'description': '',
            'instantSyncQualification': False,
            'provideAlternative': False,
            'provideOnlyAvailable': False,
            'provideResultReason': False,
            'state': 'acknowledged',
            'note': [],
            'relatedParty': [],
            items_attribute: [],
            '@baseType': collection,
            'searchCriteria': WhenPresent({'@type': 'SearchCriteria'}),
        },
    )


def check_qualification_kind() -> ResourceKind:
    """TMF679 CheckProductOfferingQualification."""
    return _qualification_kind(
        'checkProductOfferingQualification',
        'CheckProductOfferingQualification',
        'checkProductOfferingQualificationItem',
    )


def query_qualification_kind() -> ResourceKind:
    """TMF679 QueryProductOfferingQualification."""
    return _qualification_kind(
        'queryProductOfferingQualification',
        'QueryProductOfferingQualification',
        'qualifiedProductOfferingItem',
    )


def _catalog_kind(name: str, collection: str, shape: Dict[str, Any]) -> ResourceKind:
    return ResourceKind(
        name=name,
        collection=collection,
        base_path=PRODUCT_CATALOG_BASE_PATH,
        created_attributes=(),
        updated_attribute='lastUpdate',
        state_attribute='lifecycleStatus',
        string_attributes=TYPE_ATTRIBUTES,
        shape={'lifecycleStatus': 'Active', 'version': '1.0', **shape},
    )


def catalog_kinds() -> List[ResourceKind]:
    """TMF620 category, catalog, offering, offering price and specification."""
    return [
        _catalog_kind('category', 'Category', {
            'name': 'Default Category',
            'isRoot': False,
            'validFor': {},
        }),
        _catalog_kind('productCatalog', 'ProductCatalog', {
            '@type': 'Catalog',
            'catalogType': 'ProductCatalog',
            'category': ListOf({'@type': 'CategoryRef'}),
            'relatedParty': ListOf({'@type': 'RelatedPartyRefOrPartyRoleRef'}),
        }),
        _catalog_kind('productOffering', 'ProductOffering', {
            'isSellable': True,
            'statusReason': '',
            **_empty_lists(
                'agreement', 'attachment', 'bundledProductOffering', 'category', 'channel',
                'marketSegment', 'place', 'productOfferingPrice', 'productOfferingRelationship',
                'allowedProductAction', 'policy',
            ),
            'productOfferingTerm': ListOf({'duration': {'amount': 12, 'units': 'Month'}}),
        }),
        _catalog_kind('productOfferingPrice', 'ProductOfferingPrice', {
            'priceType': 'one-time',
            'price': {'unit': 'USD', 'value': 0},
            'percentage': 0,
            'recurringChargePeriodType': '',
            'recurringChargePeriodLength': 1,
            'unitOfMeasure': {'amount': 1, 'units': 'each'},
            **_empty_lists(
                'bundledPopRelationship', 'place', 'policy', 'popRelationship', 'pricingLogicAlgorithm',
                'prodSpecCharValueUse', 'productOfferingTerm', 'tax',
            ),
        }),
        _catalog_kind('productSpecification', 'ProductSpecification', {
            'brand': '',
            'productNumber': '',
            **_empty_lists(
                'attachment', 'bundledProductSpecification', 'externalIdentifier', 'intentSpecification',
                'policy', 'productSpecCharacteristic', 'productSpecificationRelationship',
                'relatedParty', 'resourceSpecification', 'serviceSpecification',
            ),
            'targetProductSchema': {'@type': 'ProductSpecification'},
        }),
    ]


def topic_kind() -> ResourceKind:
    """TMF688 Topic; topics are created and removed, never patched."""
    return ResourceKind(
        name='topic',
        collection='Topic',
        base_path=EVENT_MANAGEMENT_BASE_PATH,
        required_attributes=('name',),
        string_attributes=('name',) + TYPE_ATTRIBUTES,
        shape={'@baseType': 'topic'},
        notify=False,
    )
