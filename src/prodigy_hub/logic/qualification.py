"""
Product offering qualification (TMF679) against the product catalog.

A check request asks whether the offerings it references can be ordered; a
query request asks which offerings can be ordered. Requests that ask for
instant synchronous qualification are answered before they are stored,
the others stay ``acknowledged``.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional

from prodigy_hub.dal.repositories import EntityRepository
from prodigy_hub.handlers.utils.observability import logger
from prodigy_hub.models.common import PRODUCT_CATALOG_BASE_PATH, utc_now

QUALIFIED = 'qualified'
UNQUALIFIED = 'unqualified'
RETIRED_STATUSES = ('Retired', 'Obsolete')

# eligibility reason code -> label
REASONS = {
    'OFFERING_NOT_FOUND': 'Product offering not found in catalog',
    'OFFERING_NOT_SELLABLE': 'Product offering is not sellable',
    'OFFERING_RETIRED': 'Product offering is retired',
    'OFFERING_NOT_REFERENCED': 'Qualification item references no product offering',
}


def offering_ref(offering: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        'id': offering['id'],
        'href': offering.get('href') or f"{PRODUCT_CATALOG_BASE_PATH}/productOffering/{offering['id']}",
        'name': offering.get('name'),
        '@type': 'ProductOfferingRef',
        '@referredType': 'ProductOffering',
    }


def ineligibility(offering: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Reason code why ``offering`` cannot be ordered, None when it can."""
    if offering is None:
        return 'OFFERING_NOT_FOUND'
    if offering.get('lifecycleStatus') in RETIRED_STATUSES:
        return 'OFFERING_RETIRED'
    if offering.get('isSellable') is False:
        return 'OFFERING_NOT_SELLABLE'
    return None


class ProductOfferingQualifier:
    """Qualifies requests against the offerings held in the catalog."""

    def __init__(self, offerings: EntityRepository, clock: Callable = utc_now):
        self.offerings = offerings
        self.clock = clock

    def _offering(self, reference: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(reference, Mapping) or not reference.get('id'):
            return None
        offering = self.offerings.find_by_id(reference['id'])
        return offering.to_tmf_format() if offering is not None else None

    def _complete(self, request: Dict[str, Any], all_qualified: bool) -> Dict[str, Any]:
        request['state'] = 'done'
        request['qualificationResult'] = QUALIFIED if all_qualified else UNQUALIFIED
        request['effectiveQualificationDate'] = self.clock().isoformat()
        return request

    def check(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Qualify each item of a check request against the catalog."""
        if not request.get('instantSyncQualification'):
            return request

        items = []
        for index, item in enumerate(request.get('checkProductOfferingQualificationItem') or [], start=1):
            item = dict(item)
            item.setdefault('id', str(index))
            item.setdefault('@type', 'CheckProductOfferingQualificationItem')
            reference = item.get('productOffering')
            if isinstance(reference, Mapping) and reference.get('id'):
                reason = ineligibility(self._offering(reference))
            else:
                reason = 'OFFERING_NOT_REFERENCED'

            item['state'] = 'done'
            item['qualificationItemResult'] = QUALIFIED if reason is None else UNQUALIFIED
            if reason is not None and request.get('provideResultReason'):
                item['eligibilityResultReason'] = [{
                    '@type': 'EligibilityResultReason',
                    'code': reason,
                    'label': REASONS[reason],
                }]
            items.append(item)

        all_qualified = all(item['qualificationItemResult'] == QUALIFIED for item in items)
        if request.get('provideOnlyAvailable'):
            items = [item for item in items if item['qualificationItemResult'] == QUALIFIED]
        request['checkProductOfferingQualificationItem'] = items

        logger.info("Check qualification answered", extra={"id": request.get('id'), "qualified": all_qualified})
        return self._complete(request, all_qualified)

    def query(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """List the orderable catalog offerings matching the search criteria."""
        if not request.get('instantSyncQualification'):
            return request

        criteria = request.get('searchCriteria') or {}
        wanted_offering = (criteria.get('productOffering') or {}).get('id')
        wanted_category = (criteria.get('category') or {}).get('id')

        items: List[Dict[str, Any]] = []
        for offering in self.offerings.find_all():
            document = offering.to_tmf_format()
            if ineligibility(document) is not None:
                continue
            if wanted_offering and document['id'] != wanted_offering:
                continue
            if wanted_category and wanted_category not in {
                category.get('id') for category in document.get('category') or [] if isinstance(category, Mapping)
            }:
                continue
            items.append({
                'id': str(len(items) + 1),
                '@type': 'QueryProductOfferingQualificationItem',
                'state': 'done',
                'qualificationItemResult': QUALIFIED,
                'productOffering': offering_ref(document),
            })

        request['qualifiedProductOfferingItem'] = items
        logger.info("Query qualification answered", extra={"id": request.get('id'), "offerings": len(items)})
        return self._complete(request, bool(items))
