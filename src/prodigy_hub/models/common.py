"""
Shared building blocks for TM Forum resource models.

TMF resources use camelCase attribute names and ``@``-prefixed meta attributes
(``@type``, ``@baseType``, ``@referredType``). The base model maps them onto
snake_case Python attributes and keeps any extra client supplied attributes.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Storage-only attributes never rendered through the API
INTERNAL_FIELDS = ('priorOrderState',)

# API base paths, also the prefix of resource hrefs
PRODUCT_ORDERING_BASE_PATH = '/productOrderingManagement/v4'
PRODUCT_CONFIGURATION_BASE_PATH = '/tmf-api/productConfigurationManagement/v5'
EVENT_MANAGEMENT_BASE_PATH = '/tmf-api/event/v4'
PRODUCT_CATALOG_BASE_PATH = '/tmf-api/productCatalogManagement/v5'
PRODUCT_INVENTORY_BASE_PATH = '/tmf-api/productInventory/v5'
PRODUCT_OFFERING_QUALIFICATION_BASE_PATH = '/tmf-api/productOfferingQualification/v5'


def utc_now() -> datetime:
    """Current time as a timezone aware UTC datetime."""
    return datetime.now(timezone.utc)


class TmfModel(BaseModel):
    """Base model for TMF payloads (camelCase aliases, extra attributes kept)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='allow',
    )

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a JSON compatible document, as stored."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    def to_tmf_format(self) -> Dict[str, Any]:
        """Serialize for API responses, without storage-only attributes."""
        document = self.to_document()
        for field in INTERNAL_FIELDS:
            document.pop(field, None)
        return document


class TmfResource(TmfModel):
    """A stored, addressable TMF resource."""

    id: Annotated[str, Field(
        description='Unique identifier of the resource',
        min_length=1,
    )]

    href: Annotated[Optional[str], Field(
        description='Hyperlink reference to the resource',
    )] = None

    # Store revision used for optimistic concurrency, not part of the payload
    revision: Annotated[int, Field(exclude=True)] = 0


class TmfEntity(TmfResource):
    """A TMF resource kept as a free-form document.

    Used for the catalog, inventory, qualification and topic resources, whose
    attributes are completed by shapes rather than declared fields.
    """

    type_: Annotated[str, Field(alias='@type', min_length=1)]


class StateReason(TmfModel):
    """Reason attached to an item state."""

    code: Annotated[str, Field(description='Reason code', examples=['123'])]

    label: Annotated[str, Field(
        description='Human readable reason',
        examples=['Missing required characteristic: Color'],
    )]

    type_: Annotated[str, Field(alias='@type')] = 'StateReason'


class ItemRef(TmfModel):
    """Reference to an item of another entity (quote item, order item)."""

    id: Optional[str] = None
    item_id: Optional[str] = None
    entity_id: Optional[str] = None
    entity_href: Optional[str] = None
    name: Optional[str] = None
    type_: Annotated[str, Field(alias='@type')] = 'ItemRef'
    referred_type: Annotated[Optional[str], Field(alias='@referredType')] = None
