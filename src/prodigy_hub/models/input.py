"""
Input models for request validation using Pydantic.

Request bodies are TMF payloads: camelCase attributes, and clients may send
attributes beyond the ones listed here, which are kept as-is.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field, field_validator

from prodigy_hub.models.common import TmfModel
from prodigy_hub.models.product_configuration import (
    CheckProductConfigurationItem,
    QueryProductConfigurationItem,
)
from prodigy_hub.models.product_order import ProductOrderState


class CreateProductOrderRequest(TmfModel):
    """Request model for creating a product order."""

    id: Annotated[Optional[str], Field(
        min_length=1,
        description='Client supplied identifier, generated when omitted',
    )] = None

    state: Optional[ProductOrderState] = None

    description: Annotated[Optional[str], Field(
        max_length=1000,
        description='Free text description of the order',
        examples=['Fibre broadband for home'],
    )] = None

    category: Optional[str] = None
    priority: Optional[str] = None
    requested_start_date: Optional[datetime] = None
    requested_completion_date: Optional[datetime] = None

    product_order_item: Annotated[List[Dict[str, Any]], Field(
        default_factory=list,
        description='Order items',
    )]


class UpdateProductOrderRequest(TmfModel):
    """Merge-patch request for a product order."""

    state: Optional[ProductOrderState] = None

    description: Annotated[Optional[str], Field(
        max_length=1000,
        description='Updated description of the order',
    )] = None


class ProductOrderRefInput(TmfModel):
    """Reference to the order a cancellation request targets."""

    id: Annotated[str, Field(
        min_length=1,
        description='Identifier of the product order to cancel',
        examples=['O1'],
    )]

    href: Optional[str] = None
    name: Optional[str] = None


class CreateCancelProductOrderRequest(TmfModel):
    """Request model for creating a cancellation request."""

    id: Annotated[Optional[str], Field(
        min_length=1,
        description='Client supplied identifier, generated when omitted',
    )] = None

    product_order: ProductOrderRefInput

    cancellation_reason: Annotated[Optional[str], Field(
        max_length=1000,
        description='Reason for the cancellation',
        examples=['Urgent: customer relocating'],
    )] = None

    requested_cancellation_date: Annotated[Optional[datetime], Field(
        description='Date the customer wants the order cancelled, defaults to now',
    )] = None


class CreateCheckProductConfigurationRequest(TmfModel):
    """Request model for creating a check product configuration."""

    id: Annotated[Optional[str], Field(min_length=1)] = None
    instant_sync: bool = False
    provide_alternatives: bool = False
    channel: Optional[Dict[str, Any]] = None
    product_configuration_specification: Optional[Dict[str, Any]] = None

    check_product_configuration_item: Annotated[List[CheckProductConfigurationItem], Field(
        min_length=1,
        description='Configuration items to validate',
    )]


class CreateQueryProductConfigurationRequest(TmfModel):
    """Request model for creating a query product configuration."""

    id: Annotated[Optional[str], Field(min_length=1)] = None
    instant_sync: bool = False
    channel: Optional[Dict[str, Any]] = None
    product_configuration_specification: Optional[Dict[str, Any]] = None

    request_product_configuration_item: Annotated[List[QueryProductConfigurationItem], Field(
        min_length=1,
        description='Request items to compute configurations for',
    )]


class CreateHubRequest(TmfModel):
    """Request model for registering a listener hub."""

    callback: Annotated[str, Field(
        min_length=1,
        description='URL that receives event notifications',
    )]

    query: Optional[str] = None

    @field_validator('callback')
    @classmethod
    def validate_callback(cls, v: str) -> str:
        if not v.startswith(('http://', 'https://')):
            raise ValueError('callback must be an http(s) URL')
        return v


class CreateEventRequest(TmfModel):
    """Request model for posting an event to the event log."""

    event_type: Annotated[str, Field(
        min_length=1,
        description='Type of the event',
        examples=['ProductOrderStateChangeEvent'],
    )]

    event: Annotated[Dict[str, Any], Field(description='Event payload')]


class ResourceRequest(TmfModel):
    """Create or merge-patch body of a catalog, inventory, qualification or topic resource."""

    id: Annotated[Optional[str], Field(
        min_length=1,
        description='Client supplied identifier, generated when omitted',
    )] = None

    def to_payload(self) -> Dict[str, Any]:
        """Attributes as sent by the client, nulls included."""
        return self.model_dump(mode='json', by_alias=True, exclude_unset=True)
