"""
TMF760 product configuration models.

Check requests carry configuration items to validate; query requests carry
request items from which computed items are derived.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field

from prodigy_hub.models.common import ItemRef, StateReason, TmfModel, TmfResource


class ConfigurationRequestState(str, Enum):
    """States of check and query configuration requests."""

    ACKNOWLEDGED = 'acknowledged'
    DONE = 'done'


class ConfigurationItemState(str, Enum):
    """Outcome of validating one configuration item."""

    APPROVED = 'approved'
    REJECTED = 'rejected'


class ConfigurationCharacteristicValue(TmfModel):
    """A candidate value of a configuration characteristic."""

    type_: Annotated[str, Field(alias='@type')] = 'ConfigurationCharacteristicValue'
    is_selectable: Optional[bool] = None
    is_selected: bool = False
    characteristic_value: Optional[Dict[str, Any]] = None


class ConfigurationCharacteristic(TmfModel):
    """A named, typed attribute with cardinality constraints and candidate values."""

    type_: Annotated[str, Field(alias='@type')] = 'ConfigurationCharacteristic'
    id: Optional[str] = None
    name: Optional[str] = None
    value_type: Optional[str] = None

    min_cardinality: Annotated[int, Field(
        ge=0,
        description='Minimum number of values that must be selected',
    )] = 0

    max_cardinality: Annotated[Optional[int], Field(
        ge=0,
        description='Maximum number of values that may be selected',
    )] = None

    is_configurable: Optional[bool] = None

    configuration_characteristic_value: Annotated[
        List[ConfigurationCharacteristicValue], Field(default_factory=list)
    ]

    @property
    def selected_count(self) -> int:
        return sum(1 for value in self.configuration_characteristic_value if value.is_selected)


class ProductConfiguration(TmfModel):
    """Configuration of one product offering."""

    type_: Annotated[str, Field(alias='@type')] = 'ProductConfiguration'
    id: Optional[str] = None
    is_selectable: Optional[bool] = None
    is_selected: Optional[bool] = None
    is_visible: Optional[bool] = None
    product_offering: Optional[Dict[str, Any]] = None
    configuration_action: Optional[List[Dict[str, Any]]] = None
    configuration_term: Optional[List[Dict[str, Any]]] = None
    configuration_characteristic: Annotated[
        List[ConfigurationCharacteristic], Field(default_factory=list)
    ]
    configuration_price: Optional[List[Dict[str, Any]]] = None


class CheckProductConfigurationItem(TmfModel):
    """One configuration item of a check request."""

    id: Annotated[str, Field(min_length=1, description='Item identifier, unique within the request')]
    type_: Annotated[str, Field(alias='@type')] = 'CheckProductConfigurationItem'
    state: Optional[ConfigurationItemState] = None
    product_configuration: Optional[ProductConfiguration] = None
    context_item: Optional[ItemRef] = None
    state_reason: Optional[List[StateReason]] = None
    product_configuration_specification: Optional[Dict[str, Any]] = None


class QueryProductConfigurationItem(TmfModel):
    """A request or computed item of a query request."""

    id: Annotated[str, Field(min_length=1, description='Item identifier, unique within the request')]
    type_: Annotated[str, Field(alias='@type')] = 'QueryProductConfigurationItem'
    state: Optional[ConfigurationItemState] = None
    product_configuration: Optional[ProductConfiguration] = None
    product_configuration_item_relationship: Optional[List[Dict[str, Any]]] = None
    context_item: Optional[ItemRef] = None


class CheckProductConfiguration(TmfResource):
    """A request to validate product configurations."""

    type_: Annotated[str, Field(alias='@type')] = 'CheckProductConfiguration'
    state: ConfigurationRequestState = ConfigurationRequestState.ACKNOWLEDGED

    instant_sync: Annotated[bool, Field(
        description='Resolve within the creating request instead of queueing',
    )] = False

    provide_alternatives: bool = False
    channel: Optional[Dict[str, Any]] = None
    check_product_configuration_item: Annotated[
        List[CheckProductConfigurationItem], Field(default_factory=list)
    ]
    product_configuration_specification: Optional[Dict[str, Any]] = None
    creation_date: Optional[datetime] = None


class QueryProductConfiguration(TmfResource):
    """A request to compute product configurations from request items."""

    type_: Annotated[str, Field(alias='@type')] = 'QueryProductConfiguration'
    state: ConfigurationRequestState = ConfigurationRequestState.ACKNOWLEDGED
    instant_sync: bool = False
    channel: Optional[Dict[str, Any]] = None
    request_product_configuration_item: Annotated[
        List[QueryProductConfigurationItem], Field(default_factory=list)
    ]
    computed_product_configuration_item: Annotated[
        List[QueryProductConfigurationItem], Field(default_factory=list)
    ]
    product_configuration_specification: Optional[Dict[str, Any]] = None
    creation_date: Optional[datetime] = None
