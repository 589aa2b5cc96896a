"""
TMF event types and payload construction.

Every notification carries the same payload shape: the entity id, href,
state and ``@type``, plus a snapshot of the entity under its resource key
(``productOrder``, ``cancelProductOrder``, ...).
"""

from enum import Enum
from typing import Any, Dict, Optional

from prodigy_hub.models.common import TmfResource


class TmfEventType(str, Enum):
    """Notification types emitted by the service."""

    # TMF622 ProductOrder
    PRODUCT_ORDER_CREATE = "ProductOrderCreateEvent"
    PRODUCT_ORDER_ATTRIBUTE_VALUE_CHANGE = "ProductOrderAttributeValueChangeEvent"
    PRODUCT_ORDER_STATE_CHANGE = "ProductOrderStateChangeEvent"
    PRODUCT_ORDER_DELETE = "ProductOrderDeleteEvent"

    # TMF622 CancelProductOrder
    CANCEL_PRODUCT_ORDER_CREATE = "CancelProductOrderCreateEvent"
    CANCEL_PRODUCT_ORDER_STATE_CHANGE = "CancelProductOrderStateChangeEvent"

    # TMF760
    CHECK_PRODUCT_CONFIGURATION_CREATE = "CheckProductConfigurationCreateEvent"
    QUERY_PRODUCT_CONFIGURATION_CREATE = "QueryProductConfigurationCreateEvent"


def resource_key(type_name: str) -> str:
    """``CancelProductOrder`` -> ``cancelProductOrder``."""
    return type_name[:1].lower() + type_name[1:]


def entity_payload(resource: TmfResource) -> Dict[str, Any]:
    """Build the event payload for ``resource`` in its current state."""
    snapshot = resource.to_tmf_format()
    type_name = snapshot.get('@type', type(resource).__name__)
    state: Optional[Any] = snapshot.get('state')
    return {
        'entityId': resource.id,
        'href': resource.href,
        'state': state,
        '@type': type_name,
        resource_key(type_name): snapshot,
    }
