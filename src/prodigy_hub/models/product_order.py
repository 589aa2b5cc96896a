"""
TMF622 ProductOrder domain model.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field

from prodigy_hub.models.common import TmfResource


class ProductOrderState(str, Enum):
    """Lifecycle states of a product order."""

    ACKNOWLEDGED = 'acknowledged'
    REJECTED = 'rejected'
    PENDING = 'pending'
    HELD = 'held'
    IN_PROGRESS = 'inProgress'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'
    FAILED = 'failed'
    PARTIAL = 'partial'
    ASSESSING_CANCELLATION = 'assessingCancellation'
    PENDING_CANCELLATION = 'pendingCancellation'


TERMINAL_ORDER_STATES = frozenset({
    ProductOrderState.COMPLETED,
    ProductOrderState.CANCELLED,
    ProductOrderState.FAILED,
})

CANCELLATION_IN_PROGRESS_STATES = frozenset({
    ProductOrderState.ASSESSING_CANCELLATION,
    ProductOrderState.PENDING_CANCELLATION,
})

# Orders in these states cannot be deleted
UNDELETABLE_ORDER_STATES = frozenset({
    ProductOrderState.IN_PROGRESS,
    ProductOrderState.COMPLETED,
})


class ProductOrder(TmfResource):
    """A customer's product order with its lifecycle state."""

    type_: Annotated[str, Field(alias='@type')] = 'ProductOrder'

    state: Annotated[ProductOrderState, Field(
        description='Current lifecycle state of the order',
        examples=['acknowledged', 'inProgress'],
    )] = ProductOrderState.ACKNOWLEDGED

    creation_date: Annotated[Optional[datetime], Field(
        description='Date when the order was created',
    )] = None

    order_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    category: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None

    product_order_item: Annotated[List[Dict[str, Any]], Field(
        default_factory=list,
        description='Order items, kept as free-form records',
    )]

    cancellation_reason: Annotated[Optional[str], Field(
        description='Reason given by the cancellation request that targeted the order',
    )] = None

    cancellation_date: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_ORDER_STATES

    def with_state(self, state: ProductOrderState, **changes: Any) -> 'ProductOrder':
        """Return a copy in the given state, keeping the store revision."""
        return self.model_copy(update={'state': state, **changes})
