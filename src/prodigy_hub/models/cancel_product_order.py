"""
TMF622 CancelProductOrder domain model.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from pydantic import Field

from prodigy_hub.models.common import TmfModel, TmfResource
from prodigy_hub.models.product_order import ProductOrderState


class CancellationState(str, Enum):
    """States of a cancellation request."""

    ACKNOWLEDGED = 'acknowledged'
    IN_PROGRESS = 'inProgress'
    TERMINATED_WITH_ERRORS = 'terminatedWithErrors'
    DONE = 'done'


NON_TERMINAL_CANCELLATION_STATES = frozenset({
    CancellationState.ACKNOWLEDGED,
    CancellationState.IN_PROGRESS,
})


class ProductOrderRef(TmfModel):
    """Reference to the product order a cancellation targets."""

    id: Annotated[str, Field(min_length=1, description='Identifier of the referenced product order')]
    href: Optional[str] = None
    name: Optional[str] = None
    type_: Annotated[str, Field(alias='@type')] = 'ProductOrderRef'
    referred_type: Annotated[str, Field(alias='@referredType')] = 'ProductOrder'


class CancelProductOrder(TmfResource):
    """A request to cancel a product order, tracked as its own resource."""

    type_: Annotated[str, Field(alias='@type')] = 'CancelProductOrder'

    state: Annotated[CancellationState, Field(
        description='Current state of the cancellation request',
    )] = CancellationState.ACKNOWLEDGED

    product_order: ProductOrderRef

    cancellation_reason: Annotated[Optional[str], Field(
        description='Reason for cancelling the order',
        examples=['Customer changed their mind'],
    )] = None

    requested_cancellation_date: Optional[datetime] = None

    effective_cancellation_date: Annotated[Optional[datetime], Field(
        description='Date the order was actually cancelled, set on approval',
    )] = None

    creation_date: Optional[datetime] = None

    # State of the order when the request was accepted
    prior_order_state: Optional[ProductOrderState] = None

    @property
    def is_terminal(self) -> bool:
        return self.state not in NON_TERMINAL_CANCELLATION_STATES
