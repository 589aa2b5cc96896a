"""
Business Logic Layer for TMF622 product orders.
"""

import uuid
from typing import Any, Dict, List, Mapping, Optional

from aws_lambda_powertools.metrics import MetricUnit

from prodigy_hub.dal import ConditionalCheckFailedError
from prodigy_hub.dal.repositories import CancelProductOrderRepository, ProductOrderRepository
from prodigy_hub.events.event_publisher import EventSink
from prodigy_hub.events.event_schemas import TmfEventType, entity_payload
from prodigy_hub.handlers.utils.errors import (
    ConcurrentModificationError,
    ConflictError,
    DuplicateIdError,
    ErrorContext,
    ResourceNotFoundError,
)
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.logic.shaping import Computed, ListOf, Page, fill_defaults, select_fields, to_page
from prodigy_hub.models.common import PRODUCT_ORDERING_BASE_PATH, utc_now
from prodigy_hub.models.input import CreateProductOrderRequest, UpdateProductOrderRequest
from prodigy_hub.models.cancel_product_order import NON_TERMINAL_CANCELLATION_STATES
from prodigy_hub.models.product_order import (
    CANCELLATION_IN_PROGRESS_STATES,
    TERMINAL_ORDER_STATES,
    UNDELETABLE_ORDER_STATES,
    ProductOrder,
    ProductOrderState,
)

DEFAULT_CURRENCY = 'LKR'
DEFAULT_TAX_RATE = 15

# Attributes a merge patch cannot change
IMMUTABLE_ATTRIBUTES = ('id', 'href', '@type')


class ProductOrderNotFoundError(ResourceNotFoundError):
    """Raised when a product order is not found."""

    def __init__(self, order_id: str, context: Optional[ErrorContext] = None):
        super().__init__(resource_type="ProductOrder", resource_id=order_id, context=context)


class OrderNotDeletableError(ConflictError):
    """Raised when deleting an order whose state forbids it."""

    def __init__(self, order_id: str, state: ProductOrderState, context: Optional[ErrorContext] = None):
        super().__init__(
            message=f"Cannot delete product order '{order_id}' in {state.value} state",
            error_code="ORDER_NOT_DELETABLE",
            context=context,
        )


class OrderStateTransitionNotAllowedError(ConflictError):
    """Raised when a patch moves an order through states owned by the cancellation workflow."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(
            message=message,
            error_code="ORDER_STATE_TRANSITION_NOT_ALLOWED",
            context=context,
        )


def order_total_price(order: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Sum the tax included item prices; None when there is nothing to sum."""
    total = 0
    currency = DEFAULT_CURRENCY
    for item in order.get('productOrderItem') or []:
        for item_price in item.get('itemPrice') or []:
            amount = (item_price.get('price') or {}).get('taxIncludedAmount')
            if not amount:
                continue
            total += amount.get('value') or 0
            currency = amount.get('unit') or currency

    if total == 0:
        return None

    return {
        '@type': 'OrderPrice',
        'description': 'Total order price',
        'name': 'OrderTotal',
        'priceType': 'total',
        'price': {
            '@type': 'Price',
            'taxIncludedAmount': {'unit': currency, 'value': total},
            'dutyFreeAmount': {'unit': currency, 'value': round(total / (1 + DEFAULT_TAX_RATE / 100))},
            'taxRate': DEFAULT_TAX_RATE,
        },
    }


ORDER_ITEM_SHAPE: Dict[str, Any] = {
    '@type': 'ProductOrderItem',
    'id': Computed(lambda item: str(uuid.uuid4())),
    'quantity': 1,
    'action': 'add',
    'productOrderItemRelationship': [],
    'itemPrice': [],
    'itemTerm': [],
    'note': [],
    'payment': [],
}

ORDER_SHAPE: Dict[str, Any] = {
    'category': 'B2C product order',
    'description': '',
    'priority': '4',
    'externalId': [],
    'channel': [],
    'note': [],
    'relatedParty': [],
    'payment': [],
    'productOrderItem': ListOf(ORDER_ITEM_SHAPE),
    # after productOrderItem, which it reads
    'orderTotalPrice': Computed(order_total_price),
}


class ProductOrderService:
    """Create, read, patch and delete product orders."""

    def __init__(self, orders: ProductOrderRepository, cancellations: CancelProductOrderRepository, events: EventSink):
        self.orders = orders
        self.cancellations = cancellations
        self.events = events

    @tracer.capture_method
    def create(self, request: CreateProductOrderRequest, context: Optional[ErrorContext] = None) -> ProductOrder:
        """
        Create a product order, completing it with TMF defaults.

        Args:
            request: Validated order payload

        Returns:
            The stored order

        Raises:
            OrderStateTransitionNotAllowedError: If the requested state belongs to the cancellation workflow
            DuplicateIdError: If the client supplied id is already used
        """
        if request.state in CANCELLATION_IN_PROGRESS_STATES:
            raise OrderStateTransitionNotAllowedError(
                f"ProductOrder state '{request.state.value}' is set by cancellation requests only", context,
            )
        order_id = request.id or str(uuid.uuid4())
        if request.id and self.orders.exists(order_id):
            raise DuplicateIdError("ProductOrder", order_id, context)

        now = utc_now().isoformat()
        document = fill_defaults(request.to_document(), ORDER_SHAPE)
        for item in document['productOrderItem']:
            item['state'] = ProductOrderState.ACKNOWLEDGED.value
        document.update({
            '@type': 'ProductOrder',
            'id': order_id,
            'href': f"{PRODUCT_ORDERING_BASE_PATH}/productOrder/{order_id}",
            'state': (request.state or ProductOrderState.ACKNOWLEDGED).value,
            'orderDate': now,
            'creationDate': now,
        })
        document.setdefault('requestedStartDate', now)
        document.setdefault('requestedCompletionDate', now)

        try:
            order = self.orders.create(ProductOrder.model_validate(document))
        except ConditionalCheckFailedError as e:
            raise DuplicateIdError("ProductOrder", order_id, context) from e

        metrics.add_metric(name="ProductOrderCreated", unit=MetricUnit.Count, value=1)
        self.events.publish(TmfEventType.PRODUCT_ORDER_CREATE, entity_payload(order))
        return order

    def get(self, order_id: str, fields: Optional[str] = None, context: Optional[ErrorContext] = None) -> Dict[str, Any]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            raise ProductOrderNotFoundError(order_id, context)
        return select_fields(order.to_tmf_format(), fields)

    def list(
        self,
        filters: Optional[Mapping[str, str]] = None,
        fields: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Page:
        orders, total = self.orders.find_many(filters, offset, limit)
        return to_page(orders, total, fields)

    def _check_state_transition(
        self,
        existing: ProductOrder,
        target: Optional[ProductOrderState],
        context: Optional[ErrorContext],
    ) -> None:
        """Reject patched states that bypass the cancellation workflow."""
        if target is None or target == existing.state:
            return
        if target in CANCELLATION_IN_PROGRESS_STATES:
            raise OrderStateTransitionNotAllowedError(
                f"ProductOrder state '{target.value}' is set by cancellation requests only", context,
            )
        if existing.state in CANCELLATION_IN_PROGRESS_STATES:
            raise OrderStateTransitionNotAllowedError(
                f"ProductOrder '{existing.id}' is in state '{existing.state.value}' until its cancellation resolves",
                context,
            )
        if target in TERMINAL_ORDER_STATES:
            pending = self.cancellations.find_one(existing.id, NON_TERMINAL_CANCELLATION_STATES)
            if pending is not None:
                raise OrderStateTransitionNotAllowedError(
                    f"ProductOrder '{existing.id}' has an active cancellation request '{pending.id}'", context,
                )

    @tracer.capture_method
    def patch(
        self,
        order_id: str,
        request: UpdateProductOrderRequest,
        context: Optional[ErrorContext] = None,
    ) -> ProductOrder:
        """
        Merge a patch into an order.

        Raises:
            ProductOrderNotFoundError: If the order does not exist
            OrderStateTransitionNotAllowedError: If the patched state belongs to the cancellation workflow
            ConcurrentModificationError: If the order changed meanwhile
        """
        existing = self.orders.find_by_id(order_id)
        if existing is None:
            raise ProductOrderNotFoundError(order_id, context)
        self._check_state_transition(existing, request.state, context)

        patch = {key: value for key, value in request.to_document().items() if key not in IMMUTABLE_ATTRIBUTES}
        if request.state == ProductOrderState.COMPLETED:
            patch['completionDate'] = utc_now().isoformat()

        try:
            updated = self.orders.update_fields(order_id, patch, expected_revision=existing.revision)
        except ConditionalCheckFailedError as e:
            raise ConcurrentModificationError("ProductOrder", order_id, context) from e
        if updated is None:
            raise ProductOrderNotFoundError(order_id, context)

        changed: List[str] = sorted(patch)
        logger.info("Product order updated", extra={"order_id": order_id, "attributes": changed})
        self.events.publish(TmfEventType.PRODUCT_ORDER_ATTRIBUTE_VALUE_CHANGE, entity_payload(updated))
        if updated.state != existing.state:
            self.events.publish(TmfEventType.PRODUCT_ORDER_STATE_CHANGE, entity_payload(updated))
        return updated

    @tracer.capture_method
    def delete(self, order_id: str, context: Optional[ErrorContext] = None) -> None:
        """
        Raises:
            ProductOrderNotFoundError: If the order does not exist
            OrderNotDeletableError: If the order is in progress or completed
        """
        order = self.orders.find_by_id(order_id)
        if order is None:
            raise ProductOrderNotFoundError(order_id, context)
        if order.state in UNDELETABLE_ORDER_STATES:
            raise OrderNotDeletableError(order_id, order.state, context)

        if not self.orders.delete(order_id):
            raise ProductOrderNotFoundError(order_id, context)
        self.events.publish(TmfEventType.PRODUCT_ORDER_DELETE, entity_payload(order))
