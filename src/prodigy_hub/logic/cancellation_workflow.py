"""
Business Logic Layer for product order cancellation.

A cancellation request is accepted synchronously (the order moves to
``assessingCancellation``) and resolved later by a resolution task: the
order as it was before the cancellation is evaluated by the cancellation
policy, then the order and the request reach their final states together.
"""

import random
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, List, Mapping, Optional

from aws_lambda_powertools.metrics import MetricUnit
from pydantic import ValidationError as PydanticValidationError

from prodigy_hub.dal import ConditionalCheckFailedError, DALError
from prodigy_hub.dal.repositories import CancelProductOrderRepository, ProductOrderRepository
from prodigy_hub.events.event_publisher import EventSink
from prodigy_hub.events.event_schemas import TmfEventType, entity_payload
from prodigy_hub.events.task_queue import ResolutionTaskQueue
from prodigy_hub.handlers.utils.errors import (
    BaseServiceError,
    BusinessLogicError,
    ConcurrentModificationError,
    ConflictError,
    DuplicateIdError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ExternalServiceError,
    ResourceNotFoundError,
)
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.logic.cancellation_policy import (
    CancellationPolicy,
    DefaultCancellationPolicy,
    cancellation_ineligibility_reason,
)
from prodigy_hub.logic.shaping import Page, select_fields, to_page
from prodigy_hub.models.cancel_product_order import (
    NON_TERMINAL_CANCELLATION_STATES,
    CancellationState,
    CancelProductOrder,
    ProductOrderRef,
)
from prodigy_hub.models.common import PRODUCT_ORDERING_BASE_PATH, utc_now
from prodigy_hub.models.input import CreateCancelProductOrderRequest
from prodigy_hub.models.product_order import ProductOrder, ProductOrderState

# Order state restored by rejected cancellations stored without a prior state
DEFAULT_RESTORED_ORDER_STATE = ProductOrderState.IN_PROGRESS


class InvalidProductOrderReferenceError(BusinessLogicError):
    """Raised when a cancellation references an unknown product order."""

    def __init__(self, order_id: str, context: Optional[ErrorContext] = None):
        super().__init__(
            message=f"ProductOrder with id '{order_id}' not found",
            error_code="INVALID_PRODUCT_ORDER_REFERENCE",
            context=context,
        )
        self.order_id = order_id


class CancellationNotAllowedError(BusinessLogicError):
    """Raised when the order's state does not allow a cancellation."""

    def __init__(self, message: str, order_state: ProductOrderState, context: Optional[ErrorContext] = None):
        super().__init__(
            message=message,
            error_code="CANCELLATION_NOT_ALLOWED",
            context=context,
        )
        self.order_state = order_state


class CancellationRequestExistsError(ConflictError):
    """Raised when the order already has a cancellation in flight."""

    def __init__(self, order_id: str, existing_id: str, context: Optional[ErrorContext] = None):
        super().__init__(
            message=f"ProductOrder '{order_id}' already has an active cancellation request '{existing_id}'",
            error_code="CANCELLATION_REQUEST_EXISTS",
            context=context,
        )
        self.existing_id = existing_id


class CancelProductOrderNotFoundError(ResourceNotFoundError):
    """Raised when a cancellation request is not found."""

    def __init__(self, cancellation_id: str, context: Optional[ErrorContext] = None):
        super().__init__(resource_type="CancelProductOrder", resource_id=cancellation_id, context=context)


class ResolutionRetryError(BaseServiceError):
    """Raised when a resolution hit a transient failure and should be redelivered."""

    def __init__(self, cancellation_id: str, attempt: int, retry_after: int, cause: str):
        super().__init__(
            message=f"Resolution of cancellation '{cancellation_id}' failed on attempt {attempt}: {cause}",
            error_code="RESOLUTION_RETRY",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.INFRASTRUCTURE,
            retry_after=retry_after,
        )
        self.cancellation_id = cancellation_id
        self.attempt = attempt


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


class KeyedLocks:
    """One lock per key, dropped once no caller holds or waits on it."""

    def __init__(self) -> None:
        self._locks: Dict[str, List] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class CancellationWorkflow:
    """Accepts, resolves and expires product order cancellations."""

    def __init__(
        self,
        orders: ProductOrderRepository,
        cancellations: CancelProductOrderRepository,
        events: EventSink,
        task_queue: ResolutionTaskQueue,
        policy: Optional[CancellationPolicy] = None,
        resolution_timeout: timedelta = timedelta(seconds=3600),
        max_attempts: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            orders: Order Store
            cancellations: CancellationRequest Store, sharing the orders' document store
            events: Event sink receiving the domain events
            task_queue: Queue receiving resolution tasks
            policy: Approval policy, the default rules when omitted
            resolution_timeout: Age after which an unresolved cancellation is terminated
            max_attempts: Resolution attempts before transient failures terminate the request
            clock: Current time provider
        """
        self.orders = orders
        self.cancellations = cancellations
        self.store = orders.store
        self.events = events
        self.task_queue = task_queue
        self.policy = policy or DefaultCancellationPolicy()
        self.resolution_timeout = resolution_timeout
        self.max_attempts = max_attempts
        self.clock = clock
        self._order_locks = KeyedLocks()

    @tracer.capture_method
    def create(
        self,
        request: CreateCancelProductOrderRequest,
        context: Optional[ErrorContext] = None,
    ) -> CancelProductOrder:
        """
        Accept a cancellation request and queue its resolution.

        Args:
            request: Validated cancellation request
            context: Error context attached to rejections

        Returns:
            The stored cancellation request, in state ``acknowledged``

        Raises:
            InvalidProductOrderReferenceError: If the order does not exist
            CancellationNotAllowedError: If the order's state forbids cancellation
            CancellationRequestExistsError: If the order has a cancellation in flight
            DuplicateIdError: If the client supplied id is already used
            ConcurrentModificationError: If the order changed meanwhile
        """
        order_id = request.product_order.id

        with self._order_locks.hold(order_id):
            order = self.orders.find_by_id(order_id)
            if order is None:
                raise InvalidProductOrderReferenceError(order_id, context)

            ineligibility = cancellation_ineligibility_reason(order)
            if ineligibility:
                raise CancellationNotAllowedError(ineligibility, order.state, context)

            existing = self.cancellations.find_one(order_id, NON_TERMINAL_CANCELLATION_STATES)
            if existing is not None:
                raise CancellationRequestExistsError(order_id, existing.id, context)

            if request.id and self.cancellations.exists(request.id):
                raise DuplicateIdError("CancelProductOrder", request.id, context)

            now = self.clock()
            cancellation_id = request.id or str(uuid.uuid4())
            cancellation = CancelProductOrder(
                id=cancellation_id,
                href=f"{PRODUCT_ORDERING_BASE_PATH}/cancelProductOrder/{cancellation_id}",
                state=CancellationState.ACKNOWLEDGED,
                product_order=ProductOrderRef(
                    id=order.id,
                    href=order.href or f"{PRODUCT_ORDERING_BASE_PATH}/productOrder/{order.id}",
                    name=order.description or f"Order {order.id}",
                ),
                cancellation_reason=request.cancellation_reason,
                requested_cancellation_date=request.requested_cancellation_date,
                creation_date=now,
                prior_order_state=order.state,
            )
            assessed_order = order.with_state(
                ProductOrderState.ASSESSING_CANCELLATION,
                cancellation_reason=request.cancellation_reason,
                cancellation_date=request.requested_cancellation_date or now,
            )

            try:
                stored_cancellation, stored_order = self.store.transact_write([
                    self.cancellations.write_request(cancellation, create=True),
                    self.orders.write_request(assessed_order),
                ])
            except ConditionalCheckFailedError as e:
                raise ConcurrentModificationError("ProductOrder", order_id, context) from e

            cancellation = self.cancellations.from_document(stored_cancellation)
            assessed_order = self.orders.from_document(stored_order)

        logger.info("Cancellation request accepted", extra={
            "cancellation_id": cancellation.id,
            "order_id": order_id,
            "prior_order_state": order.state.value,
        })
        metrics.add_metric(name="CancellationRequested", unit=MetricUnit.Count, value=1)

        self.events.publish(TmfEventType.CANCEL_PRODUCT_ORDER_CREATE, entity_payload(cancellation))
        self.events.publish(TmfEventType.PRODUCT_ORDER_STATE_CHANGE, entity_payload(assessed_order))

        try:
            self.task_queue.enqueue(cancellation.id)
        except ExternalServiceError as e:
            # the stale cancellation sweep terminates requests that are never resolved
            logger.error("Resolution task not queued", extra={
                "cancellation_id": cancellation.id,
                "error_id": e.error_id,
            })

        return cancellation

    @tracer.capture_method
    def resolve(self, cancellation_id: str, attempt: int = 1) -> Optional[CancelProductOrder]:
        """
        Resolve a cancellation request; safe to call repeatedly.

        Args:
            cancellation_id: Cancellation request to resolve
            attempt: Delivery attempt number, starting at 1

        Returns:
            The cancellation request in its final state, or None if unknown

        Raises:
            ResolutionRetryError: On a transient failure while attempts remain
        """
        cancellation = self.cancellations.find_by_id(cancellation_id)
        if cancellation is None:
            logger.warning("Resolution requested for unknown cancellation", extra={
                "cancellation_id": cancellation_id,
            })
            return None
        if cancellation.is_terminal:
            logger.debug("Cancellation already resolved", extra={"cancellation_id": cancellation_id})
            return cancellation

        with self._order_locks.hold(cancellation.product_order.id):
            try:
                return self._resolve_locked(cancellation_id)
            except (DALError, ExternalServiceError) as e:
                if attempt < self.max_attempts:
                    logger.warning("Transient failure resolving cancellation", extra={
                        "cancellation_id": cancellation_id,
                        "attempt": attempt,
                        "error_code": e.error_code,
                    })
                    raise ResolutionRetryError(
                        cancellation_id,
                        attempt,
                        retry_after=int(round(compute_backoff(attempt))),
                        cause=e.message,
                    ) from e
                return self._terminate(cancellation_id, f"retries exhausted: {e.message}")
            except (BaseServiceError, PydanticValidationError) as e:
                return self._terminate(cancellation_id, str(e))

    @tracer.capture_method
    def expire_stale(self, now: Optional[datetime] = None) -> int:
        """
        Terminate every unresolved cancellation older than the resolution timeout.

        Returns:
            Number of cancellations terminated
        """
        now = now or self.clock()
        expired = 0
        for cancellation in self.cancellations.find_by_states(NON_TERMINAL_CANCELLATION_STATES):
            if not self._is_stale(cancellation, now):
                continue
            with self._order_locks.hold(cancellation.product_order.id):
                result = self._terminate(cancellation.id, "resolution timed out")
            if result is not None and result.state == CancellationState.TERMINATED_WITH_ERRORS:
                expired += 1

        if expired:
            logger.info("Stale cancellations terminated", extra={"count": expired})
        return expired

    def get(
        self,
        cancellation_id: str,
        fields: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ) -> Dict:
        cancellation = self.cancellations.find_by_id(cancellation_id)
        if cancellation is None:
            raise CancelProductOrderNotFoundError(cancellation_id, context)
        return select_fields(cancellation.to_tmf_format(), fields)

    def list(
        self,
        filters: Optional[Mapping[str, str]] = None,
        fields: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Page:
        cancellations, total = self.cancellations.find_many(filters, offset, limit)
        return to_page(cancellations, total, fields)

    def _is_stale(self, cancellation: CancelProductOrder, now: datetime) -> bool:
        if cancellation.creation_date is None:
            return False
        return now - cancellation.creation_date > self.resolution_timeout

    def _resolve_locked(self, cancellation_id: str) -> Optional[CancelProductOrder]:
        # re-read under the order lock: another resolver may have finished
        cancellation = self.cancellations.find_by_id(cancellation_id)
        if cancellation is None or cancellation.is_terminal:
            return cancellation

        now = self.clock()
        if self._is_stale(cancellation, now):
            return self._terminate(cancellation_id, "resolution timed out")

        order = self.orders.find_by_id(cancellation.product_order.id)

        if cancellation.state == CancellationState.ACKNOWLEDGED:
            cancellation = self.cancellations.update(
                cancellation.model_copy(update={'state': CancellationState.IN_PROGRESS})
            )
            self._publish_transition(cancellation, order)

        if order is None:
            return self._terminate(cancellation_id, "product order no longer exists")
        if order.state != ProductOrderState.ASSESSING_CANCELLATION:
            # the order left assessment through another path; leave it as it is
            return self._terminate(cancellation_id, f"product order moved to {order.state.value} during assessment")

        prior_state = cancellation.prior_order_state or DEFAULT_RESTORED_ORDER_STATE
        decision = self.policy.evaluate(order.with_state(prior_state), cancellation, now)

        if decision.approved:
            resolved_order = order.with_state(ProductOrderState.CANCELLED, cancellation_date=now)
            resolved = cancellation.model_copy(update={
                'state': CancellationState.DONE,
                'effective_cancellation_date': now,
            })
            metric_name = "CancellationApproved"
        else:
            resolved_order = order.with_state(prior_state)
            resolved = cancellation.model_copy(update={'state': CancellationState.DONE})
            metric_name = "CancellationRejected"

        stored_cancellation, stored_order = self.store.transact_write([
            self.cancellations.write_request(resolved),
            self.orders.write_request(resolved_order),
        ])
        resolved = self.cancellations.from_document(stored_cancellation)
        resolved_order = self.orders.from_document(stored_order)

        logger.info("Cancellation resolved", extra={
            "cancellation_id": cancellation_id,
            "order_id": order.id,
            "approved": decision.approved,
            "rule": decision.rule,
            "order_state": resolved_order.state.value,
        })
        metrics.add_metric(name=metric_name, unit=MetricUnit.Count, value=1)

        self._publish_transition(resolved, resolved_order)
        return resolved

    def _terminate(self, cancellation_id: str, reason: str) -> Optional[CancelProductOrder]:
        """Move a cancellation to ``terminatedWithErrors``, restoring its order if still assessed."""
        cancellation = self.cancellations.find_by_id(cancellation_id)
        if cancellation is None or cancellation.is_terminal:
            return cancellation

        terminated = cancellation.model_copy(update={'state': CancellationState.TERMINATED_WITH_ERRORS})
        writes = [self.cancellations.write_request(terminated)]

        order = self.orders.find_by_id(cancellation.product_order.id)
        restored_order: Optional[ProductOrder] = None
        if order is not None and order.state == ProductOrderState.ASSESSING_CANCELLATION:
            restored_order = order.with_state(cancellation.prior_order_state or DEFAULT_RESTORED_ORDER_STATE)
            writes.append(self.orders.write_request(restored_order))

        stored = self.store.transact_write(writes)
        terminated = self.cancellations.from_document(stored[0])
        if restored_order is not None:
            restored_order = self.orders.from_document(stored[1])

        logger.warning("Cancellation terminated with errors", extra={
            "cancellation_id": cancellation_id,
            "order_id": cancellation.product_order.id,
            "reason": reason,
        })
        metrics.add_metric(name="CancellationTerminated", unit=MetricUnit.Count, value=1)

        self._publish_transition(terminated, restored_order or order)
        return terminated

    def _publish_transition(self, cancellation: CancelProductOrder, order: Optional[ProductOrder]) -> None:
        self.events.publish(TmfEventType.CANCEL_PRODUCT_ORDER_STATE_CHANGE, entity_payload(cancellation))
        if order is not None:
            self.events.publish(TmfEventType.PRODUCT_ORDER_STATE_CHANGE, entity_payload(order))
