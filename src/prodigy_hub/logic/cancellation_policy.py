"""
Cancellation evaluation: the eligibility gate and the approval policy.

Both are pure functions of their inputs; the workflow owns every side effect.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, FrozenSet, Optional, Protocol, Sequence

from prodigy_hub.handlers.models.dynamic_configuration import CancellationPolicyConfiguration
from prodigy_hub.models.cancel_product_order import CancelProductOrder
from prodigy_hub.models.product_order import (
    CANCELLATION_IN_PROGRESS_STATES,
    TERMINAL_ORDER_STATES,
    ProductOrder,
    ProductOrderState,
)


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating a cancellation request."""

    approved: bool
    rule: str


class CancellationPolicy(Protocol):
    """Decides whether a cancellation request is approved."""

    def evaluate(self, order: ProductOrder, request: CancelProductOrder, now: datetime) -> Decision:
        """
        Args:
            order: The order as it was before the cancellation began
            request: The cancellation request being resolved
            now: Evaluation time

        Returns:
            The decision and the name of the rule that produced it
        """
        ...


class DefaultCancellationPolicy:
    """
    First matching rule wins:

    1. early order states are approved;
    2. in-progress orders inside the grace period are approved;
    3. a reason containing a priority keyword is approved;
    4. anything else is rejected.
    """

    def __init__(
        self,
        auto_approve_states: Sequence[ProductOrderState] = (ProductOrderState.ACKNOWLEDGED, ProductOrderState.PENDING),
        in_progress_grace_period: timedelta = timedelta(days=7),
        priority_keywords: Sequence[str] = ('urgent', 'error'),
    ):
        self.auto_approve_states: FrozenSet[ProductOrderState] = frozenset(auto_approve_states)
        self.in_progress_grace_period = in_progress_grace_period
        self.priority_keywords = tuple(keyword.lower() for keyword in priority_keywords)

    @classmethod
    def from_configuration(cls, configuration: CancellationPolicyConfiguration) -> 'DefaultCancellationPolicy':
        """Build the policy from the dynamic configuration; unknown states are ignored."""
        known_states = {state.value for state in ProductOrderState}
        return cls(
            auto_approve_states=[
                ProductOrderState(state) for state in configuration.auto_approve_states if state in known_states
            ],
            in_progress_grace_period=timedelta(days=configuration.in_progress_grace_period_days),
            priority_keywords=configuration.priority_keywords,
        )

    def evaluate(self, order: ProductOrder, request: CancelProductOrder, now: datetime) -> Decision:
        if order.state in self.auto_approve_states:
            return Decision(approved=True, rule='early_order_state')

        if order.state == ProductOrderState.IN_PROGRESS and order.creation_date is not None:
            created = order.creation_date
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            if now - created < self.in_progress_grace_period:
                return Decision(approved=True, rule='in_progress_grace_period')

        reason = (request.cancellation_reason or '').lower()
        if any(keyword in reason for keyword in self.priority_keywords):
            return Decision(approved=True, rule='priority_reason')

        return Decision(approved=False, rule='order_too_far_progressed')


class ConfiguredCancellationPolicy:
    """Default rules with thresholds read from the dynamic configuration at each evaluation."""

    def __init__(self, configuration_provider: Callable[[], CancellationPolicyConfiguration]):
        self.configuration_provider = configuration_provider

    def evaluate(self, order: ProductOrder, request: CancelProductOrder, now: datetime) -> Decision:
        policy = DefaultCancellationPolicy.from_configuration(self.configuration_provider())
        return policy.evaluate(order, request, now)


def cancellation_ineligibility_reason(order: ProductOrder) -> Optional[str]:
    """Why ``order`` cannot be cancelled, or None when it can."""
    if order.state in TERMINAL_ORDER_STATES:
        return f"ProductOrder in state '{order.state.value}' cannot be cancelled"
    if order.state in CANCELLATION_IN_PROGRESS_STATES:
        return f"ProductOrder is already in cancellation process with state '{order.state.value}'"
    return None
