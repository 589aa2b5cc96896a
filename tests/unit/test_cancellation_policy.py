"""
Unit tests for the cancellation eligibility gate and approval policy.
"""

from datetime import datetime, timedelta, timezone

import pytest

from prodigy_hub.handlers.models.dynamic_configuration import CancellationPolicyConfiguration
from prodigy_hub.logic.cancellation_policy import (
    ConfiguredCancellationPolicy,
    DefaultCancellationPolicy,
    cancellation_ineligibility_reason,
)
from prodigy_hub.models.cancel_product_order import CancelProductOrder, ProductOrderRef
from prodigy_hub.models.product_order import ProductOrder, ProductOrderState

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _order(state: ProductOrderState, age: timedelta = timedelta(days=1)) -> ProductOrder:
    return ProductOrder(id="O1", state=state, creation_date=NOW - age)


def _request(reason: str = None) -> CancelProductOrder:
    return CancelProductOrder(id="C1", product_order=ProductOrderRef(id="O1"), cancellation_reason=reason)


class TestEligibility:
    """Test cases for cancellation_ineligibility_reason."""

    @pytest.mark.parametrize("state", ["completed", "cancelled", "failed"])
    def test_terminal_orders_cannot_be_cancelled(self, state):
        reason = cancellation_ineligibility_reason(_order(ProductOrderState(state)))
        assert reason == f"ProductOrder in state '{state}' cannot be cancelled"

    @pytest.mark.parametrize("state", ["assessingCancellation", "pendingCancellation"])
    def test_orders_already_being_cancelled(self, state):
        reason = cancellation_ineligibility_reason(_order(ProductOrderState(state)))
        assert reason == f"ProductOrder is already in cancellation process with state '{state}'"

    @pytest.mark.parametrize("state", ["acknowledged", "pending", "held", "inProgress", "rejected", "partial"])
    def test_other_states_are_eligible(self, state):
        assert cancellation_ineligibility_reason(_order(ProductOrderState(state))) is None


class TestDefaultCancellationPolicy:
    """Test cases for the default approval rules."""

    policy = DefaultCancellationPolicy()

    @pytest.mark.parametrize("state", [ProductOrderState.ACKNOWLEDGED, ProductOrderState.PENDING])
    def test_early_states_are_approved(self, state):
        decision = self.policy.evaluate(_order(state, age=timedelta(days=30)), _request(), NOW)
        assert decision.approved
        assert decision.rule == "early_order_state"

    def test_recent_in_progress_order_is_approved(self):
        decision = self.policy.evaluate(_order(ProductOrderState.IN_PROGRESS, age=timedelta(days=3)), _request(), NOW)
        assert decision.approved
        assert decision.rule == "in_progress_grace_period"

    def test_old_in_progress_order_is_rejected(self):
        decision = self.policy.evaluate(_order(ProductOrderState.IN_PROGRESS, age=timedelta(days=10)), _request(), NOW)
        assert not decision.approved
        assert decision.rule == "order_too_far_progressed"

    def test_grace_period_boundary_is_exclusive(self):
        order = _order(ProductOrderState.IN_PROGRESS, age=timedelta(days=7))
        assert not self.policy.evaluate(order, _request(), NOW).approved

    def test_naive_creation_date_is_utc(self):
        order = ProductOrder(id="O1", state=ProductOrderState.IN_PROGRESS, creation_date=datetime(2024, 5, 30))
        assert self.policy.evaluate(order, _request(), NOW).approved

    @pytest.mark.parametrize("reason", ["URGENT: customer moving", "billing error"])
    def test_priority_reason_is_approved(self, reason):
        order = _order(ProductOrderState.HELD, age=timedelta(days=60))

        decision = self.policy.evaluate(order, _request(reason), NOW)

        assert decision.approved
        assert decision.rule == "priority_reason"

    def test_held_order_without_priority_is_rejected(self):
        assert not self.policy.evaluate(_order(ProductOrderState.HELD), _request("changed mind"), NOW).approved


class TestConfiguredPolicy:
    def test_thresholds_come_from_configuration(self):
        configuration = CancellationPolicyConfiguration(
            auto_approve_states=["held", "notAState"],
            in_progress_grace_period_days=0,
            priority_keywords=["relocation"],
        )
        policy = ConfiguredCancellationPolicy(lambda: configuration)

        assert policy.evaluate(_order(ProductOrderState.HELD), _request(), NOW).approved
        assert not policy.evaluate(_order(ProductOrderState.ACKNOWLEDGED), _request("urgent"), NOW).approved
        assert policy.evaluate(_order(ProductOrderState.IN_PROGRESS), _request("Relocation abroad"), NOW).approved
