"""Unit tests for the order status transition table.

Covers:
- Forward moves along the fulfilment flow, including skips.
- Cancellation before delivery, returns after shipping.
- Terminal states and backward moves are rejected.
"""

from __future__ import annotations

import pytest

from modules.orders.constants import (
    FULFILMENT_FLOW,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.models import Order

pytestmark = pytest.mark.unit


def _order(status: str) -> Order:
    return Order(status=status, payment_method="COD")


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(OrderStatus.values)

    def test_terminal_states_allow_nothing(self):
        for state in TERMINAL_STATES:
            assert VALID_TRANSITIONS[state] == set()

    def test_delivered_only_allows_return(self):
        assert VALID_TRANSITIONS[OrderStatus.DELIVERED] == {OrderStatus.RETURNED}

    @pytest.mark.parametrize(
        "current, target",
        [
            (OrderStatus.ORDER_PLACED, OrderStatus.PACKING),
            (OrderStatus.ORDER_PLACED, OrderStatus.DELIVERED),
            (OrderStatus.PACKING, OrderStatus.SHIPPED),
            (OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
            (OrderStatus.ORDER_PLACED, OrderStatus.CANCELLED),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, OrderStatus.RETURNED),
            (OrderStatus.DELIVERED, OrderStatus.RETURNED),
        ],
    )
    def test_allowed(self, current, target):
        assert _order(current).can_transition_to(target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (OrderStatus.PACKING, OrderStatus.ORDER_PLACED),
            (OrderStatus.DELIVERED, OrderStatus.SHIPPED),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
            (OrderStatus.PACKING, OrderStatus.RETURNED),
            (OrderStatus.CANCELLED, OrderStatus.ORDER_PLACED),
            (OrderStatus.RETURNED, OrderStatus.DELIVERED),
        ],
    )
    def test_rejected(self, current, target):
        assert not _order(current).can_transition_to(target)

    def test_no_status_transitions_to_itself(self):
        for state in OrderStatus.values:
            assert state not in VALID_TRANSITIONS[state]

    def test_flow_order(self):
        assert FULFILMENT_FLOW[0] == OrderStatus.ORDER_PLACED
        assert FULFILMENT_FLOW[-1] == OrderStatus.DELIVERED


class TestTerminalHelper:
    @pytest.mark.parametrize("state", [OrderStatus.CANCELLED, OrderStatus.RETURNED])
    def test_terminal(self, state):
        assert _order(state).is_terminal

    @pytest.mark.parametrize("state", FULFILMENT_FLOW)
    def test_not_terminal(self, state):
        assert not _order(state).is_terminal
