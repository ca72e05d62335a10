"""
Tests for the order state machine table.
"""

import itertools

import pytest

from kungfu import Ok, Error

from ordercore.domain import OrderStatus
from ordercore.errors import ErrorKind
from ordercore.state_machine import (
    CANCELLABLE,
    INITIAL,
    TRANSITIONS,
    can_transition,
    ensure_transition,
)

S = OrderStatus

LEGAL = {
    (S.PENDING, S.PAID),
    (S.PENDING, S.CANCELLED),
    (S.PAID, S.PROCESSING),
    (S.PAID, S.CANCELLED),
    (S.PROCESSING, S.SHIPPED),
    (S.PROCESSING, S.CANCELLED),
    (S.SHIPPED, S.DELIVERED),
    (S.SHIPPED, S.RETURNED),
    (S.DELIVERED, S.RETURNED),
    (S.RETURNED, S.REFUNDED),
}


class TestTable:
    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize(
        ("current", "target"), list(itertools.product(OrderStatus, OrderStatus))
    )
    def test_can_transition_matches_table(self, current, target):
        assert can_transition(current, target) is ((current, target) in LEGAL)

    def test_initial_is_pending(self):
        assert INITIAL is S.PENDING

    def test_terminal_states(self):
        assert {s for s in OrderStatus if not TRANSITIONS[s]} == {S.CANCELLED, S.REFUNDED}

    def test_cancellable_states(self):
        assert CANCELLABLE == {S.PENDING, S.PAID, S.PROCESSING}

    def test_direct_refund_from_paid_is_not_an_edge(self):
        assert not can_transition(S.PAID, S.REFUNDED)

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            TRANSITIONS[S.CANCELLED] = frozenset({S.PENDING})  # type: ignore[index]


class TestEnsureTransition:
    def test_legal_edge(self):
        assert ensure_transition(S.PENDING, S.PAID).unwrap() is S.PAID

    def test_illegal_edge_names_both_states(self):
        match ensure_transition(S.DELIVERED, S.PAID):
            case Error(err):
                assert err.kind is ErrorKind.INVALID_TRANSITION
                assert err.message == "Invalid status transition from DELIVERED to PAID"
            case Ok(_):
                pytest.fail("DELIVERED -> PAID must be rejected")
