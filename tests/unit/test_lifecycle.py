"""
Unit tests for the session status lifecycle.
"""

import pytest

from src.core.scheduling.errors import InvalidTransition, PermissionDenied
from src.core.scheduling.lifecycle import TRANSITIONS, SessionLifecycle
from src.core.scheduling.models import Role, SessionStatus


REQUESTED = SessionStatus.REQUESTED
SCHEDULED = SessionStatus.SCHEDULED
COMPLETED = SessionStatus.COMPLETED
CANCELLED = SessionStatus.CANCELLED


class TestInitialStatus:

    def test_client_bookings_start_requested(self):
        assert SessionLifecycle.initial_status(Role.CLIENT) is REQUESTED

    def test_coach_bookings_start_scheduled(self):
        assert SessionLifecycle.initial_status(Role.COACH) is SCHEDULED


class TestTransitions:
    """Which edges exist, and who may walk them."""

    def test_request_approve_complete_path(self):
        status = SessionLifecycle.transition(REQUESTED, SCHEDULED, Role.COACH)
        status = SessionLifecycle.transition(status, COMPLETED, Role.COACH)
        assert status is COMPLETED

    @pytest.mark.parametrize("current", [REQUESTED, SCHEDULED])
    @pytest.mark.parametrize("role", [Role.COACH, Role.CLIENT])
    def test_either_party_can_cancel_active_sessions(self, current, role):
        assert SessionLifecycle.transition(current, CANCELLED, role) is CANCELLED

    @pytest.mark.parametrize("terminal", [COMPLETED, CANCELLED])
    @pytest.mark.parametrize("target", list(SessionStatus))
    def test_terminal_states_accept_nothing(self, terminal, target):
        """Once completed or cancelled, no status change is accepted."""
        with pytest.raises(InvalidTransition):
            SessionLifecycle.transition(terminal, target, Role.COACH)

    def test_cannot_skip_approval(self):
        """requested -> completed is not an edge."""
        with pytest.raises(InvalidTransition):
            SessionLifecycle.transition(REQUESTED, COMPLETED, Role.COACH)

    def test_cannot_move_back_to_requested(self):
        with pytest.raises(InvalidTransition):
            SessionLifecycle.transition(SCHEDULED, REQUESTED, Role.COACH)

    def test_client_cannot_complete(self):
        with pytest.raises(PermissionDenied):
            SessionLifecycle.transition(SCHEDULED, COMPLETED, Role.CLIENT)

    def test_client_cannot_approve_own_request(self):
        with pytest.raises(PermissionDenied):
            SessionLifecycle.transition(REQUESTED, SCHEDULED, Role.CLIENT)

    @pytest.mark.parametrize("status", [REQUESTED, SCHEDULED])
    def test_restating_active_status_is_a_no_op(self, status):
        assert SessionLifecycle.transition(status, status, Role.CLIENT) is status

    def test_transition_table_never_leaves_a_terminal_state(self):
        for current, _ in TRANSITIONS:
            assert not current.is_terminal
        assert not SessionLifecycle.can_transition(REQUESTED, COMPLETED)
        assert SessionLifecycle.can_transition(SCHEDULED, COMPLETED)
