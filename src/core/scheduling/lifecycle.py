"""
Session status lifecycle.

    requested --approve (coach)--> scheduled --complete (coach)--> completed
        |                              |
        +------cancel (either)---------+-----> cancelled

Completed and cancelled are terminal. The table below is the single
source of truth for which edges exist and who may walk them.
"""

import logging

from .errors import InvalidTransition, PermissionDenied
from .models import Role, SessionStatus

logger = logging.getLogger(__name__)

_EITHER = frozenset({Role.COACH, Role.CLIENT})
_COACH_ONLY = frozenset({Role.COACH})

TRANSITIONS: dict[tuple[SessionStatus, SessionStatus], frozenset[Role]] = {
    (SessionStatus.REQUESTED, SessionStatus.SCHEDULED): _COACH_ONLY,
    (SessionStatus.REQUESTED, SessionStatus.CANCELLED): _EITHER,
    (SessionStatus.SCHEDULED, SessionStatus.CANCELLED): _EITHER,
    (SessionStatus.SCHEDULED, SessionStatus.COMPLETED): _COACH_ONLY,
}


class SessionLifecycle:
    """Decides initial status and validates status changes."""

    @staticmethod
    def initial_status(created_by: Role) -> SessionStatus:
        """Client bookings await coach approval; coach bookings are confirmed."""
        if created_by is Role.CLIENT:
            return SessionStatus.REQUESTED
        return SessionStatus.SCHEDULED

    @staticmethod
    def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
        return (current, target) in TRANSITIONS

    @staticmethod
    def transition(current: SessionStatus, target: SessionStatus, actor: Role) -> SessionStatus:
        """
        Validate a status change and return the new status.

        Re-asserting the current non-terminal status is accepted as a
        no-op. Raises InvalidTransition for edges that don't exist and
        PermissionDenied when the edge exists but not for this role.
        """
        if current is target and not current.is_terminal:
            return current

        allowed_roles = TRANSITIONS.get((current, target))
        if allowed_roles is None:
            logger.warning(
                "Rejected status transition",
                extra={"from_status": current.value, "to_status": target.value},
            )
            raise InvalidTransition(
                f"Cannot move a session from {current.value} to {target.value}"
            )

        if actor not in allowed_roles:
            logger.warning(
                "Role not permitted for transition",
                extra={
                    "from_status": current.value,
                    "to_status": target.value,
                    "role": actor.value,
                },
            )
            raise PermissionDenied(
                f"A {actor.value} cannot move a session to {target.value}"
            )

        return target
