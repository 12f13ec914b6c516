from __future__ import annotations

from enum import StrEnum

from .errors import InvalidLoginTransitionError


class LoginState(StrEnum):
    AWAITING_CREDENTIALS = "awaiting_credentials"
    AWAITING_CODE = "awaiting_code"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


class LoginStateMachine:
    """
    Two-factor login state machine.

    Notes:
    - Nothing is stored between the two requests; the client carries the
      credentials forward, so step 2 re-enters `AWAITING_CODE` from the
      re-submitted credentials before checking the code.
    - `REJECTED` and `AUTHENTICATED` are terminal.
    """

    _TRANSITIONS: dict[LoginState, frozenset[LoginState]] = {
        LoginState.AWAITING_CREDENTIALS: frozenset({LoginState.AWAITING_CODE, LoginState.REJECTED}),
        LoginState.AWAITING_CODE: frozenset({LoginState.AUTHENTICATED, LoginState.REJECTED}),
        LoginState.AUTHENTICATED: frozenset(),
        LoginState.REJECTED: frozenset(),
    }

    @staticmethod
    def can_transition(current: LoginState, target: LoginState) -> bool:
        return target in LoginStateMachine._TRANSITIONS.get(current, frozenset())

    @staticmethod
    def transition(current: LoginState, target: LoginState) -> LoginState:
        if not LoginStateMachine.can_transition(current, target):
            raise InvalidLoginTransitionError(current.value, target.value)
        return target

    @staticmethod
    def is_terminal(state: LoginState) -> bool:
        return not LoginStateMachine._TRANSITIONS.get(state)
