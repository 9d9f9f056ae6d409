"""Parts request state machine — validates status transitions.

    draft → sent → quoted → approved → ordered → received → closed
                                     ↘ cancelled (from any non-terminal state)
"""

from parts_radar.domain.enums import RequestStatus
from parts_radar.domain.exceptions import PartsRadarError


class InvalidTransitionError(PartsRadarError):
    """Raised when a request state transition is not allowed."""

    def __init__(
        self,
        current_status: RequestStatus,
        target_status: RequestStatus,
        reason: str,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid transition from {current_status.value} to {target_status.value}: {reason}"
        )


# ---------------------------------------------------------------------------
# Transition map: from_status -> set of allowed forward targets
# ---------------------------------------------------------------------------

S = RequestStatus

TRANSITION_MAP: dict[RequestStatus, set[RequestStatus]] = {
    S.DRAFT: {S.SENT},
    S.SENT: {S.QUOTED},
    S.QUOTED: {S.APPROVED},
    S.APPROVED: {S.ORDERED},
    S.ORDERED: {S.RECEIVED},
    S.RECEIVED: {S.CLOSED},
}

TERMINAL_STATES: set[RequestStatus] = {S.CLOSED, S.CANCELLED}

CANCELLABLE_STATES: set[RequestStatus] = {
    s for s in RequestStatus if s not in TERMINAL_STATES
}

# Statuses a caller may drive directly; the rest have dedicated operations
# (dispatch, quote arrival, quote acceptance, cancel).
CALLER_DRIVEN_TARGETS: set[RequestStatus] = {S.ORDERED, S.RECEIVED, S.CLOSED}

# Statuses in which new quotes may still arrive
QUOTABLE_STATES: set[RequestStatus] = {S.SENT, S.QUOTED}


def _coerce(status) -> RequestStatus:
    return status if isinstance(status, RequestStatus) else RequestStatus(status)


class RequestStateMachine:
    """Validates parts request state transitions."""

    def validate_transition(self, current_status, target_status) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not."""
        current = _coerce(current_status)
        target = _coerce(target_status)

        if current in TERMINAL_STATES:
            raise InvalidTransitionError(
                current,
                target,
                f"Request is {current.value}; no further changes are allowed",
            )

        if target == S.CANCELLED:
            return True

        allowed = TRANSITION_MAP.get(current, set())
        if target not in allowed:
            raise InvalidTransitionError(
                current,
                target,
                f"Transition from {current.value} to {target.value} is not allowed",
            )
        return True

    def get_allowed_transitions(self, current_status) -> list[RequestStatus]:
        """Return the valid next states from *current_status*."""
        current = _coerce(current_status)
        if current in TERMINAL_STATES:
            return []
        results = sorted(TRANSITION_MAP.get(current, set()), key=lambda s: s.value)
        results.append(S.CANCELLED)
        return results

    def is_terminal(self, status) -> bool:
        return _coerce(status) in TERMINAL_STATES
