"""Operation status state machine.

``pending`` may start, be cancelled before starting, or fail (e.g. when
the process restarts before it runs). ``running`` ends in exactly one
terminal status. Terminal statuses have no outgoing transitions.
"""

from finance_transfer.lib.jobs.errors import IllegalTransitionError
from finance_transfer.lib.jobs.types import OperationStatus

_TRANSITIONS: dict[OperationStatus, frozenset[OperationStatus]] = {
    OperationStatus.PENDING: frozenset(
        {OperationStatus.RUNNING, OperationStatus.CANCELLED, OperationStatus.FAILED},
    ),
    OperationStatus.RUNNING: frozenset(
        {OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED},
    ),
    OperationStatus.COMPLETED: frozenset(),
    OperationStatus.FAILED: frozenset(),
    OperationStatus.CANCELLED: frozenset(),
}


def allowed_targets(current: OperationStatus) -> frozenset[OperationStatus]:
    """Statuses reachable from ``current`` in one step."""
    return _TRANSITIONS[OperationStatus(current)]


def sources_for(target: OperationStatus) -> frozenset[OperationStatus]:
    """Statuses from which ``target`` may be entered."""
    target = OperationStatus(target)
    return frozenset(src for src, targets in _TRANSITIONS.items() if target in targets)


def is_legal(current: OperationStatus, target: OperationStatus) -> bool:
    return OperationStatus(target) in allowed_targets(current)


def check_transition(current: OperationStatus, target: OperationStatus) -> None:
    """Validate a status change.

    Raises:
        IllegalTransitionError: If ``current -> target`` is not allowed.
    """
    if not is_legal(current, target):
        raise IllegalTransitionError(OperationStatus(current), OperationStatus(target))
