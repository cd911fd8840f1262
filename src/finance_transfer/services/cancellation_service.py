"""Cancellation coordinator — owner-checked, cooperative cancellation requests."""

import uuid

from loguru import logger

from finance_transfer.lib.jobs import CancelOutcome, OperationKind, OperationStatus
from finance_transfer.services.operation_service import OperationRegistry


async def request_cancel(
    registry: OperationRegistry,
    operation_id: uuid.UUID,
    requester_id: uuid.UUID,
    kind: OperationKind | None = None,
) -> CancelOutcome:
    """Ask the worker running ``operation_id`` to stop at its next batch boundary.

    Only the cancel flag is touched; the worker performs the transition
    to ``cancelled`` itself.

    Args:
        registry: Operation registry.
        operation_id: Operation to cancel.
        requester_id: Acting user; must own the operation.
        kind: When given, an operation of another kind counts as not found.

    Returns:
        ``OK`` when the flag was set, otherwise why nothing changed.
    """
    operation = await registry.find(operation_id)
    if operation is None or (kind is not None and operation.kind != kind):
        return CancelOutcome.NOT_FOUND
    if operation.owner_id != requester_id:
        logger.warning(f"User {requester_id} tried to cancel operation {operation_id} owned by another user")
        return CancelOutcome.FORBIDDEN
    if OperationStatus(operation.status).is_terminal:
        return CancelOutcome.ALREADY_TERMINAL

    # The status may have turned terminal since the read; the flag update re-checks it
    if not await registry.request_cancel(operation_id):
        return CancelOutcome.ALREADY_TERMINAL
    logger.info(f"Cancellation requested for operation {operation_id}")
    return CancelOutcome.OK
