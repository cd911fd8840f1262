"""Job engine primitives — operation enums, state machine, and error taxonomy."""

from finance_transfer.lib.jobs.errors import (
    AccessOutcome,
    AccessResult,
    ArtifactNotFoundError,
    CancelOutcome,
    ForbiddenError,
    IllegalTransitionError,
    InvalidRequestError,
    OperationNotFoundError,
    RecordError,
    StructuralDecodeError,
    TooManyConcurrentOperationsError,
    TransferError,
)
from finance_transfer.lib.jobs.states import allowed_targets, check_transition, is_legal, sources_for
from finance_transfer.lib.jobs.types import (
    CONCRETE_DATA_TYPES,
    IN_FLIGHT_STATUSES,
    TERMINAL_STATUSES,
    DataType,
    DuplicateStrategy,
    OperationKind,
    OperationStatus,
    TransferFormat,
    legal_data_types,
    legal_formats,
)

__all__ = [
    "CONCRETE_DATA_TYPES",
    "IN_FLIGHT_STATUSES",
    "TERMINAL_STATUSES",
    "AccessOutcome",
    "AccessResult",
    "ArtifactNotFoundError",
    "CancelOutcome",
    "DataType",
    "DuplicateStrategy",
    "ForbiddenError",
    "IllegalTransitionError",
    "InvalidRequestError",
    "OperationKind",
    "OperationNotFoundError",
    "OperationStatus",
    "RecordError",
    "StructuralDecodeError",
    "TooManyConcurrentOperationsError",
    "TransferError",
    "TransferFormat",
    "allowed_targets",
    "check_transition",
    "is_legal",
    "legal_data_types",
    "legal_formats",
    "sources_for",
]
