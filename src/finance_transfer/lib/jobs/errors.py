"""Error taxonomy and outcome types for transfer operations.

Request-level problems are raised as ``TransferError`` subclasses and
mapped to HTTP responses by the application. Expected per-record and
per-access outcomes are returned as values instead.
"""

import enum
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class TransferError(Exception):
    """Base class for transfer subsystem errors."""

    code = "transfer_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidRequestError(TransferError):
    """Malformed request shape; no operation is created."""

    code = "validation_error"


class StructuralDecodeError(TransferError):
    """The import payload cannot be parsed at all (wrong delimiter, corrupt archive)."""

    code = "structural_decode_error"


class OperationNotFoundError(TransferError):
    """No operation with the given id exists."""

    code = "not_found"

    def __init__(self, operation_id: uuid.UUID) -> None:
        super().__init__(f"Operation {operation_id} not found")
        self.operation_id = operation_id


class ArtifactNotFoundError(TransferError):
    """The artifact does not exist, has expired, or is not yet available."""

    code = "not_found"


class ForbiddenError(TransferError):
    """The requester does not own the resource."""

    code = "forbidden"


class TooManyConcurrentOperationsError(TransferError):
    """The owner already has the maximum number of in-flight operations of this kind."""

    code = "too_many_concurrent_operations"

    def __init__(self, kind: str, limit: int) -> None:
        super().__init__(f"Too many in-flight {kind} operations (limit {limit}); retry later")
        self.kind = kind
        self.limit = limit


class IllegalTransitionError(TransferError):
    """A status update violates the operation state machine."""

    code = "illegal_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal status transition {current} -> {target}")
        self.current = current
        self.target = target


@dataclass(frozen=True)
class RecordError:
    """A single record that failed to decode or validate.

    ``index`` is the 1-based position of the record among the data
    records of the input; header rows are not counted.
    """

    index: int
    reason: str
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data["field"] is None:
            del data["field"]
        return data


class CancelOutcome(enum.StrEnum):
    """Result of a cancellation request."""

    OK = "ok"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    ALREADY_TERMINAL = "already_terminal"


class AccessOutcome(enum.StrEnum):
    """Result of an ownership-checked lookup."""

    OK = "ok"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class AccessResult(Generic[T]):
    """Outcome of an ownership-checked lookup plus the value when allowed."""

    outcome: AccessOutcome
    value: T | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is AccessOutcome.OK
