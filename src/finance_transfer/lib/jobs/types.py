"""Enumerations describing transfer operations and their legal combinations."""

import enum


class OperationKind(enum.StrEnum):
    """Direction of a transfer operation."""

    EXPORT = "export"
    IMPORT = "import"


class OperationStatus(enum.StrEnum):
    """Lifecycle status of an operation."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self in IN_FLIGHT_STATUSES


TERMINAL_STATUSES = frozenset({OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED})
IN_FLIGHT_STATUSES = frozenset({OperationStatus.PENDING, OperationStatus.RUNNING})


class DataType(enum.StrEnum):
    """Kind of financial record being transferred."""

    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"
    GOALS = "goals"
    CATEGORIES = "categories"
    ALL = "all"

    def expand(self) -> list["DataType"]:
        """Concrete record types covered by this data type, in export order."""
        if self is DataType.ALL:
            return list(CONCRETE_DATA_TYPES)
        return [self]


CONCRETE_DATA_TYPES: tuple[DataType, ...] = (
    DataType.TRANSACTIONS,
    DataType.BUDGETS,
    DataType.GOALS,
    DataType.CATEGORIES,
)


class TransferFormat(enum.StrEnum):
    """Interchange formats understood by the codecs."""

    CSV = "csv"
    JSON = "json"
    EXCEL = "excel"
    PDF = "pdf"


class DuplicateStrategy(enum.StrEnum):
    """How an import treats a record matching an existing one."""

    SKIP = "skip"
    UPDATE = "update"
    CREATE = "create"


EXPORT_FORMATS: tuple[TransferFormat, ...] = (
    TransferFormat.CSV,
    TransferFormat.JSON,
    TransferFormat.EXCEL,
    TransferFormat.PDF,
)
IMPORT_FORMATS: tuple[TransferFormat, ...] = (
    TransferFormat.CSV,
    TransferFormat.JSON,
    TransferFormat.EXCEL,
)
EXPORT_DATA_TYPES: tuple[DataType, ...] = (*CONCRETE_DATA_TYPES, DataType.ALL)
IMPORT_DATA_TYPES: tuple[DataType, ...] = CONCRETE_DATA_TYPES


def legal_formats(kind: OperationKind) -> tuple[TransferFormat, ...]:
    """Formats accepted for the given operation kind."""
    return EXPORT_FORMATS if kind is OperationKind.EXPORT else IMPORT_FORMATS


def legal_data_types(kind: OperationKind) -> tuple[DataType, ...]:
    """Data types accepted for the given operation kind."""
    return EXPORT_DATA_TYPES if kind is OperationKind.EXPORT else IMPORT_DATA_TYPES
