"""
Exception hierarchy for the tablestore package.

Every error carries a human-readable message. Errors raised while handling a
lower-level failure are chained with ``raise ... from`` so the original cause
stays available on ``__cause__``.
"""

from typing import Any, Dict, List, Optional, Sequence


class TableStoreError(Exception):
    """Base class for all tablestore errors."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "error_type": type(self).__name__,
            "message": str(self),
        }
        if self.__cause__ is not None:
            result["cause"] = f"{type(self.__cause__).__name__}: {self.__cause__}"
        return result


class EmptyBatchError(TableStoreError):
    """Raised when a write batch contains no records."""

    def __init__(self, message: str = "Cannot write an empty record batch"):
        super().__init__(message)


class SchemaMismatchError(TableStoreError):
    """
    Raised when a record's field set differs from the batch's reference record
    or from the table's declared schema.
    """

    def __init__(
        self,
        record_index: int,
        expected_fields: Sequence[str],
        actual_fields: Sequence[str],
        message: Optional[str] = None,
    ):
        """
        Initialize schema mismatch error.

        Args:
            record_index: Index of the offending record within the batch
            expected_fields: Sorted field names of the reference
            actual_fields: Sorted field names of the offending record
            message: Optional message override
        """
        self.record_index = record_index
        self.expected_fields: List[str] = list(expected_fields)
        self.actual_fields: List[str] = list(actual_fields)

        if message is None:
            message = (
                f"Schema mismatch detected. Record at index {record_index} has "
                f"different fields than the first record.\n"
                f"Expected fields: {', '.join(self.expected_fields)}\n"
                f"Got fields: {', '.join(self.actual_fields)}"
            )
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "record_index": self.record_index,
            "expected_fields": self.expected_fields,
            "actual_fields": self.actual_fields,
        })
        return result


class SchemaDefinitionError(TableStoreError):
    """Raised when a declared column schema is malformed or uses an unknown type."""


class EncodingError(TableStoreError):
    """Raised when a value cannot be coerced to its column's declared type."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        row_index: Optional[int] = None,
    ):
        self.field = field
        self.row_index = row_index

        location = []
        if field is not None:
            location.append(f"field '{field}'")
        if row_index is not None:
            location.append(f"row {row_index}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class DecodingError(TableStoreError):
    """Raised when a columnar file is corrupt or uses an unsupported layout."""


class BlobIOError(TableStoreError):
    """Wraps failures reported by the blob store adapter."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class BlobNotFoundError(BlobIOError):
    """Raised when a blob or directory does not exist."""


class BlobExistsError(BlobIOError):
    """Raised when a create-only operation targets an existing blob."""


class VersionConflictError(TableStoreError):
    """Raised when a log commit loses the create-only race for its version."""

    def __init__(self, table_path: str, version: int):
        self.table_path = table_path
        self.version = version
        super().__init__(
            f"Version {version} of table '{table_path}' was committed by another "
            f"writer. Retry the whole write against the new table state."
        )


class LogCorruptionError(TableStoreError):
    """Raised when a log entry cannot be parsed."""

    def __init__(self, message: str, version: Optional[int] = None):
        self.version = version
        super().__init__(message)


class TableNotFoundError(TableStoreError):
    """Raised when an operation requires an existing table but no log entries exist."""

    def __init__(self, table_path: str, message: Optional[str] = None):
        self.table_path = table_path
        super().__init__(message or f"No table found at '{table_path}' (no log entries)")


class TableExistsError(TableStoreError):
    """Raised when creating a table at a path that already has log entries."""

    def __init__(self, table_path: str, version: int):
        self.table_path = table_path
        self.version = version
        super().__init__(
            f"Table already exists at '{table_path}' (latest version {version}). "
            f"Aborting creation to avoid data loss."
        )


class VersionNotFoundError(TableStoreError):
    """Raised when reading a table at a version beyond its latest commit."""

    def __init__(self, table_path: str, version: int, latest_version: int):
        self.table_path = table_path
        self.version = version
        self.latest_version = latest_version
        super().__init__(
            f"Version {version} does not exist for table '{table_path}' "
            f"(latest version {latest_version})"
        )


class OperationTimeoutError(TableStoreError, TimeoutError):
    """Raised when a table operation exceeds its caller-supplied timeout."""

    ambiguous = False

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"Operation '{operation}' timed out after {timeout:g}s")


class CommitTimeoutError(OperationTimeoutError):
    """
    Raised when the log commit itself times out.

    The outcome is ambiguous: the log entry may or may not have been durably
    written. Callers should re-read the table before retrying.
    """

    ambiguous = True

    def __init__(self, table_path: str, version: int, timeout: float):
        self.table_path = table_path
        self.version = version
        super().__init__("commit", timeout)
        self.args = (
            f"Commit of version {version} to '{table_path}' timed out after "
            f"{timeout:g}s; the log entry may or may not have been written",
        )
