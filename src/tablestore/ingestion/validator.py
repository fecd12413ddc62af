"""
Batch consistency validation.

Schema inference looks at the first record only, so every other record in a
batch must carry exactly the same field names before any encoding starts.
"""

from typing import Any, Dict, List, Sequence

from tablestore.errors import EmptyBatchError, SchemaMismatchError
from tablestore.logger import get_default_logger


logger = get_default_logger()


def record_field_names(record: Dict[str, Any]) -> List[str]:
    """Return the sorted field names of a record."""
    return sorted(str(key) for key in record.keys())


def validate_batch(records: Sequence[Dict[str, Any]]) -> List[str]:
    """
    Check that every record in a batch has the same field-name set as record 0.

    Only names are compared; per-field value types are not checked here and a
    disagreement surfaces later as an EncodingError.

    Args:
        records: Record batch

    Returns:
        Sorted field names shared by all records

    Raises:
        EmptyBatchError: If the batch is empty
        SchemaMismatchError: If any record's field set differs from record 0

    Example:
        >>> validate_batch([{"a": 1, "b": 2}, {"a": 1, "c": 3}])
        Traceback (most recent call last):
        ...
        tablestore.errors.SchemaMismatchError: Schema mismatch detected. Record at index 1 ...
    """
    if not records:
        raise EmptyBatchError()

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise SchemaMismatchError(
                record_index=index,
                expected_fields=record_field_names(records[0]) if index else [],
                actual_fields=[],
                message=f"Record at index {index} must be a mapping, got {type(record).__name__}",
            )

    expected = record_field_names(records[0])

    for index in range(1, len(records)):
        actual = record_field_names(records[index])
        if actual != expected:
            logger.warning(
                f"Schema drift at record {index}: expected {expected}, got {actual}"
            )
            raise SchemaMismatchError(
                record_index=index,
                expected_fields=expected,
                actual_fields=actual,
            )

    logger.debug(f"Validated batch of {len(records)} records with fields {expected}")
    return expected
