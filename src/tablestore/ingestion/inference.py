"""
Schema inference for loosely-typed records.

Derives a column schema from a single sample record. Inference is a pure
function of the sample: no I/O and no look-ahead into other records.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from tablestore.columnar.temporal import parse_timestamp
from tablestore.errors import EncodingError
from tablestore.schemas import (
    BINARY,
    BOOLEAN,
    DATE,
    DOUBLE,
    DYNAMIC,
    LONG,
    STRING,
    TIMESTAMP,
    ColumnType,
    Field,
    Schema,
    array_of,
    decimal_of,
    struct_of,
)


# ISO-8601-like date-time prefix, e.g. "2024-01-15T10:30:00"
TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


def is_timestamp_string(value: str) -> bool:
    """
    Check whether a string is an ISO-8601 date-time the encoder can store.

    Strings that only start with a date-time (e.g. "2024-01-15T10:30:00 done")
    are plain strings.
    """
    if not TIMESTAMP_PATTERN.match(value):
        return False
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True


def infer_type(value: Any) -> ColumnType:
    """
    Infer the column type of a single value.

    Args:
        value: Any record value

    Returns:
        Inferred ColumnType

    Raises:
        EncodingError: If the value's Python type has no column representation

    Example:
        >>> str(infer_type(["x", "y"]))
        'array<string>'
        >>> str(infer_type({"city": "A"}))
        'struct<city:string>'
    """
    if value is None:
        # Nothing to go on; strings accept the widest range of later values
        return STRING
    # bool is a subclass of int, so it must be checked first
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, int):
        return LONG
    if isinstance(value, float):
        return DOUBLE
    if isinstance(value, Decimal):
        return _infer_decimal(value)
    if isinstance(value, datetime):
        return TIMESTAMP
    if isinstance(value, date):
        return DATE
    if isinstance(value, str):
        return TIMESTAMP if is_timestamp_string(value) else STRING
    if isinstance(value, (bytes, bytearray)):
        return BINARY
    if isinstance(value, (list, tuple)):
        if len(value) == 0:
            return array_of(STRING)
        return array_of(infer_type(value[0]))
    if isinstance(value, dict):
        if not value:
            # Parquet has no empty struct; keep the value as JSON
            return DYNAMIC
        return struct_of(
            Field(str(key), infer_type(child), nullable=True)
            for key, child in value.items()
        )

    raise EncodingError(f"Cannot infer a column type for value of type {type(value).__name__}")


def _infer_decimal(value: Decimal) -> ColumnType:
    """Pick a decimal precision/scale wide enough for the sample value."""
    exponent = value.as_tuple().exponent
    scale = max(0, -exponent) if isinstance(exponent, int) else 0
    precision = min(38, max(len(value.as_tuple().digits), scale + 1, 18))
    return decimal_of(precision, min(scale, precision))


def infer_schema(record: Dict[str, Any]) -> Schema:
    """
    Derive a column schema from a sample record.

    Fields keep the record's key order and are all nullable.

    Args:
        record: Sample record (conventionally the first record of a batch)

    Returns:
        Inferred Schema

    Raises:
        EncodingError: If a value cannot be typed

    Example:
        >>> schema = infer_schema({"id": 1, "name": "Alice"})
        >>> [(f.name, str(f.type)) for f in schema]
        [('id', 'long'), ('name', 'string')]
    """
    fields = []
    for name, value in record.items():
        try:
            column_type = infer_type(value)
        except EncodingError as e:
            raise EncodingError(str(e), field=name) from e
        fields.append(Field(str(name), column_type, nullable=True))
    return Schema(tuple(fields))
