"""
Columnar decoding of Parquet data files back into records.

Columns are read one at a time and zipped back into row dictionaries.
Timestamps come back as ISO-8601 strings so callers see the same shape they
wrote. Columns absent from a file (for example in files written before a
column existed) are simply absent keys in the decoded records.
"""

import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from tablestore.columnar.temporal import format_timestamp
from tablestore.errors import DecodingError, SchemaDefinitionError
from tablestore.logger import get_default_logger
from tablestore.schemas import ColumnType, Field, Schema


logger = get_default_logger()


def normalize_value(value: Any, column_type: ColumnType) -> Any:
    """
    Convert an Arrow-decoded Python value into its caller-facing form.

    Raises:
        DecodingError: If a dynamic (JSON) value cannot be parsed
    """
    if value is None:
        return None

    kind = column_type.kind

    if kind == "timestamp" and isinstance(value, datetime):
        return format_timestamp(value)
    if kind == "date" and isinstance(value, date):
        return value.isoformat()
    if kind == "dynamic":
        try:
            return json.loads(value)
        except (TypeError, json.JSONDecodeError) as e:
            raise DecodingError(f"Invalid JSON in dynamic column: {value!r}") from e
    if kind == "array":
        return [normalize_value(item, column_type.element) for item in value]
    if kind == "struct":
        return {
            child.name: normalize_value(value.get(child.name), child.type)
            for child in column_type.fields
        }
    if kind == "map":
        entries = value.items() if isinstance(value, dict) else value
        return {
            normalize_value(key, column_type.key): normalize_value(item, column_type.value)
            for key, item in entries
        }
    return value


class ColumnarDecoder:
    """
    Decoder for Parquet data files written by ColumnarEncoder.

    Files without tablestore type metadata are decoded using types derived
    from their Arrow schema.
    """

    def open(self, data: bytes) -> pq.ParquetFile:
        try:
            return pq.ParquetFile(pa.BufferReader(data))
        except (pa.ArrowException, OSError) as e:
            raise DecodingError(f"Cannot open columnar file: {e}") from e

    def read_schema(self, data: bytes) -> Schema:
        """
        Read the logical schema of a data file without decoding rows.

        Raises:
            DecodingError: If the file is corrupt or uses unsupported types
        """
        try:
            return Schema.from_arrow(self.open(data).schema_arrow)
        except SchemaDefinitionError as e:
            raise DecodingError(f"Unsupported column type in file: {e}") from e

    def decode(
        self,
        data: bytes,
        columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Decode a Parquet data file into records.

        Args:
            data: File bytes
            columns: Optional column projection; names missing from the file
                are ignored

        Returns:
            List of record dictionaries in file row order

        Raises:
            DecodingError: If the file is corrupt or uses unsupported types

        Example:
            >>> records = ColumnarDecoder().decode(encoded.data)
        """
        parquet_file = self.open(data)

        selected = None
        if columns is not None:
            available = set(parquet_file.schema_arrow.names)
            selected = [name for name in columns if name in available]

        try:
            table = parquet_file.read(columns=selected)
        except (pa.ArrowException, OSError) as e:
            raise DecodingError(f"Cannot read columnar file: {e}") from e

        rows: List[Dict[str, Any]] = [{} for _ in range(table.num_rows)]

        for arrow_field, column in zip(table.schema, table.columns):
            try:
                column_field = Field.from_arrow(arrow_field)
            except SchemaDefinitionError as e:
                raise DecodingError(
                    f"Unsupported type for column '{arrow_field.name}': {e}"
                ) from e

            values = column.to_pylist()
            for row, value in zip(rows, values):
                row[column_field.name] = normalize_value(value, column_field.type)

        logger.debug(f"Decoded {len(rows)} rows with {table.num_columns} columns")
        return rows


def decode_file(data: bytes, columns: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
    """
    Convenience function to decode a data file.

    Example:
        >>> records = decode_file(blob_bytes)
    """
    return ColumnarDecoder().decode(data, columns=columns)
