"""
Columnar encoding of record batches into Parquet data files.

A batch is converted column by column into Arrow arrays, assembled into a
table and written as Parquet into an in-memory buffer. Nothing touches the
blob store until the whole file has been encoded, so a coercion failure can
never leave a partially written data file behind.
"""

import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Sequence

import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.parquet as pq

from tablestore.columnar.temporal import format_timestamp, parse_date, to_epoch_millis
from tablestore.errors import EncodingError
from tablestore.logger import get_default_logger
from tablestore.schemas import ColumnType, Schema


logger = get_default_logger()


INT32_RANGE = (-(2 ** 31), 2 ** 31 - 1)
INT64_RANGE = (-(2 ** 63), 2 ** 63 - 1)

# Column kinds that get min/max statistics
ORDERABLE_KINDS = {"string", "long", "integer", "double", "float", "timestamp", "date", "decimal"}


@dataclass
class EncodedFile:
    """An encoded, not yet uploaded, columnar data file."""

    data: bytes
    row_count: int
    schema: Schema
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def stats_json(self) -> str:
        """Serialize statistics the way add actions store them."""
        return json.dumps(self.stats, separators=(",", ":"))


def _check_range(value: int, bounds, kind: str) -> int:
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f"value {value} out of range for {kind}")
    return value


def coerce_value(value: Any, column_type: ColumnType, path: str) -> Any:
    """
    Convert a record value into the Python representation Arrow expects for
    its column type.

    Args:
        value: Record value
        column_type: Declared or inferred column type
        path: Dotted field path, for error messages

    Returns:
        Converted value (timestamps become epoch milliseconds)

    Raises:
        TypeError: If the value's type does not match the column type
        ValueError: If the value is of the right type but cannot be represented
    """
    if value is None:
        return None

    kind = column_type.kind

    if kind == "string":
        if isinstance(value, str):
            return value
    elif kind in ("long", "integer"):
        if isinstance(value, int) and not isinstance(value, bool):
            return _check_range(value, INT64_RANGE if kind == "long" else INT32_RANGE, kind)
    elif kind in ("double", "float"):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif kind == "boolean":
        if isinstance(value, bool):
            return value
    elif kind == "timestamp":
        if isinstance(value, (str, datetime, date, int)) and not isinstance(value, bool):
            return to_epoch_millis(value)
    elif kind == "date":
        if isinstance(value, (str, date)):
            return parse_date(value)
    elif kind == "binary":
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
    elif kind == "decimal":
        if isinstance(value, (Decimal, int, float, str)) and not isinstance(value, bool):
            try:
                number = Decimal(str(value))
                return number.quantize(Decimal(1).scaleb(-column_type.scale))
            except InvalidOperation as e:
                raise ValueError(f"invalid decimal value {value!r}") from e
    elif kind == "dynamic":
        return json.dumps(value, default=str)
    elif kind == "array":
        if isinstance(value, (list, tuple)):
            return [
                coerce_value(item, column_type.element, f"{path}[{i}]")
                for i, item in enumerate(value)
            ]
    elif kind == "struct":
        if isinstance(value, dict):
            names = [f.name for f in column_type.fields]
            extra = sorted(str(k) for k in value if k not in names)
            if extra:
                raise ValueError(f"unexpected nested fields {extra} at {path}; expected {names}")
            result = {}
            for child in column_type.fields:
                child_value = value.get(child.name)
                if child_value is None and not child.nullable:
                    raise ValueError(f"null value for non-nullable field {path}.{child.name}")
                result[child.name] = coerce_value(child_value, child.type, f"{path}.{child.name}")
            return result
    elif kind == "map":
        if isinstance(value, dict):
            entries = []
            for key, item in value.items():
                if key is None:
                    raise ValueError(f"null map key at {path}")
                entries.append((
                    coerce_value(key, column_type.key, f"{path}.<key>"),
                    coerce_value(item, column_type.value, f"{path}[{key!r}]"),
                ))
            return entries
    else:
        raise TypeError(f"unknown column kind {kind} at {path}")

    raise TypeError(f"expected {column_type} at {path}, got {type(value).__name__}")


class ColumnarEncoder:
    """
    Encoder for record batches with schema enforcement.
    """

    def __init__(self, compression: str = "snappy"):
        """
        Initialize columnar encoder.

        Args:
            compression: Compression codec ("snappy", "gzip", "brotli", "zstd", "lz4", "none")
        """
        self.compression = compression

    def build_table(self, records: Sequence[Dict[str, Any]], schema: Schema) -> pa.Table:
        """
        Build an Arrow table with one column per schema field.

        Records missing a field contribute a null for it.

        Raises:
            EncodingError: If any value cannot be coerced to its column type
        """
        if len(schema) == 0:
            raise EncodingError("Cannot encode records without any fields")

        arrays = []
        for column in schema:
            values = []
            for row_index, record in enumerate(records):
                raw = record.get(column.name)
                if raw is None and not column.nullable:
                    raise EncodingError(
                        "Null value for non-nullable column",
                        field=column.name,
                        row_index=row_index,
                    )
                try:
                    values.append(coerce_value(raw, column.type, column.name))
                except (TypeError, ValueError, OverflowError) as e:
                    raise EncodingError(
                        f"Cannot coerce value to {column.type}: {e}",
                        field=column.name,
                        row_index=row_index,
                    ) from e

            try:
                arrays.append(pa.array(values, type=column.type.to_arrow()))
            except (pa.ArrowException, TypeError, ValueError, OverflowError) as e:
                raise EncodingError(
                    f"Cannot build {column.type} column: {e}",
                    field=column.name,
                ) from e

        return pa.Table.from_arrays(arrays, schema=schema.to_arrow())

    def compute_stats(self, table: pa.Table, schema: Schema) -> Dict[str, Any]:
        """
        Compute per-file statistics: row count, null counts and min/max values.

        Example:
            >>> stats = encoder.compute_stats(table, schema)
            >>> stats["numRecords"]
            2
        """
        stats: Dict[str, Any] = {
            "numRecords": table.num_rows,
            "minValues": {},
            "maxValues": {},
            "nullCount": {},
        }

        for column, array in zip(schema, table.columns):
            stats["nullCount"][column.name] = array.null_count

            if column.type.kind not in ORDERABLE_KINDS or array.null_count == len(array):
                continue

            try:
                result = pc.min_max(array)
            except pa.ArrowNotImplementedError:
                logger.debug(f"No min/max kernel for column {column.name} ({column.type})")
                continue

            stats["minValues"][column.name] = _stat_value(result["min"].as_py())
            stats["maxValues"][column.name] = _stat_value(result["max"].as_py())

        return stats

    def encode(self, records: Sequence[Dict[str, Any]], schema: Schema) -> EncodedFile:
        """
        Encode a record batch into Parquet bytes.

        Args:
            records: Validated record batch
            schema: Schema to encode with

        Returns:
            EncodedFile with bytes, row count and statistics

        Raises:
            EncodingError: If a value cannot be coerced or the file cannot be written

        Example:
            >>> encoder = ColumnarEncoder()
            >>> encoded = encoder.encode([{"id": 1}], infer_schema({"id": 1}))
            >>> encoded.row_count
            1
        """
        table = self.build_table(records, schema)

        sink = pa.BufferOutputStream()
        try:
            pq.write_table(
                table,
                sink,
                compression=None if self.compression == "none" else self.compression,
                use_dictionary=True,  # Enable dictionary encoding for string columns
                write_statistics=True,
            )
        except (pa.ArrowException, OSError) as e:
            raise EncodingError(f"Failed to write Parquet data: {e}") from e

        data = sink.getvalue().to_pybytes()
        encoded = EncodedFile(
            data=data,
            row_count=table.num_rows,
            schema=schema,
            stats=self.compute_stats(table, schema),
        )

        logger.debug(
            f"Encoded {encoded.row_count} rows into {encoded.size_bytes / 1024:.1f} KB "
            f"({self.compression} compression)"
        )
        return encoded


def _stat_value(value: Any) -> Any:
    """Make a statistics value JSON-serializable."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def encode_batch(
    records: Sequence[Dict[str, Any]],
    schema: Schema,
    compression: str = "snappy",
) -> EncodedFile:
    """
    Convenience function to encode a record batch.

    Example:
        >>> encoded = encode_batch(records, schema)
    """
    return ColumnarEncoder(compression=compression).encode(records, schema)


def new_data_file_name(now_millis: Optional[int] = None) -> str:
    """
    Generate a unique data file name.

    Example:
        >>> new_data_file_name(1700000000000)[:19]
        'part-1700000000000-'
    """
    if now_millis is None:
        now_millis = int(time.time() * 1000)
    return f"part-{now_millis}-{uuid.uuid4()}.parquet"
