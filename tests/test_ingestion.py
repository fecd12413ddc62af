"""
Unit tests for ingestion modules: schema inference, batch validation, and
record file reading.
"""

import json
import pytest
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List

from tablestore.errors import EmptyBatchError, EncodingError, SchemaMismatchError
from tablestore.ingestion.inference import infer_schema, infer_type, is_timestamp_string
from tablestore.ingestion.reader import RecordReader, read_record_file
from tablestore.ingestion.validator import record_field_names, validate_batch
from tablestore.schemas import (
    BINARY,
    BOOLEAN,
    DATE,
    DOUBLE,
    DYNAMIC,
    LONG,
    STRING,
    TIMESTAMP,
    Field,
    array_of,
    struct_of,
)


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def sample_records() -> List[Dict]:
    """Create a list of consistent sample records."""
    return [
        {"id": 1, "name": "Alice", "active": True},
        {"id": 2, "name": "Bob", "active": False},
        {"id": 3, "name": "Carol", "active": True},
    ]


@pytest.fixture
def temp_jsonl_file(tmp_path, sample_records) -> Path:
    """Create a temporary JSONL file with sample records."""
    file_path = tmp_path / "batch.jsonl"

    with open(file_path, "w", encoding="utf-8") as f:
        for record in sample_records:
            f.write(json.dumps(record) + "\n")

    return file_path


@pytest.fixture
def temp_json_file(tmp_path, sample_records) -> Path:
    """Create a temporary JSON file with sample records."""
    file_path = tmp_path / "batch.json"

    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(sample_records, f)

    return file_path


# ============================================================================
# Inference Tests
# ============================================================================

class TestInferType:
    """Test per-value type inference."""

    def test_primitives(self):
        """Test primitive value types."""
        assert infer_type("hello") == STRING
        assert infer_type(42) == LONG
        assert infer_type(3.14) == DOUBLE
        assert infer_type(True) == BOOLEAN
        assert infer_type(None) == STRING
        assert infer_type(b"\x00\x01") == BINARY

    def test_bool_is_not_long(self):
        """Test booleans are not inferred as integers."""
        assert infer_type(False) == BOOLEAN

    def test_whole_float_stays_double(self):
        """Test a float with no fractional part is still a double."""
        assert infer_type(1.0) == DOUBLE

    def test_timestamp_strings(self):
        """Test ISO date-time strings infer as timestamps."""
        assert infer_type("2024-01-15T10:30:00Z") == TIMESTAMP
        assert infer_type("2024-01-15T10:30:00.123+02:00") == TIMESTAMP
        assert infer_type("2024-01-15") == STRING
        assert infer_type("released 2024-01-15T10:30:00") == STRING

    def test_datetime_objects(self):
        """Test datetime and date objects."""
        assert infer_type(datetime(2024, 1, 15, 10, 30)) == TIMESTAMP
        assert infer_type(date(2024, 1, 15)) == DATE

    def test_decimal(self):
        """Test decimal values keep their scale."""
        column_type = infer_type(Decimal("12.345"))
        assert column_type.kind == "decimal"
        assert column_type.scale == 3

    def test_arrays(self):
        """Test arrays take their element type from the first element."""
        assert infer_type(["a", "b"]) == array_of(STRING)
        assert infer_type([1, 2, 3]) == array_of(LONG)
        assert infer_type([]) == array_of(STRING)
        assert infer_type([[1], [2]]) == array_of(array_of(LONG))

    def test_structs(self):
        """Test objects infer as structs with nullable children."""
        column_type = infer_type({"city": "Springfield", "zip": 12345})
        assert column_type == struct_of([Field("city", STRING), Field("zip", LONG)])

    def test_empty_object_is_dynamic(self):
        """Test empty objects infer as dynamic JSON."""
        assert infer_type({}) == DYNAMIC

    def test_unsupported_value(self):
        """Test values with no column representation."""
        with pytest.raises(EncodingError):
            infer_type(object())

    def test_is_timestamp_string(self):
        """Test the timestamp pattern."""
        assert is_timestamp_string("2024-01-15T10:30:00")
        assert not is_timestamp_string("2024-01-15 10:30:00")

    def test_text_after_timestamp_is_string(self):
        """Test a string that only starts with a date-time stays a string."""
        assert not is_timestamp_string("2024-01-15T10:30:00 deploy finished")
        assert infer_type("2024-01-15T10:30:00 deploy finished") == STRING
        assert infer_type("2024-13-45T10:30:00Z") == STRING

    def test_any_fraction_width_is_timestamp(self):
        """Test fractional seconds that are neither 3 nor 6 digits."""
        assert infer_type("2024-01-15T10:30:00.5Z") == TIMESTAMP
        assert infer_type("2024-01-15T10:30:00.25+02:00") == TIMESTAMP
        assert infer_type("2024-01-15T10:30:00.123456789Z") == TIMESTAMP


class TestInferSchema:
    """Test schema inference from a sample record."""

    def test_keeps_key_order(self):
        """Test fields follow record key order and are nullable."""
        schema = infer_schema({"name": "Alice", "id": 1})

        assert schema.names == ["name", "id"]
        assert all(f.nullable for f in schema)

    def test_reports_field(self):
        """Test inference errors name the field."""
        with pytest.raises(EncodingError) as exc_info:
            infer_schema({"ok": 1, "bad": object()})

        assert exc_info.value.field == "bad"


# ============================================================================
# Validator Tests
# ============================================================================

class TestValidateBatch:
    """Test batch field-set validation."""

    def test_valid_batch(self, sample_records):
        """Test a consistent batch returns its sorted field names."""
        assert validate_batch(sample_records) == ["active", "id", "name"]

    def test_key_order_irrelevant(self):
        """Test records with the same names in a different order."""
        assert validate_batch([{"a": 1, "b": 2}, {"b": 3, "a": 4}]) == ["a", "b"]

    def test_empty_batch(self):
        """Test empty batches are rejected."""
        with pytest.raises(EmptyBatchError):
            validate_batch([])

    def test_mismatch_names_index_and_fields(self):
        """Test the error names the offending index and both field sets."""
        with pytest.raises(SchemaMismatchError) as exc_info:
            validate_batch([{"a": 1, "b": 2}, {"a": 1, "c": 3}])

        error = exc_info.value
        assert error.record_index == 1
        assert error.expected_fields == ["a", "b"]
        assert error.actual_fields == ["a", "c"]

        message = str(error)
        assert "index 1" in message
        assert "Expected fields: a, b" in message
        assert "Got fields: a, c" in message

    def test_missing_field_is_mismatch(self):
        """Test a record with fewer fields is a mismatch."""
        with pytest.raises(SchemaMismatchError) as exc_info:
            validate_batch([{"a": 1, "b": 2}, {"a": 1, "b": 2}, {"a": 1}])

        assert exc_info.value.record_index == 2

    def test_types_not_compared(self):
        """Test per-field type differences pass validation."""
        assert validate_batch([{"a": 1}, {"a": "one"}]) == ["a"]

    def test_non_mapping_record(self):
        """Test non-dict records are rejected."""
        with pytest.raises(SchemaMismatchError) as exc_info:
            validate_batch([{"a": 1}, ["a"]])

        assert exc_info.value.record_index == 1

    def test_error_to_dict(self):
        """Test the error serializes its details."""
        with pytest.raises(SchemaMismatchError) as exc_info:
            validate_batch([{"a": 1}, {"b": 1}])

        data = exc_info.value.to_dict()
        assert data["error_type"] == "SchemaMismatchError"
        assert data["record_index"] == 1

    def test_record_field_names(self):
        """Test names are sorted."""
        assert record_field_names({"b": 1, "a": 2}) == ["a", "b"]


# ============================================================================
# Reader Tests
# ============================================================================

class TestRecordReader:
    """Test RecordReader class."""

    def test_reader_init_jsonl(self, temp_jsonl_file):
        """Test reader initialization with JSONL file."""
        reader = RecordReader(temp_jsonl_file)
        assert reader.file_format == "jsonl"

    def test_reader_init_json(self, temp_json_file):
        """Test reader initialization with JSON file."""
        reader = RecordReader(temp_json_file)
        assert reader.file_format == "json"

    def test_reader_file_not_found(self, tmp_path):
        """Test reader with non-existent file."""
        with pytest.raises(FileNotFoundError):
            RecordReader(tmp_path / "missing.jsonl")

    def test_read_jsonl(self, temp_jsonl_file, sample_records):
        """Test reading a JSONL file."""
        assert RecordReader(temp_jsonl_file).read_records() == sample_records

    def test_read_json(self, temp_json_file, sample_records):
        """Test reading a JSON array file."""
        assert read_record_file(temp_json_file) == sample_records

    def test_read_json_records_key(self, tmp_path, sample_records):
        """Test reading a JSON object with a records array."""
        file_path = tmp_path / "wrapped.json"
        file_path.write_text(json.dumps({"records": sample_records}), encoding="utf-8")

        assert read_record_file(file_path) == sample_records

    def test_detect_jsonl_without_extension(self, tmp_path, sample_records):
        """Test one-object-per-line content is detected as JSONL."""
        file_path = tmp_path / "batch.txt"
        file_path.write_text("\n".join(json.dumps(r) for r in sample_records), encoding="utf-8")

        reader = RecordReader(file_path)
        assert reader.file_format == "jsonl"
        assert len(reader.read_records()) == 3

    def test_detect_pretty_printed_object(self, tmp_path):
        """Test an object spread over lines is read as one JSON document."""
        file_path = tmp_path / "batch.txt"
        file_path.write_text(json.dumps({"records": [{"a": 1}, {"a": 2}]}, indent=2), encoding="utf-8")

        reader = RecordReader(file_path)
        assert reader.file_format == "json"
        assert reader.read_records() == [{"a": 1}, {"a": 2}]

    def test_malformed_jsonl_line(self, tmp_path):
        """Test malformed JSONL lines fail the read."""
        file_path = tmp_path / "bad.jsonl"
        file_path.write_text('{"a": 1}\n{not json}\n', encoding="utf-8")

        with pytest.raises(ValueError, match="line 2"):
            RecordReader(file_path).read_records()

    def test_blank_lines_skipped(self, tmp_path):
        """Test blank JSONL lines are ignored."""
        file_path = tmp_path / "blank.jsonl"
        file_path.write_text('{"a": 1}\n\n{"a": 2}\n', encoding="utf-8")

        assert read_record_file(file_path) == [{"a": 1}, {"a": 2}]
