"""
Record ingestion: schema inference, batch validation and record file reading.
"""

from tablestore.ingestion.inference import infer_schema, infer_type, is_timestamp_string
from tablestore.ingestion.reader import RecordReader, read_record_file
from tablestore.ingestion.validator import record_field_names, validate_batch

__all__ = [
    "infer_type",
    "infer_schema",
    "is_timestamp_string",
    "validate_batch",
    "record_field_names",
    "RecordReader",
    "read_record_file",
]
