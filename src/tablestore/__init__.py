"""
Versioned Columnar Table Store

Stores batches of loosely-typed records as immutable Parquet files and commits
each file through an append-only, strictly-ordered transaction log. Table
contents are reconstructed by replaying the log and decoding the live files.
"""

__version__ = "0.1.0"

from tablestore.errors import (
    BlobIOError,
    CommitTimeoutError,
    DecodingError,
    EmptyBatchError,
    EncodingError,
    LogCorruptionError,
    OperationTimeoutError,
    SchemaDefinitionError,
    SchemaMismatchError,
    TableExistsError,
    TableNotFoundError,
    TableStoreError,
    VersionConflictError,
    VersionNotFoundError,
)
from tablestore.storage.blob_store import BlobStore, InMemoryBlobStore, LocalBlobStore
from tablestore.table.table import (
    Table,
    create_table,
    get_latest_version,
    read_table,
    read_table_dataframe,
    write_batch,
)

__all__ = [
    "__version__",
    "Table",
    "create_table",
    "write_batch",
    "read_table",
    "read_table_dataframe",
    "get_latest_version",
    "BlobStore",
    "InMemoryBlobStore",
    "LocalBlobStore",
    "TableStoreError",
    "EmptyBatchError",
    "SchemaMismatchError",
    "SchemaDefinitionError",
    "EncodingError",
    "DecodingError",
    "VersionConflictError",
    "VersionNotFoundError",
    "LogCorruptionError",
    "BlobIOError",
    "TableNotFoundError",
    "TableExistsError",
    "OperationTimeoutError",
    "CommitTimeoutError",
]
