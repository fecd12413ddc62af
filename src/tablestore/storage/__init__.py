"""
Storage adapters for table data and log files.
"""

from tablestore.storage.blob_store import (
    BlobStore,
    InMemoryBlobStore,
    LocalBlobStore,
    PathItem,
    join_path,
    normalize_path,
)

__all__ = [
    "BlobStore",
    "InMemoryBlobStore",
    "LocalBlobStore",
    "PathItem",
    "join_path",
    "normalize_path",
]
