"""
Table operations: creation, batch writes and log-replay reads.
"""

from tablestore.table.reconstruction import TableReconstructor, TableSnapshot
from tablestore.table.table import (
    Table,
    create_table,
    get_latest_version,
    read_table,
    read_table_dataframe,
    write_batch,
)

__all__ = [
    "Table",
    "TableReconstructor",
    "TableSnapshot",
    "create_table",
    "write_batch",
    "read_table",
    "read_table_dataframe",
    "get_latest_version",
]
