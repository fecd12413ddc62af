"""
Table facade: create, write, read and inspect one table.

A write runs as a single sequential pipeline:

    validate batch -> infer schema -> resolve against table schema
    -> encode Parquet -> upload data file -> commit log entry

The data file is fully written and flushed before the log entry referencing
it is created, so a reader never sees an add action for a missing file.
Validation failures surface before any storage I/O.
"""

import asyncio
import time
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Union

import pandas as pd

from tablestore.columnar.encoder import ColumnarEncoder, new_data_file_name
from tablestore.config import Config
from tablestore.errors import (
    BlobIOError,
    CommitTimeoutError,
    LogCorruptionError,
    OperationTimeoutError,
    SchemaDefinitionError,
    TableExistsError,
    TableNotFoundError,
    VersionConflictError,
)
from tablestore.ingestion.inference import infer_schema
from tablestore.ingestion.validator import validate_batch
from tablestore.logger import get_default_logger
from tablestore.schemas import Field, Schema, parse_schema_definition, resolve_write_schema
from tablestore.storage.blob_store import BlobStore, join_path
from tablestore.table.reconstruction import TableReconstructor, TableSnapshot
from tablestore.transaction_log.actions import AddFile, CommitInfo, Metadata, Protocol
from tablestore.transaction_log.log import TransactionLog


logger = get_default_logger()


SchemaLike = Union[Schema, Sequence[Union[Field, Dict[str, Any]]]]


class Table:
    """
    One table in a blob store.

    Example:
        >>> table = Table(InMemoryBlobStore(), "tables/users")
        >>> await table.create([{"name": "id", "type": "long"}])
        {'version': 0}
        >>> await table.write_batch([{"id": 1}])
        {'version': 1, 'file': 'part-...parquet', 'row_count': 1}
    """

    def __init__(self, store: BlobStore, path: str, config: Optional[Config] = None):
        """
        Initialize table.

        Args:
            store: Blob store holding the table
            path: Table root, relative to the store
            config: Configuration (default: loaded from ./tablestore.yaml or defaults)
        """
        self.store = store
        self.path = path
        self.config = config or Config()

        self.log = TransactionLog(
            store,
            path,
            log_dir_name=self.config.log_dir_name,
            version_width=self.config.version_width,
        )
        self.reconstructor = TableReconstructor(self.log)
        self.encoder = ColumnarEncoder(compression=self.config.compression)

    def __repr__(self) -> str:
        return f"Table(path={self.path!r})"

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------

    def _resolve_timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.config.timeout_seconds if timeout is None else timeout

    async def _within(
        self,
        operation: str,
        awaitable: Awaitable[Any],
        deadline: Optional[float],
        timeout: Optional[float],
    ) -> Any:
        """Await one stage, bounded by what remains of the operation deadline."""
        if deadline is None:
            return await awaitable

        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationTimeoutError(operation, timeout)

        try:
            return await asyncio.wait_for(awaitable, remaining)
        except OperationTimeoutError:
            raise
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(operation, timeout) from e

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def get_latest_version(self) -> int:
        """Latest committed version, or -1 if the table has no log."""
        return await self.log.get_latest_version()

    async def exists(self) -> bool:
        return await self.get_latest_version() >= 0

    async def snapshot(self, version: Optional[int] = None) -> TableSnapshot:
        """Replay the log up to ``version`` (default: latest)."""
        return await self.reconstructor.load_snapshot(version)

    async def history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Commit history, newest first.

        Each entry holds the version and that version's commitInfo fields.
        Versions whose entry cannot be read are skipped with a warning.

        Args:
            limit: Maximum number of entries to return

        Returns:
            List of history entries
        """
        versions = sorted(await self.log.list_versions(), reverse=True)
        if limit is not None:
            versions = versions[:limit]

        history = []
        for version in versions:
            try:
                actions = await self.log.read_entry(version)
            except (BlobIOError, LogCorruptionError) as e:
                logger.warning(f"Skipping unreadable log entry {version} of {self.path}: {e}")
                continue

            entry: Dict[str, Any] = {
                "version": version,
                "timestamp": None,
                "operation": None,
                "operationParameters": {},
                "engineInfo": None,
            }
            for action in actions:
                if isinstance(action, CommitInfo):
                    entry.update(
                        timestamp=action.timestamp,
                        operation=action.operation,
                        operationParameters=action.operation_parameters,
                        engineInfo=action.engine_info,
                    )
                    break
            history.append(entry)

        return history

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _creation_actions(
        self,
        schema: Schema,
        partition_columns: Optional[Sequence[str]],
        description: Optional[str],
        configuration: Optional[Dict[str, str]],
        name: Optional[str],
    ) -> list:
        partition_columns = list(partition_columns or [])
        unknown = [column for column in partition_columns if schema.field(column) is None]
        if unknown:
            raise SchemaDefinitionError(
                f"Partition columns {unknown} are not in the table schema: {', '.join(schema.names)}"
            )

        return [
            CommitInfo(
                operation="CREATE TABLE",
                operation_parameters={
                    "partitionBy": partition_columns,
                    "description": description,
                },
                engine_info=self.config.writer["engine_info"],
            ),
            Protocol(),
            Metadata(
                schema_string=schema.to_json_string(),
                name=name,
                description=description,
                partition_columns=partition_columns,
                configuration=dict(configuration or {}),
            ),
        ]

    async def create(
        self,
        schema: SchemaLike,
        partition_columns: Optional[Sequence[str]] = None,
        description: Optional[str] = None,
        configuration: Optional[Dict[str, str]] = None,
        name: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, int]:
        """
        Create the table by writing log version 0.

        Args:
            schema: Schema, or a list of field definitions
                ({"name", "type", "nullable", "elementType", "fields", ...})
            partition_columns: Partition column names, recorded in the metadata
            description: Optional table description
            configuration: Optional table properties
            name: Optional table name
            timeout: Seconds before giving up (default: operations.timeout_seconds)

        Returns:
            {"version": 0}

        Raises:
            SchemaDefinitionError: If the schema or partition columns are invalid
            TableExistsError: If the table already has log entries
        """
        table_schema = parse_schema_definition(schema)
        actions = self._creation_actions(table_schema, partition_columns, description, configuration, name)

        timeout = self._resolve_timeout(timeout)
        deadline = self._deadline(timeout)

        latest = await self._within("create", self.log.get_latest_version(), deadline, timeout)
        if latest >= 0:
            raise TableExistsError(self.path, latest)

        try:
            await self._within("create", self.log.write_entry(0, actions), deadline, timeout)
        except VersionConflictError as e:
            raise TableExistsError(self.path, 0) from e
        except OperationTimeoutError as e:
            raise CommitTimeoutError(self.path, 0, timeout) from e

        logger.info(f"Created table {self.path} with columns: {', '.join(table_schema.names)}")
        return {"version": 0}

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def _load_or_create(
        self,
        records: Sequence[Dict[str, Any]],
        batch_schema: Schema,
    ) -> TableSnapshot:
        """
        Load the current snapshot, creating the table first if allowed.

        The batch is built in memory against its own schema before version 0
        is committed, so a batch that cannot be encoded never creates a table.
        """
        snapshot = await self.reconstructor.load_snapshot()
        if snapshot.exists:
            return snapshot

        if not self.config.writer["auto_create"]:
            raise TableNotFoundError(self.path)

        self.encoder.build_table(records, batch_schema)

        try:
            await self._auto_create(batch_schema)
        except TableExistsError:
            logger.debug(f"Table {self.path} was created concurrently; using existing metadata")
        return await self.reconstructor.load_snapshot()

    async def _auto_create(self, batch_schema: Schema) -> None:
        actions = self._creation_actions(batch_schema, None, None, None, None)
        try:
            await self.log.write_entry(0, actions)
        except VersionConflictError as e:
            raise TableExistsError(self.path, 0) from e
        logger.info(f"Auto-created table {self.path} from batch schema: {', '.join(batch_schema.names)}")

    async def write_batch(
        self,
        records: Sequence[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Append a batch of records as one new data file and one log entry.

        Args:
            records: Non-empty batch of records sharing one set of field names
            timeout: Seconds before giving up (default: operations.timeout_seconds)

        Returns:
            {"version": committed version, "file": data file name, "row_count": rows}

        Raises:
            EmptyBatchError: If the batch is empty
            SchemaMismatchError: If records disagree on field names, or the batch
                has columns the table does not declare
            EncodingError: If a value cannot be encoded with its column type
            TableNotFoundError: If the table does not exist and auto_create is off
            VersionConflictError: If another writer committed the same version first
            OperationTimeoutError: If the write times out before the commit
            CommitTimeoutError: If the commit itself times out (outcome ambiguous)
        """
        validate_batch(records)
        batch_schema = infer_schema(records[0])

        timeout = self._resolve_timeout(timeout)
        deadline = self._deadline(timeout)

        snapshot = await self._within("write", self._load_or_create(records, batch_schema), deadline, timeout)

        table_schema = snapshot.schema
        if table_schema is None:
            schema = batch_schema
        else:
            schema = resolve_write_schema(
                table_schema,
                batch_schema,
                enforce_table_schema=self.config.writer["enforce_table_schema"],
            )

        encoded = self.encoder.encode(records, schema)

        file_name = new_data_file_name()
        await self._within("write", self.store.upload(join_path(self.path, file_name), encoded.data), deadline, timeout)
        logger.debug(f"Uploaded data file {file_name} ({encoded.size_bytes} bytes) to {self.path}")

        actions = [
            CommitInfo(
                operation="WRITE",
                operation_parameters={"mode": "Append"},
                engine_info=self.config.writer["engine_info"],
            ),
            AddFile(
                path=file_name,
                size=encoded.size_bytes,
                modification_time=int(time.time() * 1000),
                stats=encoded.stats_json(),
            ),
        ]

        version = await self._within("write", self.log.get_latest_version(), deadline, timeout) + 1
        try:
            await self._within("commit", self.log.write_entry(version, actions), deadline, timeout)
        except OperationTimeoutError as e:
            raise CommitTimeoutError(self.path, version, timeout) from e

        logger.info(f"Committed version {version} of {self.path}: {encoded.row_count} rows in {file_name}")
        return {"version": version, "file": file_name, "row_count": encoded.row_count}

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def read(
        self,
        version: Optional[int] = None,
        columns: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Reconstruct the table's records.

        Args:
            version: Version to read (default: latest)
            columns: Optional column projection
            timeout: Seconds before giving up (default: operations.timeout_seconds)

        Returns:
            Records in log order; [] if the table has no log

        Raises:
            VersionNotFoundError: If ``version`` is beyond the latest commit
        """
        timeout = self._resolve_timeout(timeout)
        return await self._within(
            "read",
            self.reconstructor.read_records(version=version, columns=columns),
            self._deadline(timeout),
            timeout,
        )

    async def read_dataframe(
        self,
        version: Optional[int] = None,
        columns: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ) -> pd.DataFrame:
        """Reconstruct the table's records as a DataFrame."""
        records = await self.read(version=version, columns=columns, timeout=timeout)
        if not records:
            return pd.DataFrame(columns=list(columns or []))
        return pd.DataFrame.from_records(records)


async def create_table(
    store: BlobStore,
    path: str,
    schema: SchemaLike,
    partition_columns: Optional[Sequence[str]] = None,
    description: Optional[str] = None,
    config: Optional[Config] = None,
) -> Dict[str, int]:
    """
    Convenience function to create a table.

    Example:
        >>> await create_table(store, "tables/users", [
        ...     {"name": "id", "type": "long"},
        ...     {"name": "name", "type": "string"},
        ... ])
        {'version': 0}
    """
    return await Table(store, path, config).create(
        schema,
        partition_columns=partition_columns,
        description=description,
    )


async def write_batch(
    store: BlobStore,
    path: str,
    records: Sequence[Dict[str, Any]],
    config: Optional[Config] = None,
) -> Dict[str, Any]:
    """Convenience function to append a batch of records to a table."""
    return await Table(store, path, config).write_batch(records)


async def read_table(
    store: BlobStore,
    path: str,
    version: Optional[int] = None,
    config: Optional[Config] = None,
) -> List[Dict[str, Any]]:
    """Convenience function to read a table's records ([] for a missing table)."""
    return await Table(store, path, config).read(version=version)


async def read_table_dataframe(
    store: BlobStore,
    path: str,
    version: Optional[int] = None,
    config: Optional[Config] = None,
) -> pd.DataFrame:
    """Convenience function to read a table's records as a DataFrame."""
    return await Table(store, path, config).read_dataframe(version=version)


async def get_latest_version(
    store: BlobStore,
    path: str,
    config: Optional[Config] = None,
) -> int:
    """Convenience function: latest committed version of a table, or -1."""
    return await Table(store, path, config).get_latest_version()
