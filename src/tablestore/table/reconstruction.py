"""
Table reconstruction by log replay.

Replays log entries from version 0 up to the requested version, accumulating
the protocol, metadata and live file set, then decodes every live file and
concatenates the records in log order.

Reads favour availability over completeness: an unreadable log entry is
skipped with a warning, and a data file that cannot be fetched or decoded is
logged and its rows are left out of the result.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tablestore.columnar.decoder import ColumnarDecoder
from tablestore.errors import (
    BlobIOError,
    DecodingError,
    LogCorruptionError,
    SchemaDefinitionError,
    VersionNotFoundError,
)
from tablestore.logger import get_default_logger
from tablestore.schemas import Schema
from tablestore.storage.blob_store import join_path
from tablestore.transaction_log.actions import Action, AddFile, CommitInfo, Metadata, Protocol
from tablestore.transaction_log.log import TransactionLog


logger = get_default_logger()


@dataclass
class TableSnapshot:
    """
    State of a table at one version, as derived from its log.

    Attributes:
        table_path: Table root
        version: Version the snapshot reflects (-1 for a table with no commits)
        protocol: Protocol action, if any entry declared one
        metadata: Latest metadata action, if any
        files: Live data files in commit order (one entry per add action)
        commits: (version, commitInfo) pairs in commit order
        skipped_versions: Log entries that could not be read
        failed_files: Data files whose rows were dropped during the last read
    """

    table_path: str
    version: int = -1
    protocol: Optional[Protocol] = None
    metadata: Optional[Metadata] = None
    files: List[AddFile] = field(default_factory=list)
    commits: List[Tuple[int, CommitInfo]] = field(default_factory=list)
    skipped_versions: List[int] = field(default_factory=list)
    failed_files: List[str] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.version >= 0

    @property
    def schema(self) -> Optional[Schema]:
        if self.metadata is None:
            return None
        try:
            return self.metadata.schema
        except SchemaDefinitionError as e:
            logger.warning(f"Ignoring invalid schema in metadata of {self.table_path}: {e}")
            return None

    @property
    def file_paths(self) -> List[str]:
        return [add.path for add in self.files]

    @property
    def num_records(self) -> Optional[int]:
        """Total row count from add statistics, or None if any file lacks them."""
        counts = [add.num_records for add in self.files]
        if any(count is None for count in counts):
            return None
        return sum(counts)

    def apply(self, version: int, actions: List[Action]) -> None:
        """Fold one log entry's actions into the snapshot."""
        for action in actions:
            if isinstance(action, AddFile):
                # Every add is a distinct file, so no de-duplication
                self.files.append(action)
            elif isinstance(action, Metadata):
                self.metadata = action
            elif isinstance(action, Protocol):
                self.protocol = action
            elif isinstance(action, CommitInfo):
                self.commits.append((version, action))
            else:
                logger.debug(f"Ignoring '{action.key}' action in version {version} of {self.table_path}")


class TableReconstructor:
    """
    Rebuilds table state and contents from the transaction log.
    """

    def __init__(self, log: TransactionLog, decoder: Optional[ColumnarDecoder] = None):
        """
        Initialize reconstructor.

        Args:
            log: Transaction log of the table
            decoder: Columnar decoder (default: a new ColumnarDecoder)
        """
        self.log = log
        self.store = log.store
        self.table_path = log.table_path
        self.decoder = decoder or ColumnarDecoder()

    async def load_snapshot(self, version: Optional[int] = None) -> TableSnapshot:
        """
        Replay the log up to ``version`` (default: latest).

        Returns:
            TableSnapshot; an empty snapshot with version -1 if the table has no log

        Raises:
            VersionNotFoundError: If ``version`` is beyond the latest commit
        """
        latest = await self.log.get_latest_version()
        if latest == -1:
            return TableSnapshot(self.table_path)

        target = latest if version is None else version
        if target < 0 or target > latest:
            raise VersionNotFoundError(self.table_path, target, latest)

        snapshot = TableSnapshot(self.table_path, version=target)
        for current in range(target + 1):
            try:
                actions = await self.log.read_entry(current)
            except (BlobIOError, LogCorruptionError) as e:
                logger.warning(f"Skipping unreadable log entry {current} of {self.table_path}: {e}")
                snapshot.skipped_versions.append(current)
                continue
            snapshot.apply(current, actions)

        logger.debug(
            f"Replayed {self.table_path} to version {target}: "
            f"{len(snapshot.files)} live files, {len(snapshot.skipped_versions)} skipped entries"
        )
        return snapshot

    async def read_file(
        self,
        add: AddFile,
        columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch and decode one live data file.

        Raises:
            BlobIOError: If the file cannot be fetched
            DecodingError: If the file cannot be decoded
        """
        data = await self.store.read_bytes(join_path(self.table_path, add.path))
        return self.decoder.decode(data, columns=columns)

    async def read_snapshot(
        self,
        snapshot: TableSnapshot,
        columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Decode every live file of a snapshot and concatenate the records.

        Files that fail are recorded in ``snapshot.failed_files`` and their
        rows are dropped.
        """
        records: List[Dict[str, Any]] = []
        snapshot.failed_files = []

        for add in snapshot.files:
            try:
                rows = await self.read_file(add, columns=columns)
            except (BlobIOError, DecodingError) as e:
                logger.error(f"Dropping rows of data file {add.path} in {self.table_path}: {e}")
                snapshot.failed_files.append(add.path)
                continue
            records.extend(rows)

        logger.info(
            f"Read {len(records)} records from {len(snapshot.files) - len(snapshot.failed_files)} "
            f"files of {self.table_path} at version {snapshot.version}"
        )
        return records

    async def read_records(
        self,
        version: Optional[int] = None,
        columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Reconstruct the table's logical content.

        Returns:
            Records of all live files in log order; [] for a table with no log
        """
        snapshot = await self.load_snapshot(version)
        if not snapshot.exists:
            return []
        return await self.read_snapshot(snapshot, columns=columns)
