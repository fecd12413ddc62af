"""
Transaction log management.

The log lives under ``<table>/<log_dir_name>/`` as one file per version,
named by the zero-padded version number so that lexicographic order equals
numeric order. A commit computes the next version from the files already
present and creates the new entry with create-only semantics: if another
writer created the same version first, the commit fails with
VersionConflictError instead of overwriting it.
"""

from typing import List, Optional

from tablestore.errors import BlobExistsError, BlobNotFoundError, VersionConflictError
from tablestore.logger import get_default_logger
from tablestore.storage.blob_store import BlobStore, join_path
from tablestore.transaction_log.actions import Action, parse_actions, serialize_actions


logger = get_default_logger()


DEFAULT_LOG_DIR_NAME = "_log"
DEFAULT_VERSION_WIDTH = 20
LOG_ENTRY_SUFFIX = ".json"


def parse_version(file_name: str) -> Optional[int]:
    """
    Extract the version number from a log entry file name.

    Returns:
        The version, or None if the name is not a log entry name

    Example:
        >>> parse_version("00000000000000000003.json")
        3
        >>> parse_version("_last_checkpoint") is None
        True
    """
    if not file_name.endswith(LOG_ENTRY_SUFFIX):
        return None
    stem = file_name[: -len(LOG_ENTRY_SUFFIX)]
    if not stem or not stem.isdigit() or not stem.isascii():
        return None
    return int(stem)


def format_version(version: int, width: int = DEFAULT_VERSION_WIDTH) -> str:
    """
    Format a version as a log entry file name.

    Example:
        >>> format_version(1)
        '00000000000000000001.json'
    """
    if version < 0:
        raise ValueError(f"Log versions are non-negative, got {version}")
    return f"{version:0{width}d}{LOG_ENTRY_SUFFIX}"


class TransactionLog:
    """
    Versioned, append-only log of a single table.
    """

    def __init__(
        self,
        store: BlobStore,
        table_path: str,
        log_dir_name: str = DEFAULT_LOG_DIR_NAME,
        version_width: int = DEFAULT_VERSION_WIDTH,
    ):
        """
        Initialize transaction log.

        Args:
            store: Blob store holding the table
            table_path: Table root, relative to the store
            log_dir_name: Name of the log directory under the table root
            version_width: Zero-padded width of log entry file names
        """
        self.store = store
        self.table_path = table_path
        self.log_dir_name = log_dir_name
        self.version_width = version_width

    @property
    def log_path(self) -> str:
        return join_path(self.table_path, self.log_dir_name)

    def entry_path(self, version: int) -> str:
        return join_path(self.log_path, format_version(version, self.version_width))

    async def list_versions(self) -> List[int]:
        """
        List the versions present in the log, ascending.

        Names that are not log entries are skipped.
        """
        try:
            items = await self.store.list_paths(self.log_path)
        except BlobNotFoundError:
            return []

        versions = []
        for item in items:
            if item.is_directory:
                continue
            version = parse_version(item.basename)
            if version is None:
                logger.debug(f"Skipping non-entry file in log: {item.name}")
                continue
            versions.append(version)

        return sorted(versions)

    async def get_latest_version(self) -> int:
        """
        Get the highest committed version.

        Returns:
            Latest version, or -1 if the table has no log entries
        """
        versions = await self.list_versions()
        return versions[-1] if versions else -1

    async def read_entry(self, version: int) -> List[Action]:
        """
        Read and parse one log entry.

        Raises:
            BlobNotFoundError: If the entry does not exist
            LogCorruptionError: If the entry cannot be parsed
        """
        content = await self.store.read_bytes(self.entry_path(version))
        return parse_actions(content, version=version)

    async def write_entry(self, version: int, actions: List[Action]) -> None:
        """
        Create the entry for an explicit version.

        Raises:
            VersionConflictError: If the entry already exists
        """
        if not actions:
            raise ValueError("A log entry must contain at least one action")

        content = serialize_actions(actions)
        try:
            await self.store.upload(self.entry_path(version), content)
        except BlobExistsError as e:
            logger.warning(f"Version {version} of {self.table_path} already exists; commit lost the race")
            raise VersionConflictError(self.table_path, version) from e

    async def commit(self, actions: List[Action]) -> int:
        """
        Append a new log entry at the next version.

        Any data file referenced by an add action must already be durably
        written before this is called.

        Args:
            actions: Actions to record in the entry

        Returns:
            The committed version

        Raises:
            VersionConflictError: If another writer committed the same version first

        Example:
            >>> version = await log.commit([CommitInfo("WRITE"), add_action])
        """
        next_version = await self.get_latest_version() + 1
        await self.write_entry(next_version, actions)
        logger.info(
            f"Committed version {next_version} of {self.table_path} "
            f"({len(actions)} action{'s' if len(actions) != 1 else ''})"
        )
        return next_version


async def get_latest_version(
    store: BlobStore,
    table_path: str,
    log_dir_name: str = DEFAULT_LOG_DIR_NAME,
) -> int:
    """Convenience function: latest committed version of a table, or -1."""
    return await TransactionLog(store, table_path, log_dir_name).get_latest_version()


async def commit(
    store: BlobStore,
    table_path: str,
    actions: List[Action],
    log_dir_name: str = DEFAULT_LOG_DIR_NAME,
) -> int:
    """Convenience function: append actions to a table's log at the next version."""
    return await TransactionLog(store, table_path, log_dir_name).commit(actions)
