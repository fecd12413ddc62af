"""
Blob store adapters.

The table store talks to storage through the small asynchronous interface
defined by ``BlobStore``: create a file, append bytes at an offset, flush to
make the content visible, read a file, and list a directory. Paths are
relative to the store's root and use "/" separators.

Two implementations are provided: a local filesystem directory and an
in-memory store for tests and ephemeral tables.
"""

import asyncio
import os
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union

from tablestore.errors import BlobExistsError, BlobIOError, BlobNotFoundError
from tablestore.logger import get_default_logger


logger = get_default_logger()


@dataclass(frozen=True)
class PathItem:
    """One entry returned by ``BlobStore.list_paths``."""

    name: str
    is_directory: bool

    @property
    def basename(self) -> str:
        return posixpath.basename(self.name.rstrip("/"))


def normalize_path(path: str) -> str:
    """
    Normalize a store-relative path.

    Raises:
        BlobIOError: If the path is absolute or escapes the store root

    Example:
        >>> normalize_path("tables//orders/./_log/")
        'tables/orders/_log'
    """
    if path.startswith("/"):
        raise BlobIOError(f"Blob paths must be relative: {path}", path=path)
    normalized = posixpath.normpath(path) if path else ""
    if normalized in (".", ""):
        return ""
    if normalized == ".." or normalized.startswith("../"):
        raise BlobIOError(f"Blob path escapes the store root: {path}", path=path)
    return normalized


def join_path(*parts: str) -> str:
    """Join store-relative path segments, skipping empty ones."""
    return normalize_path("/".join(p.strip("/") for p in parts if p and p.strip("/")))


class BlobStore(ABC):
    """
    Abstract asynchronous blob store.

    ``create_file`` is create-only: it fails with BlobExistsError when the
    path already exists. Appended bytes become readable once ``flush`` has
    been called with the total file length.
    """

    @abstractmethod
    async def create_file(self, path: str) -> None:
        """Create an empty file, failing if it already exists."""

    @abstractmethod
    async def append_bytes(self, path: str, offset: int, data: bytes) -> None:
        """Stage ``data`` at ``offset`` of an existing file."""

    @abstractmethod
    async def flush(self, path: str, total_length: int) -> None:
        """Commit staged bytes; ``total_length`` must match the staged size."""

    @abstractmethod
    async def read_bytes(self, path: str) -> bytes:
        """Read a file's committed content."""

    @abstractmethod
    async def list_paths(self, prefix: str) -> List[PathItem]:
        """List the direct children of a directory."""

    async def exists(self, path: str) -> bool:
        """Check whether a file exists."""
        try:
            await self.read_bytes(path)
        except BlobNotFoundError:
            return False
        return True

    async def upload(self, path: str, data: bytes) -> int:
        """
        Write a complete new file: create, append, flush.

        Returns:
            Number of bytes written

        Raises:
            BlobExistsError: If the file already exists
            BlobIOError: On any other storage failure
        """
        await self.create_file(path)
        if data:
            await self.append_bytes(path, 0, data)
        await self.flush(path, len(data))
        return len(data)


class InMemoryBlobStore(BlobStore):
    """
    Dictionary-backed blob store.

    Every operation yields to the event loop once, so concurrent tasks
    interleave at the same points they would against real storage.
    """

    def __init__(self):
        self._committed: Dict[str, bytes] = {}
        self._staged: Dict[str, bytearray] = {}

    async def _suspend(self) -> None:
        await asyncio.sleep(0)

    def _require_file(self, path: str) -> None:
        if path not in self._staged:
            raise BlobNotFoundError(f"Blob not found: {path}", path=path)

    async def create_file(self, path: str) -> None:
        await self._suspend()
        path = normalize_path(path)
        if path in self._staged:
            raise BlobExistsError(f"Blob already exists: {path}", path=path)
        self._staged[path] = bytearray()

    async def append_bytes(self, path: str, offset: int, data: bytes) -> None:
        await self._suspend()
        path = normalize_path(path)
        self._require_file(path)
        staged = self._staged[path]
        if offset < 0 or offset > len(staged):
            raise BlobIOError(
                f"Invalid append offset {offset} for {path} (staged length {len(staged)})",
                path=path,
            )
        staged[offset:offset + len(data)] = data

    async def flush(self, path: str, total_length: int) -> None:
        await self._suspend()
        path = normalize_path(path)
        self._require_file(path)
        staged = self._staged[path]
        if total_length != len(staged):
            raise BlobIOError(
                f"Flush length {total_length} does not match staged length {len(staged)} for {path}",
                path=path,
            )
        self._committed[path] = bytes(staged)

    async def read_bytes(self, path: str) -> bytes:
        await self._suspend()
        path = normalize_path(path)
        if path not in self._committed:
            raise BlobNotFoundError(f"Blob not found: {path}", path=path)
        return self._committed[path]

    async def list_paths(self, prefix: str) -> List[PathItem]:
        await self._suspend()
        prefix = normalize_path(prefix)
        base = f"{prefix}/" if prefix else ""

        children: Dict[str, bool] = {}
        for path in self._staged:
            if not path.startswith(base):
                continue
            head, sep, _ = path[len(base):].partition("/")
            name = base + head
            children[name] = children.get(name, False) or bool(sep)

        if not children:
            raise BlobNotFoundError(f"Directory not found: {prefix}", path=prefix)

        return [PathItem(name, is_dir) for name, is_dir in sorted(children.items())]

    def delete(self, path: str) -> None:
        """Remove a file (test helper; the table store itself never deletes)."""
        path = normalize_path(path)
        self._staged.pop(path, None)
        self._committed.pop(path, None)


class LocalBlobStore(BlobStore):
    """
    Blob store backed by a local directory.

    Blocking filesystem calls run in worker threads via ``asyncio.to_thread``
    so they do not stall the event loop.
    """

    def __init__(self, root: Union[str, Path]):
        """
        Initialize local blob store.

        Args:
            root: Directory holding all blobs (created on first write)
        """
        self.root = Path(root)
        logger.debug(f"Initialized local blob store at {self.root}")

    def _resolve(self, path: str) -> Path:
        normalized = normalize_path(path)
        return self.root / normalized if normalized else self.root

    def _create(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # "x" mode fails atomically if the file exists
            with open(target, "xb"):
                pass
        except FileExistsError as e:
            raise BlobExistsError(f"Blob already exists: {path}", path=path) from e
        except OSError as e:
            raise BlobIOError(f"Failed to create {path}: {e}", path=path) from e

    def _append(self, path: str, offset: int, data: bytes) -> None:
        target = self._resolve(path)
        try:
            size = target.stat().st_size
            if offset < 0 or offset > size:
                raise BlobIOError(
                    f"Invalid append offset {offset} for {path} (current length {size})",
                    path=path,
                )
            with open(target, "r+b") as f:
                f.seek(offset)
                f.write(data)
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Blob not found: {path}", path=path) from e
        except OSError as e:
            raise BlobIOError(f"Failed to append to {path}: {e}", path=path) from e

    def _flush(self, path: str, total_length: int) -> None:
        target = self._resolve(path)
        try:
            with open(target, "r+b") as f:
                size = os.fstat(f.fileno()).st_size
                if size != total_length:
                    raise BlobIOError(
                        f"Flush length {total_length} does not match written length {size} for {path}",
                        path=path,
                    )
                f.flush()
                os.fsync(f.fileno())
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Blob not found: {path}", path=path) from e
        except OSError as e:
            raise BlobIOError(f"Failed to flush {path}: {e}", path=path) from e

    def _read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except (FileNotFoundError, IsADirectoryError) as e:
            raise BlobNotFoundError(f"Blob not found: {path}", path=path) from e
        except OSError as e:
            raise BlobIOError(f"Failed to read {path}: {e}", path=path) from e

    def _list(self, prefix: str) -> List[PathItem]:
        directory = self._resolve(prefix)
        base = normalize_path(prefix)
        try:
            entries = sorted(directory.iterdir())
        except (FileNotFoundError, NotADirectoryError) as e:
            raise BlobNotFoundError(f"Directory not found: {prefix}", path=prefix) from e
        except OSError as e:
            raise BlobIOError(f"Failed to list {prefix}: {e}", path=prefix) from e
        return [PathItem(join_path(base, entry.name), entry.is_dir()) for entry in entries]

    async def create_file(self, path: str) -> None:
        await asyncio.to_thread(self._create, path)

    async def append_bytes(self, path: str, offset: int, data: bytes) -> None:
        await asyncio.to_thread(self._append, path, offset, data)

    async def flush(self, path: str, total_length: int) -> None:
        await asyncio.to_thread(self._flush, path, total_length)

    async def read_bytes(self, path: str) -> bytes:
        return await asyncio.to_thread(self._read, path)

    async def list_paths(self, prefix: str) -> List[PathItem]:
        return await asyncio.to_thread(self._list, prefix)
