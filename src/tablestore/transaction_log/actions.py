"""
Action records stored in transaction log entries.

Each log entry is a JSON Lines file holding one action object per line. An
action object has a single key naming its kind ("protocol", "metaData",
"commitInfo", "add") whose value carries the action's fields in camelCase.
"""

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from tablestore.errors import LogCorruptionError
from tablestore.schemas import Schema


def current_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class Protocol:
    """Reader/writer format versions, written once at table creation."""

    min_reader_version: int = 1
    min_writer_version: int = 2

    key = "protocol"

    def to_dict(self) -> Dict[str, Any]:
        return {
            self.key: {
                "minReaderVersion": self.min_reader_version,
                "minWriterVersion": self.min_writer_version,
            }
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Protocol":
        return cls(
            min_reader_version=payload.get("minReaderVersion", 1),
            min_writer_version=payload.get("minWriterVersion", 2),
        )


@dataclass
class Metadata:
    """Table identity, schema and partitioning, written once at table creation."""

    schema_string: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: Optional[str] = None
    description: Optional[str] = None
    partition_columns: List[str] = field(default_factory=list)
    configuration: Dict[str, str] = field(default_factory=dict)
    created_time: int = field(default_factory=current_millis)
    format: Dict[str, Any] = field(default_factory=lambda: {"provider": "parquet", "options": {}})

    key = "metaData"

    @property
    def schema(self) -> Schema:
        return Schema.from_json_string(self.schema_string)

    def to_dict(self) -> Dict[str, Any]:
        return {
            self.key: {
                "id": self.id,
                "name": self.name,
                "description": self.description,
                "format": self.format,
                "schemaString": self.schema_string,
                "partitionColumns": list(self.partition_columns),
                "configuration": dict(self.configuration),
                "createdTime": self.created_time,
            }
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Metadata":
        return cls(
            schema_string=payload["schemaString"],
            id=payload.get("id") or str(uuid.uuid4()),
            name=payload.get("name"),
            description=payload.get("description"),
            partition_columns=list(payload.get("partitionColumns") or []),
            configuration=dict(payload.get("configuration") or {}),
            created_time=payload.get("createdTime") or 0,
            format=payload.get("format") or {"provider": "parquet", "options": {}},
        )


@dataclass
class CommitInfo:
    """Audit record describing the operation that produced a log entry."""

    operation: str
    operation_parameters: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=current_millis)
    engine_info: Optional[str] = None

    key = "commitInfo"

    def to_dict(self) -> Dict[str, Any]:
        return {
            self.key: {
                "timestamp": self.timestamp,
                "operation": self.operation,
                "operationParameters": dict(self.operation_parameters),
                "engineInfo": self.engine_info,
            }
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CommitInfo":
        return cls(
            operation=payload.get("operation", "UNKNOWN"),
            operation_parameters=dict(payload.get("operationParameters") or {}),
            timestamp=payload.get("timestamp") or 0,
            engine_info=payload.get("engineInfo"),
        )


@dataclass
class AddFile:
    """Declares one data file as part of the table."""

    path: str
    size: int
    modification_time: int
    data_change: bool = True
    partition_values: Dict[str, Optional[str]] = field(default_factory=dict)
    stats: Optional[str] = None

    key = "add"

    @property
    def num_records(self) -> Optional[int]:
        """Row count from the stats string, if present."""
        if not self.stats:
            return None
        try:
            return json.loads(self.stats).get("numRecords")
        except (json.JSONDecodeError, AttributeError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            self.key: {
                "path": self.path,
                "partitionValues": dict(self.partition_values),
                "size": self.size,
                "modificationTime": self.modification_time,
                "dataChange": self.data_change,
                "stats": self.stats,
            }
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AddFile":
        return cls(
            path=payload["path"],
            size=payload.get("size", 0),
            modification_time=payload.get("modificationTime", 0),
            data_change=payload.get("dataChange", True),
            partition_values=dict(payload.get("partitionValues") or {}),
            stats=payload.get("stats"),
        )


@dataclass
class UnknownAction:
    """An action kind this engine does not interpret; kept verbatim."""

    key: str
    payload: Any

    def to_dict(self) -> Dict[str, Any]:
        return {self.key: self.payload}


Action = Union[Protocol, Metadata, CommitInfo, AddFile, UnknownAction]

ACTION_TYPES = {
    Protocol.key: Protocol,
    Metadata.key: Metadata,
    "metadata": Metadata,
    CommitInfo.key: CommitInfo,
    AddFile.key: AddFile,
}


def action_from_dict(data: Dict[str, Any]) -> Action:
    """
    Parse one action object.

    Raises:
        LogCorruptionError: If the object is not a single-key action or a
            known action is missing required fields

    Example:
        >>> action_from_dict({"add": {"path": "part-1.parquet", "size": 10, "modificationTime": 1}})
        AddFile(path='part-1.parquet', size=10, modification_time=1, ...)
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise LogCorruptionError(f"Action must be an object with exactly one key, got {data!r}")

    key, payload = next(iter(data.items()))
    action_type = ACTION_TYPES.get(key)
    if action_type is None:
        return UnknownAction(key, payload)

    if not isinstance(payload, dict):
        raise LogCorruptionError(f"Action '{key}' payload must be an object, got {payload!r}")
    try:
        return action_type.from_payload(payload)
    except KeyError as e:
        raise LogCorruptionError(f"Action '{key}' is missing required field {e}") from e


def serialize_actions(actions: List[Action]) -> bytes:
    """
    Serialize actions as JSON Lines (one action per line, trailing newline).
    """
    lines = [json.dumps(action.to_dict(), separators=(",", ":")) for action in actions]
    return ("\n".join(lines) + "\n").encode("utf-8")


def parse_actions(content: bytes, version: Optional[int] = None) -> List[Action]:
    """
    Parse the JSON Lines content of a log entry. Blank lines are ignored.

    Raises:
        LogCorruptionError: If the content is not UTF-8 or a line is not valid JSON
    """
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise LogCorruptionError(f"Log entry {version} is not valid UTF-8", version=version) from e

    actions = []
    for line_num, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise LogCorruptionError(
                f"Malformed JSON at line {line_num} of log entry {version}: {e}",
                version=version,
            ) from e
        actions.append(action_from_dict(data))
    return actions
