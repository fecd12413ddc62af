"""
Append-only transaction log: action records and versioned log entries.
"""

from tablestore.transaction_log.actions import (
    Action,
    AddFile,
    CommitInfo,
    Metadata,
    Protocol,
    UnknownAction,
    action_from_dict,
    parse_actions,
    serialize_actions,
)
from tablestore.transaction_log.log import (
    TransactionLog,
    commit,
    format_version,
    get_latest_version,
    parse_version,
)

__all__ = [
    "Action",
    "AddFile",
    "CommitInfo",
    "Metadata",
    "Protocol",
    "UnknownAction",
    "action_from_dict",
    "parse_actions",
    "serialize_actions",
    "TransactionLog",
    "commit",
    "get_latest_version",
    "format_version",
    "parse_version",
]
