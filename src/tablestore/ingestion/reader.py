"""
Loading record batches from local JSON and JSON Lines files.

Used by the ``tablestore write`` command to turn an input file into the list
of records handed to ``Table.write_batch``.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from tablestore.logger import get_default_logger


logger = get_default_logger()

JSON_LINES_SUFFIXES = (".jsonl", ".ndjson")


def detect_record_format(file_path: Path) -> str:
    """
    Decide whether a batch file is a JSON document or JSON Lines.

    The extension wins when it is known. Otherwise a first line that parses
    as a complete object means one record per line.

    Returns:
        "json" or "jsonl"
    """
    suffix = file_path.suffix.lower()
    if suffix in JSON_LINES_SUFFIXES:
        return "jsonl"
    if suffix == ".json":
        return "json"

    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        first_line = f.readline().strip()
    if not first_line.startswith("{"):
        return "json"
    try:
        json.loads(first_line)
    except json.JSONDecodeError:
        # An object spread over several lines
        return "json"
    return "jsonl"


class RecordReader:
    """
    Reads one record batch from a local file.

    Accepted layouts:
        - JSON array of records
        - JSON object with a "records" array
        - a single JSON object (a batch of one)
        - JSON Lines, one record per non-blank line
    """

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)

        if not self.file_path.exists():
            raise FileNotFoundError(f"Record file not found: {self.file_path}")

        self.file_format = detect_record_format(self.file_path)
        logger.debug(f"Reading {self.file_path} as {self.file_format}")

    def read_records(self) -> List[Dict[str, Any]]:
        """
        Load the batch.

        Raises:
            json.JSONDecodeError: If a JSON document is malformed
            ValueError: If a JSON Lines row is malformed, or the document
                holds neither records nor an object

        Example:
            >>> records = RecordReader("batch.jsonl").read_records()
        """
        if self.file_format == "jsonl":
            records = self._parse_lines()
        else:
            records = self._unwrap(self._load_document())

        logger.info(f"Loaded {len(records)} records from {self.file_path.name}")
        return records

    def _load_document(self) -> Any:
        with open(self.file_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _unwrap(self, document: Any) -> List[Dict[str, Any]]:
        if isinstance(document, list):
            return document
        if isinstance(document, dict):
            batch = document.get("records")
            return batch if isinstance(batch, list) else [document]
        raise ValueError(
            f"Expected records in {self.file_path}, found a JSON {type(document).__name__}"
        )

    def _parse_lines(self) -> List[Dict[str, Any]]:
        records = []
        with open(self.file_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as e:
                    # Skipping the row would change the batch
                    raise ValueError(f"Malformed record on line {line_num} of {self.file_path}: {e}") from e
        return records


def read_record_file(file_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read a batch file into a list of records."""
    return RecordReader(file_path).read_records()
