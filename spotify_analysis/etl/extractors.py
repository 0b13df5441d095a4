"""
ETL Extractors for Spotify export archives.

This module reads the JSON files of a Spotify data export (Extended
Streaming History, Account Data, Technical Log Information) into memory.

Design Decisions:
    1. Each file is decoded completely; files are bounded and fit in memory
    2. Files come in three shapes: an array of records, an object with named
       sections, or an object that is itself one record. read_records()
       normalizes the first and last to a list of Record
    3. Records expose explicit optional accessors instead of relying on
       KeyError/TypeError for missing fields
    4. Chunked exports (Name.json, Name_1.json, ...) are discovered by
       probing suffixes until the first gap
"""

import json
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from spotify_analysis.etl.normalizers import record_type_from_filename, to_bool_flag, to_int

logger = logging.getLogger(__name__)

STREAMING_HISTORY_PATTERNS = ("Streaming_History_*.json", "endsong_*.json")


@dataclass
class Record:
    """
    One JSON object from an export file.

    Wraps the decoded string-keyed map. Accessors return None for absent,
    null or wrongly-typed values.
    """

    data: Dict[str, Any] = field(default_factory=dict)

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def get_str(self, key: str) -> Optional[str]:
        """Get a string field; empty strings count as absent."""
        value = self.data.get(key)
        if isinstance(value, str):
            return value if value != "" else None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None

    def get_int(self, key: str) -> Optional[int]:
        return to_int(self.data.get(key))

    def get_bool(self, key: str) -> Optional[int]:
        """Get a boolean field as a 0/1 flag."""
        return to_bool_flag(self.data.get(key))

    def get_list(self, key: str) -> List[Any]:
        value = self.data.get(key)
        return value if isinstance(value, list) else []

    def get_map(self, key: str) -> Optional["Record"]:
        value = self.data.get(key)
        return Record(value) if isinstance(value, dict) else None

    def records(self, key: str) -> List["Record"]:
        """Get a nested array of objects as Records, ignoring non-objects."""
        return [Record(item) for item in self.get_list(key) if isinstance(item, dict)]

    def pop_keys(self, keys: Iterable[str]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Split the record into (known, remainder).

        Args:
            keys: Keys to pull out.

        Returns:
            Tuple of (dict of the given keys that are present, dict of every
            other key in original order). The record itself is unchanged.
        """
        wanted = set(keys)
        known = {k: v for k, v in self.data.items() if k in wanted}
        remainder = {k: v for k, v in self.data.items() if k not in wanted}
        return known, remainder


def read_json(path: Path) -> Any:
    """
    Decode a whole UTF-8 JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        json.JSONDecodeError: If the content isn't valid JSON.
    """
    # utf-8-sig tolerates a byte order mark, which some exports carry
    with open(path, "r", encoding="utf-8-sig") as fh:
        return json.load(fh)


def read_records(path: Path) -> List[Record]:
    """
    Read a file of records.

    An array yields one Record per object element. A single object is
    normalized to a one-element list.

    Raises:
        ValueError: If the top-level value is neither an array nor an object.
    """
    payload = read_json(path)

    if isinstance(payload, list):
        records = [Record(item) for item in payload if isinstance(item, dict)]
        skipped = len(payload) - len(records)
        if skipped:
            logger.warning(f"{path.name}: ignored {skipped} non-object array elements")
        return records

    if isinstance(payload, dict):
        return [Record(payload)]

    raise ValueError(f"{path.name}: expected a JSON array or object, got {type(payload).__name__}")


def read_sections(path: Path) -> Record:
    """
    Read a file whose top-level object has named sections.

    Raises:
        ValueError: If the top-level value isn't an object.
    """
    payload = read_json(path)
    if not isinstance(payload, dict):
        raise ValueError(f"{path.name}: expected a JSON object with named sections")
    return Record(payload)


def discover_chunked_files(directory: Path, base_name: str, first_suffix: int = 1) -> List[Path]:
    """
    Discover the files of a chunked export.

    Looks for "<base_name>.json", then probes "<base_name>_<n>.json" for
    n = first_suffix, first_suffix + 1, ... until one is missing.

    Args:
        directory: Folder to look in.
        base_name: Logical name without suffix or extension.
        first_suffix: First numeric suffix to probe.

    Returns:
        Existing files in probe order (may be empty).
    """
    files: List[Path] = []

    plain = directory / f"{base_name}.json"
    if plain.exists():
        files.append(plain)

    n = first_suffix
    while True:
        candidate = directory / f"{base_name}_{n}.json"
        if not candidate.exists():
            break
        files.append(candidate)
        n += 1

    return files


def discover_numbered_files(directory: Path, prefix: str, first_suffix: int = 1) -> List[Path]:
    """
    Discover "<prefix><n>.json" files (e.g. Playlist1.json, Playlist2.json).

    Probing stops at the first missing number.
    """
    files: List[Path] = []
    n = first_suffix
    while True:
        candidate = directory / f"{prefix}{n}.json"
        if not candidate.exists():
            break
        files.append(candidate)
        n += 1
    return files


def discover_wrapped_files(directory: Path) -> List[Path]:
    """Find Wrapped<year>.json files, sorted by name."""
    return sorted(p for p in directory.glob("Wrapped*.json") if p.is_file())


def discover_existing(directory: Path, *names: str) -> List[Path]:
    """Return the given file names that exist in directory, in argument order."""
    return [directory / name for name in names if (directory / name).is_file()]


def discover_streaming_history_files(directory: Path) -> List[Path]:
    """
    Find Extended Streaming History files, sorted by name.

    Returns:
        Paths of Streaming_History_*.json (and legacy endsong_*.json) files.
    """
    found = set()
    for pattern in STREAMING_HISTORY_PATTERNS:
        found.update(p for p in directory.glob(pattern) if p.is_file())
    return sorted(found, key=lambda p: p.name)


def group_log_files(directory: Path) -> "OrderedDict[str, List[Path]]":
    """
    Group technical log files by logical record type.

    Every "*.json" file in the folder is assigned to the record type derived
    from its name; each group is ordered base file first, then by numeric
    suffix. Groups are ordered by record-type name.

    Returns:
        Mapping of record-type name to its chunk files.
    """
    groups: Dict[str, List[Path]] = {}
    for path in directory.glob("*.json"):
        if path.is_file():
            groups.setdefault(record_type_from_filename(path.name), []).append(path)

    def _chunk_order(path: Path) -> Tuple[int, str]:
        suffix = path.stem.rsplit("_", 1)
        if len(suffix) == 2 and suffix[1].isdigit():
            return int(suffix[1]), path.name
        return -1, path.name

    ordered: "OrderedDict[str, List[Path]]" = OrderedDict()
    for name in sorted(groups):
        ordered[name] = sorted(groups[name], key=_chunk_order)
    return ordered


def describe_files(files: Iterable[Path]) -> str:
    """Short comma-separated file list for log messages."""
    return ", ".join(p.name for p in files) or "(none)"
