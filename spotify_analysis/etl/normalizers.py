"""
Field normalization utilities for ETL.

This module turns the loosely-typed scalar values found in Spotify export
files into the values stored in the analysis database.

Design Decisions:
    1. Timestamps accept three encodings (see parse_timestamp); anything else
       is "unparseable" and the caller decides whether that skips the record
       or fails the file
    2. Offset-aware timestamps are stored in UTC; naive ones are stored as-is
    3. Over-long text is truncated, never rejected
    4. Optional numeric/boolean fields fall back to None instead of raising

Timestamp Encodings:
    - ISO-8601, optionally followed by a bracketed zone name which is
      stripped before parsing: "2023-05-01T10:00:00.123Z[UTC]"
    - The fixed account-data pattern "YYYY-MM-DD HH:MM" (no seconds, naive)
    - Unix epoch milliseconds, as an integer or a string of digits
"""

import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Trailing zone name such as "[UTC]" or "[Europe/Berlin]"
ZONE_SUFFIX_PATTERN = re.compile(r"\[[^\]]*\]$")
EPOCH_MILLIS_PATTERN = re.compile(r"^-?\d+$")
MINUTE_PATTERN_FORMAT = "%Y-%m-%d %H:%M"
CHUNK_SUFFIX_PATTERN = re.compile(r"_\d+$")
SCALA_MAP_PATTERN = re.compile(r"^Map\((.*)\)$", re.DOTALL)
SCALA_MAP_ENTRY_PATTERN = re.compile(r"(\w+) -> (.*?)(?=, \w+ -> |$)", re.DOTALL)

TRUE_VALUES = {"true", "1", "yes"}
FALSE_VALUES = {"false", "0", "no"}


class TimestampParseError(ValueError):
    """Raised when a required timestamp matches none of the accepted encodings."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Unparseable timestamp in '{field}': {value!r}")


def _from_epoch_millis(millis: int) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp in any of the accepted encodings.

    Args:
        value: Raw value from a JSON record (str, int or None).

    Returns:
        datetime (offset-aware for ISO with offset and epoch values, naive for
        the fixed minute pattern and offset-less ISO), or None if unparseable.

    Examples:
        >>> parse_timestamp("2023-05-01T10:00:00Z[UTC]") == parse_timestamp("2023-05-01T10:00:00Z")
        True
        >>> parse_timestamp("2023-05-01 10:00")
        datetime.datetime(2023, 5, 1, 10, 0)
        >>> parse_timestamp("not-a-date") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return _from_epoch_millis(value)

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if EPOCH_MILLIS_PATTERN.match(text):
        return _from_epoch_millis(int(text))

    text = ZONE_SUFFIX_PATTERN.sub("", text).strip()

    try:
        return datetime.strptime(text, MINUTE_PATTERN_FORMAT)
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def require_timestamp(value: Any, field: str) -> datetime:
    """
    Parse a timestamp that a well-formed row cannot do without.

    Raises:
        TimestampParseError: If the value is missing or unparseable.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        raise TimestampParseError(field, value)
    return parsed


def format_timestamp(dt: datetime, millis: bool = False) -> str:
    """
    Format a datetime for storage.

    Offset-aware values are converted to UTC and suffixed with 'Z'. Naive
    values are stored without a zone.

    Args:
        dt: Parsed timestamp.
        millis: Keep millisecond precision.

    Returns:
        ISO-8601 string.
    """
    fmt = "%Y-%m-%dT%H:%M:%S"
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    text = dt.strftime(fmt)
    if millis:
        text += f".{dt.microsecond // 1000:03d}"
    return text + "Z" if dt.tzinfo is not None else text


def normalize_timestamp(value: Any, millis: bool = False) -> Optional[str]:
    """Parse and format in one step; None if unparseable."""
    parsed = parse_timestamp(value)
    return format_timestamp(parsed, millis=millis) if parsed is not None else None


def parse_date(value: Any) -> Optional[str]:
    """
    Parse a calendar date ("2023-05-01", or a timestamp) to ISO date.

    Returns:
        "YYYY-MM-DD", or None if missing or unparseable.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        parsed = parse_timestamp(text)
        return parsed.date().isoformat() if parsed else None


def truncate(value: Any, max_length: int) -> Optional[str]:
    """
    Truncate a value to a column's maximum length.

    Examples:
        >>> truncate("x" * 250, 200) == "x" * 200
        True
        >>> truncate(None, 10) is None
        True
    """
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text[:max_length]


def to_int(value: Any) -> Optional[int]:
    """Convert an optional numeric field, returning None when it isn't one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and EPOCH_MILLIS_PATTERN.match(value.strip()):
        return int(value.strip())
    return None


def require_int(value: Any, field: str) -> int:
    """
    Convert a numeric field that a well-formed row cannot do without.

    Raises:
        ValueError: If the value is missing or not an integer.
    """
    converted = to_int(value)
    if converted is None:
        raise ValueError(f"Field '{field}' is not an integer: {value!r}")
    return converted


def to_bool_flag(value: Any) -> Optional[int]:
    """
    Convert an optional boolean flag to 0/1.

    Returns:
        1, 0, or None when missing or unrecognized.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int):
        return 1 if value else 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return 1
        if lowered in FALSE_VALUES:
            return 0
    return None


def record_type_from_filename(filename: Union[str, Path]) -> str:
    """
    Derive the logical record-type name of an export file.

    Examples:
        >>> record_type_from_filename("RawCoreStream_3.json")
        'RawCoreStream'
        >>> record_type_from_filename("Userdata.json")
        'Userdata'
    """
    stem = Path(filename).stem
    return CHUNK_SUFFIX_PATTERN.sub("", stem)


def parse_scala_map(value: Any) -> Dict[str, str]:
    """
    Parse the Scala Map rendering some account files use for objects.

    Values may contain commas; a new entry starts only at ", <key> -> ".

    Examples:
        >>> parse_scala_map("Map(street -> 1 Main St, Apt 2, city -> Utrecht)")
        {'street': '1 Main St, Apt 2', 'city': 'Utrecht'}
        >>> parse_scala_map("not a map")
        {}
    """
    if not isinstance(value, str):
        return {}
    match = SCALA_MAP_PATTERN.match(value.strip())
    if match is None:
        return {}
    return {
        entry.group(1): entry.group(2).strip()
        for entry in SCALA_MAP_ENTRY_PATTERN.finditer(match.group(1))
    }
