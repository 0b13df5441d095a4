"""
ETL (Extract, Transform, Load) module for Spotify Analysis.

Loads the JSON files of a Spotify data export into a normalized analysis
database (SQLite) for querying.

Architecture Overview:
    Export folders (read-only)           analysis database (read-write)
    ├── Spotify Extended Streaming  →    ├── artist / album / track
    │   History                          ├── podcast_show / podcast_episode
    │                                    ├── audiobook / audiobook_chapter
    │                                    └── play
    ├── Spotify Account Data        →    ├── user_profile, follow, playlist, ...
    └── Spotify Technical Log       →    ├── collection_change, share_event, ...
        Information                      └── tech_log_event

Key Design Decisions:
    1. Export files are read-only input and decoded whole
    2. Dimension rows are resolved by natural key, created on first sight
    3. One transaction per source file; a bad record rolls back the file
    4. Import times are tracked in import_state
"""

from spotify_analysis.etl.schema import create_schema, verify_schema, SCHEMA_VERSION
from spotify_analysis.etl.normalizers import (
    parse_timestamp,
    format_timestamp,
    truncate,
    TimestampParseError,
)
from spotify_analysis.etl.extractors import (
    Record,
    read_records,
    discover_chunked_files,
    discover_streaming_history_files,
    group_log_files,
)
from spotify_analysis.etl.identity import DimensionKind, DimensionResolver
from spotify_analysis.etl.loaders import (
    import_file,
    import_generic,
    make_play_handler,
    RecordImportError,
    get_import_state,
    set_import_state,
)
from spotify_analysis.etl.importers import import_technical_logs
from spotify_analysis.etl.pipeline import (
    run_streaming_history_import,
    run_account_data_import,
    run_technical_log_import,
    get_import_status,
    ImportResult,
)
from spotify_analysis.etl.validation import validate_import, ValidationResult

__all__ = [
    # Schema
    "create_schema",
    "verify_schema",
    "SCHEMA_VERSION",
    # Normalizers
    "parse_timestamp",
    "format_timestamp",
    "truncate",
    "TimestampParseError",
    # Extractors
    "Record",
    "read_records",
    "discover_chunked_files",
    "discover_streaming_history_files",
    "group_log_files",
    # Identity
    "DimensionKind",
    "DimensionResolver",
    # Loaders
    "import_file",
    "import_generic",
    "make_play_handler",
    "RecordImportError",
    "get_import_state",
    "set_import_state",
    # Importers
    "import_technical_logs",
    # Pipeline
    "run_streaming_history_import",
    "run_account_data_import",
    "run_technical_log_import",
    "get_import_status",
    "ImportResult",
    # Validation
    "validate_import",
    "ValidationResult",
]
