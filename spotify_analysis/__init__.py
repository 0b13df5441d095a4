"""
Spotify Analysis - Load a Spotify data export into a queryable database.

This package provides functionality to:
- Import Extended Streaming History, Account Data and Technical Logs
- Query listening statistics through reporting views
- Serve and visualize the statistics
"""

__version__ = "0.1.0"

from spotify_analysis.config import get_config, Config
from spotify_analysis.database import open_store, transaction

__all__ = [
    "get_config",
    "Config",
    "open_store",
    "transaction",
]
