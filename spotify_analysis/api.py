"""
FastAPI backend for Spotify Analysis.

This API only reads from the analysis database. Run the imports first
(`spotify-analysis history <folder>`) to populate it.
"""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from spotify_analysis.analysis import (
    get_latest_plays,
    get_listening_heatmap,
    get_monthly_listening,
    get_platform_stats,
    get_summary,
    get_top_albums,
    get_top_artists,
    get_top_tracks,
    get_yearly_summary,
)
from spotify_analysis.config import Config
from spotify_analysis.database import open_store_readonly
from spotify_analysis.etl.validation import validate_import


def _get_db_path() -> Path:
    """Get the path to the analysis database."""
    explicit = os.getenv("SPOTIFY_ANALYSIS_DB_PATH")
    if explicit:
        return Path(explicit).expanduser()
    return Config().db_path


def _open_db() -> sqlite3.Connection:
    """
    Open the analysis database for reading.

    Raises HTTPException (503) if it doesn't exist.
    """
    path = _get_db_path()
    if not path.exists():
        raise HTTPException(
            status_code=503,
            detail={
                "error": "analysis database not found",
                "message": "Run `spotify-analysis history <folder>` first",
                "path": str(path),
            },
        )
    return open_store_readonly(path)


app = FastAPI(
    title="Spotify Analysis API",
    version="0.1.0",
    description="Read-only API over the Spotify analysis database.",
)

# Local dev CORS defaults
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        os.getenv("SPOTIFY_ANALYSIS_ALLOWED_ORIGIN", "http://127.0.0.1:5173"),
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, Any]:
    """Health check - also reports whether the database exists."""
    path = _get_db_path()
    return {
        "status": "ok" if path.exists() else "degraded",
        "db_exists": path.exists(),
        "db_path": str(path),
    }


@app.get("/summary")
def summary() -> Dict[str, Any]:
    """Get headline listening statistics."""
    conn = _open_db()
    try:
        result = get_summary(conn)
        result["db_path"] = str(_get_db_path())
        return result
    finally:
        conn.close()


@app.get("/plays/latest")
def latest_plays(limit: int = Query(default=25, ge=1, le=500)) -> List[Dict[str, Any]]:
    """Get the most recent plays."""
    conn = _open_db()
    try:
        return get_latest_plays(conn, limit=limit)
    finally:
        conn.close()


@app.get("/artists/top")
def top_artists(limit: int = Query(default=10, ge=1, le=200)) -> List[Dict[str, Any]]:
    """Get the most played artists."""
    conn = _open_db()
    try:
        return get_top_artists(conn, limit=limit)
    finally:
        conn.close()


@app.get("/tracks/top")
def top_tracks(limit: int = Query(default=10, ge=1, le=200)) -> List[Dict[str, Any]]:
    """Get the most played tracks."""
    conn = _open_db()
    try:
        return get_top_tracks(conn, limit=limit)
    finally:
        conn.close()


@app.get("/listening/monthly")
def monthly_listening() -> List[Dict[str, Any]]:
    """Get listening totals per month."""
    conn = _open_db()
    try:
        return get_monthly_listening(conn)
    finally:
        conn.close()


@app.get("/albums/top")
def top_albums(limit: int = Query(default=10, ge=1, le=200)) -> List[Dict[str, Any]]:
    """Get the most played albums."""
    conn = _open_db()
    try:
        return get_top_albums(conn, limit=limit)
    finally:
        conn.close()


@app.get("/listening/yearly")
def yearly_listening() -> List[Dict[str, Any]]:
    """Get listening totals per year."""
    conn = _open_db()
    try:
        return get_yearly_summary(conn)
    finally:
        conn.close()


@app.get("/listening/heatmap")
def listening_heatmap() -> List[Dict[str, Any]]:
    """Get plays per day of week and hour."""
    conn = _open_db()
    try:
        return get_listening_heatmap(conn)
    finally:
        conn.close()


@app.get("/platforms")
def platforms() -> List[Dict[str, Any]]:
    """Get plays per platform."""
    conn = _open_db()
    try:
        return get_platform_stats(conn)
    finally:
        conn.close()


@app.get("/validation")
def validation() -> Dict[str, Any]:
    """Run the post-import validation checks."""
    path = _get_db_path()
    if not path.exists():
        raise HTTPException(status_code=503, detail={"error": "analysis database not found"})
    return validate_import(path).to_dict()
