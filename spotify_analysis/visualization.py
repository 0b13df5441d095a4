"""
Visualization functions for Spotify listening data.

Builds plotly figures from rows of the reporting views (see analysis.py).
"""

import logging
from typing import Any, Dict, List, Optional

import plotly.graph_objects as go  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)


def _write(fig: go.Figure, output_file: Optional[str]) -> None:
    if output_file:
        fig.write_html(output_file)
        logger.info(f"Wrote plot to {output_file}")


def plot_monthly_listening(
    months: List[Dict[str, Any]], output_file: Optional[str] = None
) -> go.Figure:
    """
    Plot listening hours per month, with plays per content type.

    Args:
        months: Rows from get_monthly_listening() with 'year_month',
                'total_hours', 'music_plays', 'podcast_plays' and
                'audiobook_plays'.
        output_file: Optional HTML file to write the figure to.

    Returns:
        The plotly figure.
    """
    x = [m["year_month"] for m in months]

    fig = go.Figure()
    fig.add_trace(go.Bar(x=x, y=[m["total_hours"] for m in months], name="Hours"))
    for key, name in (
        ("music_plays", "Music plays"),
        ("podcast_plays", "Podcast plays"),
        ("audiobook_plays", "Audiobook plays"),
    ):
        fig.add_trace(
            go.Scatter(x=x, y=[m.get(key, 0) for m in months], name=name, yaxis="y2", mode="lines")
        )

    fig.update_layout(
        title="Listening per month",
        xaxis_title="Month",
        yaxis={"title": "Hours"},
        yaxis2={"title": "Plays", "overlaying": "y", "side": "right"},
    )
    _write(fig, output_file)
    return fig


def plot_top_artists(
    artists: List[Dict[str, Any]], output_file: Optional[str] = None
) -> go.Figure:
    """
    Plot the most played artists as a horizontal bar chart.

    Args:
        artists: Rows from get_top_artists() with 'artist_name' and
                 'total_plays'.
        output_file: Optional HTML file to write the figure to.
    """
    # plotly draws the first category at the bottom
    ordered = list(reversed(artists))

    fig = go.Figure(
        go.Bar(
            x=[a["total_plays"] for a in ordered],
            y=[a["artist_name"] for a in ordered],
            orientation="h",
        )
    )
    fig.update_layout(title="Top artists", xaxis_title="Plays", yaxis_title="Artist")
    _write(fig, output_file)
    return fig
