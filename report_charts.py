# report_charts.py
"""
Matplotlib charts for the case dashboard and PDF report, rendered to PNG
bytes so both the Qt view and reportlab can embed them.
"""

import io
from typing import Sequence

from domain.models import TestResult
from status_service import STATUSES

STATUS_COLORS = {
    "NORMAL": "#2e9e5b",
    "ALERT": "#e0a100",
    "ALARM": "#d63b3b",
}
ACTUAL_COLOR = "#1f5fa8"


def _pyplot():
    import matplotlib  # type: ignore[import-untyped]
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt  # type: ignore[import-untyped]
    return plt


def _to_png(fig, plt, dpi: int) -> bytes:
    fig.tight_layout()
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=dpi, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    buf.seek(0)
    return buf.read()


def render_status_chart_png(status_counts: dict[str, int], dpi: int = 120) -> bytes:
    """Bar chart of result counts per status (NORMAL, ALERT, ALARM)."""
    plt = _pyplot()
    counts = [int(status_counts.get(s, 0)) for s in STATUSES]
    fig, ax = plt.subplots(figsize=(6, 2.8))
    bars = ax.bar(STATUSES, counts, color=[STATUS_COLORS[s] for s in STATUSES], zorder=2)
    for bar, n in zip(bars, counts):
        ax.annotate(
            str(n),
            (bar.get_x() + bar.get_width() / 2, bar.get_height()),
            ha="center",
            va="bottom",
            fontsize=8,
        )
    ax.set_ylabel("Parameters", fontsize=8)
    ax.set_title("Test Results Overview", fontsize=9)
    ax.set_ylim(bottom=0, top=max(counts + [1]) * 1.2)
    ax.yaxis.get_major_locator().set_params(integer=True)
    ax.tick_params(labelsize=7)
    ax.grid(True, axis="y", linestyle=":", alpha=0.7, zorder=1)
    return _to_png(fig, plt, dpi)


def render_parameter_chart_png(results: Sequence[TestResult], title: str | None = None,
                               dpi: int = 120) -> bytes:
    """
    Line chart of actual values per parameter with dashed lower/upper limit
    lines. Missing limits leave gaps. Returns b"" when there are no results.
    """
    if not results:
        return b""
    import numpy as np  # type: ignore[import-untyped]

    plt = _pyplot()
    names = [r.parameter_name for r in results]
    x = np.arange(len(results))
    actual = np.array([r.actual_value for r in results], dtype=float)
    lower = np.array([np.nan if r.lower_limit is None else r.lower_limit for r in results], dtype=float)
    upper = np.array([np.nan if r.upper_limit is None else r.upper_limit for r in results], dtype=float)

    fig, ax = plt.subplots(figsize=(6, 2.6))
    ax.plot(x, actual, color=ACTUAL_COLOR, linewidth=2, marker="o", markersize=4, label="Actual Value", zorder=3)
    if not np.all(np.isnan(lower)):
        ax.plot(x, lower, color=STATUS_COLORS["NORMAL"], linestyle="--", linewidth=1,
                marker=".", label="Lower Limit", zorder=2)
    if not np.all(np.isnan(upper)):
        ax.plot(x, upper, color=STATUS_COLORS["ALARM"], linestyle="--", linewidth=1,
                marker=".", label="Upper Limit", zorder=2)
    ax.set_xticks(x)
    ax.set_xticklabels(names, rotation=45, ha="right", fontsize=7)
    if len(results) == 1:
        ax.set_xlim(-0.5, 0.5)
    if title:
        ax.set_title(title, fontsize=9)
    ax.tick_params(axis="y", labelsize=7)
    ax.grid(True, linestyle=":", alpha=0.7, zorder=1)
    ax.legend(fontsize=7, loc="best")
    return _to_png(fig, plt, dpi)
