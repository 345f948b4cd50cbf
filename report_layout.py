# report_layout.py
"""
Backend-independent half of the case report: the dashboard summary and the
section pagination used by the PDF export.

A report is an ordered list of ReportSection blocks, each with a measured
height. paginate() packs them onto fixed-size pages top to bottom and never
splits a section, so a results table is never cut at a page edge.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from domain.models import CaseDetail
from status_service import count_by_status, most_severe, severity_message


@dataclass
class CaseSummary:
    """Executive summary numbers shared by the dashboard and the PDF."""

    status_counts: dict[str, int]
    overall_severity: str
    overall_message: str
    machine_condition: str
    lubricant_condition: str
    test_count: int

    @property
    def total_results(self) -> int:
        return sum(self.status_counts.values())


def build_case_summary(detail: CaseDetail) -> CaseSummary:
    """
    Counts results by status across every test of the case, and rates the
    case by the more severe of its machine and lubricant conditions.
    """
    case = detail.case
    overall = most_severe([case.machine_condition, case.lubricant_condition])
    return CaseSummary(
        status_counts=count_by_status(r.status for r in detail.all_results()),
        overall_severity=overall,
        overall_message=severity_message(overall),
        machine_condition=case.machine_condition,
        lubricant_condition=case.lubricant_condition,
        test_count=len(detail.tests),
    )


@dataclass
class ReportSection:
    """One independently rendered block of the report. height is in points."""

    name: str
    height: float
    payload: Any = field(default=None, repr=False, compare=False)


@dataclass
class Placement:
    section: ReportSection
    y: float  # distance from the top edge of the page to the section's top


def paginate(
    sections: Sequence[ReportSection],
    page_height: float,
    margin: float,
) -> list[list[Placement]]:
    """
    Pack sections onto pages, top to bottom.

    The running offset starts at the top margin. If the next section would
    run past page_height - margin, a new page is started first (unless the
    current page is still empty). After placing a section taller than half
    a page, the page is closed regardless of the space left. A section
    taller than the printable area gets a page to itself.
    """
    if page_height <= 2 * margin:
        raise ValueError("Page height must be larger than twice the margin")
    bottom = page_height - margin
    half_page = page_height / 2

    pages: list[list[Placement]] = []
    current: list[Placement] = []
    y = margin
    for section in sections:
        if current and y + section.height > bottom:
            pages.append(current)
            current = []
            y = margin
        current.append(Placement(section, y))
        y += section.height
        if section.height > half_page:
            pages.append(current)
            current = []
            y = margin
    if current:
        pages.append(current)
    return pages


def page_outline(pages: list[list[Placement]]) -> list[list[str]]:
    """Section names per page, for logging and comparison."""
    return [[p.section.name for p in page] for page in pages]
