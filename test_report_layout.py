# test_report_layout.py
"""
Unit tests for report_layout: case summary and section pagination.
No PDF backend involved.
"""

import unittest

from domain.models import Case, CaseDetail, CaseTest, TestResult
from report_layout import ReportSection, build_case_summary, page_outline, paginate

PAGE = 800.0
MARGIN = 40.0


def _sections(*heights):
    return [ReportSection(f"s{i}", h) for i, h in enumerate(heights)]


class TestPaginate(unittest.TestCase):
    def test_all_fit_on_one_page(self):
        pages = paginate(_sections(100, 100, 100), PAGE, MARGIN)
        self.assertEqual(len(pages), 1)
        self.assertEqual([p.y for p in pages[0]], [40.0, 140.0, 240.0])

    def test_overflow_starts_new_page(self):
        # 40 + 300 + 300 = 640; the next 200 would reach 840 > 760
        pages = paginate(_sections(300, 300, 200), PAGE, MARGIN)
        self.assertEqual(page_outline(pages), [["s0", "s1"], ["s2"]])
        self.assertEqual(pages[1][0].y, MARGIN)

    def test_exact_fit_stays_on_page(self):
        # 40 + 360 + 360 = 760 = page_height - margin
        pages = paginate(_sections(360, 360), PAGE, MARGIN)
        self.assertEqual(len(pages), 1)

    def test_tall_section_closes_page(self):
        # 450 > half page: the page ends after it even though 100 would fit
        pages = paginate(_sections(100, 450, 100), PAGE, MARGIN)
        self.assertEqual(page_outline(pages), [["s0", "s1"], ["s2"]])

    def test_section_exactly_half_page_does_not_force_break(self):
        pages = paginate(_sections(400, 100), PAGE, MARGIN)
        self.assertEqual(len(pages), 1)

    def test_section_taller_than_page_is_alone(self):
        pages = paginate(_sections(100, 2000, 100), PAGE, MARGIN)
        self.assertEqual(page_outline(pages), [["s0"], ["s1"], ["s2"]])
        self.assertEqual(pages[1][0].y, MARGIN)

    def test_first_section_never_preceded_by_empty_page(self):
        pages = paginate(_sections(5000), PAGE, MARGIN)
        self.assertEqual(page_outline(pages), [["s0"]])

    def test_empty(self):
        self.assertEqual(paginate([], PAGE, MARGIN), [])

    def test_order_is_preserved(self):
        sections = _sections(*([90] * 25))
        pages = paginate(sections, PAGE, MARGIN)
        flat = [name for page in page_outline(pages) for name in page]
        self.assertEqual(flat, [s.name for s in sections])

    def test_idempotent(self):
        sections = _sections(120, 430, 80, 300, 300, 90, 1000, 10)
        first = page_outline(paginate(sections, PAGE, MARGIN))
        second = page_outline(paginate(sections, PAGE, MARGIN))
        self.assertEqual(first, second)

    def test_bad_page_geometry(self):
        with self.assertRaises(ValueError):
            paginate(_sections(10), 80, 40)


class TestCaseSummary(unittest.TestCase):
    def _detail(self, machine, lubricant, statuses):
        case = Case(
            id="c1", owner_id="o", customer_name="Acme",
            machine_condition=machine, lubricant_condition=lubricant,
        )
        results = [
            TestResult(id=f"r{i}", case_test_id="t1", parameter_name=f"p{i}", actual_value=1.0, status=s)
            for i, s in enumerate(statuses)
        ]
        return CaseDetail(case=case, tests=[CaseTest(id="t1", case_id="c1", test_name="Wear", results=results)])

    def test_overall_is_worse_condition(self):
        summary = build_case_summary(self._detail("NORMAL", "ALARM", []))
        self.assertEqual(summary.overall_severity, "ALARM")
        self.assertIn("Critical", summary.overall_message)

        summary = build_case_summary(self._detail("ALERT", "NORMAL", []))
        self.assertEqual(summary.overall_severity, "ALERT")

    def test_counts(self):
        summary = build_case_summary(self._detail("NORMAL", "NORMAL", ["ALARM", "NORMAL", "ALARM"]))
        self.assertEqual(summary.status_counts, {"NORMAL": 1, "ALERT": 0, "ALARM": 2})
        self.assertEqual(summary.total_results, 3)
        self.assertEqual(summary.test_count, 1)
        self.assertEqual(summary.overall_severity, "NORMAL")


if __name__ == "__main__":
    unittest.main()
