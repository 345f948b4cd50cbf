# test_pdf_export.py
"""
Tests for the PDF report: file naming, image resolution fallbacks,
repeatable layout and the end-to-end export of a case.
"""

import sqlite3
import tempfile
import unittest
from datetime import date
from pathlib import Path
from unittest import mock

import requests

import pdf_export
from database import CaseRepository, get_connection, initialize_db
from domain.models import ParameterRow
from pdf_export import (
    ReportExportError,
    export_case_to_pdf,
    long_date,
    render_case_report,
    report_filename,
    resolve_images,
)
from report_charts import render_parameter_chart_png, render_status_chart_png
from services import case_service, settings_service, test_service
from services.session import sign_in


class TestReportFilename(unittest.TestCase):
    def test_format(self):
        self.assertEqual(report_filename("Acme", date(2026, 10, 18)), "oil-analysis-Acme-2026-10-18.pdf")

    def test_unsafe_characters_replaced(self):
        name = report_filename('Acme/North: "Plant"', date(2026, 1, 2))
        self.assertEqual(name, "oil-analysis-Acme_North_ _Plant_-2026-01-02.pdf")

    def test_defaults_to_today(self):
        self.assertIn(date.today().isoformat(), report_filename("Acme"))


class TestLongDate(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(long_date(date(2026, 10, 8)), "October 8, 2026")
        self.assertEqual(long_date("2026-10-18T09:30:00+00:00"), "October 18, 2026")
        self.assertEqual(long_date(None), "")
        self.assertEqual(long_date("not a date"), "not a date")


class TestCharts(unittest.TestCase):
    def test_status_chart_is_png(self):
        png = render_status_chart_png({"NORMAL": 3, "ALERT": 1, "ALARM": 0})
        self.assertTrue(png.startswith(b"\x89PNG"))

    def test_parameter_chart_empty(self):
        self.assertEqual(render_parameter_chart_png([]), b"")


class ExportTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.path = self.root / "report.db"
        self.conn = initialize_db(get_connection(self.path), self.path)
        self.repo = CaseRepository(self.conn)
        self.session = sign_in("lab-1")

    def tearDown(self):
        self.conn.close()
        self.tmpdir.cleanup()

    def _acme_case(self):
        case_id = case_service.create_case(
            self.repo, self.session, {"customer_name": "Acme", "customer_email": "ops@acme.test"},
            "NORMAL", "ALARM",
        )
        test_id = test_service.save_new_test(
            self.repo, self.session, case_id, "Wear Metals",
            [ParameterRow(name="Iron", lower_limit="0", upper_limit="20", actual_value="25", unit="ppm")],
        )
        return case_id, test_id


class TestResolveImages(ExportTestCase):
    def test_local_file_resolved(self):
        img = self.root / "photo.png"
        img.write_bytes(render_status_chart_png({"NORMAL": 1}))
        resolved = resolve_images([img.as_uri(), img.as_uri(), None])
        self.assertEqual(list(resolved), [img.as_uri()])
        self.assertTrue(resolved[img.as_uri()].startswith(b"\x89PNG"))

    def test_failures_recorded_as_none(self):
        missing = (self.root / "gone.png").as_uri()
        with mock.patch(
            "services.storage_service.requests.get",
            side_effect=requests.ConnectionError("offline"),
        ):
            resolved = resolve_images([missing, "https://cdn.test/logo.png"])
        self.assertEqual(resolved, {missing: None, "https://cdn.test/logo.png": None})


class TestExport(ExportTestCase):
    def test_acme_end_to_end(self):
        case_id, test_id = self._acme_case()
        self.assertEqual(self.repo.list_results(test_id)[0].status, "ALARM")

        path = export_case_to_pdf(self.repo, self.session, case_id, self.root / "out")
        self.assertIn("Acme", path.name)
        self.assertIn(date.today().isoformat(), path.name)
        self.assertTrue(path.is_file())
        self.assertTrue(path.read_bytes().startswith(b"%PDF"))

    def test_layout_is_repeatable(self):
        case_id, _ = self._acme_case()
        for i in range(4):
            test_service.save_new_test(
                self.repo, self.session, case_id, f"Test {i}",
                [ParameterRow(name=f"P{j}", upper_limit="10", actual_value=str(j)) for j in range(12)],
            )
        case_service.update_recommendations(self.repo, self.session, case_id, "Change oil.\nResample in 250 hours.")
        detail = case_service.get_case_detail(self.repo, self.session, case_id)
        settings = settings_service.get_company_settings(self.repo, self.session)

        first = render_case_report(detail, settings, self.root / "a.pdf", date(2026, 10, 18))
        second = render_case_report(detail, settings, self.root / "b.pdf", date(2026, 10, 18))
        self.assertEqual(first, second)
        flat = [name for page in first for name in page]
        self.assertEqual(flat[:4], ["header", "customer", "summary", "charts"])
        self.assertEqual(flat[-2:], ["recommendations", "footer"])
        self.assertEqual(sum(1 for n in flat if n.startswith("test-")), 5)

    def test_no_recommendations_section_when_blank(self):
        case_id, _ = self._acme_case()
        detail = case_service.get_case_detail(self.repo, self.session, case_id)
        settings = settings_service.get_company_settings(self.repo, self.session)
        outline = render_case_report(detail, settings, self.root / "r.pdf", date(2026, 10, 18))
        self.assertNotIn("recommendations", [n for page in outline for n in page])

    def test_broken_images_do_not_abort_export(self):
        case_id, test_id = self._acme_case()
        bad_file = self.root / "corrupt.png"
        bad_file.write_bytes(b"not an image")
        self.repo.update_test(test_id, {"image_url": bad_file.as_uri(), "image_comment": "sample"})
        other = self.repo.create_test(case_id, "Photo", image_url=(self.root / "missing.jpg").as_uri())
        self.repo.insert_results(other, [{"parameter_name": "Water", "actual_value": 0.1, "status": "NORMAL"}])
        settings_service.save_company_settings(
            self.repo, self.session, {"company_name": "Lube Labs", "logo_url": "https://cdn.test/logo.png"}
        )

        with mock.patch(
            "services.storage_service.requests.get",
            side_effect=requests.Timeout("slow"),
        ):
            path = export_case_to_pdf(self.repo, self.session, case_id, self.root, date(2026, 10, 18))
        self.assertEqual(path.name, "oil-analysis-Acme-2026-10-18.pdf")
        self.assertTrue(path.is_file())

        # Stored references are left as they were
        self.assertEqual(self.repo.get_test(test_id).image_url, bad_file.as_uri())
        self.assertEqual(settings_service.get_company_settings(self.repo, self.session).logo_url,
                         "https://cdn.test/logo.png")

    def test_valid_image_is_embedded(self):
        case_id, test_id = self._acme_case()
        img = self.root / "jar.png"
        img.write_bytes(render_status_chart_png({"ALARM": 2}))
        self.repo.update_test(test_id, {"image_url": img.as_uri()})
        with mock.patch.object(pdf_export, "_placeholder", wraps=pdf_export._placeholder) as placeholder:
            export_case_to_pdf(self.repo, self.session, case_id, self.root)
        placeholder.assert_not_called()

    def test_missing_case(self):
        with self.assertRaises(ReportExportError):
            export_case_to_pdf(self.repo, self.session, "nope", self.root)

    def test_database_error_reported_as_export_error(self):
        case_id, _ = self._acme_case()
        with mock.patch.object(
            self.repo, "get_case_detail", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with self.assertRaises(ReportExportError) as ctx:
                export_case_to_pdf(self.repo, self.session, case_id, self.root)
        self.assertIsInstance(ctx.exception.__cause__, sqlite3.OperationalError)
        self.assertEqual(list(self.root.glob("*.pdf")), [])

    def test_settings_read_error_reported_as_export_error(self):
        case_id, _ = self._acme_case()
        with mock.patch.object(
            self.repo, "get_company_settings", side_effect=sqlite3.OperationalError("database is locked")
        ):
            with self.assertRaises(ReportExportError):
                export_case_to_pdf(self.repo, self.session, case_id, self.root)

    def test_unwritable_target(self):
        case_id, _ = self._acme_case()
        blocker = self.root / "blocker"
        blocker.write_text("a file, not a folder")
        with self.assertRaises(ReportExportError):
            export_case_to_pdf(self.repo, self.session, case_id, blocker)


if __name__ == "__main__":
    unittest.main()
