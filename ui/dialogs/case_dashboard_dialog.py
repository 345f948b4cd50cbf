# ui/dialogs/case_dashboard_dialog.py - Case dashboard: summary, charts, tests, export

import html
from datetime import date
from pathlib import Path

from PyQt5 import QtWidgets, QtCore, QtGui

from database import CaseRepository
from domain.models import CaseTest
from pdf_export import ReportExportError, export_case_to_pdf, long_date, resolve_images
from report_charts import render_parameter_chart_png, render_status_chart_png
from report_layout import build_case_summary
from services import case_service, settings_service, storage_service
from services.session import NotSignedInError, SessionContext
from status_service import STATUSES
from ui.dialogs.common import show_operation_error, status_color, status_label
from ui.dialogs.test_form_dialog import TestFormDialog

RESULT_HEADERS = ["Parameter", "Lower Limit", "Upper Limit", "Actual Value", "Unit", "Particle Size", "Status"]


def _pixmap(png: bytes, width: int) -> QtGui.QPixmap:
    pix = QtGui.QPixmap()
    pix.loadFromData(png, "PNG")
    if pix.width() > width:
        pix = pix.scaledToWidth(width, QtCore.Qt.SmoothTransformation)
    return pix


def _image_label(reference: str, resolved: dict, max_w: int, max_h: int) -> QtWidgets.QLabel:
    """Resolved bytes first, then a readable local file, then a blank placeholder box."""
    pix = QtGui.QPixmap()
    data = resolved.get(reference)
    if not (data and pix.loadFromData(data)):
        path = storage_service.local_path(reference)
        if path is not None and path.is_file():
            pix = QtGui.QPixmap(str(path))
    lbl = QtWidgets.QLabel()
    if pix.isNull():
        lbl.setFixedSize(max_w, max_h)
        lbl.setStyleSheet("background-color: #f9fafb; border: 1px solid #e5e7eb;")
        lbl.setToolTip(f"Image unavailable: {reference}")
        return lbl
    if pix.width() > max_w or pix.height() > max_h:
        pix = pix.scaled(max_w, max_h, QtCore.Qt.KeepAspectRatio, QtCore.Qt.SmoothTransformation)
    lbl.setPixmap(pix)
    return lbl


def _num(v) -> str:
    return "-" if v is None else f"{v:g}"


class CaseDashboardDialog(QtWidgets.QDialog):
    """Everything about one case; reloads from the repository after each change."""

    def __init__(self, repo: CaseRepository, session: SessionContext, case_id: str, parent=None):
        super().__init__(parent)
        self.repo = repo
        self.session = session
        self.case_id = case_id
        self.detail = None
        self.settings = None
        # image reference -> bytes (None if it could not be fetched), kept across reloads
        self.images: dict[str, bytes | None] = {}
        self.setWindowTitle("Case Dashboard")
        self.resize(1000, 760)

        outer = QtWidgets.QVBoxLayout(self)

        toolbar = QtWidgets.QHBoxLayout()
        self.title_label = QtWidgets.QLabel()
        self.title_label.setStyleSheet("font-size: 16pt; font-weight: bold;")
        toolbar.addWidget(self.title_label)
        toolbar.addStretch()
        self.btn_add_test = QtWidgets.QPushButton("Add Test")
        self.btn_export = QtWidgets.QPushButton("Export PDF")
        toolbar.addWidget(self.btn_add_test)
        toolbar.addWidget(self.btn_export)
        outer.addLayout(toolbar)
        self.btn_add_test.clicked.connect(self.on_add_test)
        self.btn_export.clicked.connect(self.on_export)

        scroll = QtWidgets.QScrollArea()
        scroll.setWidgetResizable(True)
        outer.addWidget(scroll)
        self.content = QtWidgets.QWidget()
        self.content_layout = QtWidgets.QVBoxLayout(self.content)
        scroll.setWidget(self.content)

        btn_box = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Close)
        btn_box.rejected.connect(self.reject)
        outer.addWidget(btn_box)

        self.reload()

    # --- Loading ---

    def reload(self):
        try:
            self.detail = case_service.get_case_detail(self.repo, self.session, self.case_id)
        except Exception as e:
            show_operation_error(self, "Error loading case", e)
            return
        if self.detail is None:
            QtWidgets.QMessageBox.warning(self, "Case", "This case no longer exists.")
            return
        try:
            self.settings = settings_service.get_company_settings(self.repo, self.session)
        except Exception as e:
            show_operation_error(self, "Error loading company settings", e)
            return
        refs = [self.settings.logo_url] + [t.image_url for t in self.detail.tests]
        self.images.update(resolve_images(r for r in refs if r and r not in self.images))

        self.title_label.setText(self.detail.case.customer_name)
        self._clear_content()
        self.content_layout.addWidget(self._header_box())
        self.content_layout.addWidget(self._customer_box())
        self.content_layout.addWidget(self._summary_box())
        self.content_layout.addWidget(self._recommendations_box())
        for test in self.detail.tests:
            self.content_layout.addWidget(self._test_box(test))
        if not self.detail.tests:
            self.content_layout.addWidget(QtWidgets.QLabel("No tests yet. Use Add Test to record results."))
        self.content_layout.addStretch()

    def _clear_content(self):
        while self.content_layout.count():
            item = self.content_layout.takeAt(0)
            w = item.widget()
            if w is not None:
                w.deleteLater()

    # --- Sections ---

    def _header_box(self) -> QtWidgets.QGroupBox:
        settings = self.settings
        box = QtWidgets.QGroupBox()
        row = QtWidgets.QHBoxLayout(box)
        if settings.logo_url:
            row.addWidget(_image_label(settings.logo_url, self.images, 160, 80), alignment=QtCore.Qt.AlignTop)
        lines = [f"<b>{html.escape(settings.company_name)}</b>"]
        lines += [html.escape(v) for v in (settings.address, settings.contact_number, settings.email) if v]
        company = QtWidgets.QLabel("<br/>".join(lines))
        company.setTextFormat(QtCore.Qt.RichText)
        row.addWidget(company, 1, alignment=QtCore.Qt.AlignTop)
        dated = QtWidgets.QLabel(f"<b>Report Date</b><br/>{long_date(date.today())}")
        dated.setAlignment(QtCore.Qt.AlignRight | QtCore.Qt.AlignTop)
        row.addWidget(dated)
        return box

    def _customer_box(self) -> QtWidgets.QGroupBox:
        case = self.detail.case
        box = QtWidgets.QGroupBox("Customer Information")
        form = QtWidgets.QFormLayout(box)
        form.addRow("Customer", QtWidgets.QLabel(case.customer_name))
        for label, value in (
            ("Email", case.customer_email),
            ("Mobile", case.customer_mobile),
            ("Address", case.customer_address),
        ):
            if value:
                form.addRow(label, QtWidgets.QLabel(value))
        return box

    def _summary_box(self) -> QtWidgets.QGroupBox:
        summary = build_case_summary(self.detail)
        box = QtWidgets.QGroupBox("Executive Summary")
        layout = QtWidgets.QVBoxLayout(box)

        overall_row = QtWidgets.QHBoxLayout()
        overall_row.addWidget(status_label(summary.overall_severity))
        msg = QtWidgets.QLabel(summary.overall_message)
        msg.setWordWrap(True)
        overall_row.addWidget(msg, 1)
        layout.addLayout(overall_row)

        cond_row = QtWidgets.QHBoxLayout()
        cond_row.addWidget(QtWidgets.QLabel("Machine condition:"))
        self.machine_combo = QtWidgets.QComboBox()
        self.machine_combo.addItems(STATUSES)
        self.machine_combo.setCurrentText(summary.machine_condition)
        cond_row.addWidget(self.machine_combo)
        cond_row.addSpacing(16)
        cond_row.addWidget(QtWidgets.QLabel("Lubricant condition:"))
        self.lubricant_combo = QtWidgets.QComboBox()
        self.lubricant_combo.addItems(STATUSES)
        self.lubricant_combo.setCurrentText(summary.lubricant_condition)
        cond_row.addWidget(self.lubricant_combo)
        btn_cond = QtWidgets.QPushButton("Update Conditions")
        btn_cond.clicked.connect(self.on_update_conditions)
        cond_row.addWidget(btn_cond)
        cond_row.addStretch()
        layout.addLayout(cond_row)

        counts = ", ".join(f"{s}: {summary.status_counts[s]}" for s in STATUSES)
        layout.addWidget(
            QtWidgets.QLabel(f"{summary.test_count} test(s), {summary.total_results} parameter(s)  ({counts})")
        )
        chart = QtWidgets.QLabel()
        chart.setPixmap(_pixmap(render_status_chart_png(summary.status_counts), 640))
        layout.addWidget(chart, alignment=QtCore.Qt.AlignHCenter)
        return box

    def _recommendations_box(self) -> QtWidgets.QGroupBox:
        box = QtWidgets.QGroupBox("Recommendations")
        layout = QtWidgets.QVBoxLayout(box)
        self.recommendations_edit = QtWidgets.QPlainTextEdit(self.detail.case.recommendations or "")
        self.recommendations_edit.setFixedHeight(90)
        layout.addWidget(self.recommendations_edit)
        btn = QtWidgets.QPushButton("Save Recommendations")
        btn.clicked.connect(self.on_save_recommendations)
        layout.addWidget(btn, alignment=QtCore.Qt.AlignRight)
        return box

    def _test_box(self, test: CaseTest) -> QtWidgets.QGroupBox:
        box = QtWidgets.QGroupBox(test.test_name)
        layout = QtWidgets.QVBoxLayout(box)

        head = QtWidgets.QHBoxLayout()
        head.addWidget(QtWidgets.QLabel(f"Performed: {(test.created_at or '')[:10]}"))
        head.addStretch()
        btn_edit = QtWidgets.QPushButton("Edit Test")
        btn_edit.clicked.connect(lambda _=False, tid=test.id: self.on_edit_test(tid))
        head.addWidget(btn_edit)
        layout.addLayout(head)

        if test.image_url:
            layout.addWidget(_image_label(test.image_url, self.images, 320, 240), alignment=QtCore.Qt.AlignHCenter)
        if test.image_comment:
            comment = QtWidgets.QLabel(test.image_comment)
            comment.setWordWrap(True)
            comment.setAlignment(QtCore.Qt.AlignCenter)
            layout.addWidget(comment)

        table = QtWidgets.QTableWidget(len(test.results), len(RESULT_HEADERS))
        table.setHorizontalHeaderLabels(RESULT_HEADERS)
        table.setEditTriggers(QtWidgets.QAbstractItemView.NoEditTriggers)
        table.horizontalHeader().setSectionResizeMode(QtWidgets.QHeaderView.Stretch)
        table.verticalHeader().setVisible(False)
        for r, res in enumerate(test.results):
            cells = [
                res.parameter_name,
                _num(res.lower_limit),
                _num(res.upper_limit),
                _num(res.actual_value),
                res.unit or "-",
                res.particle_size or "-",
                res.status,
            ]
            for c, text in enumerate(cells):
                item = QtWidgets.QTableWidgetItem(text)
                item.setTextAlignment(QtCore.Qt.AlignCenter)
                if c == len(cells) - 1:
                    item.setBackground(status_color(res.status))
                    item.setForeground(QtGui.QColor("#ffffff"))
                table.setItem(r, c, item)
        table.setMinimumHeight(min(60 + 30 * len(test.results), 320))
        layout.addWidget(table)

        if test.results:
            chart = QtWidgets.QLabel()
            chart.setPixmap(_pixmap(render_parameter_chart_png(test.results), 640))
            layout.addWidget(chart, alignment=QtCore.Qt.AlignHCenter)
        return box

    # --- Actions ---

    def on_update_conditions(self):
        try:
            case_service.update_conditions(
                self.repo,
                self.session,
                self.case_id,
                self.machine_combo.currentText(),
                self.lubricant_combo.currentText(),
            )
        except Exception as e:
            show_operation_error(self, "Error updating conditions", e)
            return
        self.reload()

    def on_save_recommendations(self):
        try:
            case_service.update_recommendations(
                self.repo, self.session, self.case_id, self.recommendations_edit.toPlainText()
            )
        except Exception as e:
            show_operation_error(self, "Error saving recommendations", e)
            return
        QtWidgets.QMessageBox.information(self, "Recommendations", "Recommendations saved.")

    def on_add_test(self):
        dlg = TestFormDialog(self.repo, self.session, case_id=self.case_id, parent=self)
        dlg.exec_()
        if dlg.saved_count:
            self.reload()

    def on_edit_test(self, test_id: str):
        try:
            dlg = TestFormDialog(self.repo, self.session, test_id=test_id, parent=self)
        except Exception as e:
            show_operation_error(self, "Error loading test", e)
            return
        if dlg.exec_() == QtWidgets.QDialog.Accepted:
            self.reload()

    def on_export(self):
        target = QtWidgets.QFileDialog.getExistingDirectory(self, "Export report to folder", str(Path.home()))
        if not target:
            return
        QtWidgets.QApplication.setOverrideCursor(QtCore.Qt.WaitCursor)
        error = None
        try:
            path = export_case_to_pdf(self.repo, self.session, self.case_id, target)
        except (ReportExportError, NotSignedInError) as e:
            error = e
        finally:
            QtWidgets.QApplication.restoreOverrideCursor()
        if error is not None:
            QtWidgets.QMessageBox.critical(self, "Export failed", str(error))
            return
        QtWidgets.QMessageBox.information(self, "Export complete", f"Report saved to:\n{path}")
