# ui/main_window.py - Main application window

import csv
import logging
from pathlib import Path

from PyQt5 import QtWidgets, QtCore, QtGui

from config import load_default_owner
from database import CaseRepository, get_effective_db_path
from services import case_service
from services.errors import CaseLoadError
from services.session import SessionContext, sign_out
from status_service import STATUSES
from ui.dialogs import (
    CaseDashboardDialog,
    NewCaseDialog,
    SettingsDialog,
    SignInDialog,
)
from ui.table_models import CaseFilterProxyModel, CaseTableModel

logger = logging.getLogger(__name__)


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, repo: CaseRepository, session: SessionContext):
        super().__init__()
        self.repo = repo
        self.session = session
        self.setWindowTitle("Oil Analysis Tracker")
        self.resize(1000, 600)

        self._init_ui()
        self.load_cases()

    def _init_ui(self):
        central = QtWidgets.QWidget()
        layout = QtWidgets.QVBoxLayout(central)

        # ------------------------------------------------------------------
        # Toolbar
        # ------------------------------------------------------------------
        toolbar = self.addToolBar("Main")
        toolbar.setMovable(False)
        toolbar.setToolButtonStyle(QtCore.Qt.ToolButtonTextBesideIcon)

        self.act_new = toolbar.addAction("New Case")
        self.act_new.setShortcut(QtGui.QKeySequence.New)
        self.act_new.setToolTip("Create a new case (Ctrl+N)")

        self.act_open = toolbar.addAction("Open")
        self.act_open.setShortcut(QtGui.QKeySequence.Open)
        self.act_open.setToolTip("Open the selected case dashboard (Ctrl+O)")

        self.act_refresh = toolbar.addAction("Refresh")
        self.act_refresh.setShortcut(QtGui.QKeySequence.Refresh)

        toolbar.addSeparator()

        self.act_settings = toolbar.addAction("Settings")
        self.act_settings.setShortcut(QtGui.QKeySequence.Preferences)
        self.act_settings.setToolTip("Company profile used on reports")

        self.act_sign_out = toolbar.addAction("Sign Out")

        self.act_new.triggered.connect(self.on_new)
        self.act_open.triggered.connect(self.on_open)
        self.act_refresh.triggered.connect(self.load_cases)
        self.act_settings.triggered.connect(self.on_settings)
        self.act_sign_out.triggered.connect(self.on_sign_out)

        menubar = self.menuBar()
        file_menu = menubar.addMenu("&File")
        file_menu.addAction(self.act_new)
        file_menu.addAction(self.act_open)
        file_menu.addSeparator()
        export_menu = file_menu.addMenu("&Export")
        export_csv_action = export_menu.addAction("Case list to CSV...")
        export_csv_action.setShortcut(QtGui.QKeySequence("Ctrl+Shift+C"))
        export_csv_action.triggered.connect(self.on_export_csv)
        export_excel_action = export_menu.addAction("Case list to Excel...")
        export_excel_action.setShortcut(QtGui.QKeySequence("Ctrl+Shift+E"))
        export_excel_action.triggered.connect(self.on_export_excel)
        file_menu.addSeparator()
        file_menu.addAction(self.act_settings)
        file_menu.addAction(self.act_sign_out)
        file_menu.addSeparator()
        exit_action = file_menu.addAction("E&xit")
        exit_action.setShortcut(QtGui.QKeySequence.Quit)
        exit_action.triggered.connect(self.close)

        # ------------------------------------------------------------------
        # Filters
        # ------------------------------------------------------------------
        filter_row = QtWidgets.QHBoxLayout()
        self.search_edit = QtWidgets.QLineEdit()
        self.search_edit.setPlaceholderText("Search customer, email, mobile, address...")
        self.search_edit.setClearButtonEnabled(True)
        self.severity_combo = QtWidgets.QComboBox()
        self.severity_combo.addItem("All severities", "")
        for s in STATUSES:
            self.severity_combo.addItem(s, s)
        filter_row.addWidget(self.search_edit, 1)
        filter_row.addWidget(self.severity_combo)
        layout.addLayout(filter_row)

        # ------------------------------------------------------------------
        # Case list, or a persistent error state with Retry
        # ------------------------------------------------------------------
        self.stack = QtWidgets.QStackedWidget()
        layout.addWidget(self.stack)

        self.model = CaseTableModel([])
        self.proxy = CaseFilterProxyModel(self)
        self.proxy.setSourceModel(self.model)
        self.table = QtWidgets.QTableView()
        self.table.setModel(self.proxy)
        self.table.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectRows)
        self.table.setSelectionMode(QtWidgets.QAbstractItemView.SingleSelection)
        self.table.setEditTriggers(QtWidgets.QAbstractItemView.NoEditTriggers)
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.doubleClicked.connect(self.on_table_double_clicked)
        self.stack.addWidget(self.table)

        error_page = QtWidgets.QWidget()
        error_layout = QtWidgets.QVBoxLayout(error_page)
        error_layout.addStretch()
        self.error_label = QtWidgets.QLabel()
        self.error_label.setWordWrap(True)
        self.error_label.setAlignment(QtCore.Qt.AlignCenter)
        self.error_label.setStyleSheet("color: #d63b3b;")
        error_layout.addWidget(self.error_label)
        btn_retry = QtWidgets.QPushButton("Retry")
        btn_retry.clicked.connect(self.load_cases)
        error_layout.addWidget(btn_retry, alignment=QtCore.Qt.AlignCenter)
        error_layout.addStretch()
        self.stack.addWidget(error_page)

        self.search_edit.textChanged.connect(self.proxy.set_text_filter)
        self.severity_combo.currentIndexChanged.connect(
            lambda _: self.proxy.set_severity_filter(self.severity_combo.currentData())
        )

        self.setCentralWidget(central)
        self.statusBar()
        self._update_status_bar()

    def _update_status_bar(self):
        self.statusBar().showMessage(
            f"Signed in as {self.session.label}  |  {self.model.rowCount()} case(s)  |  {get_effective_db_path()}"
        )

    def load_cases(self):
        QtWidgets.QApplication.setOverrideCursor(QtCore.Qt.WaitCursor)
        try:
            cases = case_service.list_cases_with_retry(self.repo, self.session)
        except CaseLoadError as e:
            logger.warning("Showing case list error state: %s", e)
            self.error_label.setText(
                f"Could not load cases after {e.attempts} attempt(s).\n\n{e}"
            )
            self.stack.setCurrentIndex(1)
            return
        finally:
            QtWidgets.QApplication.restoreOverrideCursor()
        self.model.set_cases(cases)
        self.table.resizeColumnsToContents()
        self.stack.setCurrentIndex(0)
        self._update_status_bar()

    def _selected_case_id(self):
        idx = self.table.currentIndex()
        if not idx.isValid():
            return None
        src = self.proxy.mapToSource(idx)
        return self.model.get_case_id(src.row())

    def on_table_double_clicked(self, index: QtCore.QModelIndex):
        if index.isValid():
            self.on_open()

    def on_new(self):
        dlg = NewCaseDialog(self.repo, self.session, parent=self)
        if dlg.exec_() != QtWidgets.QDialog.Accepted or not dlg.case_id:
            return
        self.load_cases()
        self._open_dashboard(dlg.case_id)

    def on_open(self):
        case_id = self._selected_case_id()
        if not case_id:
            QtWidgets.QMessageBox.information(self, "Open case", "Select a case first.")
            return
        self._open_dashboard(case_id)

    def _open_dashboard(self, case_id: str):
        dlg = CaseDashboardDialog(self.repo, self.session, case_id, parent=self)
        dlg.exec_()
        # Conditions may have changed on the dashboard
        self.load_cases()

    def on_settings(self):
        dlg = SettingsDialog(self.repo, self.session, parent=self)
        dlg.exec_()

    # ------------------------------------------------------------------
    # Case list export (current filtered view)
    # ------------------------------------------------------------------

    def _view_rows(self):
        headers = [
            self.proxy.headerData(c, QtCore.Qt.Horizontal, QtCore.Qt.DisplayRole)
            for c in range(self.proxy.columnCount())
        ]
        rows = []
        for row in range(self.proxy.rowCount()):
            vals = []
            for col in range(self.proxy.columnCount()):
                val = self.proxy.data(self.proxy.index(row, col), QtCore.Qt.DisplayRole)
                vals.append("" if val is None else str(val))
            rows.append(vals)
        return headers, rows

    def _ask_save_path(self, title: str, file_filter: str, suffix: str):
        path, _ = QtWidgets.QFileDialog.getSaveFileName(self, title, "", file_filter)
        if not path:
            return None
        if not path.endswith(suffix):
            path = path + suffix
        if Path(path).exists():
            reply = QtWidgets.QMessageBox.question(
                self,
                "File exists",
                f"The file already exists:\n{path}\n\nOverwrite?",
                QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No,
                QtWidgets.QMessageBox.No,
            )
            if reply != QtWidgets.QMessageBox.Yes:
                return None
        return path

    def on_export_csv(self):
        path = self._ask_save_path("Export case list to CSV", "CSV files (*.csv);;All files (*)", ".csv")
        if not path:
            return
        headers, rows = self._view_rows()
        try:
            with open(path, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow(headers)
                writer.writerows(rows)
        except OSError as e:
            QtWidgets.QMessageBox.critical(self, "Export failed", str(e))
            return
        QtWidgets.QMessageBox.information(self, "Export complete", f"Exported {len(rows)} case(s) to:\n{path}")

    def on_export_excel(self):
        """Export the current (filtered) case view to XLSX using openpyxl."""
        path = self._ask_save_path("Export case list to Excel", "Excel files (*.xlsx);;All files (*)", ".xlsx")
        if not path:
            return
        headers, rows = self._view_rows()
        try:
            from openpyxl import Workbook
            wb = Workbook()
            ws = wb.active
            if ws is None:
                ws = wb.create_sheet("Cases", 0)
            ws.title = "Cases"
            ws.append(headers)
            for vals in rows:
                ws.append(vals)
            wb.save(path)
        except OSError as e:
            QtWidgets.QMessageBox.critical(self, "Export failed", str(e))
            return
        QtWidgets.QMessageBox.information(self, "Export complete", f"Exported {len(rows)} case(s) to:\n{path}")

    def on_sign_out(self):
        sign_out(self.session)
        dlg = SignInDialog(default_owner=load_default_owner(), parent=self)
        if dlg.exec_() != QtWidgets.QDialog.Accepted or dlg.session is None:
            self.close()
            return
        self.session = dlg.session
        self.load_cases()
