# ui/dialogs/test_form_dialog.py - Add or edit a test and its parameter rows

import logging
from pathlib import Path

from PyQt5 import QtWidgets, QtCore

from database import CaseRepository
from domain.models import ParameterRow
from services import template_service, test_service
from services.session import SessionContext
from services.test_service import TestImage
from ui.dialogs.common import STANDARD_FIELD_WIDTH, show_operation_error

logger = logging.getLogger(__name__)

COLUMNS = [
    ("name", "Parameter*"),
    ("lower_limit", "Lower Limit"),
    ("upper_limit", "Upper Limit"),
    ("actual_value", "Actual Value*"),
    ("unit", "Unit"),
    ("particle_size", "Particle Size"),
]


class TestFormDialog(QtWidgets.QDialog):
    """
    Add mode (case_id given): optional template prefill, optional save of the
    row set as a new template, then offers to add another test.
    Edit mode (test_id given): loads the test; saving replaces its results.
    """

    def __init__(
        self,
        repo: CaseRepository,
        session: SessionContext,
        case_id: str | None = None,
        test_id: str | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self.repo = repo
        self.session = session
        self.case_id = case_id
        self.test_id = test_id
        self.saved_count = 0
        self._existing_image: str | None = None
        self._upload_path: str | None = None
        self._image_touched = False
        self.setWindowTitle("Edit Test" if test_id else "Add Test")
        self.resize(820, 520)

        layout = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()

        self.template_combo = QtWidgets.QComboBox()
        self.template_combo.addItem("(No template)", None)
        if not test_id:
            for t in template_service.list_templates(repo, session):
                self.template_combo.addItem(t.test_name, t.id)
            self.template_combo.currentIndexChanged.connect(self._on_template_selected)
            form.addRow("Load template", self.template_combo)

        self.name_edit = QtWidgets.QLineEdit()
        self.name_edit.setMinimumWidth(STANDARD_FIELD_WIDTH)
        form.addRow("Test name*", self.name_edit)

        image_row = QtWidgets.QHBoxLayout()
        self.image_label = QtWidgets.QLabel("No image")
        btn_image = QtWidgets.QPushButton("Choose Image...")
        btn_image.clicked.connect(self._on_choose_image)
        btn_clear = QtWidgets.QPushButton("Remove")
        btn_clear.clicked.connect(self._on_clear_image)
        image_row.addWidget(self.image_label, 1)
        image_row.addWidget(btn_image)
        image_row.addWidget(btn_clear)
        form.addRow("Image", image_row)

        self.comment_edit = QtWidgets.QLineEdit()
        self.comment_edit.setPlaceholderText("Optional comment shown under the image")
        self.comment_edit.textEdited.connect(self._mark_image_touched)
        form.addRow("Image comment", self.comment_edit)
        layout.addLayout(form)

        self.table = QtWidgets.QTableWidget(0, len(COLUMNS))
        self.table.setHorizontalHeaderLabels([label for _, label in COLUMNS])
        self.table.horizontalHeader().setSectionResizeMode(QtWidgets.QHeaderView.Stretch)
        self.table.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectRows)
        layout.addWidget(self.table)

        row_btns = QtWidgets.QHBoxLayout()
        btn_add_row = QtWidgets.QPushButton("Add Parameter")
        btn_add_row.clicked.connect(lambda: self._append_row(ParameterRow()))
        btn_remove_row = QtWidgets.QPushButton("Remove Parameter")
        btn_remove_row.clicked.connect(self._on_remove_row)
        row_btns.addWidget(btn_add_row)
        row_btns.addWidget(btn_remove_row)
        row_btns.addStretch()
        layout.addLayout(row_btns)

        self.save_template_check = QtWidgets.QCheckBox("Also save these parameters as a template")
        if not test_id:
            layout.addWidget(self.save_template_check)

        self.btn_box = QtWidgets.QDialogButtonBox(
            QtWidgets.QDialogButtonBox.Save | QtWidgets.QDialogButtonBox.Cancel
        )
        self.btn_box.accepted.connect(self.accept)
        self.btn_box.rejected.connect(self.reject)
        layout.addWidget(self.btn_box)

        if test_id:
            self._load_existing()
        else:
            self._append_row(ParameterRow())

    # --- Form state ---

    def _load_existing(self):
        test, rows = test_service.load_test_for_edit(self.repo, self.session, self.test_id)
        self.name_edit.setText(test.test_name)
        self._existing_image = test.image_url
        self.comment_edit.setText(test.image_comment or "")
        self._refresh_image_label()
        self._set_rows(rows)

    def _set_rows(self, rows: list[ParameterRow]):
        self.table.setRowCount(0)
        for row in rows:
            self._append_row(row)

    def _append_row(self, row: ParameterRow):
        r = self.table.rowCount()
        self.table.insertRow(r)
        for c, (attr, _) in enumerate(COLUMNS):
            self.table.setItem(r, c, QtWidgets.QTableWidgetItem(getattr(row, attr)))

    def _on_remove_row(self):
        rows = sorted({i.row() for i in self.table.selectedIndexes()}, reverse=True)
        if not rows and self.table.rowCount():
            rows = [self.table.rowCount() - 1]
        for r in rows:
            self.table.removeRow(r)

    def rows(self) -> list[ParameterRow]:
        out = []
        for r in range(self.table.rowCount()):
            values = {}
            for c, (attr, _) in enumerate(COLUMNS):
                item = self.table.item(r, c)
                values[attr] = item.text() if item is not None else ""
            out.append(ParameterRow(**values))
        return out

    def _on_template_selected(self, index: int):
        template_id = self.template_combo.itemData(index)
        if not template_id:
            return
        try:
            name, rows = template_service.prefill_from_template(self.repo, self.session, template_id)
        except Exception as e:
            show_operation_error(self, "Error loading template", e)
            return
        self.name_edit.setText(name)
        self._set_rows(rows)

    def _mark_image_touched(self, *_):
        self._image_touched = True

    def _refresh_image_label(self):
        if self._upload_path:
            self.image_label.setText(Path(self._upload_path).name)
        elif self._existing_image:
            self.image_label.setText(f"Current: {self._existing_image}")
        else:
            self.image_label.setText("No image")

    def _on_choose_image(self):
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self, "Choose image", "", "Images (*.png *.jpg *.jpeg *.gif *.bmp *.webp)"
        )
        if path:
            self._upload_path = path
            self._image_touched = True
            self._refresh_image_label()

    def _on_clear_image(self):
        self._upload_path = None
        self._existing_image = None
        self._image_touched = True
        self._refresh_image_label()

    def _image_choice(self) -> TestImage | None:
        """None in edit mode when the image and comment were left alone."""
        if self.test_id and not self._image_touched:
            return None
        return TestImage(
            upload_path=self._upload_path,
            reference=self._existing_image,
            comment=self.comment_edit.text(),
        )

    def _reset_for_next(self):
        self.template_combo.setCurrentIndex(0)
        self.name_edit.clear()
        self.comment_edit.clear()
        self.save_template_check.setChecked(False)
        self._upload_path = None
        self._existing_image = None
        self._refresh_image_label()
        self._set_rows([ParameterRow()])
        self.name_edit.setFocus()

    # --- Save ---

    def accept(self):
        save_btn = self.btn_box.button(QtWidgets.QDialogButtonBox.Save)
        if save_btn:
            save_btn.setEnabled(False)
        try:
            self._save()
        except Exception as e:
            show_operation_error(self, "Error saving test", e)
            return
        finally:
            if save_btn:
                save_btn.setEnabled(True)

        if self.test_id:
            super().accept()
            return
        reply = QtWidgets.QMessageBox.question(
            self,
            "Test saved",
            "Test saved. Add another test to this case?",
            QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No,
            QtWidgets.QMessageBox.No,
        )
        if reply == QtWidgets.QMessageBox.Yes:
            self._reset_for_next()
            return
        super().accept()

    def _save(self):
        name = self.name_edit.text()
        rows = self.rows()
        if self.test_id:
            test_service.save_test_edit(self.repo, self.session, self.test_id, name, rows, self._image_choice())
            return
        test_service.save_new_test(self.repo, self.session, self.case_id, name, rows, self._image_choice())
        self.saved_count += 1
        if self.save_template_check.isChecked():
            try:
                template_service.save_rows_as_template(self.repo, self.session, name, rows)
            except Exception as e:
                # The test itself is already stored
                show_operation_error(self, "Error saving template", e)

    def sizeHint(self):
        return QtCore.QSize(820, 520)
