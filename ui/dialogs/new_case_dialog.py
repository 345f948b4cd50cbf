# ui/dialogs/new_case_dialog.py - Two-step case creation

from PyQt5 import QtWidgets

from database import CaseRepository
from services import case_service
from services.errors import ValidationError
from services.session import SessionContext
from status_service import (
    LUBRICANT_CONDITION_HINTS,
    MACHINE_CONDITION_HINTS,
    NORMAL,
    STATUSES,
)
from ui.dialogs.common import STANDARD_FIELD_WIDTH, show_operation_error, status_color


class _ConditionGroup(QtWidgets.QGroupBox):
    """One radio button per status tier, each with its hint text."""

    def __init__(self, title: str, hints: dict, parent=None):
        super().__init__(title, parent)
        layout = QtWidgets.QVBoxLayout(self)
        self.group = QtWidgets.QButtonGroup(self)
        self._buttons = {}
        for status in STATUSES:
            btn = QtWidgets.QRadioButton(f"{status}  -  {hints[status]}")
            btn.setStyleSheet(f"QRadioButton {{ color: {status_color(status).name()}; }}")
            self.group.addButton(btn)
            self._buttons[status] = btn
            layout.addWidget(btn)
        self._buttons[NORMAL].setChecked(True)

    def value(self) -> str:
        for status, btn in self._buttons.items():
            if btn.isChecked():
                return status
        return NORMAL


class NewCaseDialog(QtWidgets.QDialog):
    """Step 1: customer details. Step 2: machine and lubricant condition."""

    def __init__(self, repo: CaseRepository, session: SessionContext, parent=None):
        super().__init__(parent)
        self.repo = repo
        self.session = session
        self.case_id: str | None = None
        self._customer: dict | None = None
        self.setWindowTitle("New Case")

        layout = QtWidgets.QVBoxLayout(self)
        self.step_label = QtWidgets.QLabel()
        layout.addWidget(self.step_label)

        self.stack = QtWidgets.QStackedWidget()
        layout.addWidget(self.stack)

        # Step 1
        customer_page = QtWidgets.QWidget()
        form = QtWidgets.QFormLayout(customer_page)
        self.name_edit = QtWidgets.QLineEdit()
        self.name_edit.setMinimumWidth(STANDARD_FIELD_WIDTH)
        self.email_edit = QtWidgets.QLineEdit()
        self.mobile_edit = QtWidgets.QLineEdit()
        self.address_edit = QtWidgets.QPlainTextEdit()
        self.address_edit.setFixedHeight(60)
        form.addRow("Customer name*", self.name_edit)
        form.addRow("Email", self.email_edit)
        form.addRow("Mobile", self.mobile_edit)
        form.addRow("Address", self.address_edit)
        self.stack.addWidget(customer_page)

        # Step 2
        condition_page = QtWidgets.QWidget()
        cond_layout = QtWidgets.QVBoxLayout(condition_page)
        self.machine_group = _ConditionGroup("Machine Condition", MACHINE_CONDITION_HINTS)
        self.lubricant_group = _ConditionGroup("Lubricant Condition", LUBRICANT_CONDITION_HINTS)
        cond_layout.addWidget(self.machine_group)
        cond_layout.addWidget(self.lubricant_group)
        self.stack.addWidget(condition_page)

        btn_row = QtWidgets.QHBoxLayout()
        self.btn_back = QtWidgets.QPushButton("Back")
        self.btn_next = QtWidgets.QPushButton("Continue")
        self.btn_next.setDefault(True)
        btn_cancel = QtWidgets.QPushButton("Cancel")
        btn_row.addWidget(btn_cancel)
        btn_row.addStretch()
        btn_row.addWidget(self.btn_back)
        btn_row.addWidget(self.btn_next)
        layout.addLayout(btn_row)

        btn_cancel.clicked.connect(self.reject)
        self.btn_back.clicked.connect(lambda: self._go_to(0))
        self.btn_next.clicked.connect(self._on_next)
        self._go_to(0)

    def _go_to(self, step: int):
        self.stack.setCurrentIndex(step)
        self.step_label.setText(
            "<b>Step 1 of 2:</b> Customer details" if step == 0 else "<b>Step 2 of 2:</b> Condition assessment"
        )
        self.btn_back.setEnabled(step > 0)
        self.btn_next.setText("Continue" if step == 0 else "Create Case")

    def _customer_data(self) -> dict:
        return {
            "customer_name": self.name_edit.text(),
            "customer_email": self.email_edit.text(),
            "customer_mobile": self.mobile_edit.text(),
            "customer_address": self.address_edit.toPlainText(),
        }

    def _on_next(self):
        if self.stack.currentIndex() == 0:
            try:
                self._customer = case_service.validate_customer_step(self._customer_data())
            except ValidationError as e:
                QtWidgets.QMessageBox.warning(self, "Customer details", str(e))
                self.name_edit.setFocus()
                return
            self._go_to(1)
            return

        self.btn_next.setEnabled(False)
        try:
            self.case_id = case_service.create_case(
                self.repo,
                self.session,
                self._customer or self._customer_data(),
                self.machine_group.value(),
                self.lubricant_group.value(),
            )
        except Exception as e:
            self.btn_next.setEnabled(True)
            show_operation_error(self, "Error creating case", e)
            return
        self.accept()
