# ui/dialogs/sign_in_dialog.py - Operator sign-in

from PyQt5 import QtWidgets

from services.session import SessionContext, sign_in
from ui.dialogs.common import STANDARD_FIELD_WIDTH


class SignInDialog(QtWidgets.QDialog):
    """Ask for the owner ID (and optional display name) used to scope records."""

    def __init__(self, default_owner: str = "", parent=None):
        super().__init__(parent)
        self.setWindowTitle("Sign in")
        self.session: SessionContext | None = None

        layout = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.owner_edit = QtWidgets.QLineEdit(default_owner)
        self.owner_edit.setMinimumWidth(STANDARD_FIELD_WIDTH)
        self.owner_edit.setPlaceholderText("Lab or analyst ID")
        self.name_edit = QtWidgets.QLineEdit()
        self.name_edit.setPlaceholderText("Optional")
        form.addRow("Owner ID*", self.owner_edit)
        form.addRow("Display name", self.name_edit)
        layout.addLayout(form)

        btn_box = QtWidgets.QDialogButtonBox(
            QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel
        )
        btn_box.accepted.connect(self.accept)
        btn_box.rejected.connect(self.reject)
        layout.addWidget(btn_box)

    def accept(self):
        try:
            self.session = sign_in(self.owner_edit.text(), self.name_edit.text())
        except ValueError as e:
            QtWidgets.QMessageBox.warning(self, "Sign in", str(e))
            return
        super().accept()
