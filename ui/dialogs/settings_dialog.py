# ui/dialogs/settings_dialog.py - Company profile dialog

from PyQt5 import QtWidgets

from database import CaseRepository
from services import settings_service, storage_service
from services.session import SessionContext
from ui.dialogs.common import STANDARD_FIELD_WIDTH, show_operation_error


class SettingsDialog(QtWidgets.QDialog):
    """Company name, logo and contact details used on the report header and footer."""

    def __init__(self, repo: CaseRepository, session: SessionContext, parent=None):
        super().__init__(parent)
        self.repo = repo
        self.session = session
        self.setWindowTitle("Company Settings")

        settings = settings_service.get_company_settings(repo, session)

        layout = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()

        self.name_edit = QtWidgets.QLineEdit(settings.company_name)
        self.name_edit.setMinimumWidth(STANDARD_FIELD_WIDTH)
        self.phone_edit = QtWidgets.QLineEdit(settings.contact_number or "")
        self.email_edit = QtWidgets.QLineEdit(settings.email or "")
        self.address_edit = QtWidgets.QPlainTextEdit(settings.address or "")
        self.address_edit.setFixedHeight(60)

        logo_row = QtWidgets.QHBoxLayout()
        self.logo_edit = QtWidgets.QLineEdit(settings.logo_url or "")
        self.logo_edit.setPlaceholderText("Image URL or choose a file")
        btn_logo = QtWidgets.QPushButton("Browse...")
        btn_logo.clicked.connect(self._on_browse_logo)
        logo_row.addWidget(self.logo_edit)
        logo_row.addWidget(btn_logo)

        form.addRow("Company name*", self.name_edit)
        form.addRow("Logo", logo_row)
        form.addRow("Contact number", self.phone_edit)
        form.addRow("Email", self.email_edit)
        form.addRow("Address", self.address_edit)
        layout.addLayout(form)

        self.btn_box = QtWidgets.QDialogButtonBox(
            QtWidgets.QDialogButtonBox.Save | QtWidgets.QDialogButtonBox.Cancel
        )
        self.btn_box.accepted.connect(self.accept)
        self.btn_box.rejected.connect(self.reject)
        layout.addWidget(self.btn_box)

    def _on_browse_logo(self):
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self, "Choose logo", "", "Images (*.png *.jpg *.jpeg *.gif *.bmp *.webp)"
        )
        if not path:
            return
        try:
            self.logo_edit.setText(storage_service.upload_image(self.session, path))
        except (OSError, ValueError) as e:
            QtWidgets.QMessageBox.warning(self, "Logo", str(e))

    def accept(self):
        save_btn = self.btn_box.button(QtWidgets.QDialogButtonBox.Save)
        if save_btn:
            save_btn.setEnabled(False)
        try:
            settings_service.save_company_settings(
                self.repo,
                self.session,
                {
                    "company_name": self.name_edit.text(),
                    "logo_url": self.logo_edit.text(),
                    "contact_number": self.phone_edit.text(),
                    "email": self.email_edit.text(),
                    "address": self.address_edit.toPlainText(),
                },
            )
            super().accept()
        except Exception as e:
            if save_btn:
                save_btn.setEnabled(True)
            show_operation_error(self, "Error saving settings", e)
