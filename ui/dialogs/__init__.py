# ui/dialogs - Application dialogs
from ui.dialogs.case_dashboard_dialog import CaseDashboardDialog
from ui.dialogs.new_case_dialog import NewCaseDialog
from ui.dialogs.settings_dialog import SettingsDialog
from ui.dialogs.sign_in_dialog import SignInDialog
from ui.dialogs.test_form_dialog import TestFormDialog

__all__ = [
    "CaseDashboardDialog",
    "NewCaseDialog",
    "SettingsDialog",
    "SignInDialog",
    "TestFormDialog",
]
