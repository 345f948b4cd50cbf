# ui/run.py - Application entry point and run_gui

from PyQt5 import QtWidgets

from config import load_default_owner
from database import CaseRepository
from services.session import SessionContext
from ui.dialogs import SignInDialog
from ui.main_window import MainWindow


def run_gui(repo: CaseRepository, session: SessionContext | None = None) -> None:
    """Create and run the main application window. Asks for sign-in if no session is given."""
    app = QtWidgets.QApplication([])
    app.setOrganizationName("OilAnalysisTracker")
    app.setApplicationName("OilAnalysisTracker")
    if session is None:
        dlg = SignInDialog(default_owner=load_default_owner())
        if dlg.exec_() != QtWidgets.QDialog.Accepted or dlg.session is None:
            return
        session = dlg.session
    win = MainWindow(repo, session)
    win.show()
    app.exec_()
