# ui/dialogs/common.py - Shared constants and helpers for dialogs

import logging
import sqlite3

from PyQt5 import QtWidgets, QtGui

from report_charts import STATUS_COLORS
from services.errors import ValidationError

logger = logging.getLogger(__name__)

STANDARD_FIELD_WIDTH = 280


def status_color(status: str) -> QtGui.QColor:
    return QtGui.QColor(STATUS_COLORS.get(status, "#6b7280"))


def status_label(status: str) -> QtWidgets.QLabel:
    """Colored badge label for a status tier."""
    lbl = QtWidgets.QLabel(status)
    lbl.setStyleSheet(
        f"background-color: {STATUS_COLORS.get(status, '#6b7280')}; color: white;"
        " font-weight: bold; padding: 2px 8px; border-radius: 3px;"
    )
    return lbl


def show_operation_error(parent, title: str, exc: Exception) -> None:
    """Warning box for rejected input, critical box for everything else."""
    if isinstance(exc, ValidationError):
        QtWidgets.QMessageBox.warning(parent, title, str(exc))
        return
    if isinstance(exc, sqlite3.Error):
        logger.error("%s: database error: %s", title, exc)
    else:
        logger.exception("%s failed", title)
    QtWidgets.QMessageBox.critical(parent, title, str(exc))
